# ========================
# tests/test_pipeline.py
# ========================

import unittest
import tempfile
import shutil
import json
import sys
import os
from datetime import datetime
from unittest import mock

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from csv2arrow.main import main
from csv2arrow.pipeline import DataPipeline, DataSaver, read_table
from csv2arrow.pipeline.errors import ConfigurationError, MalformedRowError, TypeCoercionError
from csv2arrow.pipeline.schema import CategoricalType, FloatType, IntegerType, StringType, TimestampType
from csv2arrow.utils.config import Config
from csv2arrow.utils.data_generator import DataGenerator, HEADER
from csv2arrow.utils.performance_monitor import monitor_performance


class PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def _path(self, name):
        return os.path.join(self.temp_dir, name)

    def _write(self, name, content):
        path = self._path(name)
        with open(path, 'w', newline='', encoding='utf-8') as f:
            f.write(content)
        return path

    def _generate(self, name='311.csv', num_rows=300, **kwargs):
        path = self._path(name)
        DataGenerator(seed=42).generate_dataset(path, num_rows, **kwargs)
        return path


class TestDataPipeline(PipelineTestCase):
    """End-to-end runs of the ingestion pipeline."""

    def test_generated_311_data(self):
        """A generated 311 extract converts into the expected typed schema."""
        input_file = self._generate()
        output_file = self._path('311.arrow')
        config = Config({'COLUMNS_TO_DROP': ['Location'], 'COMPRESSION_CODEC': 'zstd'})

        results = DataPipeline(input_file, output_file, config).run()

        self.assertEqual(results['pipeline_status'], 'completed')
        self.assertEqual(results['processing_stats']['rows'], 300)
        self.assertTrue(os.path.exists(output_file))

        table = read_table(output_file)
        self.assertEqual(table.num_rows, 300)
        self.assertEqual(table.column_names, [
            'Unique_Key', 'Created_Date', 'Closed_Date', 'Agency', 'Complaint_Type',
            'Incident_Address', 'Incident_Zip', 'Borough', 'Status', 'Latitude', 'Longitude',
        ])

        self.assertEqual(table['Unique_Key'].type, IntegerType(32))
        self.assertFalse(table['Unique_Key'].nullable)
        self.assertEqual(table['Created_Date'].type, TimestampType('s'))
        self.assertFalse(table['Created_Date'].nullable)
        self.assertTrue(table['Closed_Date'].nullable)
        self.assertEqual(table['Incident_Zip'].type, IntegerType(16))
        self.assertTrue(table['Incident_Zip'].nullable)
        self.assertEqual(table['Latitude'].type, FloatType(64))
        self.assertEqual(table['Incident_Address'].type, StringType())

        # Padded spellings are stripped before encoding
        agency = table['Agency']
        self.assertIsInstance(agency.type, CategoricalType)
        self.assertEqual(set(agency.type.levels), {'NYPD', 'HPD', 'DSNY', 'DOT', 'DEP'})
        self.assertEqual(agency.type.index_width, 8)
        self.assertIn('Unspecified', table['Borough'].type.levels)

        schema = {entry['name']: entry for entry in results['schema']}
        self.assertEqual(schema['Agency']['levels'], 5)
        self.assertEqual(results['processing_stats']['stages']['drop']['columns_dropped'], ['Location'])
        self.assertEqual(
            [c['name'] for c in results['performance']['checkpoints']],
            ['read', 'infer', 'coerce', 'drop', 'encode', 'write'],
        )

    def test_gzip_input(self):
        input_file = self._generate('311.csv.gz', num_rows=50, compress=True)
        table = DataPipeline(input_file, config=Config()).build_table()
        self.assertEqual(table.num_rows, 50)
        self.assertEqual(table.num_columns, len(HEADER))

    def test_scenario_nullable_float(self):
        input_file = self._write('a.csv', 'id,amt\n1,5.0\n2,\n3,NA\n')
        output_file = self._path('a.arrow')
        DataPipeline(input_file, output_file, Config({'MISSING_TOKENS': ['NA']})).run()

        table = read_table(output_file)
        self.assertEqual(table['amt'].type, FloatType(32))
        self.assertEqual(table['amt'].values, (5.0, None, None))
        self.assertTrue(table['amt'].nullable)
        self.assertFalse(table['id'].nullable)

    def test_scenario_malformed_row_writes_nothing(self):
        input_file = self._write('c.csv', 'a,b,c\n1,2,3\n4,5\n')
        output_file = self._path('c.arrow')

        with self.assertRaises(MalformedRowError) as ctx:
            DataPipeline(input_file, output_file, Config()).run()
        self.assertEqual(ctx.exception.row_number, 2)
        self.assertFalse(os.path.exists(output_file))

    def test_scenario_forced_type_conflict(self):
        input_file = self._write('d.csv', 'id,qty\n1,4\n2,abc\n')
        output_file = self._path('d.arrow')
        config = Config({'COLUMN_TYPE_OVERRIDES': {'qty': 'int'}})

        with self.assertRaises(TypeCoercionError) as ctx:
            DataPipeline(input_file, output_file, config).run()
        self.assertEqual(ctx.exception.column, 'qty')
        self.assertEqual(ctx.exception.row_number, 2)
        self.assertEqual(ctx.exception.value, 'abc')
        self.assertFalse(os.path.exists(output_file))

    def test_rerun_on_exported_output_is_identical(self):
        """Running on the decoded CSV export with the same config gives the same table."""
        input_file = self._generate(num_rows=200)
        config = Config({
            'COLUMNS_TO_DROP': ['Location'],
            'COLUMN_TYPE_OVERRIDES': {'Incident Zip': 'string'},
        })

        first = DataPipeline(input_file, config=config).build_table()
        export = DataSaver(config.DATE_PATTERN).save_csv(first, self._path('export.csv'))
        second = DataPipeline(export, config=config).build_table()

        self.assertTrue(first.equals(second))
        self.assertNotIn('Location', second)
        # Forced to string, then encoded because it has few distinct zips
        self.assertTrue(second['Incident_Zip'].is_categorical)

    def test_column_references_by_raw_name(self):
        input_file = self._write(
            'refs.csv',
            'Incident Zip,Unique Key,Status\n10001,1,Open\n-,2,Closed\n11201,3,Open\n',
        )
        config = Config({
            'COLUMN_MISSING_TOKENS': {'Incident Zip': ['-']},
            'CATEGORICAL_COLUMNS': ['Unique Key'],
            'COLUMN_TYPE_OVERRIDES': {'Unique_Key': 'string', 2: 'categorical'},
            'DICTIONARY_CARDINALITY_THRESHOLD': 0,
        })
        table = DataPipeline(input_file, config=config).build_table()

        self.assertEqual(table['Incident_Zip'].type, IntegerType(16))
        self.assertEqual(table['Incident_Zip'].values, (10001, None, 11201))
        self.assertTrue(table['Unique_Key'].is_categorical)
        self.assertEqual(table['Status'].type.levels, ('Open', 'Closed'))

    def test_unknown_column_in_config(self):
        input_file = self._write('u.csv', 'a,b\n1,2\n')
        config = Config({'COLUMN_TYPE_OVERRIDES': {'c': 'int'}})
        with self.assertRaises(ConfigurationError):
            DataPipeline(input_file, config=config).build_table()

    def test_invalid_config_is_rejected_up_front(self):
        with self.assertRaises(ConfigurationError):
            DataPipeline('in.csv', 'out.arrow', Config({'COMPRESSION_CODEC': 'gzip'}))

    def test_single_column_blank_lines_are_missing_values(self):
        input_file = self._write('one.csv', 'name\nx\n\ny\n')
        table = DataPipeline(input_file, config=Config({'MISSING_TOKENS': []})).build_table()

        self.assertEqual(table.num_rows, 3)
        self.assertEqual(table.to_pydict(), {'name': ['x', None, 'y']})
        self.assertTrue(table['name'].nullable)

    def test_table_metadata(self):
        input_file = self._write('m.csv', 'a\n1\n')
        table = DataPipeline(input_file, config=Config({'MISSING_TOKENS': ['NA']})).build_table()
        self.assertEqual(table.metadata['csv2arrow.source'], 'm.csv')
        self.assertEqual(table.metadata['csv2arrow.missing_tokens'], 'NA')

    def test_validate_input(self):
        self.assertFalse(DataPipeline(self._path('missing.csv')).validate_input())
        self.assertFalse(DataPipeline(self.temp_dir).validate_input())
        self.assertTrue(DataPipeline(self._write('ok.csv', 'a\n1\n')).validate_input())


class TestConfig(unittest.TestCase):
    """Test configuration defaults, overrides and validation."""

    def test_defaults(self):
        config = Config()
        self.assertEqual(config.MISSING_TOKENS, {'', 'NA', 'N/A'})
        self.assertEqual(config.COMPRESSION_CODEC, 'none')
        self.assertEqual(config.DICTIONARY_CARDINALITY_THRESHOLD, 50)
        self.assertTrue(all(config.validate_config().values()))

    def test_environment_variables(self):
        env = {
            'CSV2ARROW_MISSING_TOKENS': 'NA|Unspecified',
            'CSV2ARROW_COMPRESSION': 'lz4',
            'CSV2ARROW_COLUMN_TYPE_OVERRIDES': '{"Incident Zip": "string"}',
        }
        with mock.patch.dict(os.environ, env):
            config = Config()
        self.assertEqual(config.MISSING_TOKENS, {'NA', 'Unspecified'})
        self.assertEqual(config.COMPRESSION_CODEC, 'lz4')
        self.assertEqual(config.COLUMN_TYPE_OVERRIDES, {'Incident Zip': 'string'})

    def test_unknown_key(self):
        with self.assertRaises(ConfigurationError):
            Config({'NOT_AN_OPTION': 1})

    def test_single_string_token_is_not_split(self):
        self.assertEqual(Config({'MISSING_TOKENS': 'NA'}).MISSING_TOKENS, {'NA'})
        self.assertEqual(Config({'COLUMNS_TO_DROP': 'Location'}).COLUMNS_TO_DROP, {'Location'})

    def test_single_string_token_from_file(self):
        temp_dir = tempfile.mkdtemp()
        try:
            path = os.path.join(temp_dir, 'config.json')
            with open(path, 'w', encoding='utf-8') as f:
                json.dump({'MISSING_TOKENS': 'N/A'}, f)
            self.assertEqual(Config.load_from_file(path).MISSING_TOKENS, {'N/A'})
        finally:
            shutil.rmtree(temp_dir)

    def test_non_integer_environment_value(self):
        for name in ('CSV2ARROW_CHUNK_SIZE', 'CSV2ARROW_CARDINALITY_THRESHOLD', 'CSV2ARROW_RECORD_BATCH_SIZE'):
            with self.subTest(name=name), mock.patch.dict(os.environ, {name: 'lots'}):
                with self.assertRaises(ConfigurationError) as ctx:
                    Config()
                self.assertIn(name, str(ctx.exception))

    def test_validation(self):
        config = Config({'COMPRESSION_CODEC': 'brotli', 'COLUMN_TYPE_OVERRIDES': {'a': 'decimal'}})
        validations = config.validate_config()
        self.assertFalse(validations['compression_codec'])
        self.assertFalse(validations['column_type_overrides'])
        with self.assertRaises(ConfigurationError):
            config.ensure_valid()

    def test_save_and_load(self):
        temp_dir = tempfile.mkdtemp()
        try:
            path = os.path.join(temp_dir, 'config.json')
            Config({'COLUMNS_TO_DROP': ['Location'], 'COMPRESSION_CODEC': 'zstd'}).save_to_file(path)
            loaded = Config.load_from_file(path)
            self.assertEqual(loaded.COLUMNS_TO_DROP, {'Location'})
            self.assertEqual(loaded.COMPRESSION_CODEC, 'zstd')
        finally:
            shutil.rmtree(temp_dir)


class TestCommandLine(PipelineTestCase):
    """Test the csv2arrow command."""

    def test_successful_run(self):
        input_file = self._generate(num_rows=100)
        output_file = self._path('cli.arrow')
        summary_file = self._path('summary.json')

        with mock.patch('sys.stdout'):
            code = main([
                input_file, output_file, '--drop', 'Location', '--compression', 'lz4',
                '--categorical', 'Incident Zip', '--type', 'Incident Zip=string',
                '--summary-json', summary_file, '--log-level', 'WARNING',
            ])

        self.assertEqual(code, 0)
        table = read_table(output_file)
        self.assertNotIn('Location', table)
        self.assertTrue(table['Incident_Zip'].is_categorical)
        with open(summary_file, encoding='utf-8') as f:
            self.assertEqual(json.load(f)['pipeline_status'], 'completed')

    def test_config_file(self):
        input_file = self._write('in.tsv', 'a\tb\n1\tNA\n')
        config_file = self._path('config.json')
        with open(config_file, 'w', encoding='utf-8') as f:
            json.dump({'MISSING_TOKENS': ['NA'], 'DELIMITER': '\t'}, f)

        with mock.patch('sys.stdout'):
            code = main([input_file, self._path('out.arrow'), '--config', config_file, '--log-level', 'ERROR'])

        self.assertEqual(code, 0)
        self.assertTrue(read_table(self._path('out.arrow'))['b'].nullable)

    def test_pipeline_error_exit_code(self):
        input_file = self._write('bad.csv', 'a,b\n1\n')
        with mock.patch('sys.stdout'):
            code = main([input_file, self._path('bad.arrow'), '--log-level', 'CRITICAL'])
        self.assertEqual(code, 1)

    def test_usage_error_exit_code(self):
        with mock.patch('sys.stderr'):
            self.assertEqual(main([]), 2)
            self.assertEqual(main(['in.csv', 'out.arrow', '--type', 'nonsense']), 2)

    def test_bad_environment_value_exit_code(self):
        input_file = self._write('in.csv', 'a\n1\n')
        with mock.patch.dict(os.environ, {'CSV2ARROW_CHUNK_SIZE': 'ten'}), mock.patch('sys.stderr'):
            self.assertEqual(main([input_file, self._path('out.arrow')]), 2)
        self.assertFalse(os.path.exists(self._path('out.arrow')))


class TestPerformanceMonitor(unittest.TestCase):

    def test_monitor_records_checkpoints(self):
        with monitor_performance("test") as monitor:
            monitor.update_progress(10)
            monitor.add_checkpoint('stage', {'rows': 10})

        summary = monitor.summary
        self.assertEqual(summary['records_processed'], 10)
        self.assertEqual(summary['checkpoints'][0]['name'], 'stage')
        self.assertGreater(summary['peak_memory_usage_mb'], 0)


if __name__ == '__main__':
    unittest.main()
