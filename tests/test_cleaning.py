# ========================
# tests/test_cleaning.py
# ========================

import unittest
import os
import sys
from datetime import datetime

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from csv2arrow.pipeline.cleaning import DataCleaner, format_value
from csv2arrow.pipeline.errors import ConfigurationError, TypeCoercionError
from csv2arrow.pipeline.inference import TypeInferencer
from csv2arrow.pipeline.ingestion import RawTable
from csv2arrow.pipeline.naming import (
    normalize_column_names, normalize_identifier, resolve_column_keys,
)
from csv2arrow.pipeline.schema import (
    BooleanType, CategoricalType, FixedStringType, FloatType, IntegerType,
    StringType, TimestampType,
)

DATE_PATTERN = '%m/%d/%Y %I:%M:%S %p'


class TestColumnNaming(unittest.TestCase):
    """Test identifier normalization of header names."""

    def test_normalize_identifier(self):
        self.assertEqual(normalize_identifier('Incident Zip'), 'Incident_Zip')
        self.assertEqual(normalize_identifier(' Cross Street 1 '), 'Cross_Street_1')
        self.assertEqual(normalize_identifier('Park Facility/Name'), 'Park_Facility_Name')
        self.assertEqual(normalize_identifier('a -- b'), 'a_b')

    def test_empty_and_duplicate_names(self):
        names = normalize_column_names(['Agency', '', 'Agency', 'agency', '???'])
        self.assertEqual(names, ['Agency', 'column_2', 'Agency_2', 'agency', 'column_5'])
        self.assertEqual(len(set(names)), len(names))

    def test_normalization_disabled(self):
        self.assertEqual(normalize_column_names([' Incident Zip ']), ['Incident_Zip'])
        self.assertEqual(normalize_column_names([' Incident Zip '], normalize=False), ['Incident Zip'])

    def test_resolve_column_keys(self):
        header = ['Unique Key', 'Incident Zip']
        names = normalize_column_names(header)
        self.assertEqual(resolve_column_keys(['Incident_Zip', 'Unique Key', 0], header, names), [1, 0, 0])
        with self.assertRaises(ConfigurationError) as ctx:
            resolve_column_keys(['Zip', 'Borough', 7], header, names)
        self.assertIn('Borough', str(ctx.exception))


class TestDataCleaner(unittest.TestCase):
    """Test coercion of raw rows into a typed table."""

    def setUp(self):
        self.missing = {'NA', 'N/A'}
        self.inferencer = TypeInferencer(missing_tokens=self.missing, date_pattern=DATE_PATTERN)
        self.cleaner = DataCleaner(missing_tokens=self.missing, date_pattern=DATE_PATTERN)

    def _coerce(self, raw, overrides=None, cleaner=None):
        cleaner = cleaner or self.cleaner
        names = cleaner.normalize_column_names(raw.header)
        profiles = self.inferencer.infer(raw, names, overrides)
        return cleaner.coerce(raw, profiles, names)

    def test_scenario_missing_values_become_sentinel(self):
        raw = RawTable(['id', 'amt'], [['1', '5.0'], ['2', ''], ['3', 'NA']])
        table = self._coerce(raw)

        self.assertEqual(table['amt'].type, FloatType(32))
        self.assertEqual(table['amt'].values, (5.0, None, None))
        self.assertTrue(table['amt'].nullable)
        self.assertFalse(table['id'].nullable)
        self.assertEqual(table['id'].values, (1, 2, 3))

    def test_every_type_is_parsed(self):
        raw = RawTable(
            ['Created Date', 'Open', 'Count', 'Agency'],
            [
                ['01/31/2015 11:59:59 PM', 'true', ' 7 ', '  NYPD '],
                ['N/A', 'False', '-2', 'HPD'],
            ],
        )
        table = self._coerce(raw)

        self.assertEqual(table.column_names, ['Created_Date', 'Open', 'Count', 'Agency'])
        self.assertEqual(table['Created_Date'].type, TimestampType('s'))
        self.assertEqual(table['Created_Date'].values, (datetime(2015, 1, 31, 23, 59, 59), None))
        self.assertEqual(table['Open'].values, (True, False))
        self.assertEqual(table['Count'].type, IntegerType(8))
        self.assertEqual(table['Count'].values, (7, -2))
        self.assertEqual(table['Agency'].values, ('NYPD', 'HPD'))

    def test_whitespace_kept_when_not_stripping(self):
        cleaner = DataCleaner(missing_tokens=self.missing, strip_whitespace=False)
        raw = RawTable(['name', 'n'], [['  Bob ', ' 1 '], [' NA ', '2']])
        table = self._coerce(raw, cleaner=cleaner)
        self.assertEqual(table['name'].values, ('  Bob ', None))
        self.assertEqual(table['n'].values, (1, 2))

    def test_forced_categorical_is_stored_as_strings(self):
        raw = RawTable(['status'], [['Open'], ['NA'], ['Closed']])
        table = self._coerce(raw, overrides={0: CategoricalType()})
        self.assertEqual(table['status'].type, StringType())
        self.assertEqual(table['status'].values, ('Open', None, 'Closed'))

    def test_fixed_string_values(self):
        raw = RawTable(['state'], [[' NY'], ['NJ']])
        table = self._coerce(raw, overrides={0: FixedStringType(2)})
        self.assertEqual(table['state'].values, ('NY', 'NJ'))

    def test_forced_type_failure_names_column_and_row(self):
        raw = RawTable(['Incident Zip'], [['10001'], ['N/A'], ['abc']])
        with self.assertRaises(TypeCoercionError) as ctx:
            self._coerce(raw, overrides={0: IntegerType()})
        self.assertEqual(ctx.exception.column, 'Incident_Zip')
        self.assertEqual(ctx.exception.row_number, 3)

    def test_timestamp_missing_policy_invalidates_values(self):
        inferencer = TypeInferencer(date_pattern=DATE_PATTERN, timestamp_error_policy='missing')
        cleaner = DataCleaner(date_pattern=DATE_PATTERN, timestamp_error_policy='missing')
        raw = RawTable(['Closed Date'], [['01/31/2015 11:59:59 PM'], ['soon']])
        profiles = inferencer.infer(raw, overrides={0: TimestampType()})
        table = cleaner.coerce(raw, profiles)

        self.assertEqual(table['Closed Date'].values, (datetime(2015, 1, 31, 23, 59, 59), None))
        self.assertEqual(cleaner.get_statistics()['values_invalidated'], 1)

    def test_statistics(self):
        raw = RawTable(['a', 'b'], [['1', 'NA'], ['', 'x']])
        self._coerce(raw)
        stats = self.cleaner.get_statistics()
        self.assertEqual(stats['values_processed'], 4)
        self.assertEqual(stats['values_missing'], 2)
        self.assertEqual(stats['missing_rate'], 50.0)

    def test_unknown_timestamp_policy(self):
        with self.assertRaises(ConfigurationError):
            DataCleaner(timestamp_error_policy='skip')


class TestFormatValue(unittest.TestCase):
    """Test rendering typed values back to text."""

    def test_format_values(self):
        self.assertEqual(format_value(StringType(), None), '')
        self.assertEqual(format_value(BooleanType(), True), 'true')
        self.assertEqual(format_value(IntegerType(16), 300), '300')
        self.assertEqual(format_value(FloatType(64), 40.712776), '40.712776')
        self.assertEqual(
            format_value(TimestampType('s'), datetime(2015, 1, 31, 23, 59, 59), DATE_PATTERN),
            '01/31/2015 11:59:59 PM',
        )


if __name__ == '__main__':
    unittest.main()
