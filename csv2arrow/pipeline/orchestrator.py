# ========================
# csv2arrow/pipeline/orchestrator.py
# ========================

"""
Pipeline Orchestrator Module

Main orchestrator class that coordinates the whole ingestion run: read,
infer, coerce, drop, encode and write.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .cleaning import DataCleaner
from .encoding import CategoricalEncoder
from .errors import ConfigurationError
from .inference import TypeInferencer
from .ingestion import CSVReader, RawTable
from .naming import normalize_column_names, resolve_column_keys, resolve_column_mapping
from .redundancy import RedundancyEliminator
from .schema import parse_type_spec
from .storage import ArrowWriter, schema_summary
from .table import Table
from ..utils.config import Config
from ..utils.performance_monitor import monitor_performance

logger = logging.getLogger(__name__)

METADATA_PREFIX = 'csv2arrow.'


class DataPipeline:
    """
    Orchestrates the entire ingestion pipeline.
    Coordinates reading, inference, coercion, redundancy removal, encoding
    and writing.
    """

    def __init__(self,
                 input_file: str,
                 output_file: Optional[str] = None,
                 config: Optional[Config] = None):
        """
        Initialize the data pipeline.

        Args:
            input_file (str): Path to input CSV/TSV file, plain or gzip
            output_file (str): Path of the Arrow IPC file to write
            config (Config): Configuration object

        Raises:
            ConfigurationError: A configuration value is invalid
        """
        self.input_file = str(input_file)
        self.output_file = str(output_file) if output_file is not None else None
        self.config = config or Config()
        self.config.ensure_valid()

        self.reader = CSVReader(
            self.input_file,
            delimiter=self.config.DELIMITER,
            has_header=self.config.HAS_HEADER,
            encoding=self.config.ENCODING,
        )
        self.writer = ArrowWriter(
            compression=self.config.COMPRESSION_CODEC,
            record_batch_size=self.config.RECORD_BATCH_SIZE,
        )

        # Built once the header is known
        self.inferencer = None
        self.cleaner = None
        self.eliminator = None
        self.encoder = None
        self.profiles = []
        self.stage_stats = {}

        logger.info("DataPipeline initialized:")
        logger.info(f"  Input: {self.input_file}")
        logger.info(f"  Output: {self.output_file}")
        logger.info(f"  Chunk size: {self.config.CHUNK_SIZE}")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def read(self, monitor=None) -> RawTable:
        """Stage 1: read every raw row."""
        rows = []
        for chunk in self.reader.read_in_chunks(self.config.CHUNK_SIZE):
            rows.extend(chunk)
            if monitor is not None:
                monitor.update_progress(len(chunk))
        raw = RawTable(list(self.reader.header), rows)
        self.stage_stats['read'] = {'rows': len(raw.rows), 'columns': len(raw.header)}
        return raw

    def _configure(self, header: List[str]) -> Dict[str, Any]:
        """
        Resolve every column reference of the configuration against the
        header and build the stages that depend on it.
        """
        cfg = self.config
        names = normalize_column_names(header, cfg.NORMALIZE_NAMES)

        # Dropped columns may already be gone on a rerun; those are ignored everywhere
        drop_names = []
        absent = set()
        for key in sorted(cfg.COLUMNS_TO_DROP, key=str):
            try:
                drop_names.append(names[resolve_column_keys([key], header, names)[0]])
            except ConfigurationError:
                absent.add(key)
                drop_names.append(key)

        def present(keys):
            return [key for key in keys if key not in absent]

        overrides = {
            position: parse_type_spec(spec)
            for position, spec in resolve_column_mapping(
                {k: v for k, v in cfg.COLUMN_TYPE_OVERRIDES.items() if k not in absent},
                header, names,
            ).items()
        }
        column_tokens = resolve_column_mapping(
            {k: v for k, v in cfg.COLUMN_MISSING_TOKENS.items() if k not in absent},
            header, names,
        )
        categorical = [
            names[position]
            for position in resolve_column_keys(present(cfg.CATEGORICAL_COLUMNS), header, names)
        ]

        self.cleaner = DataCleaner(
            missing_tokens=cfg.MISSING_TOKENS,
            date_pattern=cfg.DATE_PATTERN,
            strip_whitespace=cfg.STRIP_WHITESPACE,
            normalize_names=cfg.NORMALIZE_NAMES,
            timestamp_error_policy=cfg.TIMESTAMP_ERROR_POLICY,
            column_missing_tokens=column_tokens,
        )
        self.cleaner.normalize_column_names(header)
        self.inferencer = TypeInferencer(
            missing_tokens=cfg.MISSING_TOKENS,
            date_pattern=cfg.DATE_PATTERN,
            downcast_integers=cfg.DOWNCAST_INTEGERS,
            downcast_floats=cfg.DOWNCAST_FLOATS,
            column_missing_tokens=column_tokens,
            timestamp_error_policy=cfg.TIMESTAMP_ERROR_POLICY,
        )
        self.eliminator = RedundancyEliminator(drop_names)

        return {'names': names, 'overrides': overrides, 'categorical': categorical}

    def build_table(self, monitor=None) -> Table:
        """
        Run stages 1 to 5 and return the finished table without writing it.

        Raises:
            MalformedRowError: A row's field count differs from the header's
            TypeCoercionError: A value does not fit its forced type
            ConfigurationError: The configuration names an unknown column
        """
        raw = self.read(monitor)
        self._checkpoint(monitor, 'read')

        resolved = self._configure(raw.header)
        names = resolved['names']
        self.profiles = self.inferencer.infer(raw, names, resolved['overrides'])
        self.stage_stats['infer'] = {
            'types': {profile.name: str(profile.type) for profile in self.profiles},
            'forced': [profile.name for profile in self.profiles if profile.forced],
        }
        self._checkpoint(monitor, 'infer')

        table = self.cleaner.coerce(raw, self.profiles, names)
        self.stage_stats['coerce'] = self.cleaner.get_statistics()
        self._checkpoint(monitor, 'coerce')

        table = self.eliminator.apply(table)
        self.stage_stats['drop'] = {'columns_dropped': list(self.eliminator.columns_dropped)}
        self._checkpoint(monitor, 'drop')

        always_encode = {name for name in resolved['categorical'] if name in table}
        always_encode.update(
            profile.name for profile in self.profiles
            if profile.encode_as_categorical and profile.name in table
        )
        self.encoder = CategoricalEncoder(
            cardinality_threshold=self.config.DICTIONARY_CARDINALITY_THRESHOLD,
            always_encode=always_encode,
        )
        table = self.encoder.encode(table)
        self.stage_stats['encode'] = {'encoded_columns': dict(self.encoder.encoded_columns)}
        self._checkpoint(monitor, 'encode')

        return table.with_metadata(self._table_metadata())

    def _table_metadata(self) -> Dict[str, str]:
        return {
            f'{METADATA_PREFIX}source': Path(self.input_file).name,
            f'{METADATA_PREFIX}date_pattern': self.config.DATE_PATTERN,
            f'{METADATA_PREFIX}missing_tokens': '|'.join(sorted(self.config.MISSING_TOKENS)),
        }

    @staticmethod
    def _checkpoint(monitor, name: str) -> None:
        if monitor is not None:
            monitor.add_checkpoint(name)

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run(self) -> dict:
        """
        Execute the complete pipeline from start to finish.

        Returns:
            dict: Summary of the run, the output file and its schema
        """
        if self.output_file is None:
            raise ConfigurationError("DataPipeline.run() needs an output_file")

        logger.info(f"Starting ingestion pipeline for '{self.input_file}'...")

        with monitor_performance("csv2arrow") as monitor:
            table = self.build_table(monitor)

            logger.info("Writing Arrow IPC file...")
            write_stats = self.writer.write(table, self.output_file)
            self.stage_stats['write'] = write_stats
            monitor.add_checkpoint('write', {'bytes': write_stats['bytes']})

        results = {
            'pipeline_status': 'completed',
            'input_file': self.input_file,
            'output_file': self.output_file,
            'schema': schema_summary(table),
            'processing_stats': self._get_processing_stats(table),
            'data_quality_stats': self.cleaner.get_statistics(),
            'performance': monitor.summary,
        }

        logger.info("Pipeline finished successfully.")
        self._log_final_summary(results)

        return results

    def _get_processing_stats(self, table: Table) -> dict:
        """Get processing statistics."""
        input_path = Path(self.input_file)
        return {
            'rows': table.num_rows,
            'columns': table.num_columns,
            'input_file_size': input_path.stat().st_size if input_path.exists() else 0,
            'stages': dict(self.stage_stats),
        }

    def _log_final_summary(self, results: dict) -> None:
        """Log final pipeline summary."""
        logger.info("=" * 60)
        logger.info("PIPELINE EXECUTION SUMMARY")
        logger.info("=" * 60)

        processing_stats = results['processing_stats']
        quality_stats = results['data_quality_stats']

        logger.info(f"Input file: {results['input_file']}")
        logger.info(f"Rows written: {processing_stats['rows']:,}")
        logger.info(f"Missing values: {quality_stats['values_missing']:,} ({quality_stats['missing_rate']:.1f}%)")
        logger.info(f"Output file: {results['output_file']}")

        logger.info("Schema:")
        for entry in results['schema']:
            nullable = 'nullable' if entry['nullable'] else 'not null'
            logger.info(f"  - {entry['name']}: {entry['type']} ({nullable})")

        logger.info("=" * 60)

    def validate_input(self) -> bool:
        """
        Validate input file exists and is readable.

        Returns:
            bool: True if input is valid
        """
        input_path = Path(self.input_file)
        if not input_path.exists():
            logger.error(f"Input file does not exist: {self.input_file}")
            return False

        if not input_path.is_file():
            logger.error(f"Input path is not a file: {self.input_file}")
            return False

        try:
            with self.reader._open() as f:
                f.readline()  # Try to read first line
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Cannot read input file: {e}")
            return False

        logger.info(f"Input validation passed: {self.input_file}")
        return True
