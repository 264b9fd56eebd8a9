#!/usr/bin/env python3
# ========================
# csv2arrow/main.py
# ========================

"""
Main Entry Point for csv2arrow

Command-line shell over the pipeline configuration: reads one delimited file
and writes one Arrow IPC file.

Exit status: 0 on success, 1 when the pipeline fails, 2 on a usage or
configuration error.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .pipeline import DataPipeline
from .pipeline.errors import ConfigurationError, PipelineError
from .utils import Config, setup_logging

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='csv2arrow',
        description='Convert a CSV/TSV file (plain or gzip) into a typed Arrow IPC file.',
    )
    parser.add_argument('input', help='Input delimited file')
    parser.add_argument('output', help='Output Arrow IPC (.arrow / .feather) file')
    parser.add_argument('--config', help='JSON file with configuration overrides')

    reading = parser.add_argument_group('reading')
    reading.add_argument('--delimiter', help='Field delimiter (default: ,)')
    reading.add_argument('--tsv', action='store_true', help='Shortcut for a tab delimiter')
    reading.add_argument('--no-header', action='store_true', help='First row is data, not column names')
    reading.add_argument('--encoding', help='Text encoding of the input')
    reading.add_argument('--chunk-size', type=int, help='Rows read per chunk')

    types = parser.add_argument_group('types and missing values')
    types.add_argument('--missing-token', action='append', metavar='TOKEN',
                       help='Literal meaning "no value" (repeatable, replaces the defaults)')
    types.add_argument('--date-pattern', help='strptime pattern for timestamp columns')
    types.add_argument('--timestamp-errors', choices=['raise', 'missing'],
                       help='What to do with unparseable values in a timestamp column')
    types.add_argument('--type', action='append', metavar='COLUMN=TYPE', dest='types',
                       help='Force a column type, e.g. "Incident Zip=string" (repeatable)')
    types.add_argument('--no-downcast', action='store_true', help='Always use int64 and float64')
    types.add_argument('--no-normalize-names', action='store_true', help='Keep raw column names')
    types.add_argument('--no-strip', action='store_true', help='Keep surrounding whitespace in strings')

    shaping = parser.add_argument_group('redundancy and encoding')
    shaping.add_argument('--drop', action='append', metavar='COLUMN', help='Drop a column (repeatable)')
    shaping.add_argument('--categorical', action='append', metavar='COLUMN',
                         help='Always dictionary-encode a column (repeatable)')
    shaping.add_argument('--cardinality-threshold', type=int,
                         help='Encode string columns with fewer distinct values than this')

    output = parser.add_argument_group('output')
    output.add_argument('--compression', choices=['none', 'lz4', 'zstd'], help='Buffer compression codec')
    output.add_argument('--record-batch-size', type=int, help='Maximum rows per record batch')

    logs = parser.add_argument_group('logging')
    logs.add_argument('--log-level', help='DEBUG, INFO, WARNING, ERROR or CRITICAL')
    logs.add_argument('--log-file', help='Also log to this file inside --log-dir')
    logs.add_argument('--log-dir', default='logs', help='Directory for --log-file')
    logs.add_argument('--summary-json', help='Write the run summary to this JSON file')

    return parser


def _parse_type_options(values: List[str]) -> Dict[str, str]:
    overrides = {}
    for item in values:
        column, sep, spec = item.rpartition('=')
        if not sep or not column:
            raise ConfigurationError(f"--type expects COLUMN=TYPE, got {item!r}")
        overrides[column] = spec.strip()
    return overrides


def config_from_args(args: argparse.Namespace) -> Config:
    """Build the run configuration: defaults, then --config file, then flags."""
    config = Config.load_from_file(args.config) if args.config else Config()

    overrides: Dict[str, Any] = {}
    if args.tsv:
        overrides['DELIMITER'] = '\t'
    if args.delimiter is not None:
        overrides['DELIMITER'] = args.delimiter
    if args.no_header:
        overrides['HAS_HEADER'] = False
    if args.encoding:
        overrides['ENCODING'] = args.encoding
    if args.chunk_size is not None:
        overrides['CHUNK_SIZE'] = args.chunk_size
    if args.missing_token is not None:
        overrides['MISSING_TOKENS'] = args.missing_token
    if args.date_pattern:
        overrides['DATE_PATTERN'] = args.date_pattern
    if args.timestamp_errors:
        overrides['TIMESTAMP_ERROR_POLICY'] = args.timestamp_errors
    if args.types:
        overrides['COLUMN_TYPE_OVERRIDES'] = {**config.COLUMN_TYPE_OVERRIDES, **_parse_type_options(args.types)}
    if args.no_downcast:
        overrides['DOWNCAST_INTEGERS'] = False
        overrides['DOWNCAST_FLOATS'] = False
    if args.no_normalize_names:
        overrides['NORMALIZE_NAMES'] = False
    if args.no_strip:
        overrides['STRIP_WHITESPACE'] = False
    if args.drop:
        overrides['COLUMNS_TO_DROP'] = set(config.COLUMNS_TO_DROP) | set(args.drop)
    if args.categorical:
        overrides['CATEGORICAL_COLUMNS'] = set(config.CATEGORICAL_COLUMNS) | set(args.categorical)
    if args.cardinality_threshold is not None:
        overrides['DICTIONARY_CARDINALITY_THRESHOLD'] = args.cardinality_threshold
    if args.compression:
        overrides['COMPRESSION_CODEC'] = args.compression
    if args.record_batch_size is not None:
        overrides['RECORD_BATCH_SIZE'] = args.record_batch_size
    if args.log_level:
        overrides['LOG_LEVEL'] = args.log_level

    config._update_from_dict(overrides)
    config.ensure_valid()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else EXIT_USAGE

    try:
        config = config_from_args(args)
    except (ConfigurationError, OSError) as e:
        print(f"csv2arrow: error: {e}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(
        log_level=config.LOG_LEVEL,
        log_file=args.log_file,
        log_dir=args.log_dir
    )

    logger = logging.getLogger(__name__)
    logger.info("=" * 60)
    logger.info("CSV2ARROW - INGESTION RUN")
    logger.info("=" * 60)

    try:
        pipeline = DataPipeline(
            input_file=args.input,
            output_file=args.output,
            config=config
        )

        # Validate input before processing
        if not pipeline.validate_input():
            logger.error("Input validation failed. Exiting.")
            return EXIT_FAILURE

        results = pipeline.run()

    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_USAGE
    except PipelineError as e:
        logger.error(f"Pipeline execution failed: {e}")
        return EXIT_FAILURE
    except OSError as e:
        logger.error(f"I/O error: {e}")
        return EXIT_FAILURE

    if args.summary_json:
        with open(args.summary_json, 'w', encoding='utf-8') as f:
            json.dump(results, f, indent=2, default=str)
        logger.info(f"Run summary written to {args.summary_json}")

    _print_execution_summary(results)
    return EXIT_OK


def _print_execution_summary(results: dict) -> None:
    """Print final execution summary."""
    processing_stats = results['processing_stats']
    quality_stats = results['data_quality_stats']
    performance = results['performance'] or {}

    print("=" * 70)
    print("PIPELINE EXECUTION SUMMARY")
    print("=" * 70)
    print(f"Input:  {results['input_file']}")
    print(f"Output: {results['output_file']}")
    print(f"Rows: {processing_stats['rows']:,}   Columns: {processing_stats['columns']}")
    print(f"Missing values: {quality_stats['values_missing']:,} ({quality_stats['missing_rate']:.1f}%)")
    if performance:
        print(f"Time: {performance['total_processing_time_seconds']:.2f}s   "
              f"Peak memory: {performance['peak_memory_usage_mb']:.1f} MB")

    print("\nSchema:")
    width = max((len(entry['name']) for entry in results['schema']), default=0)
    for entry in results['schema']:
        nullable = 'nullable' if entry['nullable'] else ''
        print(f"   {entry['name']:<{width}}  {entry['type']:<28} {nullable}")
    print("=" * 70)


if __name__ == '__main__':
    sys.exit(main())
