# ========================
# csv2arrow/pipeline/__init__.py
# ========================

"""
Ingestion Pipeline Package

This package contains all core components of the CSV to Arrow pipeline:
- ingestion: Chunked CSV/TSV reading, plain or gzip
- inference: Whole-column type and missingness inference
- cleaning: Coercion and normalization into a typed table
- redundancy: Removal of configured redundant columns
- encoding: Categorical (dictionary) encoding
- storage: Arrow IPC writing and reading
- orchestrator: Pipeline coordination
"""

from .errors import ConfigurationError, MalformedRowError, PipelineError, TypeCoercionError
from .schema import Field, parse_type_spec
from .table import Column, Table
from .ingestion import CSVReader, RawTable
from .inference import TypeInferencer
from .cleaning import DataCleaner
from .redundancy import RedundancyEliminator
from .encoding import CategoricalEncoder, decode_column
from .storage import ArrowWriter, DataSaver, read_table
from .orchestrator import DataPipeline

__all__ = [
    'PipelineError',
    'ConfigurationError',
    'MalformedRowError',
    'TypeCoercionError',
    'Field',
    'parse_type_spec',
    'Column',
    'Table',
    'CSVReader',
    'RawTable',
    'TypeInferencer',
    'DataCleaner',
    'RedundancyEliminator',
    'CategoricalEncoder',
    'decode_column',
    'ArrowWriter',
    'DataSaver',
    'read_table',
    'DataPipeline'
]

__version__ = "1.0.0"
