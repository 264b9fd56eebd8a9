# ========================
# csv2arrow/pipeline/storage.py
# ========================

"""
Data Storage Module

Writes finished tables to the Arrow IPC file format (Feather V2) and reads
them back, plus a delimited-text export of a decoded table.
"""

import csv
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pyarrow as pa
from pyarrow import ipc

from .cleaning import format_value
from .errors import ConfigurationError
from .inference import DEFAULT_DATE_PATTERN
from .schema import (
    MISSING_INDEX, BooleanType, CategoricalType, ColumnType, FixedStringType,
    FloatType, IntegerType, StringType, TimestampType,
)
from .table import Column, Table

logger = logging.getLogger(__name__)

COMPRESSION_CODECS = ('none', 'lz4', 'zstd')

_INTEGER_TYPES = {8: pa.int8(), 16: pa.int16(), 32: pa.int32(), 64: pa.int64()}
_FLOAT_TYPES = {32: pa.float32(), 64: pa.float64()}


# ----------------------------------------------------------------------------
# Type mapping
# ----------------------------------------------------------------------------

def to_arrow_type(column_type: ColumnType) -> pa.DataType:
    """Map a resolved semantic type to its Arrow type."""
    if isinstance(column_type, BooleanType):
        return pa.bool_()
    if isinstance(column_type, IntegerType):
        return _INTEGER_TYPES[column_type.width]
    if isinstance(column_type, FloatType):
        return _FLOAT_TYPES[column_type.width]
    if isinstance(column_type, StringType):
        return pa.string()
    if isinstance(column_type, FixedStringType):
        return pa.binary(column_type.length)
    if isinstance(column_type, TimestampType):
        return pa.timestamp(column_type.unit)
    if isinstance(column_type, CategoricalType):
        return pa.dictionary(_INTEGER_TYPES[column_type.index_width], pa.string())
    raise TypeError(f"No Arrow mapping for column type {column_type}")


def from_arrow_type(arrow_type: pa.DataType, levels=()) -> ColumnType:
    """Map an Arrow type back to its semantic type."""
    if pa.types.is_boolean(arrow_type):
        return BooleanType()
    if pa.types.is_integer(arrow_type):
        return IntegerType(arrow_type.bit_width)
    if pa.types.is_floating(arrow_type):
        return FloatType(arrow_type.bit_width)
    if pa.types.is_string(arrow_type) or pa.types.is_large_string(arrow_type):
        return StringType()
    if pa.types.is_fixed_size_binary(arrow_type):
        return FixedStringType(arrow_type.byte_width)
    if pa.types.is_timestamp(arrow_type):
        return TimestampType(arrow_type.unit)
    if pa.types.is_dictionary(arrow_type):
        return CategoricalType(arrow_type.index_type.bit_width, tuple(levels))
    raise TypeError(f"Unsupported Arrow type: {arrow_type}")


def to_arrow_array(column: Column) -> pa.Array:
    column_type = column.type
    if isinstance(column_type, CategoricalType):
        indices = pa.array(
            [None if index == MISSING_INDEX else index for index in column.values],
            type=_INTEGER_TYPES[column_type.index_width],
        )
        return pa.DictionaryArray.from_arrays(indices, pa.array(column_type.levels, type=pa.string()))
    if isinstance(column_type, FixedStringType):
        values = [None if value is None else value.encode('utf-8') for value in column.values]
        return pa.array(values, type=to_arrow_type(column_type))
    return pa.array(column.values, type=to_arrow_type(column_type))


def to_arrow_table(table: Table) -> pa.Table:
    """Convert a Table to Arrow, carrying nullability and table metadata."""
    fields = [pa.field(c.name, to_arrow_type(c.type), nullable=c.nullable) for c in table]
    schema = pa.schema(fields, metadata=table.metadata or None)
    return pa.Table.from_arrays([to_arrow_array(c) for c in table], schema=schema)


def _column_from_arrow(field: pa.Field, chunked: pa.ChunkedArray) -> Column:
    if pa.types.is_dictionary(field.type):
        levels = {}
        indices = []
        for chunk in chunked.chunks:
            remap = [levels.setdefault(level, len(levels)) for level in chunk.dictionary.to_pylist()]
            indices.extend(MISSING_INDEX if i is None else remap[i] for i in chunk.indices.to_pylist())
        return Column(field.name, from_arrow_type(field.type, levels), indices)

    values = chunked.to_pylist()
    if pa.types.is_fixed_size_binary(field.type):
        values = [None if value is None else value.decode('utf-8') for value in values]
    return Column(field.name, from_arrow_type(field.type), values)


def from_arrow_table(arrow_table: pa.Table) -> Table:
    """Rebuild a Table, copying every value out of Arrow memory."""
    columns = []
    for field, chunked in zip(arrow_table.schema, arrow_table.columns):
        column = _column_from_arrow(field, chunked)
        if column.nullable and not field.nullable:
            logger.warning(f"Field '{field.name}' is declared non-nullable but holds missing values")
        columns.append(column)

    raw_metadata = arrow_table.schema.metadata or {}
    metadata = {k.decode('utf-8'): v.decode('utf-8') for k, v in raw_metadata.items()}
    return Table(columns, metadata)


# ----------------------------------------------------------------------------
# Writer and reader
# ----------------------------------------------------------------------------

class ArrowWriter:
    """
    Serializes a Table to an Arrow IPC file, optionally compressing every
    buffer with lz4 or zstd.
    """

    def __init__(self, compression: str = 'none', record_batch_size: Optional[int] = None):
        """
        Initialize the writer.

        Args:
            compression (str): 'none', 'lz4' or 'zstd'
            record_batch_size (int): Maximum rows per record batch (None: one batch)
        """
        compression = (compression or 'none').lower()
        if compression not in COMPRESSION_CODECS:
            raise ConfigurationError(
                f"Unknown compression codec {compression!r}; expected one of {COMPRESSION_CODECS}"
            )
        if record_batch_size is not None and record_batch_size <= 0:
            raise ConfigurationError(f"record_batch_size must be positive, got {record_batch_size}")

        self.compression = compression
        self.record_batch_size = record_batch_size
        logger.info(f"ArrowWriter initialized with compression={compression}")

    def write(self, table: Table, path) -> Dict[str, Any]:
        """
        Write `table` to `path`.

        Returns:
            dict: Output path, size and layout details
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        arrow_table = to_arrow_table(table)
        options = ipc.IpcWriteOptions(
            compression=None if self.compression == 'none' else self.compression
        )

        try:
            with pa.OSFile(str(path), 'wb') as sink:
                with ipc.new_file(sink, arrow_table.schema, options=options) as writer:
                    writer.write_table(arrow_table, max_chunksize=self.record_batch_size)
        except (pa.ArrowException, OSError) as e:
            logger.error(f"Error writing Arrow file {path}: {e}")
            raise

        stats = {
            'path': str(path),
            'bytes': path.stat().st_size,
            'num_rows': table.num_rows,
            'num_columns': table.num_columns,
            'compression': self.compression,
        }
        logger.info(f"Saved {table.num_rows} rows x {table.num_columns} columns to {path} ({stats['bytes']:,} bytes)")
        return stats


def read_table(path) -> Table:
    """
    Read an Arrow IPC file back into a Table.
    The file is memory-mapped only for the duration of the call.
    """
    with pa.memory_map(str(path), 'r') as source:
        table = from_arrow_table(ipc.open_file(source).read_all())
    logger.info(f"Read {table.num_rows} rows x {table.num_columns} columns from {path}")
    return table


def schema_summary(table: Table) -> List[Dict[str, Any]]:
    """One JSON-friendly entry per column: name, type, nullability, levels."""
    summary = []
    for column in table:
        entry = {
            'name': column.name,
            'type': str(column.type),
            'nullable': column.nullable,
            'null_count': column.null_count,
        }
        if column.is_categorical:
            entry['index_width'] = column.type.index_width
            entry['levels'] = len(column.type.levels)
        summary.append(entry)
    return summary


class DataSaver:
    """Exports decoded tables as delimited text for inspection or re-ingestion."""

    def __init__(self, date_pattern: str = DEFAULT_DATE_PATTERN, delimiter: str = ','):
        self.date_pattern = date_pattern
        self.delimiter = delimiter

    def save_csv(self, table: Table, path) -> str:
        """Write `table` with a header row; missing values become empty fields."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        types = [column.type for column in table]

        try:
            with open(path, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f, delimiter=self.delimiter)
                writer.writerow(table.column_names)
                for row in table.to_rows():
                    writer.writerow([
                        format_value(column_type, value, self.date_pattern)
                        for column_type, value in zip(types, row)
                    ])
        except OSError as e:
            logger.error(f"Error writing CSV file {path}: {e}")
            raise

        logger.info(f"Saved {table.num_rows} records to {path}")
        return str(path)
