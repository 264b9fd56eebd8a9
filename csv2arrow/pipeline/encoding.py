# ========================
# csv2arrow/pipeline/encoding.py
# ========================

"""
Categorical (Dictionary) Encoding Module

Replaces low-cardinality string columns with an index array into a
deduplicated list of levels, choosing the narrowest index width.
"""

import logging
from typing import Iterable, Optional

from .errors import ConfigurationError
from .schema import INDEX_WIDTHS, MISSING_INDEX, CategoricalType, StringType, integer_width_for
from .table import Column, Table

logger = logging.getLogger(__name__)

DEFAULT_CARDINALITY_THRESHOLD = 50


def index_width_for(level_count: int) -> int:
    """
    Smallest signed index width whose positive range holds every level.
    MISSING_INDEX is negative, so it never collides with a valid index.
    """
    width = integer_width_for(0, max(level_count - 1, 0), INDEX_WIDTHS)
    if width is None:
        raise ValueError(f"Too many levels for a categorical column: {level_count}")
    return width


def encode_column(column: Column) -> Column:
    """Dictionary-encode a string column; levels keep first-occurrence order."""
    if not isinstance(column.type, StringType):
        raise ConfigurationError(f"Only string columns can be categorical; '{column.name}' is {column.type}")

    levels = {}
    indices = []
    for value in column.values:
        if value is None:
            indices.append(MISSING_INDEX)
        else:
            indices.append(levels.setdefault(value, len(levels)))

    column_type = CategoricalType(index_width_for(len(levels)), tuple(levels))
    return Column(column.name, column_type, indices)


def decode_column(column: Column) -> Column:
    """Inverse of encode_column."""
    if not column.is_categorical:
        return column
    return Column(column.name, StringType(), column.decoded_values())


class CategoricalEncoder:
    """
    Encodes string columns with fewer distinct values than the threshold,
    plus any column explicitly requested.
    """

    def __init__(self, cardinality_threshold: int = DEFAULT_CARDINALITY_THRESHOLD,
                 always_encode: Optional[Iterable[str]] = None):
        """
        Initialize the encoder.

        Args:
            cardinality_threshold (int): Encode when distinct values < threshold
            always_encode (list): Column names encoded regardless of cardinality
        """
        self.cardinality_threshold = cardinality_threshold
        self.always_encode = set(always_encode or ())
        self.encoded_columns = {}
        logger.info(f"CategoricalEncoder initialized with threshold={cardinality_threshold}")

    def should_encode(self, column: Column) -> bool:
        if column.name in self.always_encode:
            return True
        if not isinstance(column.type, StringType):
            return False
        distinct = len({value for value in column.values if value is not None})
        return 0 < distinct < self.cardinality_threshold

    def encode(self, table: Table) -> Table:
        """Return a new table with eligible string columns dictionary-encoded."""
        unknown = sorted(self.always_encode - set(table.column_names))
        if unknown:
            raise ConfigurationError(f"Cannot encode unknown columns {unknown}; available: {table.column_names}")

        result = table
        for column in table:
            if not self.should_encode(column):
                continue
            encoded = encode_column(column)
            self.encoded_columns[column.name] = len(encoded.type.levels)
            logger.info(
                f"Column '{column.name}' encoded as {encoded.type} "
                f"({table.num_rows} rows)"
            )
            result = result.replace_column(column.name, encoded)

        return result
