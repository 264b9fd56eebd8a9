# ========================
# csv2arrow/pipeline/cleaning.py
# ========================

"""
Data Cleaning Module

Applies the resolved column types to raw rows: strips whitespace, maps
missing tokens to the missing sentinel, reparses every value and normalizes
column names, producing a finished Table.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import ConfigurationError, TypeCoercionError
from .inference import (
    DEFAULT_DATE_PATTERN, TIMESTAMP_ERROR_POLICIES, ColumnProfile,
    normalize_missing_tokens, value_parser,
)
from .ingestion import RawTable
from .naming import normalize_column_names
from .schema import CategoricalType, ColumnType, StringType, TimestampType
from .table import Column, Table

logger = logging.getLogger(__name__)


def storage_type(column_type: ColumnType) -> ColumnType:
    """Type a column holds before dictionary encoding."""
    if isinstance(column_type, CategoricalType):
        return StringType()
    return column_type


def format_value(column_type: ColumnType, value: Any, date_pattern: str = DEFAULT_DATE_PATTERN) -> str:
    """
    Render a typed value back to the raw text the pipeline would read.
    Missing values become the empty string.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, datetime):
        return value.strftime(date_pattern)
    if isinstance(value, float):
        return repr(value)
    return str(value)


class DataCleaner:
    """
    Reparses every raw value under its column's resolved type.
    Keeps counts of what was coerced, like a data quality report.
    """

    def __init__(self,
                 missing_tokens: Optional[Iterable[str]] = None,
                 date_pattern: str = DEFAULT_DATE_PATTERN,
                 strip_whitespace: bool = True,
                 normalize_names: bool = True,
                 timestamp_error_policy: str = 'raise',
                 column_missing_tokens: Optional[Mapping[int, Iterable[str]]] = None):
        """
        Initialize the data cleaner.

        Args:
            missing_tokens (set): Literals meaning "no value" in every column
            date_pattern (str): The single strptime pattern used for timestamps
            strip_whitespace (bool): Strip leading/trailing whitespace from strings
            normalize_names (bool): Rewrite column names to identifier-safe form
            timestamp_error_policy (str): 'raise' or 'missing' for unparseable timestamps
            column_missing_tokens (dict): Position -> tokens replacing the global set
        """
        if timestamp_error_policy not in TIMESTAMP_ERROR_POLICIES:
            raise ConfigurationError(f"Unknown timestamp error policy: {timestamp_error_policy!r}")

        self.missing_tokens = normalize_missing_tokens(missing_tokens)
        self.column_missing_tokens = {
            position: normalize_missing_tokens(tokens)
            for position, tokens in (column_missing_tokens or {}).items()
        }
        self.date_pattern = date_pattern
        self.strip_whitespace = strip_whitespace
        self.normalize_names = normalize_names
        self.timestamp_error_policy = timestamp_error_policy

        self.values_processed = 0
        self.values_missing = 0
        self.values_invalidated = 0
        logger.info("DataCleaner initialized")

    def normalize_column_names(self, header: Sequence[str]) -> List[str]:
        names = normalize_column_names(header, self.normalize_names)
        renamed = {raw: name for raw, name in zip(header, names) if raw != name}
        if renamed:
            logger.info(f"Renamed columns: {renamed}")
        return names

    def coerce(self, raw: RawTable, profiles: Sequence[ColumnProfile],
               names: Optional[Sequence[str]] = None) -> Table:
        """
        Build the typed Table from raw rows and inferred profiles.

        Args:
            raw (RawTable): Output of the reader
            profiles (list): One profile per column, from the inferencer
            names (list): Final column names (defaults to the profile names)

        Returns:
            Table: Immutable typed table

        Raises:
            TypeCoercionError: A value does not parse under its column's type
        """
        if names is None:
            names = [profile.name for profile in profiles]
        columns = [self.coerce_column(raw, profile, name) for profile, name in zip(profiles, names)]
        table = Table(columns)
        logger.info(f"Coerced {table.num_rows} rows into {table.num_columns} typed columns")
        return table

    def coerce_column(self, raw: RawTable, profile: ColumnProfile, name: Optional[str] = None) -> Column:
        name = name or profile.name
        column_type = storage_type(profile.type)
        parse = value_parser(column_type, self.date_pattern)
        tokens = self.column_missing_tokens.get(profile.position, self.missing_tokens)
        keep_raw_text = isinstance(column_type, StringType) and not self.strip_whitespace
        position = profile.position
        invalidated = 0

        values = []
        for row_number, row in enumerate(raw.rows, start=1):
            field = row[position]
            text = field.strip()
            self.values_processed += 1

            if text in tokens:
                self.values_missing += 1
                values.append(None)
                continue

            if keep_raw_text:
                values.append(field)
                continue

            try:
                values.append(parse(text))
            except ValueError:
                if isinstance(column_type, TimestampType) and self.timestamp_error_policy == 'missing':
                    invalidated += 1
                    logger.debug(f"Column '{name}' row {row_number}: {text!r} set to missing")
                    values.append(None)
                    continue
                logger.error(f"Column '{name}' row {row_number}: cannot parse {text!r} as {column_type}")
                raise TypeCoercionError(name, row_number, text, column_type) from None

        if invalidated:
            self.values_invalidated += invalidated
            logger.warning(f"Column '{name}': {invalidated} unparseable timestamps set to missing")

        return Column(name, column_type, values)

    def get_statistics(self) -> Dict[str, Any]:
        """Get coercion statistics."""
        return {
            'values_processed': self.values_processed,
            'values_missing': self.values_missing,
            'values_invalidated': self.values_invalidated,
            'missing_rate': self.values_missing / self.values_processed * 100 if self.values_processed > 0 else 0
        }
