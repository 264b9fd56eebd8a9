# ========================
# csv2arrow/pipeline/inference.py
# ========================

"""
Type & Missingness Inference Module

Decides a semantic type for every column of a raw table.

Promotion order (a column takes the first type that parses 100% of its
non-missing values):
BOOLEAN -> INTEGER -> FLOAT -> TIMESTAMP -> STRING
"""

import logging
import math
import re
import struct
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError, TypeCoercionError
from .ingestion import RawTable
from .schema import (
    BooleanType, CategoricalType, ColumnType, FixedStringType, FloatType,
    IntegerType, StringType, TimestampType, integer_bounds, integer_width_for,
)

logger = logging.getLogger(__name__)

# NYC 311 exports write timestamps as "01/31/2015 11:59:59 PM"
DEFAULT_DATE_PATTERN = '%m/%d/%Y %I:%M:%S %p'
DEFAULT_MISSING_TOKENS = frozenset({''})
TIMESTAMP_ERROR_POLICIES = ('raise', 'missing')

TRUE_LITERALS = frozenset({'true', 't'})
FALSE_LITERALS = frozenset({'false', 'f'})

_INTEGER_PATTERN = re.compile(r'^[+-]?\d+$', re.ASCII)
_FLOAT_PATTERN = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$', re.ASCII)
_INT64_MIN, _INT64_MAX = integer_bounds(64)


# ----------------------------------------------------------------------------
# Value parsers (shared with the coercion stage)
# ----------------------------------------------------------------------------

def parse_boolean(text: str) -> bool:
    lowered = text.lower()
    if lowered in TRUE_LITERALS:
        return True
    if lowered in FALSE_LITERALS:
        return False
    raise ValueError(f"not a boolean: {text!r}")


def parse_integer(text: str) -> int:
    """Parse a plain decimal integer that fits in 64 bits."""
    if not _INTEGER_PATTERN.match(text):
        raise ValueError(f"not an integer: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"integer out of 64-bit range: {text!r}")
    return value


def parse_float(text: str) -> float:
    """Parse decimal or scientific notation; nan/inf spellings are not numbers here."""
    if not _FLOAT_PATTERN.match(text):
        raise ValueError(f"not a float: {text!r}")
    value = float(text)
    if math.isinf(value):
        raise ValueError(f"float out of range: {text!r}")
    return value


def parse_timestamp(text: str, pattern: str, unit: Optional[str] = None) -> datetime:
    """Parse against one explicit strptime pattern, checking the value fits `unit`."""
    value = datetime.strptime(text, pattern)
    if unit == 's' and value.microsecond:
        raise ValueError(f"sub-second value does not fit unit 's': {text!r}")
    if unit == 'ms' and value.microsecond % 1000:
        raise ValueError(f"sub-millisecond value does not fit unit 'ms': {text!r}")
    return value


def parse_fixed_string(text: str, length: int) -> str:
    if len(text.encode('utf-8')) != length:
        raise ValueError(f"expected {length} UTF-8 bytes: {text!r}")
    return text


def fits_float32(value: float) -> bool:
    """True if `value` survives a round trip through IEEE single precision."""
    try:
        return struct.unpack('<f', struct.pack('<f', value))[0] == value
    except OverflowError:
        return False


def timestamp_unit_for(pattern: str) -> str:
    return 'us' if '%f' in pattern else 's'


def normalize_missing_tokens(tokens: Optional[Iterable[str]]) -> frozenset:
    """Strip every token; the empty string is always a missing token."""
    if isinstance(tokens, str):
        tokens = [tokens]
    return frozenset(str(token).strip() for token in (tokens or ())) | DEFAULT_MISSING_TOKENS


# ----------------------------------------------------------------------------
# Column profiles
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class ColumnProfile:
    """Outcome of inference for one column."""

    position: int
    name: str
    type: ColumnType
    forced: bool
    row_count: int
    missing_count: int
    distinct_values: Tuple[str, ...]

    @property
    def nullable(self) -> bool:
        return self.missing_count > 0

    @property
    def cardinality(self) -> int:
        return len(self.distinct_values)

    @property
    def encode_as_categorical(self) -> bool:
        """A forced ``categorical`` override asks for dictionary encoding."""
        return self.forced and isinstance(self.type, CategoricalType)


class TypeInferencer:
    """
    Two-pass, whole-column type inference.

    Pass one collects the distinct stripped non-missing values of every
    column; pass two tries each candidate type against those values. An
    inferred type never fails on a bad value, it falls back to a weaker type.
    A forced type (override) is checked row by row and fails loudly.
    """

    def __init__(self,
                 missing_tokens: Optional[Iterable[str]] = None,
                 date_pattern: str = DEFAULT_DATE_PATTERN,
                 downcast_integers: bool = True,
                 downcast_floats: bool = True,
                 column_missing_tokens: Optional[Mapping[int, Iterable[str]]] = None,
                 timestamp_error_policy: str = 'raise'):
        """
        Initialize the inferencer.

        Args:
            missing_tokens (set): Literals meaning "no value" in every column
            date_pattern (str): strptime pattern for timestamp columns
            downcast_integers (bool): Pick the minimal integer width
            downcast_floats (bool): Use float32 when it is lossless
            column_missing_tokens (dict): Position -> tokens replacing the global set
            timestamp_error_policy (str): 'raise' or 'missing' for forced timestamps
        """
        if timestamp_error_policy not in TIMESTAMP_ERROR_POLICIES:
            raise ConfigurationError(f"Unknown timestamp error policy: {timestamp_error_policy!r}")

        self.missing_tokens = normalize_missing_tokens(missing_tokens)
        self.column_missing_tokens = {
            position: normalize_missing_tokens(tokens)
            for position, tokens in (column_missing_tokens or {}).items()
        }
        self.date_pattern = date_pattern
        self.downcast_integers = downcast_integers
        self.downcast_floats = downcast_floats
        self.timestamp_error_policy = timestamp_error_policy
        logger.info(f"TypeInferencer initialized with missing tokens: {sorted(self.missing_tokens)}")

    def tokens_for(self, position: int) -> frozenset:
        return self.column_missing_tokens.get(position, self.missing_tokens)

    def infer(self, raw: RawTable,
              names: Optional[Sequence[str]] = None,
              overrides: Optional[Mapping[int, Any]] = None) -> List[ColumnProfile]:
        """
        Infer a profile for every column of `raw`.

        Args:
            raw (RawTable): Output of the reader
            names (list): Final column names (defaults to the raw header)
            overrides (dict): Position -> forced ColumnType

        Raises:
            TypeCoercionError: A forced type does not fit a non-missing value
        """
        names = list(names) if names is not None else list(raw.header)
        overrides = overrides or {}

        distinct, missing = self._collect_distinct(raw)

        profiles = []
        for position, name in enumerate(names):
            values = list(distinct[position])
            if position in overrides:
                column_type = self._check_forced(raw, position, name, overrides[position])
                forced = True
            else:
                column_type = self.infer_values(values)
                forced = False

            profile = ColumnProfile(
                position=position,
                name=name,
                type=column_type,
                forced=forced,
                row_count=len(raw.rows),
                missing_count=missing[position],
                distinct_values=tuple(values),
            )
            logger.info(
                f"Column '{name}': {column_type}{' (forced)' if forced else ''}, "
                f"{profile.missing_count} missing, {profile.cardinality} distinct"
            )
            profiles.append(profile)

        return profiles

    def _collect_distinct(self, raw: RawTable):
        """Pass one: distinct non-missing stripped values and missing counts."""
        width = len(raw.header)
        distinct: List[Dict[str, None]] = [{} for _ in range(width)]
        missing = [0] * width
        tokens = [self.tokens_for(position) for position in range(width)]

        for row in raw.rows:
            for position, field in enumerate(row):
                value = field.strip()
                if value in tokens[position]:
                    missing[position] += 1
                else:
                    distinct[position].setdefault(value, None)

        return distinct, missing

    def infer_values(self, values: Sequence[str]) -> ColumnType:
        """Pass two: the first type under which every value parses."""
        if not values:
            # No evidence for anything stronger: all-missing columns are strings
            return StringType()

        if self._all_parse(values, parse_boolean):
            return BooleanType()

        integers = self._parse_all(values, parse_integer)
        if integers is not None:
            if not self.downcast_integers:
                return IntegerType(64)
            return IntegerType(integer_width_for(min(integers), max(integers)))

        floats = self._parse_all(values, parse_float)
        if floats is not None:
            if self.downcast_floats and all(fits_float32(v) for v in floats):
                return FloatType(32)
            return FloatType(64)

        if self._all_parse(values, lambda v: parse_timestamp(v, self.date_pattern)):
            return TimestampType(timestamp_unit_for(self.date_pattern))

        return StringType()

    @staticmethod
    def _parse_all(values, parser) -> Optional[list]:
        parsed = []
        for value in values:
            try:
                parsed.append(parser(value))
            except ValueError:
                return None
        return parsed

    @classmethod
    def _all_parse(cls, values, parser) -> bool:
        return cls._parse_all(values, parser) is not None

    def resolve_forced_type(self, column_type: ColumnType, values: Sequence[Any]) -> ColumnType:
        """Fill in the width or unit left open by an override such as ``int``."""
        if isinstance(column_type, IntegerType) and column_type.width is None:
            if not values or not self.downcast_integers:
                return IntegerType(64)
            return IntegerType(integer_width_for(min(values), max(values)))
        if isinstance(column_type, FloatType) and column_type.width is None:
            if self.downcast_floats and values and all(fits_float32(v) for v in values):
                return FloatType(32)
            return FloatType(64)
        if isinstance(column_type, TimestampType) and column_type.unit is None:
            return TimestampType(timestamp_unit_for(self.date_pattern))
        return column_type

    def _check_forced(self, raw: RawTable, position: int, name: str, column_type: ColumnType) -> ColumnType:
        """Parse every non-missing value of a forced column, failing on the first bad one."""
        parser = value_parser(column_type, self.date_pattern)
        tokens = self.tokens_for(position)
        parsed = []

        for row_number, row in enumerate(raw.rows, start=1):
            value = row[position].strip()
            if value in tokens:
                continue
            try:
                parsed.append(parser(value))
            except ValueError:
                if isinstance(column_type, TimestampType) and self.timestamp_error_policy == 'missing':
                    continue
                logger.error(f"Forced type {column_type} rejects column '{name}' row {row_number}: {value!r}")
                raise TypeCoercionError(name, row_number, value, column_type) from None

        return self.resolve_forced_type(column_type, parsed)


def value_parser(column_type: ColumnType, date_pattern: str):
    """
    Return a callable parsing one stripped literal under `column_type`.
    The callable raises ValueError for literals that do not fit.
    """
    if isinstance(column_type, BooleanType):
        return parse_boolean
    if isinstance(column_type, IntegerType):
        if column_type.width is None:
            return parse_integer
        low, high = integer_bounds(column_type.width)

        def parse_bounded(text):
            value = parse_integer(text)
            if not low <= value <= high:
                raise ValueError(f"{value} does not fit int{column_type.width}")
            return value
        return parse_bounded
    if isinstance(column_type, FloatType):
        if column_type.width == 32:
            def parse_single(text):
                value = parse_float(text)
                if not fits_float32(value):
                    raise ValueError(f"{text!r} is not exactly representable as float32")
                return value
            return parse_single
        return parse_float
    if isinstance(column_type, TimestampType):
        unit = column_type.unit or timestamp_unit_for(date_pattern)
        return lambda text: parse_timestamp(text, date_pattern, unit)
    if isinstance(column_type, FixedStringType):
        return lambda text: parse_fixed_string(text, column_type.length)
    if isinstance(column_type, (StringType, CategoricalType)):
        return str
    raise ConfigurationError(f"No parser for column type {column_type}")
