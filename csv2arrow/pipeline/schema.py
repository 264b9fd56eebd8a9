# ========================
# csv2arrow/pipeline/schema.py
# ========================

"""
Semantic Column Types

Immutable descriptions of the semantic types a column can take, plus the
helpers for choosing minimal integer widths and parsing the type spellings
accepted in column overrides.
"""

import re
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple

from .errors import ConfigurationError

INTEGER_WIDTHS = (8, 16, 32, 64)
INDEX_WIDTHS = (8, 16, 32)
TIMESTAMP_UNITS = ('s', 'ms', 'us')

# Reserved index for a missing value in a categorical column
MISSING_INDEX = -1


def integer_bounds(width: int) -> Tuple[int, int]:
    """Return the inclusive (min, max) range of a signed integer of `width` bits."""
    return -(1 << (width - 1)), (1 << (width - 1)) - 1


def integer_width_for(minimum: int, maximum: int, widths=INTEGER_WIDTHS) -> Optional[int]:
    """
    Choose the smallest signed width covering [minimum, maximum].

    Returns:
        int or None: The width in bits, or None if no candidate is wide enough
    """
    for width in widths:
        low, high = integer_bounds(width)
        if low <= minimum and maximum <= high:
            return width
    return None


class ColumnType:
    """Base class for semantic column types."""

    kind = 'abstract'

    @property
    def is_resolved(self) -> bool:
        return True


@dataclass(frozen=True)
class BooleanType(ColumnType):
    kind = 'boolean'

    def __str__(self):
        return 'bool'


@dataclass(frozen=True)
class IntegerType(ColumnType):
    """Signed integer; a width of None means "pick the minimal width"."""

    width: Optional[int] = None
    kind = 'integer'

    @property
    def is_resolved(self) -> bool:
        return self.width is not None

    def __str__(self):
        return f"int{self.width}" if self.width else 'int'


@dataclass(frozen=True)
class FloatType(ColumnType):
    width: Optional[int] = None
    kind = 'float'

    @property
    def is_resolved(self) -> bool:
        return self.width is not None

    def __str__(self):
        return f"float{self.width}" if self.width else 'float'


@dataclass(frozen=True)
class StringType(ColumnType):
    kind = 'string'

    def __str__(self):
        return 'string'


@dataclass(frozen=True)
class FixedStringType(ColumnType):
    """String whose every value encodes to exactly `length` UTF-8 bytes."""

    length: int = 1
    kind = 'fixed_string'

    def __str__(self):
        return f"fixed_string[{self.length}]"


@dataclass(frozen=True)
class TimestampType(ColumnType):
    """Timezone-naive timestamp; a unit of None follows the date pattern."""

    unit: Optional[str] = None
    kind = 'timestamp'

    @property
    def is_resolved(self) -> bool:
        return self.unit is not None

    def __str__(self):
        return f"timestamp[{self.unit}]" if self.unit else 'timestamp'


@dataclass(frozen=True)
class CategoricalType(ColumnType):
    """
    Dictionary-encoded string column.

    Values of a categorical column are indices into `levels`, with
    MISSING_INDEX marking a missing row. Levels keep first-occurrence order.
    """

    index_width: Optional[int] = None
    levels: Tuple[str, ...] = ()
    kind = 'categorical'

    @property
    def is_resolved(self) -> bool:
        return self.index_width is not None

    def __str__(self):
        if self.index_width is None:
            return 'categorical'
        return f"categorical[int{self.index_width}, {len(self.levels)} levels]"


class Field(NamedTuple):
    """Schema entry: the part of a column that does not depend on its data."""

    name: str
    type: ColumnType
    nullable: bool


_TYPE_SPEC_PATTERN = re.compile(r'^([a-z_]+?)(\d+)?(?:\[(\w+)\])?$')


def parse_type_spec(spec) -> ColumnType:
    """
    Parse an override spelling such as ``int32``, ``float``, ``timestamp[ms]``
    or ``fixed_string[5]`` into a column type.

    Already-built ColumnType instances are returned unchanged.

    Raises:
        ConfigurationError: If the spelling is not recognised
    """
    if isinstance(spec, ColumnType):
        return spec
    if not isinstance(spec, str):
        raise ConfigurationError(f"Unsupported column type override: {spec!r}")

    text = spec.strip().lower().replace(' ', '')
    if text in ('utf8', 'utf-8'):
        return StringType()
    match = _TYPE_SPEC_PATTERN.match(text)
    if not match:
        raise ConfigurationError(f"Unsupported column type override: {spec!r}")
    name, width, argument = match.groups()
    width = int(width) if width else None

    if name in ('bool', 'boolean') and width is None and argument is None:
        return BooleanType()
    if name in ('int', 'integer') and argument is None:
        if width is not None and width not in INTEGER_WIDTHS:
            raise ConfigurationError(f"Unsupported integer width in {spec!r}")
        return IntegerType(width)
    if name == 'float' and argument is None:
        if width is not None and width not in (32, 64):
            raise ConfigurationError(f"Unsupported float width in {spec!r}")
        return FloatType(width)
    if name in ('string', 'str') and width is None and argument is None:
        return StringType()
    if name == 'fixed_string' and width is None and argument and argument.isdigit():
        if int(argument) <= 0:
            raise ConfigurationError(f"Fixed string length must be positive in {spec!r}")
        return FixedStringType(int(argument))
    if name == 'timestamp' and width is None:
        if argument is not None and argument not in TIMESTAMP_UNITS:
            raise ConfigurationError(f"Unsupported timestamp unit in {spec!r}")
        return TimestampType(argument)
    if name in ('categorical', 'category', 'dictionary') and width is None and argument is None:
        return CategoricalType()

    raise ConfigurationError(f"Unsupported column type override: {spec!r}")
