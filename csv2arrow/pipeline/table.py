# ========================
# csv2arrow/pipeline/table.py
# ========================

"""
Immutable Table Model

A Table is an ordered collection of equally long, uniquely named columns plus
string metadata. Tables are never mutated: every transformation returns a new
Table, so each pipeline stage hands a distinct value to the next one.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from .schema import MISSING_INDEX, CategoricalType, ColumnType, Field, StringType


@dataclass(frozen=True)
class Column:
    """
    A named, typed, dense sequence of values.

    Missing values are ``None``, except in categorical columns where the
    value is an index and MISSING_INDEX marks a missing row.
    """

    name: str
    type: ColumnType
    values: Tuple[Any, ...]

    def __post_init__(self):
        if not isinstance(self.values, tuple):
            object.__setattr__(self, 'values', tuple(self.values))

    def __len__(self) -> int:
        return len(self.values)

    @property
    def is_categorical(self) -> bool:
        return isinstance(self.type, CategoricalType)

    @property
    def missing_sentinel(self):
        return MISSING_INDEX if self.is_categorical else None

    @property
    def null_count(self) -> int:
        if self.is_categorical:
            return sum(1 for value in self.values if value == MISSING_INDEX)
        return sum(1 for value in self.values if value is None)

    @property
    def nullable(self) -> bool:
        """True exactly when at least one value is missing."""
        return self.null_count > 0

    @property
    def field(self) -> Field:
        return Field(self.name, self.type, self.nullable)

    def decoded_values(self) -> List[Any]:
        """Values with categorical indices replaced by their level strings."""
        if not self.is_categorical:
            return list(self.values)
        levels = self.type.levels
        return [None if index == MISSING_INDEX else levels[index] for index in self.values]

    def renamed(self, name: str) -> 'Column':
        return Column(name, self.type, self.values)


class Table:
    """
    Ordered, immutable collection of columns.

    The name -> position mapping is built once here; lookups by name never
    scan the columns.
    """

    def __init__(self, columns: Iterable[Column], metadata: Optional[Mapping[str, str]] = None):
        self._columns = tuple(columns)
        self._metadata = {str(k): str(v) for k, v in (metadata or {}).items()}

        self._index = {}
        for position, column in enumerate(self._columns):
            if column.name in self._index:
                raise ValueError(f"Duplicate column name: {column.name!r}")
            self._index[column.name] = position

        lengths = {len(column) for column in self._columns}
        if len(lengths) > 1:
            raise ValueError(f"Columns have unequal lengths: {sorted(lengths)}")
        self._num_rows = lengths.pop() if lengths else 0

    # -- structure -----------------------------------------------------------

    @property
    def num_rows(self) -> int:
        return self._num_rows

    @property
    def num_columns(self) -> int:
        return len(self._columns)

    @property
    def columns(self) -> Tuple[Column, ...]:
        return self._columns

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self._columns]

    @property
    def metadata(self) -> Dict[str, str]:
        return dict(self._metadata)

    @property
    def schema(self) -> Tuple[Field, ...]:
        return tuple(column.field for column in self._columns)

    def index_of(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise KeyError(f"No column named {name!r}; available: {self.column_names}") from None

    def column(self, key: Union[str, int]) -> Column:
        if isinstance(key, int):
            return self._columns[key]
        return self._columns[self.index_of(key)]

    def __getitem__(self, key: Union[str, int]) -> Column:
        return self.column(key)

    def __contains__(self, name: str) -> bool:
        return name in self._index

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns)

    def __repr__(self) -> str:
        fields = ', '.join(f"{f.name}: {f.type}{'?' if f.nullable else ''}" for f in self.schema)
        return f"Table({self.num_rows} rows; {fields})"

    # -- derivations (each returns a new Table) ---------------------------------

    def drop(self, names: Iterable[str]) -> 'Table':
        names = set(names)
        for name in names:
            self.index_of(name)
        return Table([c for c in self._columns if c.name not in names], self._metadata)

    def rename(self, mapping: Mapping[str, str]) -> 'Table':
        for name in mapping:
            self.index_of(name)
        return Table([c.renamed(mapping.get(c.name, c.name)) for c in self._columns], self._metadata)

    def replace_column(self, name: str, column: Column) -> 'Table':
        position = self.index_of(name)
        columns = list(self._columns)
        columns[position] = column
        return Table(columns, self._metadata)

    def with_metadata(self, updates: Mapping[str, str]) -> 'Table':
        metadata = dict(self._metadata)
        metadata.update(updates)
        return Table(self._columns, metadata)

    # -- comparison and export ---------------------------------------------------

    def equals(self, other: 'Table', check_metadata: bool = False) -> bool:
        """Compare schema and every cell; metadata only when requested."""
        if not isinstance(other, Table):
            return False
        if self.schema != other.schema:
            return False
        if check_metadata and self._metadata != other._metadata:
            return False
        return all(a.values == b.values for a, b in zip(self._columns, other._columns))

    def __eq__(self, other):
        if not isinstance(other, Table):
            return NotImplemented
        return self.equals(other, check_metadata=True)

    __hash__ = None

    def to_pydict(self) -> Dict[str, List[Any]]:
        return {column.name: column.decoded_values() for column in self._columns}

    def to_rows(self) -> List[Tuple[Any, ...]]:
        decoded = [column.decoded_values() for column in self._columns]
        return list(zip(*decoded)) if decoded else []

    @classmethod
    def from_pydict(cls, data: Mapping[str, Iterable[Any]],
                    types: Optional[Mapping[str, ColumnType]] = None,
                    metadata: Optional[Mapping[str, str]] = None) -> 'Table':
        """Build a table from plain columns; untyped columns default to strings."""
        types = types or {}
        return cls(
            [Column(name, types.get(name, StringType()), tuple(values)) for name, values in data.items()],
            metadata,
        )
