# ========================
# csv2arrow/pipeline/naming.py
# ========================

"""
Column Naming

Responsibilities:
- Normalize raw header fields into identifier-safe column names
- Keep names unique within a table
- Resolve column references from the configuration to positions
"""

import re
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .errors import ConfigurationError

_UNSAFE_RUN = re.compile(r'[^A-Za-z0-9_]+')
_UNDERSCORE_RUN = re.compile(r'_{2,}')


def normalize_identifier(name: str) -> str:
    """
    Replace characters outside [A-Za-z0-9_] with underscores.

    Rules:
    - Trim whitespace
    - Each run of unsafe characters becomes one underscore
    - Repeated underscores collapse to one
    """
    name = _UNSAFE_RUN.sub('_', name.strip())
    return _UNDERSCORE_RUN.sub('_', name)


def normalize_column_names(header: Sequence[str], normalize: bool = True) -> List[str]:
    """
    Build final column names from raw header fields.

    Empty names become ``column_<position>`` and duplicates receive a
    ``_2``, ``_3`` ... suffix, so the result is always unique.
    """
    names = []
    seen: Dict[str, int] = {}
    taken = set()

    for idx, raw in enumerate(header, start=1):
        base = normalize_identifier(raw) if normalize else raw.strip()
        if not base or base == '_':
            base = f"column_{idx}"

        candidate = base
        while candidate in taken:
            seen[base] = seen.get(base, 1) + 1
            candidate = f"{base}_{seen[base]}"

        taken.add(candidate)
        names.append(candidate)

    return names


def _position_of(key, header: Sequence[str], names: Sequence[str]) -> int:
    if isinstance(key, int) and not isinstance(key, bool):
        if 0 <= key < len(names):
            return key
        raise ConfigurationError(f"Column position {key} out of range (0..{len(names) - 1})")

    if key in names:
        return names.index(key)
    stripped = [raw.strip() for raw in header]
    if key in header:
        return list(header).index(key)
    if isinstance(key, str) and key.strip() in stripped:
        return stripped.index(key.strip())
    # A raw name also finds its normalized column, e.g. on a rerun over exported output
    if isinstance(key, str) and normalize_identifier(key) in names:
        return list(names).index(normalize_identifier(key))
    raise ConfigurationError(f"Unknown column {key!r}; available: {list(names)}")


def resolve_column_keys(keys: Iterable, header: Sequence[str], names: Sequence[str]) -> List[int]:
    """
    Map configured column references to positions.

    A reference may be a final column name, a raw header name or a
    0-based position.

    Raises:
        ConfigurationError: Listing every reference that matches no column
    """
    positions = []
    unknown = []
    for key in keys:
        try:
            positions.append(_position_of(key, header, names))
        except ConfigurationError:
            unknown.append(key)
    if unknown:
        raise ConfigurationError(f"Unknown columns in configuration: {unknown}; available: {list(names)}")
    return positions


def resolve_column_mapping(mapping: Mapping, header: Sequence[str], names: Sequence[str]) -> Dict[int, Any]:
    """Like resolve_column_keys, for per-column option mappings."""
    keys = list(mapping)
    return dict(zip(resolve_column_keys(keys, header, names), (mapping[k] for k in keys)))
