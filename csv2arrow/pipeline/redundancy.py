# ========================
# csv2arrow/pipeline/redundancy.py
# ========================

"""
Redundancy Elimination Module

Drops columns an operator has identified as derivable from other columns,
e.g. a combined "(lat, long)" location string next to separate numeric
latitude and longitude columns. Nothing is detected automatically.
"""

import logging
from typing import Iterable, Optional

from .table import Table

logger = logging.getLogger(__name__)


class RedundancyEliminator:
    """Removes configured columns; a no-op when none are configured."""

    def __init__(self, columns_to_drop: Optional[Iterable[str]] = None):
        self.columns_to_drop = list(dict.fromkeys(columns_to_drop or ()))
        self.columns_dropped = []

    def apply(self, table: Table) -> Table:
        """
        Return a new table without the configured columns.

        Configured columns that are already absent are skipped with a
        warning, so rerunning on the pipeline's own output succeeds.
        """
        if not self.columns_to_drop:
            logger.debug("No redundant columns configured")
            return table

        absent = [name for name in self.columns_to_drop if name not in table]
        if absent:
            logger.warning(f"Columns configured for dropping are not present: {absent}")

        self.columns_dropped = [name for name in self.columns_to_drop if name in table]
        result = table.drop(self.columns_dropped)
        logger.info(
            f"Dropped {len(self.columns_dropped)} redundant columns {self.columns_dropped}: "
            f"{table.num_columns} -> {result.num_columns} columns, {result.num_rows} rows"
        )
        return result
