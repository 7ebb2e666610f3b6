"""Canonical column order registry keyed by table identifier."""

from __future__ import annotations

import logging
from threading import RLock
from typing import Dict, Iterable, Tuple

from .errors import UnknownTableError

logger = logging.getLogger(__name__)


class RowColumnOrder:
    """Declaration-order column lists, one per table.

    Written by the schema metadata collaborator whenever a table is first seen
    or its schema changes; read by the assembler for every change.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._orders: Dict[str, Tuple[str, ...]] = {}

    def register(self, table: str, ordered_columns: Iterable[str]) -> None:
        columns = tuple(str(name) for name in ordered_columns)
        if not table:
            raise ValueError("table identifier is required")
        if not columns:
            raise ValueError(f"table {table!r} must declare at least one column")
        if len(set(columns)) != len(columns):
            raise ValueError(f"table {table!r} declares duplicate column names")
        with self._lock:
            previous = self._orders.get(table)
            self._orders[table] = columns
        if previous is None:
            logger.info("registered table %s with %d columns", table, len(columns))
        elif previous != columns:
            logger.info(
                "replaced column order for table %s (%d -> %d columns)",
                table,
                len(previous),
                len(columns),
            )

    def unregister(self, table: str) -> None:
        with self._lock:
            self._orders.pop(table, None)

    def canonical_order(self, table: str) -> Tuple[str, ...]:
        with self._lock:
            try:
                return self._orders[table]
            except KeyError:
                raise UnknownTableError(table) from None

    def tables(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._orders)

    def __contains__(self, table: object) -> bool:
        with self._lock:
            return table in self._orders


__all__ = ["RowColumnOrder"]
