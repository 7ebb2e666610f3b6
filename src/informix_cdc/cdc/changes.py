"""Change records and their assembly into canonical column order.

The log API reports column values in an order driven by internal storage
layout. Everything downstream of :class:`ChangeAssembler` sees rows in table
declaration order instead.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Union

from .errors import MalformedChangeError
from .lsn import Lsn


class _Missing:
    """Marker for a column the log entry did not report."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class Operation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def parse(cls, value: Union["Operation", str]) -> "Operation":
        """Accept enum members, names, or the ``c``/``u``/``d`` op codes."""
        if isinstance(value, Operation):
            return value
        normalized = str(value).strip().lower()
        normalized = _OP_CODES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise MalformedChangeError(f"unknown operation {value!r}") from None

    @property
    def has_before(self) -> bool:
        return self is not Operation.INSERT

    @property
    def has_after(self) -> bool:
        return self is not Operation.DELETE


_OP_CODES = {"c": "insert", "u": "update", "d": "delete"}


@dataclass(frozen=True)
class RawChange:
    """A change as delivered by the log reader, values keyed by column name."""

    table: str
    operation: Operation
    lsn: Lsn
    before: Optional[Mapping[str, object]] = None
    after: Optional[Mapping[str, object]] = None


@dataclass(frozen=True)
class AssembledChange:
    """A change with before/after rows aligned to the table's column order."""

    table: str
    operation: Operation
    lsn: Lsn
    columns: Tuple[str, ...]
    before: Optional[Tuple[object, ...]] = None
    after: Optional[Tuple[object, ...]] = None

    def before_row(self) -> Optional[Dict[str, object]]:
        if self.before is None:
            return None
        return dict(zip(self.columns, self.before))

    def after_row(self) -> Optional[Dict[str, object]]:
        if self.after is None:
            return None
        return dict(zip(self.columns, self.after))

    def is_complete(self) -> bool:
        """True when no present image carries a :data:`MISSING` value."""
        for row in (self.before, self.after):
            if row is not None and any(value is MISSING for value in row):
                return False
        return True


class ColumnOrderLookup(Protocol):
    def canonical_order(self, table: str) -> Tuple[str, ...]: ...


class ChangeAssembler:
    """Turns :class:`RawChange` values into validated :class:`AssembledChange` values."""

    def __init__(self, column_order: ColumnOrderLookup) -> None:
        self._column_order = column_order

    def assemble(self, raw: RawChange) -> AssembledChange:
        columns = self._column_order.canonical_order(raw.table)
        operation = Operation.parse(raw.operation)
        _validate_images(raw, operation)
        before = (
            _align(raw.table, "before", raw.before, columns)
            if operation.has_before
            else None
        )
        after = (
            _align(raw.table, "after", raw.after, columns)
            if operation.has_after
            else None
        )
        return AssembledChange(
            table=raw.table,
            operation=operation,
            lsn=raw.lsn,
            columns=columns,
            before=before,
            after=after,
        )


def _validate_images(raw: RawChange, operation: Operation) -> None:
    if operation is Operation.INSERT and raw.before is not None:
        raise MalformedChangeError(
            f"insert on {raw.table} at {raw.lsn} carries a before-image"
        )
    if operation is Operation.DELETE and raw.after is not None:
        raise MalformedChangeError(
            f"delete on {raw.table} at {raw.lsn} carries an after-image"
        )
    if operation.has_before and raw.before is None:
        raise MalformedChangeError(
            f"{operation.value} on {raw.table} at {raw.lsn} is missing its before-image"
        )
    if operation.has_after and raw.after is None:
        raise MalformedChangeError(
            f"{operation.value} on {raw.table} at {raw.lsn} is missing its after-image"
        )


def _align(
    table: str,
    image: str,
    values: Mapping[str, object],
    columns: Tuple[str, ...],
) -> Tuple[object, ...]:
    unknown = set(values) - set(columns)
    if unknown:
        raise MalformedChangeError(
            f"{image}-image for {table} reports undeclared columns: "
            + ", ".join(sorted(unknown))
        )
    return tuple(values.get(name, MISSING) for name in columns)


# ---------------------------------------------------------------------------
# Decoding


class JsonChangeDecoder:
    """Decodes JSON log-reader payloads into :class:`RawChange` values.

    Each entry looks like ``{"table": ..., "op": ..., "lsn": ..., "before":
    {...}, "after": {...}}``; a payload may hold one entry or a list of them.
    Values are taken as-is: type coercion belongs to the log reader.
    """

    def decode(self, payload: Union[str, bytes]) -> List[RawChange]:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise MalformedChangeError("change payload is not valid JSON") from exc
        items = data if isinstance(data, list) else [data]
        return [self._decode_item(item) for item in items]

    @staticmethod
    def _decode_item(item: object) -> RawChange:
        if not isinstance(item, dict):
            raise MalformedChangeError("change entry must be a JSON object")
        table = item.get("table")
        if not table:
            schema = item.get("schema")
            name = item.get("name")
            table = f"{schema}.{name}" if schema and name else None
        if not table:
            raise MalformedChangeError("change entry does not name a table")
        op = item.get("op", item.get("kind"))
        if op is None:
            raise MalformedChangeError(f"change entry for {table} has no operation")
        raw_lsn = item.get("lsn")
        if raw_lsn is None:
            raise MalformedChangeError(f"change entry for {table} has no lsn")
        lsn = Lsn.of(raw_lsn)
        before = item.get("before")
        after = item.get("after")
        for label, image in (("before", before), ("after", after)):
            if image is not None and not isinstance(image, dict):
                raise MalformedChangeError(
                    f"{label}-image for {table} must be a JSON object"
                )
        return RawChange(
            table=str(table),
            operation=Operation.parse(op),
            lsn=lsn,
            before=before,
            after=after,
        )


__all__ = [
    "AssembledChange",
    "ChangeAssembler",
    "ColumnOrderLookup",
    "JsonChangeDecoder",
    "MISSING",
    "Operation",
    "RawChange",
]
