"""Log sequence number (LSN) value type.

An LSN identifies a point in the logical log. It is either *available*, wrapping
a non-negative signed 64-bit sequence, or the :data:`Lsn.NULL` sentinel used
whenever no position is known yet (empty checkpoint store, fresh stream).

The sequence packs two 32-bit halves: the unique id of the logical log file in
the upper bits and the byte offset within that file in the lower bits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from .errors import InvalidFormatError

_MIN_SEQUENCE = -(1 << 63)
_MAX_SEQUENCE = (1 << 63) - 1
_LO_MASK = 0xFFFFFFFF
_NULL_TEXT = "NULL"
_DECIMAL = re.compile(r"[+-]?[0-9]+")

LsnLike = Union["Lsn", int, str, None]


@dataclass(frozen=True)
class Lsn:
    """Immutable, totally ordered log position.

    ``value`` is ``None`` for the unavailable sentinel. Negative sequences are
    folded into the sentinel on construction, so equality, hashing and ordering
    never need to special-case a magic number.
    """

    value: Optional[int] = None

    NULL: ClassVar["Lsn"]

    def __post_init__(self) -> None:
        value = self.value
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidFormatError(f"LSN sequence must be an integer, got {value!r}")
        if value < _MIN_SEQUENCE or value > _MAX_SEQUENCE:
            raise InvalidFormatError(f"LSN sequence {value} exceeds signed 64-bit range")
        if value < 0:
            object.__setattr__(self, "value", None)

    # ------------------------------------------------------------------
    # Constructors

    @classmethod
    def of(cls, value: LsnLike) -> "Lsn":
        """Build an LSN from an integer, its textual form, or ``None``.

        ``"NULL"`` (any case) and ``"-1"`` both map to :data:`Lsn.NULL`.
        """
        if value is None:
            return cls.NULL
        if isinstance(value, Lsn):
            return value
        if isinstance(value, str):
            return cls._parse(value)
        lsn = cls(value)
        return cls.NULL if lsn.value is None else lsn

    @classmethod
    def from_parts(cls, unique_id: int, offset: int) -> "Lsn":
        """Compose an LSN from a log file unique id and an offset within it."""
        for name, part in (("unique_id", unique_id), ("offset", offset)):
            if isinstance(part, bool) or not isinstance(part, int):
                raise InvalidFormatError(f"{name} must be an integer, got {part!r}")
            if part < 0 or part > _LO_MASK:
                raise InvalidFormatError(f"{name} {part} is outside the 32-bit range")
        return cls.of((unique_id << 32) + offset)

    @classmethod
    def _parse(cls, text: str) -> "Lsn":
        stripped = text.strip()
        if stripped.upper() == _NULL_TEXT:
            return cls.NULL
        if not _DECIMAL.fullmatch(stripped):
            raise InvalidFormatError(f"invalid LSN text: {text!r}")
        return cls.of(int(stripped))

    # ------------------------------------------------------------------
    # Accessors

    def is_available(self) -> bool:
        return self.value is not None and self.value >= 0

    @property
    def sequence(self) -> int:
        return -1 if self.value is None else self.value

    @property
    def log_file_id(self) -> int:
        """Upper 32 bits; meaningless on the sentinel."""
        return self.sequence >> 32

    @property
    def offset_in_log_file(self) -> int:
        """Lower 32 bits; meaningless on the sentinel."""
        return self.sequence & _LO_MASK

    def to_long_string(self) -> str:
        """Official textual form, e.g. ``LSN(7,8a209c)``."""
        return f"LSN({self.log_file_id},{self.offset_in_log_file:x})"

    # ------------------------------------------------------------------
    # Ordering

    def compare(self, other: "Lsn") -> int:
        if self is other:
            return 0
        if not self.is_available():
            return 0 if not other.is_available() else -1
        if not other.is_available():
            return 1
        return (self.sequence > other.sequence) - (self.sequence < other.sequence)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Lsn):
            return NotImplemented
        return self.compare(other) < 0

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Lsn):
            return NotImplemented
        return self.compare(other) <= 0

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Lsn):
            return NotImplemented
        return self.compare(other) > 0

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Lsn):
            return NotImplemented
        return self.compare(other) >= 0

    def __str__(self) -> str:
        return _NULL_TEXT if self.value is None else str(self.value)

    def __repr__(self) -> str:
        return f"Lsn({self})"


Lsn.NULL = Lsn(None)


__all__ = ["Lsn", "LsnLike"]
