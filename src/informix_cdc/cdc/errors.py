"""Exceptions raised by the change stream core.

None of these represent a transient condition, so nothing in the package
retries them. They indicate malformed input or a violated sequencing contract
between collaborators and are surfaced to the immediate caller.
"""

from __future__ import annotations


class ChangeStreamError(Exception):
    """Base class for change stream failures."""


class InvalidFormatError(ChangeStreamError, ValueError):
    """Raised when a textual or numeric log position cannot be parsed."""


class UnknownTableError(ChangeStreamError, KeyError):
    """Raised when a change references a table with no registered column order."""

    def __init__(self, table: str) -> None:
        super().__init__(table)
        self.table = table

    def __str__(self) -> str:
        return f"no column order registered for table {self.table!r}"


class MalformedChangeError(ChangeStreamError):
    """Raised when a raw change violates the operation/image invariants."""


class OutOfOrderError(ChangeStreamError):
    """Raised when a change does not advance the stream position."""


class StoppedError(ChangeStreamError):
    """Raised when the stream is used after shutdown."""


class StreamStateError(ChangeStreamError):
    """Raised on an invalid lifecycle transition."""


__all__ = [
    "ChangeStreamError",
    "InvalidFormatError",
    "MalformedChangeError",
    "OutOfOrderError",
    "StoppedError",
    "StreamStateError",
    "UnknownTableError",
]
