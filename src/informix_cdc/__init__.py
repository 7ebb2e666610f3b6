"""Change data capture core for Informix logical logs."""

from .cdc import (
    AssembledChange,
    ChangeStreamService,
    Lsn,
    Operation,
    RawChange,
    build_change_stream,
)
from .config import Settings, load_settings

__all__ = [
    "AssembledChange",
    "ChangeStreamService",
    "Lsn",
    "Operation",
    "RawChange",
    "Settings",
    "build_change_stream",
    "load_settings",
]
