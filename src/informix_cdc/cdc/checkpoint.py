"""Checkpoint store implementations for stream resume positions."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from threading import Lock, RLock
from typing import Dict, Optional, Protocol

from .errors import InvalidFormatError
from .lsn import Lsn

logger = logging.getLogger(__name__)


class CheckpointStore(Protocol):
    """Persistence backend for the last processed position of a stream."""

    def load(self, key: str) -> Lsn: ...

    def save(self, key: str, lsn: Lsn) -> None: ...

    def reset(
        self,
        key: str,
        *,
        expected_lsn: Optional[Lsn] = None,
        new_lsn: Optional[Lsn] = None,
        force: bool = False,
    ) -> None: ...


def _check_reset(
    current: Optional[Lsn],
    expected_lsn: Optional[Lsn],
    new_lsn: Optional[Lsn],
    force: bool,
) -> None:
    if force:
        return
    if current is None:
        if expected_lsn is not None and expected_lsn.is_available():
            raise ValueError("resume position missing; supply force=True to reset")
        return
    if expected_lsn is None or expected_lsn != current:
        raise ValueError("unexpected resume position value")
    if new_lsn is not None and new_lsn > current:
        raise ValueError("new resume position must not exceed current value")


class InMemoryCheckpointStore:
    """Volatile checkpoint store keeping positions in-memory."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._positions: Dict[str, Lsn] = {}

    def load(self, key: str) -> Lsn:
        with self._lock:
            return self._positions.get(key, Lsn.NULL)

    def save(self, key: str, lsn: Lsn) -> None:
        if not lsn.is_available():
            return
        with self._lock:
            current = self._positions.get(key)
            if current is None or lsn > current:
                self._positions[key] = lsn

    def reset(
        self,
        key: str,
        *,
        expected_lsn: Optional[Lsn] = None,
        new_lsn: Optional[Lsn] = None,
        force: bool = False,
    ) -> None:
        with self._lock:
            current = self._positions.get(key)
            _check_reset(current, expected_lsn, new_lsn, force)
            if new_lsn is None or not new_lsn.is_available():
                self._positions.pop(key, None)
            else:
                self._positions[key] = new_lsn


class PersistentCheckpointStore:
    """Durable checkpoint store writing positions to a JSON file atomically.

    Positions are stored in their textual form so the file stays readable and
    survives tools that mangle 64-bit integers. A stored value that does not
    parse is kept verbatim and reported by :meth:`load` as
    :class:`InvalidFormatError`; only a forced :meth:`reset` clears it.
    """

    def __init__(self, path: Path | str, *, fsync: bool = False) -> None:
        self._path = Path(path)
        self._fsync = fsync
        self._lock = RLock()
        self._positions: Dict[str, Lsn] = {}
        self._corrupt: Dict[str, object] = {}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._read_file()

    @property
    def path(self) -> Path:
        return self._path

    def load(self, key: str) -> Lsn:
        with self._lock:
            current = self._current_locked(key)
            return Lsn.NULL if current is None else current

    def save(self, key: str, lsn: Lsn) -> None:
        if not lsn.is_available():
            return
        with self._lock:
            current = self._current_locked(key)
            if current is not None and lsn <= current:
                return
            self._positions[key] = lsn
            self._flush_locked()

    def reset(
        self,
        key: str,
        *,
        expected_lsn: Optional[Lsn] = None,
        new_lsn: Optional[Lsn] = None,
        force: bool = False,
    ) -> None:
        with self._lock:
            if force and key in self._corrupt:
                logger.warning(
                    "discarding corrupt position %r for %s in %s",
                    self._corrupt.pop(key),
                    key,
                    self._path,
                )
            current = self._current_locked(key)
            _check_reset(current, expected_lsn, new_lsn, force)
            if new_lsn is not None and new_lsn.is_available():
                self._positions[key] = new_lsn
            else:
                self._positions.pop(key, None)
            self._flush_locked()

    def _current_locked(self, key: str) -> Optional[Lsn]:
        if key in self._corrupt:
            raise InvalidFormatError(
                f"stored position {self._corrupt[key]!r} for {key} in "
                f"{self._path} is not a valid LSN"
            )
        return self._positions.get(key)

    def _read_file(self) -> None:
        if not self._path.exists():
            return
        raw = self._path.read_text(encoding="utf-8")
        if not raw.strip():
            return
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidFormatError(
                f"checkpoint file {self._path} is not valid JSON"
            ) from exc
        if not isinstance(data, dict):
            raise InvalidFormatError(
                f"checkpoint file {self._path} must hold a JSON object"
            )
        for key, value in data.items():
            try:
                lsn = Lsn.of(value) if isinstance(value, (str, int)) else None
            except InvalidFormatError:
                lsn = None
            if lsn is None:
                logger.error(
                    "unparsable position %r for %s in %s", value, key, self._path
                )
                self._corrupt[key] = value
                continue
            if lsn.is_available():
                self._positions[key] = lsn

    def _flush_locked(self) -> None:
        document: Dict[str, object] = dict(self._corrupt)
        document.update((key, str(lsn)) for key, lsn in self._positions.items())
        try:
            _replace_json(self._path, document, fsync=self._fsync)
        except OSError as exc:
            logger.error("failed to persist checkpoint file %s: %s", self._path, exc)
            raise


def _replace_json(path: Path, document: Dict[str, object], *, fsync: bool) -> None:
    """Write ``document`` next to ``path`` and rename it into place."""
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        delete=False,
    ) as handle:
        staged = Path(handle.name)
        try:
            json.dump(document, handle, sort_keys=True)
            handle.flush()
            if fsync:
                os.fsync(handle.fileno())
        except BaseException:
            handle.close()
            staged.unlink(missing_ok=True)
            raise
    try:
        os.replace(staged, path)
    except OSError:
        staged.unlink(missing_ok=True)
        raise
    if fsync:
        _fsync_directory(path.parent)


def _fsync_directory(directory: Path) -> None:
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:  # pragma: no cover - platform dependent
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


__all__ = ["CheckpointStore", "InMemoryCheckpointStore", "PersistentCheckpointStore"]
