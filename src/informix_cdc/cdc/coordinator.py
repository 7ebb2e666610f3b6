"""Snapshot/streaming lifecycle and strict LSN ordering of emitted changes."""

from __future__ import annotations

import logging
from enum import Enum
from threading import RLock
from typing import Optional, Protocol, Union

from .changes import AssembledChange
from .checkpoint import CheckpointStore, InMemoryCheckpointStore
from .errors import OutOfOrderError, StoppedError, StreamStateError
from .lsn import Lsn

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    SNAPSHOTTING = "snapshotting"
    STREAMING = "streaming"
    STOPPED = "stopped"


class ChangePublisher(Protocol):
    """Publication sink; returning normally means the change was accepted."""

    def __call__(self, change: AssembledChange) -> None: ...


class StreamCoordinator:
    """Owns the stream position and the only place ordering is enforced.

    Every call to :meth:`advance` must carry an LSN strictly greater than the
    last accepted one. After a restart the persisted position counts as
    already emitted. The persisted position only moves once a change has been
    handed to the publisher, so a crash in between replays the change instead
    of skipping it.
    """

    def __init__(
        self,
        *,
        key: str,
        checkpoint_store: Optional[CheckpointStore] = None,
        publisher: Optional[ChangePublisher] = None,
        capture_snapshot: bool = True,
    ) -> None:
        self._key = key
        self._checkpoint_store = checkpoint_store or InMemoryCheckpointStore()
        self._publisher = publisher
        self._lock = RLock()
        self._last_accepted = Lsn.NULL
        self._state = StreamState.SNAPSHOTTING
        if not capture_snapshot:
            self._enter_streaming(self._checkpoint_store.load(key), source="resume")

    @property
    def key(self) -> str:
        return self._key

    @property
    def state(self) -> StreamState:
        with self._lock:
            return self._state

    @property
    def stopped(self) -> bool:
        return self.state is StreamState.STOPPED

    def current_position(self) -> Lsn:
        with self._lock:
            return self._last_accepted

    def persisted_position(self) -> Lsn:
        return self._checkpoint_store.load(self._key)

    # ------------------------------------------------------------------
    # Lifecycle

    def complete_snapshot(self, position: Lsn) -> None:
        """Switch to streaming from the position the snapshot was taken at."""
        with self._lock:
            self._require_state(StreamState.SNAPSHOTTING, "complete snapshot")
            self._checkpoint_store.save(self._key, position)
            self._enter_streaming(position, source="snapshot")

    def begin_streaming(self, resume_from: Optional[Lsn] = None) -> None:
        """Switch to streaming without a snapshot, e.g. after a restart."""
        with self._lock:
            self._require_state(StreamState.SNAPSHOTTING, "begin streaming")
            if resume_from is None:
                resume_from = self._checkpoint_store.load(self._key)
            self._enter_streaming(resume_from, source="resume")

    def stop(self) -> None:
        with self._lock:
            if self._state is StreamState.STOPPED:
                return
            previous = self._state
            self._state = StreamState.STOPPED
        logger.info(
            "stream %s stopped while %s at %s",
            self._key,
            previous.value,
            self._last_accepted,
        )

    def _enter_streaming(self, position: Lsn, *, source: str) -> None:
        self._last_accepted = position
        self._state = StreamState.STREAMING
        logger.info("stream %s streaming from %s (%s)", self._key, position, source)

    def _require_state(self, expected: StreamState, action: str) -> None:
        if self._state is StreamState.STOPPED:
            raise StoppedError(f"cannot {action}: stream {self._key} is stopped")
        if self._state is not expected:
            raise StreamStateError(
                f"cannot {action}: stream {self._key} is {self._state.value}"
            )

    # ------------------------------------------------------------------
    # Ordering

    def advance(self, change: AssembledChange) -> AssembledChange:
        """Accept ``change`` if it moves the stream forward.

        With a publisher configured the change is published and its position
        persisted before this returns. Without one the caller publishes and
        then calls :meth:`commit`.

        If the checkpoint store fails after the publisher accepted the change,
        the error propagates but the position stays advanced: the change is
        not offered again in this run, while the persisted position lags and a
        restart replays it. Delivery is at-least-once across restarts.
        """
        with self._lock:
            if self._state is StreamState.STOPPED:
                raise StoppedError(f"stream {self._key} is stopped")
            if self._state is StreamState.SNAPSHOTTING:
                raise OutOfOrderError(
                    f"change at {change.lsn} arrived before the snapshot of "
                    f"stream {self._key} completed"
                )
            if change.lsn <= self._last_accepted:
                raise OutOfOrderError(
                    f"change at {change.lsn} on {change.table} does not advance "
                    f"stream {self._key} past {self._last_accepted}"
                )
            if self._publisher is not None:
                self._publisher(change)
            self._last_accepted = change.lsn
            if self._publisher is not None:
                self._checkpoint_store.save(self._key, change.lsn)
            return change

    def commit(self, position: Union[AssembledChange, Lsn]) -> None:
        """Persist a position that was accepted and has since been published."""
        lsn = position.lsn if isinstance(position, AssembledChange) else position
        with self._lock:
            if lsn > self._last_accepted:
                raise OutOfOrderError(
                    f"cannot commit {lsn}: stream {self._key} only accepted up to "
                    f"{self._last_accepted}"
                )
            self._checkpoint_store.save(self._key, lsn)


__all__ = ["ChangePublisher", "StreamCoordinator", "StreamState"]
