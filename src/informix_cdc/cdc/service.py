"""Change stream service tying assembly, ordering and publication together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Sequence, Union

from prometheus_client import CollectorRegistry, Counter, Gauge

from .changes import AssembledChange, ChangeAssembler, RawChange
from .checkpoint import (
    CheckpointStore,
    InMemoryCheckpointStore,
    PersistentCheckpointStore,
)
from .coordinator import ChangePublisher, StreamCoordinator, StreamState
from .errors import OutOfOrderError, StoppedError
from .lsn import Lsn
from .schema import RowColumnOrder

if TYPE_CHECKING:  # pragma: no cover - import-time helper only
    from ..config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotCompleted:
    """Signal from the snapshot reader: data up to ``position`` was captured."""

    position: Lsn


StreamItem = Union[RawChange, SnapshotCompleted]


# ---------------------------------------------------------------------------
# Metrics


class ChangeStreamMetrics:
    """Prometheus counters for the change stream, kept in their own registry."""

    def __init__(
        self,
        namespace: str = "informix_cdc",
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self._registry = registry if registry is not None else CollectorRegistry()
        prefix = f"{namespace}_stream"
        self._assembled = Counter(
            f"{prefix}_changes_assembled",
            "Raw changes assembled into canonical column order",
            registry=self._registry,
        )
        self._published = Counter(
            f"{prefix}_changes_published",
            "Changes accepted by the publication sink",
            registry=self._registry,
        )
        self._out_of_order = Counter(
            f"{prefix}_out_of_order",
            "Changes rejected for not advancing the stream position",
            registry=self._registry,
        )
        self._errors = Counter(
            f"{prefix}_errors",
            "Changes rejected for any other reason",
            registry=self._registry,
        )
        self._position = Gauge(
            f"{prefix}_current_lsn",
            "Sequence of the last accepted log position (-1 when unavailable)",
            registry=self._registry,
        )
        self._position.set(-1)
        self._samples = {
            "assembled_total": f"{prefix}_changes_assembled_total",
            "published_total": f"{prefix}_changes_published_total",
            "out_of_order_total": f"{prefix}_out_of_order_total",
            "errors_total": f"{prefix}_errors_total",
            "current_lsn": f"{prefix}_current_lsn",
        }

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def inc_assembled(self, amount: int = 1) -> None:
        self._assembled.inc(amount)

    def inc_published(self, amount: int = 1) -> None:
        self._published.inc(amount)

    def inc_out_of_order(self, amount: int = 1) -> None:
        self._out_of_order.inc(amount)

    def inc_errors(self, amount: int = 1) -> None:
        self._errors.inc(amount)

    def set_position(self, lsn: Lsn) -> None:
        self._position.set(lsn.sequence)

    def snapshot(self) -> Dict[str, float]:
        return {
            key: self._registry.get_sample_value(sample) or 0.0
            for key, sample in self._samples.items()
        }


# ---------------------------------------------------------------------------
# Service


class ChangeStreamService:
    """Entry point used by the connector framework.

    One thread reads from the log and calls :meth:`assemble_and_advance` (or
    :meth:`run`); other threads may read :meth:`current_position` and call
    :meth:`stop`.
    """

    def __init__(
        self,
        *,
        server_name: str,
        publisher: ChangePublisher,
        checkpoint_store: Optional[CheckpointStore] = None,
        column_order: Optional[RowColumnOrder] = None,
        metrics: Optional[ChangeStreamMetrics] = None,
        capture_snapshot: bool = True,
        out_of_order_policy: str = "fail",
        resume_lsn: Optional[Lsn] = None,
    ) -> None:
        if out_of_order_policy not in {"fail", "skip"}:
            raise ValueError(f"unsupported out-of-order policy {out_of_order_policy!r}")
        self._server_name = server_name
        self._publisher = publisher
        self._column_order = column_order or RowColumnOrder()
        self._assembler = ChangeAssembler(self._column_order)
        self._metrics = metrics or ChangeStreamMetrics()
        self._checkpoint_store = checkpoint_store or InMemoryCheckpointStore()
        self._out_of_order_policy = out_of_order_policy
        self._resume_lsn = resume_lsn
        self._coordinator = StreamCoordinator(
            key=server_name,
            checkpoint_store=self._checkpoint_store,
            publisher=self._publish,
            capture_snapshot=capture_snapshot or resume_lsn is not None,
        )
        if not capture_snapshot and resume_lsn is not None:
            self._coordinator.begin_streaming(resume_lsn)
        self._metrics.set_position(self._coordinator.current_position())

    @property
    def metrics(self) -> ChangeStreamMetrics:
        return self._metrics

    @property
    def coordinator(self) -> StreamCoordinator:
        return self._coordinator

    @property
    def column_order(self) -> RowColumnOrder:
        return self._column_order

    @property
    def state(self) -> StreamState:
        return self._coordinator.state

    def register_table(self, table: str, ordered_columns: Sequence[str]) -> None:
        self._column_order.register(table, ordered_columns)

    def current_position(self) -> Lsn:
        return self._coordinator.current_position()

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> StreamState:
        """Resume streaming when a position is known, otherwise await the snapshot."""
        if self._coordinator.state is not StreamState.SNAPSHOTTING:
            return self._coordinator.state
        resume = self._resume_lsn
        if resume is None:
            resume = self._coordinator.persisted_position()
        if resume.is_available():
            self.begin_streaming(resume)
        return self._coordinator.state

    def begin_streaming(self, resume_from: Optional[Lsn] = None) -> None:
        self._coordinator.begin_streaming(resume_from)
        self._metrics.set_position(self._coordinator.current_position())

    def complete_snapshot(self, position: Lsn) -> None:
        self._coordinator.complete_snapshot(position)
        self._metrics.set_position(position)

    def stop(self) -> None:
        self._coordinator.stop()

    # ------------------------------------------------------------------
    # Processing

    def assemble_and_advance(self, raw: RawChange) -> AssembledChange:
        if self._coordinator.stopped:
            raise StoppedError(f"stream {self._server_name} is stopped")
        try:
            assembled = self._assembler.assemble(raw)
            self._metrics.inc_assembled()
            self._coordinator.advance(assembled)
        except OutOfOrderError:
            self._metrics.inc_out_of_order()
            raise
        except Exception:
            self._metrics.inc_errors()
            raise
        self._metrics.set_position(assembled.lsn)
        return assembled

    def run(self, source: Iterable[StreamItem]) -> int:
        """Drain ``source`` until it is exhausted or the stream is stopped."""
        emitted = 0
        for item in source:
            if self._coordinator.stopped:
                logger.info("stream %s stop requested; leaving loop", self._server_name)
                break
            if isinstance(item, SnapshotCompleted):
                self.complete_snapshot(item.position)
                continue
            try:
                self.assemble_and_advance(item)
            except OutOfOrderError as exc:
                if self._out_of_order_policy != "skip":
                    raise
                logger.warning("skipping change: %s", exc)
                continue
            emitted += 1
        return emitted

    def _publish(self, change: AssembledChange) -> None:
        self._publisher(change)
        self._metrics.inc_published()


# ---------------------------------------------------------------------------
# Factory helpers


def build_change_stream(
    settings: "Settings",
    *,
    publisher: ChangePublisher,
    checkpoint_store: Optional[CheckpointStore] = None,
    column_order: Optional[RowColumnOrder] = None,
    metrics: Optional[ChangeStreamMetrics] = None,
) -> ChangeStreamService:
    """Construct a change stream service using application settings."""

    store = checkpoint_store
    if store is None:
        if settings.checkpoint_backend == "file":
            store = PersistentCheckpointStore(
                settings.resume_path, fsync=settings.resume_fsync
            )
        else:
            store = InMemoryCheckpointStore()

    return ChangeStreamService(
        server_name=settings.server_name,
        publisher=publisher,
        checkpoint_store=store,
        column_order=column_order,
        metrics=metrics or ChangeStreamMetrics(namespace=settings.metrics_namespace),
        capture_snapshot=settings.capture_snapshot,
        out_of_order_policy=settings.out_of_order_policy,
        resume_lsn=settings.resume_lsn,
    )


__all__ = [
    "ChangeStreamMetrics",
    "ChangeStreamService",
    "SnapshotCompleted",
    "StreamItem",
    "build_change_stream",
]
