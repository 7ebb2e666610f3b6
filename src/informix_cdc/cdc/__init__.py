"""Log positions, change assembly, and ordered streaming of captured changes."""

from .changes import (
    MISSING,
    AssembledChange,
    ChangeAssembler,
    JsonChangeDecoder,
    Operation,
    RawChange,
)
from .checkpoint import (
    CheckpointStore,
    InMemoryCheckpointStore,
    PersistentCheckpointStore,
)
from .coordinator import ChangePublisher, StreamCoordinator, StreamState
from .errors import (
    ChangeStreamError,
    InvalidFormatError,
    MalformedChangeError,
    OutOfOrderError,
    StoppedError,
    StreamStateError,
    UnknownTableError,
)
from .lsn import Lsn
from .schema import RowColumnOrder
from .service import (
    ChangeStreamMetrics,
    ChangeStreamService,
    SnapshotCompleted,
    build_change_stream,
)

__all__ = [
    "AssembledChange",
    "ChangeAssembler",
    "ChangePublisher",
    "ChangeStreamError",
    "ChangeStreamMetrics",
    "ChangeStreamService",
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "InvalidFormatError",
    "JsonChangeDecoder",
    "Lsn",
    "MISSING",
    "MalformedChangeError",
    "Operation",
    "OutOfOrderError",
    "PersistentCheckpointStore",
    "RawChange",
    "RowColumnOrder",
    "SnapshotCompleted",
    "StoppedError",
    "StreamCoordinator",
    "StreamState",
    "StreamStateError",
    "UnknownTableError",
    "build_change_stream",
]
