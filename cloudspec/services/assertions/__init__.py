from cloudspec.services.assertions.matchers import (
    Matchers,
    complete_execution,
    create_object,
    have_key,
    json_equivalent,
    match_object_snapshot,
)
from cloudspec.services.assertions.snapshot import (
    FileSnapshotStore,
    InMemorySnapshotStore,
    SnapshotRecorder,
    SnapshotStore,
)

__all__ = [
    "Matchers",
    "complete_execution",
    "create_object",
    "have_key",
    "json_equivalent",
    "match_object_snapshot",
    "FileSnapshotStore",
    "InMemorySnapshotStore",
    "SnapshotRecorder",
    "SnapshotStore",
]
