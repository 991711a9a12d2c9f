"""
Snapshot references for object content assertions.

A store maps a snapshot name to the reference text. The file store keeps one
JSON document per test module under ``__snapshots__/`` next to the module:

    tests/integration/__snapshots__/test_bucket.json
    {
      "test_bucket_snapshot object.json": "{\\"hello\\": \\"world\\"}"
    }

A missing reference is recorded from the actual content and the check
passes. With update mode on, every check overwrites its reference.
"""

import json
import logging
import os
from enum import Enum
from typing import Dict, NamedTuple, Optional, Protocol

from cloudspec.common.constants import SNAPSHOT_DIRNAME

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def read(self, name: str) -> Optional[str]:
        ...

    def write(self, name: str, content: str) -> None:
        ...


class FileSnapshotStore:
    """One JSON file of ``name -> content`` entries."""

    def __init__(self, path: str):
        self.path = path
        self._entries: Optional[Dict[str, str]] = None

    @classmethod
    def for_module(cls, module_path: str) -> "FileSnapshotStore":
        """Store for a test module: ``<dir>/__snapshots__/<module>.json``."""
        directory, filename = os.path.split(os.path.abspath(module_path))
        stem = os.path.splitext(filename)[0]
        return cls(os.path.join(directory, SNAPSHOT_DIRNAME, f"{stem}.json"))

    def _load(self) -> Dict[str, str]:
        if self._entries is None:
            if os.path.exists(self.path):
                with open(self.path, "r", encoding="utf-8") as f:
                    self._entries = json.load(f)
            else:
                self._entries = {}
        return self._entries

    def read(self, name: str) -> Optional[str]:
        return self._load().get(name)

    def write(self, name: str, content: str) -> None:
        entries = self._load()
        entries[name] = content
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(entries, f, indent=2, sort_keys=True, ensure_ascii=False)
            f.write("\n")


class InMemorySnapshotStore:
    def __init__(self, entries: Optional[Dict[str, str]] = None):
        self.entries: Dict[str, str] = dict(entries or {})

    def read(self, name: str) -> Optional[str]:
        return self.entries.get(name)

    def write(self, name: str, content: str) -> None:
        self.entries[name] = content


class SnapshotRecorder:
    """
    A store view bound to one test. Names are prefixed with the test id so
    several tests in a module can snapshot the same object key.
    """

    def __init__(self, store: SnapshotStore, test_id: str, update: bool = False):
        self.store = store
        self.test_id = test_id
        self.update = update

    def _qualify(self, name: str) -> str:
        return f"{self.test_id} {name}"

    def read(self, name: str) -> Optional[str]:
        return self.store.read(self._qualify(name))

    def write(self, name: str, content: str) -> None:
        self.store.write(self._qualify(name), content)


class SnapshotStatus(str, Enum):
    MATCHED = "matched"
    RECORDED = "recorded"
    UPDATED = "updated"
    MISMATCHED = "mismatched"


class SnapshotCheck(NamedTuple):
    status: SnapshotStatus
    expected: Optional[str]

    @property
    def passed(self) -> bool:
        return self.status is not SnapshotStatus.MISMATCHED


def check_snapshot(store: SnapshotStore, name: str, content: str, update: bool = False) -> SnapshotCheck:
    """Compare ``content`` with the stored reference, recording it when absent."""
    expected = store.read(name)

    if expected is None:
        store.write(name, content)
        logger.info("Recorded new snapshot %r", name)
        return SnapshotCheck(SnapshotStatus.RECORDED, None)

    if expected == content:
        return SnapshotCheck(SnapshotStatus.MATCHED, expected)

    if update:
        store.write(name, content)
        logger.info("Updated snapshot %r", name)
        return SnapshotCheck(SnapshotStatus.UPDATED, expected)

    return SnapshotCheck(SnapshotStatus.MISMATCHED, expected)
