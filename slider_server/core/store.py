"""SnapshotCache abstract base class for hash-addressed snapshot storage."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..types import Snapshot


class SnapshotCache(ABC):
    """Pluggable storage for notebook snapshots, keyed by notebook hash.

    A present entry is the only cache-hit signal: there is no expiry and no
    versioning beyond the hash itself.
    """

    @abstractmethod
    def load(self, notebook_hash: str) -> Snapshot | None:
        """Return the cached snapshot, or None on a miss."""

    @abstractmethod
    def store(self, notebook_hash: str, snapshot: Snapshot) -> None:
        """Persist a snapshot for this hash. Write failures are logged, not raised."""

    def __contains__(self, notebook_hash: str) -> bool:
        return self.load(notebook_hash) is not None
