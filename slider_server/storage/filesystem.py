"""FilesystemCache: one msgpack file per notebook hash in a cache directory."""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import quote

from ..core.codec import pack, unpack
from ..core.store import SnapshotCache
from ..types import DeserializationError, Snapshot

logger = logging.getLogger(__name__)

CACHE_SUFFIX = ".plutostate"


class FilesystemCache(SnapshotCache):
    """Store snapshots as ``<escaped hash>.plutostate`` files under ``root``.

    The directory is created lazily on the first ``store``; a missing
    directory or file is a plain cache miss.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _entry_path(self, notebook_hash: str) -> Path:
        # base64 hashes contain "/" and "+", escape them for the file name
        return self.root / f"{quote(notebook_hash, safe='')}{CACHE_SUFFIX}"

    def load(self, notebook_hash: str) -> Snapshot | None:
        path = self._entry_path(notebook_hash)
        if not path.is_file():
            return None
        try:
            snapshot = unpack(path.read_bytes())
        except (OSError, DeserializationError) as e:
            logger.warning("Ignoring unreadable cache entry %s: %s", path, e)
            return None
        if not isinstance(snapshot, dict):
            logger.warning("Ignoring cache entry %s: not a mapping", path)
            return None
        return snapshot

    def store(self, notebook_hash: str, snapshot: Snapshot) -> None:
        path = self._entry_path(notebook_hash)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(pack(snapshot))
        except OSError as e:
            # A failed write only costs a future cache miss
            logger.warning("Could not write cache entry %s: %s", path, e)
            return
        logger.debug("Cached snapshot for %s at %s", notebook_hash, path)
