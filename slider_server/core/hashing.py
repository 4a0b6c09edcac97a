"""Content hash used to identify notebooks across cache, registry and URLs."""

from __future__ import annotations

import base64
import hashlib
from pathlib import Path


def notebook_hash(contents: bytes) -> str:
    """Base64-encoded SHA-256 of the raw notebook source."""
    return base64.b64encode(hashlib.sha256(contents).digest()).decode("ascii")


def notebook_file_hash(path: str | Path) -> str:
    return notebook_hash(Path(path).read_bytes())
