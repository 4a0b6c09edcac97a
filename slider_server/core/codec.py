"""MessagePack wire codec for snapshots, patches and bond values."""

from __future__ import annotations

import base64
import binascii
from typing import Any

import msgpack

from ..types import DeserializationError

MSGPACK_MEDIA_TYPE = "application/msgpack"


def pack(obj: Any) -> bytes:
    return msgpack.packb(obj, use_bin_type=True)


def unpack(data: bytes) -> Any:
    """Decode a complete msgpack payload. Raises DeserializationError."""
    try:
        return msgpack.unpackb(data, raw=False, strict_map_key=False)
    except (msgpack.UnpackException, ValueError, TypeError) as e:
        raise DeserializationError(f"Invalid msgpack payload: {e}") from e


def decode_base64_segment(segment: str) -> bytes:
    """Decode a base64 URL segment; standard or URL-safe alphabet, padding optional."""
    text = segment.strip()
    text += "=" * (-len(text) % 4)
    try:
        if "-" in text or "_" in text:
            return base64.b64decode(text, altchars=b"-_", validate=True)
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DeserializationError(f"Invalid base64 segment: {e}") from e


def decode_bonds(payload: bytes) -> dict[str, Any]:
    """Bond values are a msgpack map of bond name → value."""
    raw = unpack(payload)
    if not isinstance(raw, dict):
        raise DeserializationError(
            f"Bond payload must be a map, got {type(raw).__name__}"
        )
    return {str(k): v for k, v in raw.items()}
