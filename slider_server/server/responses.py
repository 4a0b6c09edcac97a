"""Response shaping: cache directives, msgpack bodies, error bodies."""

from __future__ import annotations

from typing import Any

from fastapi.responses import PlainTextResponse, Response

from ..core.codec import MSGPACK_MEDIA_TYPE, pack
from ..types import (
    DeserializationError,
    EngineError,
    NotFoundError,
    SliderServerError,
    StillLoadingError,
)

TEN_YEARS = 10 * 365 * 24 * 60 * 60

CACHABLE = f"public, max-age={TEN_YEARS}, immutable"
NOT_CACHABLE = "no-store, no-cache, max-age=5"

LOADING_TEXT = "Still loading the notebooks... check back later!"

# Short client-facing descriptions; never include exception details
_ERROR_RESPONSES: dict[type[SliderServerError], tuple[int, str]] = {
    NotFoundError: (404, "Not found!"),
    StillLoadingError: (503, LOADING_TEXT),
    DeserializationError: (500, "Failed to deserialize bond values"),
    EngineError: (500, "Failed to set bond values"),
}


def with_cachable(response: Response) -> Response:
    # Content is addressed by notebook hash, so it never changes
    response.headers["Cache-Control"] = CACHABLE
    return response


def with_not_cachable(response: Response) -> Response:
    response.headers["Cache-Control"] = NOT_CACHABLE
    return response


def msgpack_response(payload: Any) -> Response:
    return with_cachable(Response(content=pack(payload), media_type=MSGPACK_MEDIA_TYPE))


def text_response(text: str, status_code: int = 200) -> Response:
    return with_not_cachable(PlainTextResponse(text, status_code=status_code))


def error_response(exc: SliderServerError) -> Response:
    for exc_type, (status_code, text) in _ERROR_RESPONSES.items():
        if isinstance(exc, exc_type):
            return text_response(text, status_code)
    return text_response("Internal server error", 500)
