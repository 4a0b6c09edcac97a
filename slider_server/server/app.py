"""HTTP routes for the slider server.

    GET  /                              readiness ("Hi!" once every notebook runs)
    POST /staterequest/{hash}/          msgpack bond values in the body
    GET  /staterequest/{hash}/{base64}  same, bond values base64-encoded in the URL
    GET  /bondconnections/{hash}/       bond name → bonds it affects
    GET  /*                             optional static export folder
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import unquote

from fastapi import FastAPI, Request
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

from ..core.bonds import StateRequestHandler, resolve_running
from ..core.codec import decode_base64_segment
from ..core.registry import SessionRegistry
from ..types import DeserializationError, NotFoundError, RunningSession, SliderServerError
from .responses import LOADING_TEXT, error_response, msgpack_response, text_response

logger = logging.getLogger(__name__)


def _path_parts(request: Request) -> list[str]:
    """Unescaped path segments, split on the raw path.

    Notebook hashes and URL bond payloads are base64, so they may contain an
    escaped ``/`` that must not act as a separator.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.decode("latin-1").split("?", 1)[0]
    else:
        path = request.url.path
    return [unquote(part) for part in path.split("/") if part]


def _hash_from(parts: list[str]) -> str:
    if len(parts) < 2:
        raise NotFoundError("")
    return parts[1]


def create_app(
    registry: SessionRegistry,
    handler: StateRequestHandler,
    *,
    static_dir: str | Path | None = None,
) -> FastAPI:
    """Create the FastAPI slider server application.

    Args:
        registry: Sessions to serve; populated by the startup driver.
        handler: Bond update handler bound to the execution engine.
        static_dir: Export folder to serve at ``/``, if any.
    """
    workers: dict[str, ThreadPoolExecutor] = {}

    def _worker_for(session: RunningSession) -> ThreadPoolExecutor:
        # One thread per notebook: queued updates wait here, not in a shared pool
        pool = workers.get(session.hash)
        if pool is None:
            pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notebook")
            workers[session.hash] = pool
        return pool

    async def _bond_update(notebook_hash: str, payload: bytes) -> Response:
        session = resolve_running(registry, notebook_hash)
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            _worker_for(session), handler.handle, registry, notebook_hash, payload,
        )
        return msgpack_response(result.to_dict())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        yield
        for pool in workers.values():
            pool.shutdown(wait=False, cancel_futures=True)
        workers.clear()

    app = FastAPI(
        title="slider-server", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None,
    )
    app.state.registry = registry

    @app.middleware("http")
    async def shared_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Referrer-Policy"] = "origin-when-cross-origin"
        return response

    @app.get("/")
    async def index() -> Response:
        if registry.all_running():
            return text_response("Hi!")
        return text_response(LOADING_TEXT, 503)

    @app.post("/staterequest/{rest:path}")
    async def post_staterequest(request: Request, rest: str) -> Response:
        try:
            notebook_hash = _hash_from(_path_parts(request))
            payload = await request.body()
            return await _bond_update(notebook_hash, payload)
        except SliderServerError as e:
            return error_response(e)

    @app.get("/staterequest/{rest:path}")
    async def get_staterequest(request: Request, rest: str) -> Response:
        try:
            parts = _path_parts(request)
            notebook_hash = _hash_from(parts)
            # Session state takes precedence over the payload shape
            resolve_running(registry, notebook_hash)
            if len(parts) != 3:
                raise DeserializationError("Expected /staterequest/{hash}/{base64 bonds}")
            payload = decode_base64_segment(parts[2])
            return await _bond_update(notebook_hash, payload)
        except SliderServerError as e:
            return error_response(e)

    @app.get("/bondconnections/{rest:path}")
    async def get_bondconnections(request: Request, rest: str) -> Response:
        try:
            parts = _path_parts(request)
            if len(parts) != 2:
                raise NotFoundError("/".join(parts[1:]))
            connections = handler.bond_connections(registry, parts[1])
        except SliderServerError as e:
            return error_response(e)
        return msgpack_response(connections)

    if static_dir is not None:
        static_path = Path(static_dir)
        if static_path.is_dir():
            # Mounted last so the routes above take precedence
            app.mount("/", StaticFiles(directory=static_path), name="static")
            logger.info("Serving static export folder %s", static_path)
        else:
            logger.warning("Static export folder %s does not exist, not serving it", static_path)

    return app
