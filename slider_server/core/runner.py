"""Startup driver: load every notebook into the registry, then serve.

Notebooks are processed strictly one after another, in the order given,
before the HTTP server starts accepting requests.  Each registry slot moves
from queued to running (kept alive for bond updates) or finished (engine shut
down, snapshot frozen) exactly once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from fastapi import FastAPI

from ..server.app import create_app
from ..server.run import check_port_available, serve_app
from ..storage.filesystem import FilesystemCache
from ..types import (
    DeployConfig,
    EngineError,
    ExecutionEngine,
    FinishedSession,
    RunningSession,
)
from .bonds import StateRequestHandler
from .hashing import notebook_hash
from .registry import SessionRegistry
from .store import SnapshotCache

logger = logging.getLogger(__name__)


@dataclass
class NotebookEntry:
    """A notebook scheduled for loading, and its registry slot."""
    index: int
    path: str
    hash: str


def notebooks_to_run(
    notebook_paths: list[str], config: DeployConfig, *, static_export: bool,
) -> list[str]:
    """Drop excluded notebooks.

    With ``static_export``, a notebook excluded only from the slider server
    is still run (and cached) but then shut down; it is skipped entirely
    only when excluded from both.
    """
    server_exclude = set(config.slider_server.exclude)
    if static_export:
        excluded = server_exclude & set(config.export.exclude)
    else:
        excluded = server_exclude
    return [p for p in notebook_paths if p not in excluded]


def plan_notebooks(start_dir: str | Path, paths: list[str]) -> list[NotebookEntry]:
    """Hash each notebook; identical files get a single slot."""
    entries: list[NotebookEntry] = []
    seen: dict[str, str] = {}
    for path in paths:
        h = notebook_hash((Path(start_dir) / path).read_bytes())
        if h in seen:
            logger.warning(
                "Skipping %s: identical contents to %s (hash %s)", path, seen[h], h,
            )
            continue
        seen[h] = path
        entries.append(NotebookEntry(index=len(entries), path=path, hash=h))
    return entries


def load_notebook(
    entry: NotebookEntry,
    registry: SessionRegistry,
    engine: ExecutionEngine,
    *,
    start_dir: str | Path,
    cache: SnapshotCache | None,
    keep_running: bool,
) -> None:
    """Move one queued slot to running or finished.

    Raises:
        EngineError: The engine failed to open or run the notebook.
    """
    cached = None if keep_running or cache is None else cache.load(entry.hash)
    if cached is not None:
        logger.info("Loaded from cache, skipping notebook run: %s", entry.hash)
        registry.transition(entry.index, FinishedSession(hash=entry.hash, last_snapshot=cached))
        return

    try:
        handle, snapshot = engine.open_and_run(str(Path(start_dir) / entry.path))
        if keep_running:
            connections = engine.dependency_graph(handle)
        else:
            logger.info("Shutting down notebook process for %s", entry.path)
            engine.shutdown(handle)
    except Exception as e:
        logger.exception("Failed to run notebook %s", entry.path)
        raise EngineError(f"Failed to run notebook {entry.path}: {e}") from e

    if cache is not None:
        cache.store(entry.hash, snapshot)

    if keep_running:
        bond_connections = {
            str(name): [str(other) for other in others]
            for name, others in connections.items()
        }
        logger.info(
            "Bond connections for %s:\n%s",
            entry.path,
            "\n".join(f"  {k} => {v}" for k, v in bond_connections.items()) or "  (none)",
        )
        registry.transition(entry.index, RunningSession(
            hash=entry.hash,
            handle=handle,
            last_snapshot=snapshot,
            bond_connections=bond_connections,
            path=entry.path,
        ))
    else:
        registry.transition(entry.index, FinishedSession(hash=entry.hash, last_snapshot=snapshot))


def shutdown_running(registry: SessionRegistry, engine: ExecutionEngine) -> None:
    """Shut down every live engine instance, e.g. when the server exits."""
    for session in registry.running():
        with session.lock:
            try:
                engine.shutdown(session.handle)
            except Exception:
                logger.exception("Failed to shut down notebook %s", session.path or session.hash)


def run_directory(
    start_dir: str | Path,
    notebook_paths: list[str],
    engine: ExecutionEngine,
    config: DeployConfig | None = None,
    *,
    static_export: bool = True,
    run_server: bool = True,
    on_ready: Callable[[SessionRegistry], None] | None = None,
    serve: Callable[[FastAPI, str, int], None] | None = None,
) -> SessionRegistry:
    """Run the slider server for the given notebooks.

    Args:
        start_dir: Directory the notebook paths are relative to.
        notebook_paths: Notebook files to serve, relative to ``start_dir``.
        engine: Execution engine that runs the notebooks.
        config: Deployment settings; defaults when omitted.
        static_export: Also process notebooks excluded only from the server.
        run_server: Keep notebooks running and serve HTTP. When False every
            notebook ends up finished (and cached, if a cache dir is set).
        on_ready: Called with the registry once every notebook is loaded.
        serve: Server loop; defaults to uvicorn.

    Raises:
        PortInUseError: The configured port cannot be bound.
        EngineError: A notebook failed to run during startup.
    """
    config = config or DeployConfig()
    settings = config.slider_server
    start_dir = Path(start_dir)
    output_dir = Path(config.export.output_dir) if config.export.output_dir else start_dir

    to_run = notebooks_to_run(notebook_paths, config, static_export=static_export)

    logger.info("Settings: %s", config)
    if run_server:
        logger.warning(
            "Make sure that you run this slider server inside a containerized "
            "environment -- it is not intended to be secure. Assume that users "
            "can execute arbitrary code inside your notebooks."
        )
    if len(to_run) != len(notebook_paths):
        logger.info("Excluded notebooks: %s", [p for p in notebook_paths if p not in to_run])
    logger.info("Notebooks to run: %s", to_run)

    entries = plan_notebooks(start_dir, to_run)
    registry = SessionRegistry.from_hashes(e.hash for e in entries)

    if run_server:
        check_port_available(settings.host, settings.port)

    cache = FilesystemCache(config.export.cache_dir) if config.export.cache_dir else None

    total = len(entries)
    for entry in entries:
        logger.info("[%d/%d] Opening %s", entry.index + 1, total, entry.path)
        load_notebook(
            entry, registry, engine,
            start_dir=start_dir,
            cache=cache,
            keep_running=run_server and entry.path not in settings.exclude,
        )
        logger.info("[%d/%d] Ready %s (%s)", entry.index + 1, total, entry.path, entry.hash)
    logger.info("-- ALL NOTEBOOKS READY -- %s", registry.counts())

    if on_ready is not None:
        on_ready(registry)

    if run_server:
        handler = StateRequestHandler(engine, settings, config.snapshot)
        static_dir = output_dir if settings.serve_static_export_folder else None
        app = create_app(registry, handler, static_dir=static_dir)
        try:
            (serve or serve_app)(app, settings.host, settings.port)
        finally:
            shutdown_running(registry, engine)

    return registry


def export_directory(
    start_dir: str | Path,
    notebook_paths: list[str],
    engine: ExecutionEngine,
    config: DeployConfig | None = None,
    **kwargs,
) -> SessionRegistry:
    """Run every notebook once without serving; warms the snapshot cache."""
    return run_directory(start_dir, notebook_paths, engine, config, run_server=False, **kwargs)
