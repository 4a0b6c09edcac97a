"""Shared fixtures for slider-server tests."""

from __future__ import annotations

import copy
import tempfile
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from slider_server.config import load_config
from slider_server.core.registry import SessionRegistry
from slider_server.types import DeployConfig, RunningSession


@dataclass
class FakeNotebook:
    """Cells are plain functions of the bond values."""
    cells: dict[str, Callable[[dict], Any]]
    depends: dict[str, list[str]] = field(default_factory=dict)  # bond → cell ids
    initial_bonds: dict[str, Any] = field(default_factory=dict)
    connections: dict[str, list[str]] = field(default_factory=dict)


def sliders_notebook() -> FakeNotebook:
    return FakeNotebook(
        cells={
            "c_x": lambda b: b.get("x", 0) * 2,
            "c_y": lambda b: b.get("y", 0) + 1,
            "c_xy": lambda b: b.get("x", 0) + b.get("y", 0),
            "c_text": lambda b: "hello",
        },
        depends={"x": ["c_x", "c_xy"], "y": ["c_y", "c_xy"]},
        initial_bonds={"x": 1, "y": 0},
        connections={"x": ["x", "y"], "y": ["x", "y"]},
    )


@dataclass
class _Handle:
    id: int
    name: str
    notebook: FakeNotebook
    bonds: dict[str, Any]
    results: dict[str, Any]
    active: int = 0


class FakeEngine:
    """In-memory execution engine (no notebook runtime needed).

    Records every call and how many calls overlapped on the same handle.
    """

    def __init__(
        self,
        notebooks: dict[str, FakeNotebook] | None = None,
        *,
        delay: float = 0.0,
        fail_on_bond: str | None = None,
        barrier: threading.Barrier | None = None,
    ) -> None:
        self.notebooks = notebooks or {}
        self.delay = delay
        self.fail_on_bond = fail_on_bond
        self.barrier = barrier
        self.opened: list[str] = []
        self.shut_down: list[int] = []
        self.reruns: list[dict] = []
        self.max_overlap = 0
        self._lock = threading.Lock()
        self._next_id = 0

    def _notebook_for(self, path: str) -> FakeNotebook:
        return self.notebooks.get(Path(path).name) or sliders_notebook()

    def open_and_run(self, path: str):
        nb = self._notebook_for(path)
        with self._lock:
            self._next_id += 1
            handle = _Handle(
                id=self._next_id,
                name=Path(path).name,
                notebook=nb,
                bonds=dict(nb.initial_bonds),
                results={},
            )
            self.opened.append(path)
        handle.results = {cid: fn(handle.bonds) for cid, fn in nb.cells.items()}
        return handle, self.snapshot(handle)

    def set_bond_values(self, handle: _Handle, bonds: dict[str, Any]) -> None:
        handle.bonds.update(bonds)

    def rerun(self, handle: _Handle, bound_names: list[str], *, is_first_value: bool) -> list[str]:
        with self._lock:
            handle.active += 1
            self.max_overlap = max(self.max_overlap, handle.active)
        try:
            if self.fail_on_bond in bound_names:
                raise RuntimeError(f"cell depending on {self.fail_on_bond} errored")
            if self.barrier is not None:
                self.barrier.wait()
            if self.delay:
                time.sleep(self.delay)
            nb = handle.notebook
            affected = {cid for name in bound_names for cid in nb.depends.get(name, [])}
            ran = [cid for cid in nb.cells if cid in affected]
            for cid in ran:
                handle.results[cid] = nb.cells[cid](handle.bonds)
            with self._lock:
                self.reruns.append({
                    "handle": handle.id,
                    "names": list(bound_names),
                    "bonds": dict(handle.bonds),
                    "ran": ran,
                    "is_first_value": is_first_value,
                })
            return ran
        finally:
            with self._lock:
                handle.active -= 1

    def snapshot(self, handle: _Handle) -> dict:
        return {
            "notebook_id": handle.name,
            "cell_results": copy.deepcopy(handle.results),
            "bonds": {name: {"value": v} for name, v in handle.bonds.items()},
        }

    def dependency_graph(self, handle: _Handle) -> dict[str, list[str]]:
        return copy.deepcopy(handle.notebook.connections)

    def shutdown(self, handle: _Handle) -> None:
        with self._lock:
            self.shut_down.append(handle.id)


def running_registry(engine: FakeEngine, *names: str) -> SessionRegistry:
    """Registry where notebook ``name`` runs under hash ``hash-{name}``."""
    reg = SessionRegistry.from_hashes([f"hash-{n}" for n in names])
    for i, name in enumerate(names):
        handle, snapshot = engine.open_and_run(f"/nb/{name}")
        reg.transition(i, RunningSession(
            hash=f"hash-{name}",
            handle=handle,
            last_snapshot=snapshot,
            bond_connections=engine.dependency_graph(handle),
            path=name,
        ))
    return reg


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def notebook_dir(tmp_dir) -> Path:
    """Three notebooks with distinct contents."""
    nb_dir = tmp_dir / "notebooks"
    nb_dir.mkdir()
    (nb_dir / "sliders.jl").write_text("# sliders\n@bind x Slider(1:10)\n")
    (nb_dir / "other.jl").write_text("# other\n@bind y Slider(1:5)\n")
    (nb_dir / "static.jl").write_text("# static\n1 + 1\n")
    return nb_dir


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def deploy_config(tmp_dir) -> DeployConfig:
    return load_config(config_dict={
        "slider_server": {"host": "127.0.0.1", "port": 0},
        "export": {"cache_dir": str(tmp_dir / "cache")},
    })
