"""All dataclasses, Protocols, type aliases and errors for slider-server."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, TypedDict, runtime_checkable


# ---------------------------------------------------------------------------
# Snapshots & patches
# ---------------------------------------------------------------------------

# Full serialized notebook state: cell id → result, plus bond name → value.
Snapshot = dict[str, Any]

PatchOp = Literal["add", "remove", "replace"]


class _PatchBase(TypedDict):
    op: PatchOp
    path: list[str | int]


class Patch(_PatchBase, total=False):
    value: Any  # absent for "remove"


@dataclass
class StateResponse:
    """Result of a successful bond update, sent to the client as msgpack."""
    patches: list[Patch]
    ids_of_cells_that_ran: list[str]

    def to_dict(self) -> dict:
        return {
            "patches": [dict(p) for p in self.patches],
            "ids_of_cells_that_ran": list(self.ids_of_cells_that_ran),
        }


# ---------------------------------------------------------------------------
# Notebook sessions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QueuedSession:
    """Placeholder until the startup driver has loaded this notebook."""
    hash: str


@dataclass
class RunningSession:
    """A notebook kept alive in the execution engine.

    ``last_snapshot`` and the engine's bond state are only touched while
    holding ``lock``.
    """
    hash: str
    handle: Any
    last_snapshot: Snapshot
    bond_connections: dict[str, list[str]] = field(default_factory=dict)
    path: str = ""
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass(frozen=True)
class FinishedSession:
    """Engine shut down (or never started); snapshot is frozen."""
    hash: str
    last_snapshot: Snapshot


NotebookSession = QueuedSession | RunningSession | FinishedSession


# ---------------------------------------------------------------------------
# External execution engine
# ---------------------------------------------------------------------------

@runtime_checkable
class ExecutionEngine(Protocol):
    """Reactive notebook runtime consumed by the slider server.

    Calls for one handle are never made concurrently; ``rerun`` blocks
    until the affected cells have finished.
    ``set_bond_values`` writes the given values into the live bond state;
    bonds not mentioned keep their current value.
    """

    def open_and_run(self, path: str) -> tuple[Any, Snapshot]: ...

    def set_bond_values(self, handle: Any, bonds: dict[str, Any]) -> None: ...

    def rerun(
        self, handle: Any, bound_names: list[str], *, is_first_value: bool,
    ) -> list[str]: ...

    def snapshot(self, handle: Any) -> Snapshot: ...

    def dependency_graph(self, handle: Any) -> dict[str, list[str]]: ...

    def shutdown(self, handle: Any) -> None: ...


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class SliderServerConfig:
    exclude: list[str] = field(default_factory=list)
    port: int = 2345
    host: str = "127.0.0.1"
    simulated_lag: float = 0.0  # seconds slept before each bond update
    serve_static_export_folder: bool = False


@dataclass
class ExportConfig:
    output_dir: str | None = None  # defaults to the notebook directory
    exclude: list[str] = field(default_factory=list)
    cache_dir: str | None = None


@dataclass
class SnapshotConfig:
    """Names of the two snapshot sections the server cares about."""
    cell_results_key: str = "cell_results"
    bonds_key: str = "bonds"


@dataclass
class DeployConfig:
    slider_server: SliderServerConfig = field(default_factory=SliderServerConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    engine: str = ""  # "module:attribute" factory for the execution engine


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class SliderServerError(Exception):
    """Base error for all slider-server operations."""


class ConfigError(SliderServerError):
    """Invalid or missing configuration."""


class RegistryError(SliderServerError):
    """Illegal session registry operation (duplicate hash, bad transition)."""


class PatchError(SliderServerError):
    """A patch could not be applied to a document."""


class NotFoundError(SliderServerError):
    """No live notebook matches the requested hash."""


class StillLoadingError(SliderServerError):
    """The notebook is still queued for startup."""


class DeserializationError(SliderServerError):
    """Bond values in the request could not be decoded."""


class EngineError(SliderServerError):
    """The execution engine raised while running a notebook."""


class PortInUseError(SliderServerError):
    """The HTTP port could not be bound."""
