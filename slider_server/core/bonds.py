"""Bond update protocol: apply new bond values to a running notebook, return a patch.

Happens whenever a viewer moves a slider.  The client sends the values of
the bonds it changed; the engine re-runs the cells that depend on them and
the response describes only what changed in those cells.
"""

from __future__ import annotations

import logging
import time
from typing import Any, assert_never

from ..types import (
    EngineError,
    ExecutionEngine,
    FinishedSession,
    NotFoundError,
    QueuedSession,
    RunningSession,
    SliderServerConfig,
    Snapshot,
    SnapshotConfig,
    StateResponse,
    StillLoadingError,
)
from .codec import decode_bonds
from .differ import diff
from .registry import SessionRegistry

logger = logging.getLogger(__name__)


def only_relevant(
    snapshot: Snapshot, ids_of_cells_that_ran: list[str], snapshot_config: SnapshotConfig,
) -> Snapshot:
    """Project a snapshot onto what a bond update may broadcast.

    Keeps only the results of cells that just ran and blanks the bond
    values: those are per-viewer UI state, never synchronized among clients.
    """
    ran = set(ids_of_cells_that_ran)
    cells = snapshot.get(snapshot_config.cell_results_key) or {}
    relevant = dict(snapshot)
    relevant[snapshot_config.cell_results_key] = {
        cell_id: result for cell_id, result in cells.items() if cell_id in ran
    }
    relevant[snapshot_config.bonds_key] = {}
    return relevant


def resolve_running(registry: SessionRegistry, notebook_hash: str) -> RunningSession:
    """Look up a live session or raise the error matching its state."""
    session = registry.find(notebook_hash)
    match session:
        case None:
            # The client's notebook file does not exactly match any notebook
            # served here (e.g. a whitespace change, or mid-deployment).
            logger.info("Request hash not found: %s", notebook_hash)
            raise NotFoundError(notebook_hash)
        case QueuedSession():
            raise StillLoadingError(notebook_hash)
        case FinishedSession():
            raise NotFoundError(notebook_hash)
        case RunningSession():
            return session
        case _:
            assert_never(session)


class StateRequestHandler:
    """Serve bond updates and bond connection queries against a registry."""

    def __init__(
        self,
        engine: ExecutionEngine,
        server_config: SliderServerConfig | None = None,
        snapshot_config: SnapshotConfig | None = None,
    ) -> None:
        self.engine = engine
        self.server_config = server_config or SliderServerConfig()
        self.snapshot_config = snapshot_config or SnapshotConfig()

    def handle(
        self, registry: SessionRegistry, notebook_hash: str, payload: bytes,
    ) -> StateResponse:
        """Apply msgpack-encoded bond values and return the resulting patch.

        Raises:
            NotFoundError: Unknown hash, or the notebook is no longer running.
            StillLoadingError: The notebook is still queued.
            DeserializationError: ``payload`` is not a msgpack map.
            EngineError: The engine failed; ``last_snapshot`` is unchanged.
        """
        session = resolve_running(registry, notebook_hash)

        with session.lock:
            lag = self.server_config.simulated_lag
            if lag > 0:
                time.sleep(lag)

            bonds = decode_bonds(payload)
            logger.debug("Deserialized bond values for %s: %s", notebook_hash, bonds)

            ids_of_cells_that_ran, new_snapshot = self._run_bonds(session, bonds)

            patches = diff(
                only_relevant(session.last_snapshot, ids_of_cells_that_ran, self.snapshot_config),
                only_relevant(new_snapshot, ids_of_cells_that_ran, self.snapshot_config),
            )
            session.last_snapshot = new_snapshot

        logger.debug(
            "Bond update for %s: %d cells ran, %d patches",
            notebook_hash, len(ids_of_cells_that_ran), len(patches),
        )
        return StateResponse(patches=patches, ids_of_cells_that_ran=ids_of_cells_that_ran)

    def _run_bonds(
        self, session: RunningSession, bonds: dict[str, Any],
    ) -> tuple[list[str], Snapshot]:
        engine = self.engine
        try:
            engine.set_bond_values(session.handle, bonds)
            ran = engine.rerun(session.handle, list(bonds.keys()), is_first_value=False)
            new_snapshot = engine.snapshot(session.handle)
        except Exception as e:
            logger.exception("Failed to set bond values for %s", session.hash)
            raise EngineError(f"Failed to set bond values: {e}") from e
        return [str(cell_id) for cell_id in ran], new_snapshot

    def bond_connections(
        self, registry: SessionRegistry, notebook_hash: str,
    ) -> dict[str, list[str]]:
        """Bond name → names of the bonds it (transitively) affects."""
        return resolve_running(registry, notebook_hash).bond_connections
