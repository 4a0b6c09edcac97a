"""SessionRegistry: one slot per notebook, indexed by discovery order."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import assert_never

from ..types import (
    FinishedSession,
    NotebookSession,
    QueuedSession,
    RegistryError,
    RunningSession,
)

logger = logging.getLogger(__name__)


def session_state(session: NotebookSession) -> str:
    """Short lowercase name of the session's state tag."""
    match session:
        case QueuedSession():
            return "queued"
        case RunningSession():
            return "running"
        case FinishedSession():
            return "finished"
        case _:
            assert_never(session)


class SessionRegistry:
    """Fixed-size arena of notebook sessions.

    Every slot starts as ``QueuedSession`` and is replaced exactly once by
    the startup driver with a ``RunningSession`` or ``FinishedSession`` of the
    same hash.  After that the slots are read-only; the mutable fields of a
    running session are guarded by that session's own lock.

    Lookups are by exact hash match only.
    """

    def __init__(self, sessions: Iterable[NotebookSession] = ()) -> None:
        self._slots: list[NotebookSession] = list(sessions)
        self._index: dict[str, int] = {}
        for i, session in enumerate(self._slots):
            if session.hash in self._index:
                raise RegistryError(f"Duplicate notebook hash in registry: {session.hash}")
            self._index[session.hash] = i

    @classmethod
    def from_hashes(cls, hashes: Iterable[str]) -> SessionRegistry:
        return cls(QueuedSession(hash=h) for h in hashes)

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[NotebookSession]:
        return iter(list(self._slots))

    def __getitem__(self, index: int) -> NotebookSession:
        return self._slots[index]

    def hashes(self) -> list[str]:
        return [s.hash for s in self._slots]

    def index_of(self, notebook_hash: str) -> int | None:
        return self._index.get(notebook_hash)

    def find(self, notebook_hash: str) -> NotebookSession | None:
        i = self._index.get(notebook_hash)
        if i is None:
            return None
        return self._slots[i]

    def transition(self, index: int, session: RunningSession | FinishedSession) -> None:
        """Replace a queued slot with its loaded session. Allowed once per slot."""
        current = self._slots[index]
        if not isinstance(current, QueuedSession):
            raise RegistryError(
                f"Slot {index} is already {session_state(current)}; sessions never transition twice"
            )
        if not isinstance(session, (RunningSession, FinishedSession)):
            raise RegistryError(
                f"Slot {index} can only become running or finished, not {session_state(session)}"
            )
        if session.hash != current.hash:
            raise RegistryError(
                f"Slot {index} holds {current.hash}, cannot replace with {session.hash}"
            )
        self._slots[index] = session
        logger.debug("Slot %d (%s): queued → %s", index, session.hash, session_state(session))

    def all_running(self) -> bool:
        return all(isinstance(s, RunningSession) for s in self._slots)

    def is_loading(self) -> bool:
        return any(isinstance(s, QueuedSession) for s in self._slots)

    def counts(self) -> dict[str, int]:
        result = {"queued": 0, "running": 0, "finished": 0}
        for s in self._slots:
            result[session_state(s)] += 1
        return result

    def running(self) -> list[RunningSession]:
        return [s for s in self._slots if isinstance(s, RunningSession)]
