from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Optional

from fsbrowser.utils.entry import SessionEntry
from fsbrowser.utils.signal import Signal


def reconcile_sessions(sessions: Iterable[SessionEntry], paths: Iterable[str]) -> tuple[SessionEntry, ...]:
    """Keep the sessions whose path is listed.

    Parameters
    ----------
    sessions : Iterable[SessionEntry]
        Registry snapshot.
    paths : Iterable[str]
        Paths of the current directory entries.

    Returns
    -------
    tuple[SessionEntry, ...]
        Matching sessions in registry order.
    """
    listed = paths if isinstance(paths, (set, frozenset)) else set(paths)
    return tuple(session for session in sessions if session.path in listed)


class SessionRegistry(ABC):
    """Abstract class for running session registry.

    Attributes
    ----------
    running_changed : Signal[list[SessionEntry]]
        Emitted with the new snapshot whenever the running set changes.
    """

    def __init__(self) -> None:
        self.running_changed: Signal[list[SessionEntry]] = Signal('running_changed')

    @abstractmethod
    def running(self) -> list[SessionEntry]:
        pass


class InMemorySessionRegistry(SessionRegistry):
    """Session registry kept in process memory."""

    def __init__(self, sessions: Optional[Iterable[SessionEntry]] = None) -> None:
        super().__init__()
        self._sessions: dict[str, SessionEntry] = {session.id: session for session in sessions or ()}

    def running(self) -> list[SessionEntry]:
        return list(self._sessions.values())

    def add(self, session: SessionEntry) -> None:
        self._sessions[session.id] = session
        self.running_changed.emit(self.running())

    def remove(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            self.running_changed.emit(self.running())
