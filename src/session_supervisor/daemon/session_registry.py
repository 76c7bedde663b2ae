"""Logical session ids for multi-session mode.

Several workers may share one physical seat/display. Each one gets a
logical id which is handed to the worker through its environment and
released when the login session ends. Ids are small integers allocated
lowest-free-first from ``[0, max_sessions)``, so a closed id is reused by
the next session.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from loguru import logger


@dataclass(frozen=True)
class SessionInfo:
    """Physical session context an id was opened for."""

    session_path: str
    display: str
    seat_path: str


class SessionRegistry:
    """Allocate and release logical session ids."""

    def __init__(self, max_sessions: int = 100) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.max_sessions = max_sessions
        self._sessions: Dict[int, SessionInfo] = {}

    def open(self, session_path: str, display: str, seat_path: str) -> Optional[int]:
        """Allocate an id for the given session context.

        Returns:
            The id, owned by the caller until ``close`` is called with it,
            or None when every id is in use.
        """
        for session_id in range(self.max_sessions):
            if session_id not in self._sessions:
                self._sessions[session_id] = SessionInfo(session_path, display, seat_path)
                logger.debug("Opened session id {} for {}", session_id, session_path)
                return session_id

        logger.error("No free session id for {} ({} in use)", session_path, len(self._sessions))
        return None

    def close(self, session_id: int) -> None:
        """Release ``session_id``; unknown ids are ignored."""
        info = self._sessions.pop(session_id, None)
        if info is None:
            logger.warning("Closing unknown session id {}", session_id)
            return
        logger.debug("Closed session id {} of {}", session_id, info.session_path)

    @property
    def sessions(self) -> Mapping[int, SessionInfo]:
        return MappingProxyType(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
