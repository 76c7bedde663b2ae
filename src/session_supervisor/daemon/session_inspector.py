"""Session property queries against the session manager.

The inspector turns loosely typed property replies into a ``PropertyValue``
with fallible accessors and absorbs transport failures: a property that
could not be read is reported as ``None`` ("could not determine"), never as
an empty or zero value. Only session enumeration reports failure to the
caller, via ``SessionListingError``.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Tuple

from loguru import logger

from .login_manager import LoginSession, SessionManagerError

UNKNOWN_LEADER_PID = -1


class SessionListingError(SessionManagerError):
    """Session enumeration failed; no sessions were observed."""


class SessionManager(Protocol):
    """What the inspector needs from the session manager adapter."""

    async def list_sessions(self) -> List[LoginSession]: ...

    async def get_session_property(self, session_path: str, property_name: str) -> Tuple[str, Any]: ...


@dataclass(frozen=True)
class SessionSeat:
    """Seat a session is attached to; empty strings mean no seat."""

    id: str = ""
    path: str = ""


@dataclass(frozen=True)
class PropertyValue:
    """A session property as returned by the session manager.

    Attributes:
        name: Property name (e.g. ``Display``)
        signature: D-Bus type signature of the value
        value: Decoded value, may be None
    """

    name: str
    signature: str
    value: Any

    def as_string(self) -> Optional[str]:
        if isinstance(self.value, str):
            return self.value
        return None

    def as_int(self) -> Optional[int]:
        if isinstance(self.value, bool):
            return None
        if isinstance(self.value, int):
            return self.value
        return None

    def as_compound(self) -> Optional[SessionSeat]:
        if isinstance(self.value, (tuple, list)) and len(self.value) == 2:
            seat_id, seat_path = self.value
            return SessionSeat(id=str(seat_id), path=str(seat_path))
        return None


class SessionInspector:
    """Synchronous-per-call property reader for login sessions."""

    def __init__(self, manager: SessionManager) -> None:
        self._manager = manager

    async def query(self, session_path: str, property_name: str) -> Optional[PropertyValue]:
        """Read ``property_name`` of ``session_path``; None when the read fails."""
        try:
            signature, value = await self._manager.get_session_property(session_path, property_name)
        except SessionManagerError as e:
            logger.error("Could not query session property {} of {}: {}", property_name, session_path, e)
            return None
        return PropertyValue(name=property_name, signature=signature, value=value)

    async def display(self, session_path: str) -> str:
        prop = await self.query(session_path, "Display")
        if prop is None:
            return ""
        return prop.as_string() or ""

    async def leader_pid(self, session_path: str) -> int:
        prop = await self.query(session_path, "Leader")
        if prop is None:
            return UNKNOWN_LEADER_PID
        pid = prop.as_int()
        return UNKNOWN_LEADER_PID if pid is None else pid

    async def seat(self, session_path: str) -> SessionSeat:
        prop = await self.query(session_path, "Seat")
        if prop is None:
            return SessionSeat()
        return prop.as_compound() or SessionSeat()

    async def session_id(self, session_path: str) -> str:
        prop = await self.query(session_path, "Id")
        if prop is None:
            return ""
        return prop.as_string() or ""

    async def list_session_records(self) -> List[LoginSession]:
        """Enumerate all sessions with one batched call.

        Raises:
            SessionListingError: the enumeration failed. Treat this as "no
                sessions observed", not as "no sessions exist".
        """
        try:
            return await self._manager.list_sessions()
        except SessionManagerError as e:
            logger.critical("Could not query sessions: {}", e)
            raise SessionListingError(str(e)) from e

    async def list_sessions(self) -> List[str]:
        """Enumerate session object paths in listing order."""
        return [session.path for session in await self.list_session_records()]
