"""systemd-logind adapter on the system D-Bus.

Wraps the ``org.freedesktop.login1`` manager and session objects behind a
small client used by the session inspector and the supervisor service:

    - ``ListSessions`` enumeration
    - per-session property reads (Id, Display, Leader, Seat)
    - ``SessionNew`` / ``SessionRemoved`` notifications, republished as
      ``SessionAdded`` / ``SessionRemoved`` messages on an asyncio queue

Every sdbus failure is translated into ``SessionManagerError`` so callers
never depend on the D-Bus binding's exception types.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from loguru import logger
from sdbus import (
    DbusInterfaceCommonAsync,
    SdBusBaseError,
    dbus_method_async,
    dbus_property_async,
    sd_bus_open_system,
)

from .events import SessionAdded, SessionEvent, SessionRemoved

LOGIN1_SERVICE = "org.freedesktop.login1"
LOGIN1_PATH = "/org/freedesktop/login1"
LOGIN1_MANAGER_INTERFACE = "org.freedesktop.login1.Manager"

# logind signal name -> queue message type
SESSION_SIGNALS = (
    ("SessionNew", SessionAdded),
    ("SessionRemoved", SessionRemoved),
)

# D-Bus type signatures of the session properties we read
SESSION_PROPERTY_SIGNATURES = {
    "Id": "s",
    "Display": "s",
    "Leader": "u",
    "Seat": "(so)",
}

_SESSION_PROPERTY_ATTRIBUTES = {
    "Id": "id",
    "Display": "display",
    "Leader": "leader",
    "Seat": "seat",
}


class SessionManagerError(Exception):
    """A call to the session manager failed at the transport level."""


@dataclass(frozen=True)
class LoginSession:
    """One entry of logind's ``ListSessions`` reply."""

    id: str
    uid: int
    name: str
    seat_id: str
    path: str


class LoginManagerInterface(
    DbusInterfaceCommonAsync,
    interface_name=LOGIN1_MANAGER_INTERFACE,
):
    """Proxy interface of the logind manager object."""

    @dbus_method_async(result_signature="a(susso)")
    async def list_sessions(self) -> List[Tuple[str, int, str, str, str]]:
        raise NotImplementedError


class LoginSessionInterface(
    DbusInterfaceCommonAsync,
    interface_name="org.freedesktop.login1.Session",
):
    """Proxy interface of a single logind session object."""

    @dbus_property_async("s")
    def id(self) -> str:
        raise NotImplementedError

    @dbus_property_async("s")
    def display(self) -> str:
        raise NotImplementedError

    @dbus_property_async("u")
    def leader(self) -> int:
        raise NotImplementedError

    @dbus_property_async("(so)")
    def seat(self) -> Tuple[str, str]:
        raise NotImplementedError


class LoginManagerClient:
    """Query and subscribe to systemd-logind over the system bus."""

    def __init__(self, bus: Optional[Any] = None) -> None:
        try:
            self._bus = bus if bus is not None else sd_bus_open_system()
        except SdBusBaseError as e:
            raise SessionManagerError(f"Could not connect to the system bus: {e}") from e
        self._manager = LoginManagerInterface.new_proxy(
            LOGIN1_SERVICE, LOGIN1_PATH, bus=self._bus
        )

    async def list_sessions(self) -> List[LoginSession]:
        """Return all sessions logind currently knows, in listing order."""
        try:
            reply = await self._manager.list_sessions()
        except SdBusBaseError as e:
            raise SessionManagerError(str(e)) from e

        return [
            LoginSession(id=sid, uid=uid, name=name, seat_id=seat_id, path=path)
            for sid, uid, name, seat_id, path in reply
        ]

    async def get_session_property(self, session_path: str, property_name: str) -> Tuple[str, Any]:
        """Read one property of a session object.

        Returns:
            ``(signature, value)`` where signature is the D-Bus type string.

        Raises:
            SessionManagerError: the read failed or the property is unknown.
        """
        attribute = _SESSION_PROPERTY_ATTRIBUTES.get(property_name)
        if attribute is None:
            raise SessionManagerError(f"Unknown session property: {property_name}")

        session = LoginSessionInterface.new_proxy(LOGIN1_SERVICE, session_path, bus=self._bus)
        try:
            value = await getattr(session, attribute).get_async()
        except SdBusBaseError as e:
            raise SessionManagerError(str(e)) from e

        return SESSION_PROPERTY_SIGNATURES[property_name], value

    async def publish_notifications(
        self,
        queue: "asyncio.Queue[SessionEvent]",
        subscribed: Optional[asyncio.Event] = None,
    ) -> None:
        """Forward session notifications onto ``queue`` until cancelled.

        ``subscribed`` is set once the bus has confirmed both signal
        matches, so every session created after that point is reported.

        Raises:
            SessionManagerError: a signal match could not be registered.
        """

        def forwarder(event_type: Callable[[str], SessionEvent]) -> Callable[[Any], None]:
            def on_signal(message: Any) -> None:
                _session_id, session_path = message.get_contents()
                logger.debug("{} {}", event_type.__name__, session_path)
                queue.put_nowait(event_type(session_path))

            return on_signal

        slots = []
        try:
            for member, event_type in SESSION_SIGNALS:
                slot = await self._bus.match_signal_async(
                    LOGIN1_SERVICE,
                    LOGIN1_PATH,
                    LOGIN1_MANAGER_INTERFACE,
                    member,
                    forwarder(event_type),
                )
                slots.append(slot)
        except SdBusBaseError as e:
            for slot in slots:
                slot.close()
            raise SessionManagerError(f"Could not subscribe to session notifications: {e}") from e

        if subscribed is not None:
            subscribed.set()

        try:
            # signals arrive through the slot callbacks
            await asyncio.get_running_loop().create_future()
        finally:
            for slot in slots:
                slot.close()
