"""Session lifecycle messages published by the login manager adapter.

The adapter puts these onto a single-consumer ``asyncio.Queue`` which the
supervisor drains one message at a time.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class SessionAdded:
    """A login session appeared (logind ``SessionNew``)."""

    session_path: str


@dataclass(frozen=True)
class SessionRemoved:
    """A login session ended (logind ``SessionRemoved``)."""

    session_path: str


SessionEvent = Union[SessionAdded, SessionRemoved]
