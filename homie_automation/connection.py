"""Connection state tracking for the application's clients."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping
from typing import Any

log = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    INIT = "init"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ConnectionEvent(enum.Enum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    RECONNECT = "reconnect"


_TRANSITIONS = {
    (ConnectionState.INIT, ConnectionState.CONNECTED): ConnectionEvent.CONNECT,
    (ConnectionState.CONNECTED, ConnectionState.DISCONNECTED): ConnectionEvent.DISCONNECT,
    (ConnectionState.DISCONNECTED, ConnectionState.CONNECTED): ConnectionEvent.RECONNECT,
}


class ConnectionTracker:
    """Holds a connection state and reports meaningful transitions."""

    def __init__(self, state: ConnectionState = ConnectionState.INIT) -> None:
        self.state = state

    def change_state(self, new_state: ConnectionState) -> ConnectionEvent | None:
        """Switch to ``new_state``; return the event the transition means, if any."""
        event = _TRANSITIONS.get((self.state, new_state))
        self.state = new_state
        return event

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def __repr__(self) -> str:
        return f"ConnectionTracker({self.state.name})"


def all_connected(trackers: Iterable[ConnectionTracker]) -> bool:
    return all(tracker.connected for tracker in trackers)


async def start_watchers(trackers: Iterable[ConnectionTracker], watchers: Mapping[str, Any]) -> list[str]:
    """Start every watcher once all trackers are connected.

    Failures are logged and do not stop the others. Returns the names of the
    watchers that started.
    """
    if not all_connected(trackers):
        return []
    started = []
    for name, watcher in watchers.items():
        try:
            await watcher.start()
        except Exception as err:  # noqa: BLE001 - one failing watcher must not stop the rest
            log.error("Error starting %s config watcher. %r", name, err)
        else:
            log.debug("Started %s config watcher", name)
            started.append(name)
    return started