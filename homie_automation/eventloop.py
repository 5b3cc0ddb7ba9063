"""The application state and the loop that hands queued events to their handlers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from homie_automation.connection import (
    ConnectionEvent,
    ConnectionState,
    ConnectionTracker,
    start_watchers,
)
from homie_automation.cron import CronManager
from homie_automation.devices import DeviceManager
from homie_automation.lua_modules import LuaModuleManager
from homie_automation.mqtt_client import (
    MqttConnected,
    MqttConnectionError,
    MqttDisconnected,
    MqttPublishEvent,
    MqttStopped,
)

log = logging.getLogger(__name__)

SOURCE_APP = "app"
SOURCE_MQTT_CLIENT = "mqtt_client"
SOURCE_LUA_FILES = "lua_files"
MQTT_CONNECTION = "mqtt"

IDLE_TIMEOUT = 60.0
EXIT_TIMEOUT = 1.0
EXIT_GRACE = 1.0


@dataclass(frozen=True)
class Timeout:
    """Returned by the multiplexer when no event arrived in time."""


@dataclass(frozen=True)
class ExitRequested:
    """An application event asking for a clean shutdown."""


AppEvent = ExitRequested
PublishListener = Callable[[MqttPublishEvent], Awaitable[Any]]


def _default_connections() -> dict[str, ConnectionTracker]:
    return {MQTT_CONNECTION: ConnectionTracker()}


@dataclass
class AppState:
    """Everything the event handlers work on."""

    mqtt_client: Any
    app_events: asyncio.Queue
    lua_module_manager: LuaModuleManager = field(default_factory=LuaModuleManager)
    dm: DeviceManager | None = None
    cron: CronManager | None = None
    connections: dict[str, ConnectionTracker] = field(default_factory=_default_connections)
    watchers: dict[str, Any] = field(default_factory=dict)
    mqtt_listeners: list[PublishListener] = field(default_factory=list)
    should_exit: bool = False
    exit_grace: float = EXIT_GRACE
    idle_timeout: float = IDLE_TIMEOUT
    exit_timeout: float = EXIT_TIMEOUT

    @property
    def mqtt_state(self) -> ConnectionTracker:
        return self.connections[MQTT_CONNECTION]

    async def start_watchers(self) -> list[str]:
        """Start the configuration watchers once every connection is up."""
        return await start_watchers(self.connections.values(), self.watchers)


class EventMultiplexer:
    """Waits on several named queues at once and yields one event at a time.

    Sources added first win when several have events ready. Events that were
    already taken from a queue are kept for the following calls, never lost.
    """

    def __init__(self) -> None:
        self._sources: dict[str, asyncio.Queue] = {}
        self._getters: dict[str, asyncio.Future] = {}

    def add_source(self, name: str, queue: asyncio.Queue) -> None:
        if name in self._sources:
            raise ValueError(f"event source {name!r} already added")
        self._sources[name] = queue

    async def next(self, timeout: float) -> tuple[str, Any] | Timeout:
        """Return ``(source name, event)``, or ``Timeout()`` after ``timeout`` seconds."""
        if not self._sources:
            await asyncio.sleep(timeout)
            return Timeout()
        for name, queue in self._sources.items():
            if name not in self._getters:
                self._getters[name] = asyncio.ensure_future(queue.get())
        await asyncio.wait(
            list(self._getters.values()), timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
        for name in self._sources:
            getter = self._getters[name]
            if getter.done():
                del self._getters[name]
                return name, getter.result()
        return Timeout()

    def close(self) -> None:
        """Cancel the pending waits on every source."""
        for getter in self._getters.values():
            getter.cancel()
        self._getters.clear()


async def handle_mqtt_client_event(event: Any, state: AppState) -> bool:
    if isinstance(event, MqttConnected):
        log.debug("MQTT client connected")
        if state.mqtt_state.change_state(ConnectionState.CONNECTED) is ConnectionEvent.RECONNECT:
            await state.mqtt_client.resubscribe()
        await state.start_watchers()
    elif isinstance(event, MqttDisconnected):
        log.debug("MQTT client disconnected")
        state.mqtt_state.change_state(ConnectionState.DISCONNECTED)
    elif isinstance(event, MqttPublishEvent):
        log.debug("MQTT value received: %s = %s", event.topic, event.payload)
        for listener in state.mqtt_listeners:
            try:
                await listener(event)
            except Exception as err:  # noqa: BLE001 - one listener must not stop the others
                log.warning("Error handling mqtt value for %s - %s: %s", event.topic, event.payload, err)
    elif isinstance(event, MqttStopped):
        log.debug("MQTT client stopped")
    elif isinstance(event, MqttConnectionError):
        log.error("MQTT Client Error: %r", event.error)
    else:
        raise TypeError(f"unknown mqtt client event: {event!r}")
    return False


async def handle_lua_files_event(event: Any, state: AppState) -> bool:
    state.lua_module_manager.handle_event(event)
    return False


async def handle_app_event(event: Any, state: AppState) -> bool:
    if not isinstance(event, ExitRequested):
        raise TypeError(f"unknown app event: {event!r}")
    for watcher in state.watchers.values():
        await watcher.stop()
    # give the broker a moment to deliver what was published before going away
    await asyncio.sleep(state.exit_grace)
    if state.dm is not None:
        await state.dm.disconnect_client()
    await state.mqtt_client.disconnect()
    if state.dm is not None:
        state.dm.store().clear()
    if state.cron is not None:
        state.cron.clear()
    state.should_exit = True
    return False


Handler = Callable[[Any, AppState], Awaitable[bool]]

DEFAULT_HANDLERS: Mapping[str, Handler] = {
    SOURCE_APP: handle_app_event,
    SOURCE_MQTT_CLIENT: handle_mqtt_client_event,
    SOURCE_LUA_FILES: handle_lua_files_event,
}


async def run_event_loop(
    multiplexer: EventMultiplexer,
    state: AppState,
    handlers: Mapping[str, Handler] | None = None,
) -> None:
    """Dispatch events until a handler asks to stop or, after an exit, things go quiet."""
    handlers = DEFAULT_HANDLERS if handlers is None else handlers
    while True:
        timeout = state.exit_timeout if state.should_exit else state.idle_timeout
        result: Union[tuple[str, Any], Timeout] = await multiplexer.next(timeout)
        if isinstance(result, Timeout):
            exit_now = state.should_exit
        else:
            name, event = result
            handler = handlers.get(name)
            if handler is None:
                log.warning("No handler for events from %s: %r", name, event)
                exit_now = False
            else:
                exit_now = await handler(event, state)
        if exit_now:
            break
    log.debug("Exiting application event loop")