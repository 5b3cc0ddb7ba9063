"""MQTT client with subscription tracking and an asyncio event queue."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Union

import paho.mqtt.client as mqtt

log = logging.getLogger(__name__)


class MqttClientError(Exception):
    """Raised when the MQTT client rejects a request."""


class QoS(enum.IntEnum):
    AT_MOST_ONCE = 0
    AT_LEAST_ONCE = 1
    EXACTLY_ONCE = 2

    @classmethod
    def from_level(cls, level: int) -> QoS:
        """Map 0, 1 and 2 to their QoS; anything else means at most once."""
        try:
            return cls(level)
        except ValueError:
            return cls.AT_MOST_ONCE


@dataclass(frozen=True)
class MqttOptions:
    host: str = "localhost"
    port: int = 1883
    client_id: str = ""
    username: str | None = None
    password: str | None = None
    keep_alive: int = 5
    reconnect_delay: int = 5


@dataclass(frozen=True)
class MqttPublishEvent:
    topic: str
    payload: str
    duplicate: bool
    retain: bool
    qos: QoS


@dataclass(frozen=True)
class MqttConnected:
    pass


@dataclass(frozen=True)
class MqttDisconnected:
    pass


@dataclass(frozen=True)
class MqttStopped:
    pass


@dataclass(frozen=True)
class MqttConnectionError:
    error: Any


MqttClientEvent = Union[MqttPublishEvent, MqttConnected, MqttDisconnected, MqttStopped, MqttConnectionError]


def _result_code(result: Any) -> int | None:
    code = getattr(result, "rc", result)
    if isinstance(code, tuple):
        code = code[0]
    return None if code is None else int(code)


def _call(action: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    try:
        result = func(*args, **kwargs)
    except (ValueError, OSError) as err:
        raise MqttClientError(f"{action} failed: {err}") from err
    code = _result_code(result)
    if code:
        raise MqttClientError(f"{action} failed with code {code}")


def _is_failure(reason: Any) -> bool:
    flag = getattr(reason, "is_failure", None)
    if flag is not None:
        return bool(flag)
    return int(reason) != 0


class ManagedMqttClient:
    """Wraps an MQTT client and remembers its subscriptions for reconnects."""

    def __init__(self, client: Any) -> None:
        self._client = client
        self._subscriptions: dict[str, QoS] = {}
        self._lock = asyncio.Lock()

    async def publish(self, topic: str, qos: QoS, retain: bool, payload: str | bytes) -> None:
        _call("publish", self._client.publish, topic, payload, qos=int(qos), retain=retain)

    async def subscribe(self, topic: str, qos: QoS) -> None:
        """Subscribe to ``topic`` unless already subscribed."""
        async with self._lock:
            if topic not in self._subscriptions:
                _call("subscribe", self._client.subscribe, topic, int(qos))
                self._subscriptions[topic] = QoS(qos)

    async def unsubscribe(self, topic: str) -> None:
        async with self._lock:
            self._subscriptions.pop(topic, None)
            _call("unsubscribe", self._client.unsubscribe, topic)

    async def resubscribe(self) -> None:
        """Subscribe again to every remembered topic."""
        async with self._lock:
            filters = [(topic, int(qos)) for topic, qos in self._subscriptions.items()]
            if filters:
                _call("subscribe", self._client.subscribe, filters)

    async def disconnect(self) -> None:
        _call("disconnect", self._client.disconnect)

    def subscriptions(self) -> dict[str, QoS]:
        return dict(self._subscriptions)


class MqttClientHandle:
    """Controls the task that turns client callbacks into events."""

    def __init__(self, task: asyncio.Task, stop_event: asyncio.Event) -> None:
        self._task = task
        self._stop_event = stop_event

    async def stop(self) -> None:
        """Signal the event task to stop and wait for it to finish."""
        self._stop_event.set()
        await self._task


def create_paho_client(options: MqttOptions) -> mqtt.Client:
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=options.client_id)
    if options.username:
        client.username_pw_set(options.username, options.password)
    client.reconnect_delay_set(min_delay=options.reconnect_delay, max_delay=options.reconnect_delay)
    return client


async def _pump(
    client: Any,
    raw: asyncio.Queue,
    events: asyncio.Queue,
    stop_event: asyncio.Event,
) -> None:
    connected = False
    stop_wait = asyncio.ensure_future(stop_event.wait())
    try:
        while True:
            getter = asyncio.ensure_future(raw.get())
            done, _ = await asyncio.wait({getter, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                log.debug("Received stop signal. Exiting...")
                break
            kind, data = getter.result()
            if kind == "publish":
                try:
                    payload = bytes(data.payload).decode("utf-8")
                except UnicodeDecodeError as err:
                    log.warning("Cannot parse mqtt payload for topic [%s] to string. Error: %s", data.topic, err)
                    continue
                await events.put(
                    MqttPublishEvent(
                        topic=data.topic,
                        payload=payload,
                        duplicate=bool(getattr(data, "dup", False)),
                        retain=bool(data.retain),
                        qos=QoS.from_level(data.qos),
                    )
                )
            elif kind == "connack":
                log.debug("MQTT: Connected")
                connected = True
                await events.put(MqttConnected())
            elif kind == "closed":
                log.debug("MQTT: Connection closed from our side.")
                await events.put(MqttDisconnected())
                break
            elif kind == "error":
                if connected:
                    connected = False
                    await events.put(MqttDisconnected())
                log.error("MQTTClient: Error connecting mqtt. %r", data)
                await events.put(MqttConnectionError(data))
    finally:
        stop_wait.cancel()
    await events.put(MqttStopped())
    await asyncio.to_thread(client.loop_stop)
    log.debug("Exiting mqtt client eventloop...")


def run_mqtt_client(
    options: MqttOptions,
    channel_size: int,
    client_factory: Callable[[MqttOptions], Any] | None = None,
) -> tuple[MqttClientHandle, ManagedMqttClient, asyncio.Queue]:
    """Connect a client and start delivering its events to a queue.

    Must be called from a running event loop.
    """
    log.debug("Connecting to MQTT: %s", options.client_id)
    loop = asyncio.get_running_loop()
    events: asyncio.Queue = asyncio.Queue(maxsize=channel_size)
    raw: asyncio.Queue = asyncio.Queue()
    client = (client_factory or create_paho_client)(options)

    def feed(item: tuple[str, Any]) -> None:
        try:
            loop.call_soon_threadsafe(raw.put_nowait, item)
        except RuntimeError:
            log.debug("Dropping mqtt event after the event loop closed: %s", item[0])

    def on_connect(_client: Any, _userdata: Any, _flags: Any, reason: Any, _properties: Any = None) -> None:
        feed(("error", reason) if _is_failure(reason) else ("connack", None))

    def on_disconnect(_client: Any, _userdata: Any, _flags: Any, reason: Any, _properties: Any = None) -> None:
        feed(("error", reason) if _is_failure(reason) else ("closed", None))

    def on_message(_client: Any, _userdata: Any, message: Any) -> None:
        feed(("publish", message))

    def on_connect_fail(_client: Any, _userdata: Any) -> None:
        feed(("error", "connection failed"))

    client.on_connect = on_connect
    client.on_disconnect = on_disconnect
    client.on_message = on_message
    client.on_connect_fail = on_connect_fail

    _call("connect", client.connect_async, options.host, options.port, options.keep_alive)
    client.loop_start()

    stop_event = asyncio.Event()
    task = loop.create_task(_pump(client, raw, events, stop_event))
    return MqttClientHandle(task, stop_event), ManagedMqttClient(client), events