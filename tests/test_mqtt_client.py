import asyncio
from types import SimpleNamespace

import pytest

from homie_automation.mqtt_client import (
    ManagedMqttClient,
    MqttClientError,
    MqttConnected,
    MqttConnectionError,
    MqttDisconnected,
    MqttOptions,
    MqttPublishEvent,
    MqttStopped,
    QoS,
    run_mqtt_client,
)


class FakeClient:
    def __init__(self, rc=0):
        self.rc = rc
        self.calls = []
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.on_connect_fail = None
        self.loop_started = False
        self.loop_stopped = False

    def connect_async(self, host, port, keepalive):
        self.calls.append(("connect", host, port, keepalive))

    def loop_start(self):
        self.loop_started = True

    def loop_stop(self):
        self.loop_stopped = True

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.calls.append(("publish", topic, payload, qos, retain))
        return (self.rc, 1)

    def subscribe(self, topic, qos=0):
        self.calls.append(("subscribe", topic, qos))
        return (self.rc, 1)

    def unsubscribe(self, topic):
        self.calls.append(("unsubscribe", topic))
        return (self.rc, 1)

    def disconnect(self):
        self.calls.append(("disconnect",))
        return self.rc


def message(topic, payload, qos=0, retain=False, dup=False):
    return SimpleNamespace(topic=topic, payload=payload, qos=qos, retain=retain, dup=dup)


async def next_event(events):
    return await asyncio.wait_for(events.get(), 1)


@pytest.mark.parametrize(
    "level, expected",
    [(0, QoS.AT_MOST_ONCE), (1, QoS.AT_LEAST_ONCE), (2, QoS.EXACTLY_ONCE), (7, QoS.AT_MOST_ONCE)],
)
def test_qos_from_level(level, expected):
    assert QoS.from_level(level) is expected


@pytest.mark.asyncio
async def test_subscribe_only_once():
    fake = FakeClient()
    client = ManagedMqttClient(fake)
    await client.subscribe("a/b", QoS.AT_LEAST_ONCE)
    await client.subscribe("a/b", QoS.AT_LEAST_ONCE)
    assert fake.calls == [("subscribe", "a/b", 1)]
    assert client.subscriptions() == {"a/b": QoS.AT_LEAST_ONCE}


@pytest.mark.asyncio
async def test_unsubscribe_forgets_topic():
    fake = FakeClient()
    client = ManagedMqttClient(fake)
    await client.subscribe("a/b", QoS.AT_MOST_ONCE)
    await client.unsubscribe("a/b")
    assert client.subscriptions() == {}
    assert fake.calls[-1] == ("unsubscribe", "a/b")


@pytest.mark.asyncio
async def test_resubscribe_sends_all_topics():
    fake = FakeClient()
    client = ManagedMqttClient(fake)
    await client.subscribe("x", QoS.AT_MOST_ONCE)
    await client.subscribe("y", QoS.EXACTLY_ONCE)
    fake.calls.clear()
    await client.resubscribe()
    assert fake.calls == [("subscribe", [("x", 0), ("y", 2)], 0)]


@pytest.mark.asyncio
async def test_publish_passes_arguments():
    fake = FakeClient()
    client = ManagedMqttClient(fake)
    await client.publish("t/1", QoS.AT_LEAST_ONCE, True, "on")
    assert fake.calls == [("publish", "t/1", "on", 1, True)]


@pytest.mark.asyncio
async def test_publish_error_raises():
    client = ManagedMqttClient(FakeClient(rc=4))
    with pytest.raises(MqttClientError):
        await client.publish("t", QoS.AT_MOST_ONCE, False, "x")


@pytest.mark.asyncio
async def test_failed_subscribe_is_not_remembered():
    client = ManagedMqttClient(FakeClient(rc=4))
    with pytest.raises(MqttClientError):
        await client.subscribe("t", QoS.AT_MOST_ONCE)
    assert client.subscriptions() == {}


@pytest.mark.asyncio
async def test_connect_and_messages():
    fake = FakeClient()
    options = MqttOptions(host="broker.example.com", port=1884, client_id="test", keep_alive=9)
    handle, _client, events = run_mqtt_client(options, 16, lambda _opts: fake)
    assert fake.calls[0] == ("connect", "broker.example.com", 1884, 9)
    assert fake.loop_started

    fake.on_connect(fake, None, {}, 0)
    fake.on_message(fake, None, message("a/b", b"\xff\xfe"))
    fake.on_message(fake, None, message("a/b", b"hello", qos=1, retain=True))

    assert await next_event(events) == MqttConnected()
    assert await next_event(events) == MqttPublishEvent("a/b", "hello", False, True, QoS.AT_LEAST_ONCE)

    await handle.stop()
    assert await next_event(events) == MqttStopped()
    assert fake.loop_stopped


@pytest.mark.asyncio
async def test_error_after_connect_reports_disconnect():
    fake = FakeClient()
    handle, _client, events = run_mqtt_client(MqttOptions(), 16, lambda _opts: fake)
    fake.on_connect(fake, None, {}, 0)
    fake.on_disconnect(fake, None, {}, 128)
    assert await next_event(events) == MqttConnected()
    assert await next_event(events) == MqttDisconnected()
    assert await next_event(events) == MqttConnectionError(128)
    await handle.stop()


@pytest.mark.asyncio
async def test_error_before_connect_only_reports_error():
    fake = FakeClient()
    handle, _client, events = run_mqtt_client(MqttOptions(), 16, lambda _opts: fake)
    fake.on_connect(fake, None, {}, 135)
    assert await next_event(events) == MqttConnectionError(135)
    await handle.stop()
    assert await next_event(events) == MqttStopped()


@pytest.mark.asyncio
async def test_own_disconnect_ends_event_task():
    fake = FakeClient()
    handle, client, events = run_mqtt_client(MqttOptions(), 16, lambda _opts: fake)
    fake.on_connect(fake, None, {}, 0)
    await client.disconnect()
    assert fake.calls[-1] == ("disconnect",)
    fake.on_disconnect(fake, None, {}, 0)
    assert await next_event(events) == MqttConnected()
    assert await next_event(events) == MqttDisconnected()
    assert await next_event(events) == MqttStopped()
    await handle.stop()
    assert events.empty()