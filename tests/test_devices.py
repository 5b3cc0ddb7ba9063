import pytest

from homie_automation.devices import Device, DeviceManager, DeviceStore, HomieScriptApi
from homie_automation.homie import DeviceRef, HomieDomain, PropertyRef, SubjectError
from homie_automation.mqtt_client import QoS
from homie_automation.values import HomieValue, ValueKind


class FakeClient:
    def __init__(self):
        self.published = []
        self.disconnected = False

    async def publish(self, topic, qos, retain, payload):
        self.published.append((topic, qos, retain, payload))

    async def disconnect(self):
        self.disconnected = True


DESCRIPTION = {
    "name": "Lamp",
    "nodes": {"light": {"properties": {"power": {"datatype": "boolean", "settable": True}}}},
}


@pytest.fixture
def setup():
    client = FakeClient()
    dm = DeviceManager(HomieDomain(), client)
    ref = DeviceRef(HomieDomain(), "lamp")
    device = Device(ref, description=DESCRIPTION, alerts={"battery": "low"})
    device.prop_values[("light", "power")] = HomieValue(ValueKind.BOOL, True)
    dm.store().add_device(device)
    return client, dm, HomieScriptApi(dm), device


def test_store_add_get_remove():
    store = DeviceStore()
    ref = DeviceRef(HomieDomain(), "dev")
    device = Device(ref)
    store.add_device(device)
    assert store.get_device(ref) is device
    assert ref in store
    assert store.remove_device(ref) is device
    assert store.get_device(ref) is None
    assert store.remove_device(ref) is None


def test_store_clear():
    store = DeviceStore()
    for name in ("a", "b"):
        store.add_device(Device(DeviceRef(HomieDomain(), name)))
    assert len(store) == 2
    store.clear()
    assert len(store) == 0


@pytest.mark.asyncio
async def test_set_command_publishes_to_set_topic(setup):
    client, dm, _, _ = setup
    prop = PropertyRef(HomieDomain(), "lamp", "light", "power")
    await dm.set_command(prop, HomieValue(ValueKind.BOOL, False))
    assert client.published == [("homie/5/lamp/light/power/set", QoS.AT_LEAST_ONCE, False, "false")]


@pytest.mark.asyncio
async def test_disconnect_client(setup):
    client, dm, _, _ = setup
    await dm.disconnect_client()
    assert client.disconnected is True


@pytest.mark.asyncio
async def test_script_set_command_from_subject(setup):
    client, _, api, _ = setup
    await api.set_command("lamp/light/power", 42)
    assert client.published[0][0] == "homie/5/lamp/light/power/set"
    assert client.published[0][3] == "42"


@pytest.mark.asyncio
async def test_script_set_command_bad_subject(setup):
    _, _, api, _ = setup
    with pytest.raises(SubjectError):
        await api.set_command("lamp", 1)


@pytest.mark.asyncio
async def test_get_value(setup):
    _, _, api, _ = setup
    assert await api.get_value("lamp/light/power") is True
    assert await api.get_value("lamp/light/missing") is None
    assert await api.get_value("other/light/power") is None


@pytest.mark.asyncio
async def test_get_property_description_is_copy(setup):
    _, _, api, _ = setup
    desc = await api.get_property_description("lamp/light/power")
    assert desc == DESCRIPTION["nodes"]["light"]["properties"]["power"]
    desc["settable"] = False
    assert DESCRIPTION["nodes"]["light"]["properties"]["power"]["settable"] is True


@pytest.mark.asyncio
async def test_get_device_description_accepts_both_refs(setup):
    _, _, api, _ = setup
    assert await api.get_device_description("lamp") == DESCRIPTION
    assert await api.get_device_description("lamp/light/power") == DESCRIPTION
    assert await api.get_device_description(PropertyRef(HomieDomain(), "lamp", "light", "power")) == DESCRIPTION
    assert await api.get_device_description("a/b/c/d/e") is None
    assert await api.get_device_description(17) is None


@pytest.mark.asyncio
async def test_get_device_alerts(setup):
    _, _, api, _ = setup
    assert await api.get_device_alerts("lamp") == {"battery": "low"}
    assert await api.get_device_alerts("unknown") is None
    with pytest.raises(SubjectError):
        await api.get_device_alerts("lamp/light/power")