"""Discovered Homie devices, commands sent to them and their script interface."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from homie_automation.homie import (
    DeviceRef,
    HomieDomain,
    PropertyRef,
    SubjectError,
    as_device_ref,
    as_property_ref,
)
from homie_automation.mqtt_client import QoS
from homie_automation.values import HomieValue, ValueKind, from_script, to_script

log = logging.getLogger(__name__)


@dataclass
class Device:
    """A discovered device: its description, property values and alerts."""

    device_ref: DeviceRef
    description: dict[str, Any] | None = None
    prop_values: dict[tuple[str, str], HomieValue] = field(default_factory=dict)
    alerts: dict[str, str] = field(default_factory=dict)

    def property_description(self, node_id: str, prop_id: str) -> dict[str, Any] | None:
        if self.description is None:
            return None
        node = self.description.get("nodes", {}).get(node_id)
        if node is None:
            return None
        return node.get("properties", {}).get(prop_id)


class DeviceStore:
    """Devices keyed by their reference."""

    def __init__(self) -> None:
        self._devices: dict[DeviceRef, Device] = {}

    def add_device(self, device: Device) -> None:
        self._devices[device.device_ref] = device

    def get_device(self, device_ref: DeviceRef) -> Device | None:
        return self._devices.get(device_ref)

    def remove_device(self, device_ref: DeviceRef) -> Device | None:
        return self._devices.pop(device_ref, None)

    def clear(self) -> None:
        self._devices.clear()

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[Device]:
        return iter(list(self._devices.values()))

    def __contains__(self, device_ref: object) -> bool:
        return device_ref in self._devices


def _payload(value: HomieValue) -> str:
    """Render a value the way it is published on the wire."""
    if value.kind is ValueKind.EMPTY:
        return ""
    if value.kind is ValueKind.BOOL:
        return "true" if value.value else "false"
    if value.kind in (ValueKind.INTEGER, ValueKind.FLOAT):
        return str(value.value)
    return str(to_script(value))


class DeviceManager:
    """Holds the device store and sends set commands through an MQTT client."""

    def __init__(self, homie_domain: HomieDomain, client: Any, store: DeviceStore | None = None) -> None:
        self.homie_domain = homie_domain
        self._client = client
        self._store = store if store is not None else DeviceStore()

    async def set_command(self, target: PropertyRef, value: HomieValue) -> None:
        """Publish a set command for ``target``."""
        topic = f"{target.to_topic()}/set"
        await self._client.publish(topic, QoS.AT_LEAST_ONCE, False, _payload(value))

    async def disconnect_client(self) -> None:
        await self._client.disconnect()

    def store(self) -> DeviceStore:
        return self._store


def _device_or_property_ref(subject: Any) -> DeviceRef | None:
    try:
        return as_device_ref(subject)
    except (SubjectError, TypeError):
        pass
    try:
        return as_property_ref(subject).device_ref()
    except (SubjectError, TypeError):
        return None


class HomieScriptApi:
    """The ``homie`` object offered to scripts."""

    def __init__(self, dm: DeviceManager) -> None:
        self.dm = dm

    async def set_command(self, subject: str | PropertyRef, value: Any) -> None:
        prop = as_property_ref(subject)
        homie_value = value if isinstance(value, HomieValue) else from_script(value)
        await self.dm.set_command(prop, homie_value)

    async def get_value(self, subject: str | PropertyRef) -> Any:
        prop = as_property_ref(subject)
        device = self.dm.store().get_device(prop.device_ref())
        if device is None:
            return None
        value = device.prop_values.get(prop.prop_pointer)
        return None if value is None else to_script(value)

    async def get_property_description(self, subject: str | PropertyRef) -> dict[str, Any] | None:
        prop = as_property_ref(subject)
        device = self.dm.store().get_device(prop.device_ref())
        if device is None:
            return None
        desc = device.property_description(prop.node_id, prop.prop_id)
        return None if desc is None else copy.deepcopy(desc)

    async def get_device_description(self, subject: Any) -> dict[str, Any] | None:
        """Accept a device or property subject; unparsable subjects give None."""
        device_ref = _device_or_property_ref(subject)
        if device_ref is None:
            return None
        device = self.dm.store().get_device(device_ref)
        if device is None or device.description is None:
            return None
        return copy.deepcopy(device.description)

    async def get_device_alerts(self, subject: str | DeviceRef) -> dict[str, str] | None:
        device_ref = as_device_ref(subject)
        device = self.dm.store().get_device(device_ref)
        return None if device is None else dict(device.alerts)