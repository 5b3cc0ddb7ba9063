"""Helpers exposed to rule scripts: sleeping, JSON, HTTP and MQTT publishing."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx

from homie_automation.mqtt_client import ManagedMqttClient, QoS


@dataclass(frozen=True)
class HttpBody:
    """The body of an HTTP response."""

    content: str

    def text(self) -> str:
        return self.content

    def json(self) -> Any:
        return json.loads(self.content)


class ScriptUtils:
    """Utility functions available to scripts."""

    def __init__(self, mqtt_client: ManagedMqttClient | None, http_client: httpx.AsyncClient | None = None) -> None:
        self.mqtt_client = mqtt_client
        self._http_client = http_client

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient() as client:
                yield client

    async def sleep(self, millis: int) -> None:
        await asyncio.sleep(millis / 1000)

    async def json(self, data: str) -> Any:
        return json.loads(data)

    async def http_get(self, uri: str) -> HttpBody:
        async with self._http() as client:
            response = await client.get(uri)
        return HttpBody(response.text)

    async def http_post(self, uri: str, data: str) -> HttpBody:
        async with self._http() as client:
            response = await client.post(uri, content=data)
        return HttpBody(response.text)

    async def http_post_json(self, uri: str, data: Any) -> HttpBody:
        async with self._http() as client:
            response = await client.post(uri, json=data)
        return HttpBody(response.text)

    async def http_post_form(self, uri: str, data: dict[str, Any]) -> HttpBody:
        async with self._http() as client:
            response = await client.post(uri, data=data)
        return HttpBody(response.text)

    async def mqtt_publish(
        self,
        topic: str,
        payload: str,
        qos: int | None = None,
        retained: bool | None = None,
    ) -> None:
        if self.mqtt_client is None:
            raise RuntimeError("no MQTT client available")
        await self.mqtt_client.publish(
            topic,
            QoS.from_level(0 if qos is None else qos),
            bool(retained),
            payload,
        )