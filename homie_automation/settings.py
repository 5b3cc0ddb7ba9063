"""Application settings read from environment variables."""

from __future__ import annotations

import enum
import os
import re
import secrets
import string
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from homie_automation.homie import HomieDomain, SubjectError
from homie_automation.mqtt_client import MqttOptions

ENV_PREFIX = "HCACTL"
CHANNEL_CAPACITY = 65535
DEFAULT_CONTROLLER_ID = "hc-homie5-automation-ctrl"
DEFAULT_CONTROLLER_NAME = "Homecontrol Automation Controller"

_ID_RE = re.compile(r"[a-z0-9-]+")
_ALPHANUMERIC = string.ascii_letters + string.digits


class SettingsError(ValueError):
    """Raised when a setting has an invalid value."""


def env_name(name: str) -> str:
    return f"{ENV_PREFIX}_{name}"


@dataclass(frozen=True)
class FileBackend:
    path: Path


@dataclass(frozen=True)
class KubernetesBackend:
    name: str
    namespace: str = "default"


@dataclass(frozen=True)
class MqttBackend:
    topic: str


ConfigBackend = Union[FileBackend, KubernetesBackend, MqttBackend]


def parse_config_backend(value: str) -> ConfigBackend:
    """Parse ``file:/path``, ``mqtt:topic`` or ``kubernetes:name[,namespace]``."""
    kind, sep, rest = value.partition(":")
    if not sep:
        raise SettingsError(
            "Invalid format. Use 'file:/path', 'mqtt:topic' or 'kubernetes:name[,namespace]'"
        )
    kind = kind.lower()
    if kind == "file":
        return FileBackend(Path(rest))
    if kind == "mqtt":
        return MqttBackend(rest)
    if kind == "kubernetes":
        name, comma, namespace = rest.partition(",")
        return KubernetesBackend(name, namespace if comma else "default")
    raise SettingsError("Unknown backend type. Use 'file' or 'kubernetes'")


class KubernetesResource(enum.Enum):
    SECRET = "secret"
    CONFIG_MAP = "configmap"


@dataclass(frozen=True)
class InMemoryStoreConfig:
    pass


@dataclass(frozen=True)
class SqliteStoreConfig:
    path: str


@dataclass(frozen=True)
class KubernetesStoreConfig:
    name: str
    namespace: str
    resource_type: KubernetesResource


ValueStoreConfig = Union[InMemoryStoreConfig, SqliteStoreConfig, KubernetesStoreConfig]

_VALUE_STORE_FORMAT = (
    "Invalid format. Use 'inmemory', 'sqlite:/path/to/filename.db' "
    "or 'kubernetes:secret|configmap,name[,namespace]'"
)


def parse_value_store_config(value: str) -> ValueStoreConfig:
    kind, sep, rest = value.partition(":")
    kind = kind.lower()
    if kind == "inmemory":
        return InMemoryStoreConfig()
    if kind == "sqlite" and sep:
        return SqliteStoreConfig(rest)
    if kind == "kubernetes" and sep:
        parts = rest.split(",", 2)
        if len(parts) < 2:
            raise SettingsError(_VALUE_STORE_FORMAT)
        resource = KubernetesResource.SECRET if parts[0] == "secret" else KubernetesResource.CONFIG_MAP
        namespace = parts[2] if len(parts) == 3 else "default"
        return KubernetesStoreConfig(parts[1], namespace, resource)
    raise SettingsError(_VALUE_STORE_FORMAT)


@dataclass(frozen=True)
class LocationConfig:
    """Observer position for solar calculations; elevation in metres."""

    latitude: float = 0.0
    longitude: float = 0.0
    elevation: float = 0.0

    @classmethod
    def parse(cls, value: str) -> LocationConfig:
        parts = value.split(",", 2)
        if len(parts) != 3:
            raise SettingsError("Invalid format. Use '<latitude>,<longitude>,<elevation>'")
        try:
            latitude, longitude, elevation = (float(p) for p in parts)
        except ValueError as err:
            raise SettingsError(f"Invalid location: {value!r}") from err
        return cls(latitude, longitude, elevation)


def _random_client_id() -> str:
    return "hcactl-" + "".join(secrets.choice(_ALPHANUMERIC) for _ in range(8))


def _environ(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def _port(value: str | None) -> int:
    if value is None:
        return 1883
    try:
        port = int(value)
    except ValueError as err:
        raise SettingsError(f"Not a valid number! {value!r}") from err
    if not 0 <= port <= 65535:
        raise SettingsError(f"Not a valid number! {value!r}")
    return port


def _domain(value: str | None) -> HomieDomain:
    if value is None:
        return HomieDomain()
    try:
        return HomieDomain.parse(value)
    except SubjectError as err:
        raise SettingsError(f"Invalid setting supplied! {err}") from err


def _controller_id(value: str | None) -> str:
    if value is None:
        return DEFAULT_CONTROLLER_ID
    if not _ID_RE.fullmatch(value):
        raise SettingsError(f"Invalid setting supplied! invalid homie id {value!r}")
    return value


@dataclass(frozen=True)
class HomieSettings:
    hostname: str = "localhost"
    port: int = 1883
    username: str = ""
    password: str = ""
    client_id: str = field(default_factory=_random_client_id)
    homie_domain: HomieDomain = field(default_factory=HomieDomain)
    controller_id: str = DEFAULT_CONTROLLER_ID
    controller_name: str = DEFAULT_CONTROLLER_NAME

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> HomieSettings:
        env = _environ(environ)

        def get(name: str) -> str | None:
            return env.get(env_name(name))

        return cls(
            hostname=get("HOMIE_HOST") or "localhost" if get("HOMIE_HOST") is None else get("HOMIE_HOST"),
            port=_port(get("HOMIE_PORT")),
            username=get("HOMIE_USERNAME") or "",
            password=get("HOMIE_PASSWORD") or "",
            client_id=get("HOMIE_CLIENT_ID") if get("HOMIE_CLIENT_ID") is not None else _random_client_id(),
            homie_domain=_domain(get("HOMIE_DOMAIN")),
            controller_id=_controller_id(get("HOMIE_CTRL_ID")),
            controller_name=get("HOMIE_CTRL_NAME") if get("HOMIE_CTRL_NAME") is not None
            else DEFAULT_CONTROLLER_NAME,
        )

    def mqtt_options(self, client_suffix: str = "") -> MqttOptions:
        """Connection options, with ``client_suffix`` appended to the client id."""
        return MqttOptions(
            host=self.hostname,
            port=self.port,
            client_id=f"{self.client_id}{client_suffix}",
            username=self.username or None,
            password=self.password or None,
        )


@dataclass(frozen=True)
class AppSettings:
    rules_config: ConfigBackend = FileBackend(Path("./rules"))
    virtual_devices_config: ConfigBackend = FileBackend(Path("./virtual_devices"))
    lua_files_config: ConfigBackend = FileBackend(Path("./lua"))
    value_store_config: ValueStoreConfig = InMemoryStoreConfig()
    location: LocationConfig = LocationConfig()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AppSettings:
        env = _environ(environ)
        defaults = cls()

        def setting(name, parser, default):
            raw = env.get(env_name(name))
            return default if raw is None else parser(raw)

        return cls(
            rules_config=setting("RULES_CONFIG", parse_config_backend, defaults.rules_config),
            virtual_devices_config=setting(
                "VIRTUAL_DEVICES_CONFIG", parse_config_backend, defaults.virtual_devices_config
            ),
            lua_files_config=setting("LUA_MODULE_CONFIG", parse_config_backend, defaults.lua_files_config),
            value_store_config=setting(
                "VALUE_STORE_CONFIG", parse_value_store_config, defaults.value_store_config
            ),
            location=setting("LOCATION", LocationConfig.parse, defaults.location),
        )


@dataclass(frozen=True)
class Settings:
    homie: HomieSettings
    app: AppSettings

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        return cls(HomieSettings.from_env(environ), AppSettings.from_env(environ))