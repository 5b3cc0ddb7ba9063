"""Homie domains and device/property references with their subject notation."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass

HOMIE_VERSION = "5"
DEFAULT_DOMAIN_NAME = "homie"

_ID_RE = re.compile(r"[a-z0-9-]+")
_FORBIDDEN_DOMAIN_CHARS = frozenset("/+#")


class SubjectError(ValueError):
    """Raised when a subject string or identifier is malformed."""


def _check_id(kind: str, value: str) -> None:
    if not isinstance(value, str) or not _ID_RE.fullmatch(value):
        raise SubjectError(f"invalid {kind} id: {value!r}")


@dataclass(frozen=True)
class HomieDomain:
    """The topic root under which Homie devices publish."""

    name: str = DEFAULT_DOMAIN_NAME

    def __post_init__(self) -> None:
        if not self.name or _FORBIDDEN_DOMAIN_CHARS.intersection(self.name):
            raise SubjectError(f"invalid homie domain: {self.name!r}")

    @classmethod
    def parse(cls, value: str) -> HomieDomain:
        return cls(value)

    @property
    def is_default(self) -> bool:
        return self.name == DEFAULT_DOMAIN_NAME

    def __str__(self) -> str:
        return self.name


class _DefaultDomain:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._domain = HomieDomain()

    def set(self, domain: HomieDomain) -> None:
        with self._lock:
            self._domain = domain

    def get(self) -> HomieDomain:
        with self._lock:
            return self._domain


_default_domain = _DefaultDomain()


def set_default_homie_domain(domain: HomieDomain) -> None:
    """Set the domain used for subjects that do not name one."""
    _default_domain.set(domain)


def get_default_homie_domain() -> HomieDomain:
    return _default_domain.get()


@dataclass(frozen=True)
class DeviceRef:
    """Identifies a device within a Homie domain."""

    homie_domain: HomieDomain
    device_id: str

    def __post_init__(self) -> None:
        _check_id("device", self.device_id)

    @classmethod
    def from_subject(cls, subject: str) -> DeviceRef:
        """Parse ``device`` or ``domain/device``."""
        parts = subject.split("/")
        if len(parts) == 1:
            return cls(get_default_homie_domain(), parts[0])
        if len(parts) == 2:
            return cls(HomieDomain.parse(parts[0]), parts[1])
        raise SubjectError(f"invalid device subject: {subject!r}")

    def to_subject(self) -> str:
        return f"{self.homie_domain}/{self.device_id}"

    def to_topic(self) -> str:
        return f"{self.homie_domain}/{HOMIE_VERSION}/{self.device_id}"

    def __str__(self) -> str:
        return self.to_subject()


@dataclass(frozen=True)
class PropertyRef:
    """Identifies a property of a node of a device."""

    homie_domain: HomieDomain
    device_id: str
    node_id: str
    prop_id: str

    def __post_init__(self) -> None:
        _check_id("device", self.device_id)
        _check_id("node", self.node_id)
        _check_id("property", self.prop_id)

    @classmethod
    def from_subject(cls, subject: str) -> PropertyRef:
        """Parse ``device/node/prop`` or ``domain/device/node/prop``."""
        parts = subject.split("/")
        if len(parts) == 3:
            return cls(get_default_homie_domain(), *parts)
        if len(parts) == 4:
            return cls(HomieDomain.parse(parts[0]), *parts[1:])
        raise SubjectError(f"invalid property subject: {subject!r}")

    def to_subject(self) -> str:
        return f"{self.homie_domain}/{self.device_id}/{self.node_id}/{self.prop_id}"

    def device_ref(self) -> DeviceRef:
        return DeviceRef(self.homie_domain, self.device_id)

    @property
    def prop_pointer(self) -> tuple[str, str]:
        return (self.node_id, self.prop_id)

    def to_topic(self) -> str:
        return f"{self.homie_domain}/{HOMIE_VERSION}/{self.device_id}/{self.node_id}/{self.prop_id}"

    def __str__(self) -> str:
        return self.to_subject()


def as_device_ref(value: str | DeviceRef) -> DeviceRef:
    """Accept a subject string or a DeviceRef."""
    if isinstance(value, DeviceRef):
        return value
    if isinstance(value, str):
        return DeviceRef.from_subject(value)
    raise TypeError(f"expected a subject string or DeviceRef, got {type(value).__name__}")


def as_property_ref(value: str | PropertyRef) -> PropertyRef:
    """Accept a subject string or a PropertyRef."""
    if isinstance(value, PropertyRef):
        return value
    if isinstance(value, str):
        return PropertyRef.from_subject(value)
    raise TypeError(f"expected a subject string or PropertyRef, got {type(value).__name__}")