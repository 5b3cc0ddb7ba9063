"""Homie property values and their conversion to and from script values."""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any


class ValueConversionError(ValueError):
    """Raised when a value cannot be converted."""


class ValueKind(enum.Enum):
    EMPTY = "empty"
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOL = "boolean"
    ENUM = "enum"
    COLOR = "color"
    DATETIME = "datetime"
    DURATION = "duration"
    JSON = "json"


@dataclass(frozen=True)
class HomieColor:
    """A colour in one of the Homie formats: rgb, hsv or xyz."""

    model: str
    components: tuple[float, ...]

    @classmethod
    def parse(cls, text: str) -> HomieColor:
        model, _, rest = text.partition(",")
        parts = rest.split(",") if rest else []
        try:
            if model in ("rgb", "hsv"):
                if len(parts) != 3:
                    raise ValueConversionError(f"{model} colour needs 3 components: {text!r}")
                values = tuple(int(p) for p in parts)
                limits = (255, 255, 255) if model == "rgb" else (360, 100, 100)
                if any(not 0 <= v <= top for v, top in zip(values, limits)):
                    raise ValueConversionError(f"colour component out of range: {text!r}")
                return cls(model, values)
            if model == "xyz":
                if len(parts) != 2:
                    raise ValueConversionError(f"xyz colour needs 2 components: {text!r}")
                x, y = (float(p) for p in parts)
                if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0 and x + y <= 1.0):
                    raise ValueConversionError(f"xyz component out of range: {text!r}")
                return cls(model, (x, y))
        except ValueError as err:
            if isinstance(err, ValueConversionError):
                raise
            raise ValueConversionError(f"invalid colour: {text!r}") from err
        raise ValueConversionError(f"unknown colour format: {text!r}")

    def __str__(self) -> str:
        return ",".join([self.model, *(str(c) for c in self.components)])


@dataclass(frozen=True)
class HomieValue:
    """A typed Homie property value."""

    kind: ValueKind
    value: Any = None


_DATE_PREFIX = re.compile(r"\d{4}-\d{2}-\d{2}")
_NUM = r"(\d+(?:\.\d+)?)"
_DURATION = re.compile(
    rf"P(?:{_NUM}D)?(?:T(?:{_NUM}H)?(?:{_NUM}M)?(?:{_NUM}S)?)?"
)


def parse_datetime(text: str) -> datetime:
    """Parse an ISO 8601 / RFC 3339 date-time; naive values are taken as UTC."""
    if not _DATE_PREFIX.match(text):
        raise ValueConversionError(f"invalid datetime: {text!r}")
    normalized = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        moment = datetime.fromisoformat(normalized)
    except ValueError as err:
        raise ValueConversionError(f"invalid datetime: {text!r}") from err
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def parse_duration(text: str) -> timedelta:
    """Parse an ISO 8601 duration such as ``PT1H30M`` or ``P1DT2S``."""
    match = _DURATION.fullmatch(text)
    if not match or text in ("P", "PT") or text.endswith("T"):
        raise ValueConversionError(f"invalid duration: {text!r}")
    days, hours, minutes, seconds = (float(g) if g else 0.0 for g in match.groups())
    return timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)


def _from_string(text: str) -> HomieValue:
    try:
        return HomieValue(ValueKind.COLOR, HomieColor.parse(text))
    except ValueConversionError:
        pass
    try:
        return HomieValue(ValueKind.DATETIME, parse_datetime(text).astimezone(timezone.utc))
    except ValueConversionError:
        pass
    try:
        return HomieValue(ValueKind.DURATION, parse_duration(text))
    except ValueConversionError:
        pass
    return HomieValue(ValueKind.STRING, text)


def from_script(value: Any) -> HomieValue:
    """Convert a script value into a HomieValue, guessing the type of strings."""
    if value is None:
        return HomieValue(ValueKind.EMPTY)
    if isinstance(value, bool):
        return HomieValue(ValueKind.BOOL, value)
    if isinstance(value, int):
        return HomieValue(ValueKind.INTEGER, value)
    if isinstance(value, float):
        return HomieValue(ValueKind.FLOAT, value)
    if isinstance(value, str):
        return _from_string(value)
    if isinstance(value, (dict, list)):
        try:
            json.dumps(value)
        except (TypeError, ValueError) as err:
            raise ValueConversionError(f"value is not JSON compatible: {err}") from err
        return HomieValue(ValueKind.JSON, value)
    raise ValueConversionError(f"unsupported type for HomieValue: {type(value).__name__}")


def to_script(value: HomieValue) -> Any:
    """Convert a HomieValue into a plain script value."""
    kind = value.kind
    if kind is ValueKind.EMPTY:
        return None
    if kind in (ValueKind.STRING, ValueKind.ENUM):
        return str(value.value)
    if kind in (ValueKind.INTEGER, ValueKind.FLOAT, ValueKind.BOOL):
        return value.value
    if kind is ValueKind.COLOR:
        return str(value.value)
    if kind is ValueKind.DATETIME:
        return value.value.isoformat()
    if kind is ValueKind.DURATION:
        return f"PT{int(value.value.total_seconds())}S"
    if kind is ValueKind.JSON:
        return json.dumps(value.value, separators=(",", ":"))
    raise ValueConversionError(f"unknown value kind: {kind}")