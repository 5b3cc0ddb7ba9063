"""Script modules loaded from watched configuration files."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath
from types import MappingProxyType
from typing import Generic, TypeVar, Union

log = logging.getLogger(__name__)

T = TypeVar("T")

MODULE_SUFFIX = ".lua"


@dataclass(frozen=True)
class ConfigItemHash:
    """Identifies one item within one configuration document."""

    filename_hash: int
    item_hash: int

    def __str__(self) -> str:
        return f"{self.filename_hash}-{self.item_hash}"


@dataclass(frozen=True)
class NewDocument:
    filename_hash: int
    filename: str


@dataclass(frozen=True)
class NewItem(Generic[T]):
    item_hash: ConfigItemHash
    item: T


@dataclass(frozen=True)
class RemovedItem:
    item_hash: ConfigItemHash


@dataclass(frozen=True)
class RemoveDocument:
    filename_hash: int


ConfigItemEvent = Union[NewDocument, NewItem, RemovedItem, RemoveDocument]


def clean_module_name(path: str) -> str:
    """Return the base name of ``path`` without a ``.lua`` suffix."""
    name = PurePosixPath(path).name
    if name in ("", ".."):
        return path
    return name[: -len(MODULE_SUFFIX)] if name.endswith(MODULE_SUFFIX) else name


class LuaModuleManager:
    """Keeps module sources by module name as their files come and go."""

    def __init__(self) -> None:
        self._file_names: dict[int, str] = {}
        self._file_contents: dict[str, str] = {}

    def handle_event(self, event: ConfigItemEvent) -> None:
        if isinstance(event, NewDocument):
            self._file_names[event.filename_hash] = clean_module_name(event.filename)
        elif isinstance(event, NewItem):
            name = self._file_names.get(event.item_hash.filename_hash)
            if name is not None:
                log.debug("Adding lua file: %s: \n%s", name, event.item)
                self._file_contents[name] = event.item
        elif isinstance(event, RemoveDocument):
            name = self._file_names.pop(event.filename_hash, None)
            if name is not None:
                self._file_contents.pop(name, None)

    def file_contents(self) -> Mapping[str, str]:
        """A live, read-only view of module name to source."""
        return MappingProxyType(self._file_contents)

    def find_module(self, name: str) -> str | None:
        """Return the source of module ``name`` for a script loader, if known."""
        return self._file_contents.get(name)