"""Tracks which configuration file a document id belongs to."""

from __future__ import annotations

import threading


class CfgFilesTracker:
    """A thread-safe map from file id to file name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._files: dict[int, str] = {}

    def add_file(self, file_id: int, name: str) -> None:
        with self._lock:
            self._files[file_id] = name

    def remove_file(self, file_id: int) -> None:
        with self._lock:
            self._files.pop(file_id, None)

    def get_file_name(self, file_id: int) -> str | None:
        with self._lock:
            return self._files.get(file_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)