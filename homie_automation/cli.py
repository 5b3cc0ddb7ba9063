"""Command-line entry point that runs the automation controller."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import zlib
from collections.abc import Callable
from pathlib import Path
from typing import Any

from homie_automation.app_env import initialize_logging
from homie_automation.eventloop import (
    SOURCE_APP,
    SOURCE_LUA_FILES,
    SOURCE_MQTT_CLIENT,
    AppState,
    EventMultiplexer,
    ExitRequested,
    run_event_loop,
)
from homie_automation.homie import set_default_homie_domain
from homie_automation.lua_modules import MODULE_SUFFIX, ConfigItemHash, NewDocument, NewItem
from homie_automation.mqtt_client import MqttOptions, run_mqtt_client
from homie_automation.settings import CHANNEL_CAPACITY, FileBackend, Settings

log = logging.getLogger(__name__)

PROG = "homie-automation"

_EXIT_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGQUIT") if hasattr(signal, name)
)


def _request_exit(sig: int, queue: asyncio.Queue) -> None:
    log.info("Received %s", signal.Signals(sig).name)
    try:
        queue.put_nowait(ExitRequested())
    except asyncio.QueueFull:
        log.error("Error sending exit event: queue is full")


def install_signal_handlers(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue) -> list[int]:
    """Turn SIGINT, SIGTERM and SIGQUIT into exit requests; return the signals handled."""
    installed = []
    for sig in _EXIT_SIGNALS:
        try:
            loop.add_signal_handler(sig, _request_exit, sig, queue)
        except (NotImplementedError, RuntimeError, ValueError):
            continue
        installed.append(sig)
    return installed


class _LuaFilesWatcher:
    """Loads script modules from a folder into the lua files queue."""

    def __init__(self, backend: Any, queue: asyncio.Queue) -> None:
        self._backend = backend
        self._queue = queue
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        if not isinstance(self._backend, FileBackend):
            raise RuntimeError(f"unsupported backend for lua modules: {self._backend!r}")
        folder = Path(self._backend.path)
        if not folder.is_dir():
            raise FileNotFoundError(f"Configured Lua modules folder [{folder}] does not exist!")
        for path in sorted(folder.glob(f"*{MODULE_SUFFIX}")):
            filename = str(path.resolve())
            content = path.read_text(encoding="utf-8")
            filename_hash = zlib.crc32(filename.encode("utf-8"))
            await self._queue.put(NewDocument(filename_hash, filename))
            item_hash = ConfigItemHash(filename_hash, zlib.crc32(content.encode("utf-8")))
            await self._queue.put(NewItem(item_hash, content))
        self._started = True

    async def stop(self) -> None:
        self._started = False


async def run_application(
    settings: Settings | None = None,
    client_factory: Callable[[MqttOptions], Any] | None = None,
) -> AppState:
    """Run the controller until an exit is requested; return the final state."""
    settings = Settings.from_env() if settings is None else settings
    set_default_homie_domain(settings.homie.homie_domain)
    loop = asyncio.get_running_loop()

    app_events: asyncio.Queue = asyncio.Queue(maxsize=CHANNEL_CAPACITY)
    lua_events: asyncio.Queue = asyncio.Queue(maxsize=CHANNEL_CAPACITY)
    mqtt_handle, mqtt_client, mqtt_events = run_mqtt_client(
        settings.homie.mqtt_options("-mqtt"), CHANNEL_CAPACITY, client_factory
    )

    state = AppState(
        mqtt_client=mqtt_client,
        app_events=app_events,
        watchers={"lua module": _LuaFilesWatcher(settings.app.lua_files_config, lua_events)},
    )

    multiplexer = EventMultiplexer()
    multiplexer.add_source(SOURCE_APP, app_events)
    multiplexer.add_source(SOURCE_MQTT_CLIENT, mqtt_events)
    multiplexer.add_source(SOURCE_LUA_FILES, lua_events)

    installed = install_signal_handlers(loop, app_events)
    try:
        await run_event_loop(multiplexer, state)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        multiplexer.close()
        await mqtt_handle.stop()
        log.debug("Deinitialized app...")
    return state


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Rule-based automation controller for Homie devices. Configured by HCACTL_* variables.",
    )
    parser.parse_args(argv)
    initialize_logging()
    try:
        asyncio.run(run_application())
    except Exception as err:  # noqa: BLE001 - report any failure as a fatal error
        print(f"{PROG} fatal error: {err!r}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())