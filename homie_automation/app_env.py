"""Environment-driven directories and logging set-up."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import platformdirs

from homie_automation.settings import env_name

APP_NAME = "homie-automation"
LOGGER_NAME = "homie_automation"
LOG_FILE = f"{APP_NAME}.log"

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 1,
}


def _environ(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def parse_bool(value: str | None, default: bool) -> bool:
    """Accept exactly ``true`` or ``false``; anything else gives ``default``."""
    if value == "true":
        return True
    if value == "false":
        return False
    return default


def get_data_dir(environ: Mapping[str, str] | None = None) -> Path:
    configured = _environ(environ).get(env_name("DATA"))
    if configured is not None:
        return Path(configured)
    return platformdirs.user_data_path(APP_NAME, appauthor=False)


def get_config_dir(environ: Mapping[str, str] | None = None) -> Path:
    configured = _environ(environ).get(env_name("CONFIG"))
    if configured is not None:
        return Path(configured)
    return platformdirs.user_config_path(APP_NAME, appauthor=False)


def log_level(environ: Mapping[str, str] | None = None) -> int:
    """The configured log level; ``target=level`` filters use their level part."""
    raw = _environ(environ).get(env_name("LOGLEVEL"), "info")
    name = raw.rsplit("=", 1)[-1].strip().lower()
    return _LEVELS.get(name, logging.INFO)


class _Formatter(logging.Formatter):
    _COLOURS = {
        logging.DEBUG: "\x1b[34m",
        logging.INFO: "\x1b[32m",
        logging.WARNING: "\x1b[33m",
        logging.ERROR: "\x1b[31m",
        logging.CRITICAL: "\x1b[35m",
    }

    def __init__(self, show_source: bool, colour: bool) -> None:
        source = "%(filename)s:%(lineno)d: " if show_source else ""
        super().__init__(f"%(asctime)s %(levelname)s {source}%(message)s")
        self._colour = colour

    def format(self, record: logging.LogRecord) -> str:
        code = self._COLOURS.get(record.levelno)
        if not self._colour or code is None:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{code}{original}\x1b[0m"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def initialize_logging(environ: Mapping[str, str] | None = None) -> logging.Logger:
    """Configure the package logger for the console and, optionally, a log file."""
    env = _environ(environ)
    show_source = parse_bool(env.get(env_name("LOG_SOURCE_FILES")), False)
    colour = parse_bool(env.get(env_name("ENV_COLOR_LOG")), True)
    to_file = parse_bool(env.get(env_name("LOG_TO_FILE")), False)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(log_level(env))
    logger.propagate = False

    console = logging.StreamHandler()
    console.setFormatter(_Formatter(show_source, colour))
    logger.addHandler(console)

    if to_file:
        directory = get_data_dir(env)
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(directory / LOG_FILE, mode="w", encoding="utf-8")
        file_handler.setFormatter(_Formatter(show_source, False))
        logger.addHandler(file_handler)
    return logger