"""Homie 5 home automation building blocks and a minimal MQTT controller."""

__version__ = "0.1.0"