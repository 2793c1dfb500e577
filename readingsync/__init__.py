"""Offline-tolerant reading telemetry sync."""

__version__ = "0.1.0"
