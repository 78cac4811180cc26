"""Telemetry event sink."""
