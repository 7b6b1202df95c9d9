"""Exceptions raised by the plugin."""

from pathlib import Path


class PluginError(Exception):
    """Base class for plugin errors."""


class SourceReadError(PluginError):
    """A source file could not be read or parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to read {path}: {reason}")
        self.path = path
        self.reason = reason


class ConversionError(PluginError, ValueError):
    """Text could not be converted to the requested property type."""


class PublishAborted(PluginError):
    """A publish call was stopped before its last record."""
