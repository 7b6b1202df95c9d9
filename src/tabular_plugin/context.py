"""Application context management for tabular-plugin."""

import threading
from functools import lru_cache

from tabular_plugin.discovery import DiscoveryEngine
from tabular_plugin.registry import SchemaRegistry
from tabular_plugin.settings import get_settings


@lru_cache
def get_registry() -> SchemaRegistry:
    """Get the process-wide schema registry."""
    return SchemaRegistry()


@lru_cache
def get_engine() -> DiscoveryEngine:
    """Get the cached discovery engine, configured from settings."""
    settings = get_settings()
    return DiscoveryEngine(
        get_registry(),
        base_dir=settings.get_base_dir(),
        sample_size=settings.sample_size,
        permissive_booleans=settings.permissive_booleans,
        delimiter=settings.delimiter,
        encoding=settings.encoding,
        workers=settings.workers,
    )


@lru_cache
def get_shutdown_event() -> threading.Event:
    """Get the event set when the plugin is asked to stop.

    Publishing checks it between records.
    """
    return threading.Event()


def reset_context() -> None:
    """Drop cached settings and context objects.

    Used by tests to start from an empty registry.
    """
    get_settings.cache_clear()
    get_registry.cache_clear()
    get_engine.cache_clear()
    get_shutdown_event.cache_clear()
