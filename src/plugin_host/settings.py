"""Settings module for plugin-host."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Default data log file, truncated on every run
DEFAULT_LOG_FILE = ".log"


class Settings(BaseSettings):
    """Host settings loaded from environment variables.

    Environment variables:
        PLUGIN_HOST_STARTUP_TIMEOUT: Seconds to wait for the port line (default: 5)
        PLUGIN_HOST_DISCOVER_DEADLINE: Seconds allowed per discover call (default: 1)
        PLUGIN_HOST_PUBLISH_DEADLINE: Seconds allowed per publish call (default: 2)
        PLUGIN_HOST_DATA_DIR: Directory holding the fixture files (default: data)
        PLUGIN_HOST_LOG_FILE: File receiving every response and record (default: .log)
        PLUGIN_HOST_LOG_LEVEL: Console log level (default: INFO)
        PLUGIN_HOST_STOP_TIMEOUT: Seconds between SIGTERM and SIGKILL when
            stopping the plugin (default: 2)
    """

    model_config = SettingsConfigDict(env_prefix="PLUGIN_HOST_")

    startup_timeout: float = 5.0
    discover_deadline: float = 1.0
    publish_deadline: float = 2.0
    data_dir: Path = Path("data")
    log_file: Path | None = Path(DEFAULT_LOG_FILE)
    log_level: str = "INFO"
    stop_timeout: float = 2.0


@lru_cache
def get_settings() -> Settings:
    """Get the cached settings instance.

    Use get_settings.cache_clear() in tests to reset.
    """
    return Settings()
