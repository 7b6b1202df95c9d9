"""Settings module for tabular-plugin."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Default number of data rows sampled per column during discovery
DEFAULT_SAMPLE_SIZE = 100


class Settings(BaseSettings):
    """Plugin settings loaded from environment variables.

    Environment variables:
        TABULAR_PLUGIN_HOST: Interface to bind (default: 127.0.0.1)
        TABULAR_PLUGIN_PORT: Port to bind, 0 picks a free one (default: 0)
        TABULAR_PLUGIN_BASE_DIR: Directory relative patterns resolve against
            (default: current working directory)
        TABULAR_PLUGIN_SAMPLE_SIZE: Rows sampled per column (default: 100)
        TABULAR_PLUGIN_PERMISSIVE_BOOLEANS: Accept t/f as booleans (default: false)
        TABULAR_PLUGIN_DELIMITER: Field delimiter (default: ,)
        TABULAR_PLUGIN_ENCODING: Source file encoding (default: utf-8-sig)
        TABULAR_PLUGIN_WORKERS: Threads used to read files (default: 4)
        TABULAR_PLUGIN_LOG_LEVEL: Log level (default: INFO)
        TABULAR_PLUGIN_SHUTDOWN_GRACE: Seconds allowed for open calls to
            finish on shutdown (default: 1.0)
    """

    model_config = SettingsConfigDict(env_prefix="TABULAR_PLUGIN_")

    host: str = "127.0.0.1"
    port: int = 0
    base_dir: Path | None = None
    sample_size: int = DEFAULT_SAMPLE_SIZE
    permissive_booleans: bool = False
    delimiter: str = ","
    encoding: str = "utf-8-sig"
    workers: int = 4
    log_level: str = "INFO"
    shutdown_grace: float = 1.0

    def get_base_dir(self) -> Path:
        """Get the directory relative patterns are resolved against.

        Returns:
            Configured base directory, or the current working directory if not set.
        """
        if self.base_dir:
            return self.base_dir.resolve()
        return Path.cwd()


@lru_cache
def get_settings() -> Settings:
    """Get the cached settings instance.

    Settings are read from environment variables on first call and cached.
    Use get_settings.cache_clear() in tests to reset.
    """
    return Settings()
