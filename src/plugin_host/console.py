"""Console and data log configuration for the host."""

import logging
import sys
from pathlib import Path

import colorlog
from colorlog.escape_codes import escape_codes

# Logger receiving the plugin's forwarded output
PLUGIN_LOGGER = "plugin"

# Logger receiving full responses and records, written to the data log file
DATA_LOGGER = "plugin_host.data"


def paint(text: str, color: str) -> str:
    """Wrap text in a terminal color, e.g. "green" or "bold_red"."""
    return f"{escape_codes[color]}{text}{escape_codes['reset']}"


class SourceFilter(logging.Filter):
    """Tag each record with the process it came from."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == PLUGIN_LOGGER:
            record.source = paint("PLUGIN|", "yellow")
        else:
            record.source = paint("HOST  |", "blue")
        return True


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure colored console logging and the data log.

    Host and plugin lines share the console, prefixed by their source. The
    data log, if any, is truncated and receives only DATA_LOGGER output.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Clear existing handlers to avoid duplicates on repeated setup
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(
        colorlog.ColoredFormatter(
            "%(source)s%(asctime)s.%(msecs)03d %(log_color)s%(message)s%(reset)s",
            datefmt="%H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "reset",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
    )
    console.addFilter(SourceFilter())
    root.addHandler(console)

    data = logging.getLogger(DATA_LOGGER)
    data.propagate = False
    data.setLevel(logging.INFO)
    for h in list(data.handlers):
        data.removeHandler(h)
        h.close()
    if log_file is not None:
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        data.addHandler(file_handler)
    else:
        data.addHandler(logging.NullHandler())

    # Tame noisy third-party loggers
    for name in ("httpx", "httpcore", "mcp"):
        logging.getLogger(name).setLevel(logging.WARNING)
