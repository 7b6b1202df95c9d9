"""Shared fixtures."""

import csv
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from tabular_plugin.context import reset_context

WriteCsv = Callable[[str, list[str], list[list[str]]], Path]


@pytest.fixture(autouse=True)
def fresh_context() -> Iterator[None]:
    """Start every test with empty settings and registry caches."""
    reset_context()
    yield
    reset_context()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def write_csv(tmp_path: Path) -> WriteCsv:
    """Write a CSV file under tmp_path and return its path."""

    def write(name: str, header: list[str], rows: list[list[str]]) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(header)
            writer.writerows(rows)
        return path

    return write


def animal_rows() -> list[list[str]]:
    """100 animals; row with id 3 has "blue" in the boolean column."""
    rows = []
    for i in range(1, 101):
        extinct = "blue" if i == 3 else ("true" if i % 2 else "false")
        rows.append([str(i), f"Animal {i}", extinct, f"17{i % 90 + 10:02d}-07-23"])
    return rows


def log_rows() -> list[list[str]]:
    """200 log lines with fractional magnitudes."""
    return [
        [
            f"2018-03-{i % 28 + 1:02d}T10:{i % 60:02d}:00Z",
            "normal" if i % 3 else "spike",
            f"{i}.25",
        ]
        for i in range(200)
    ]


ANIMALS_HEADER = ["id", "name", "extinct", "last spotted"]
LOGS_HEADER = ["timestamp", "event", "magnitude"]


@pytest.fixture
def fixture_files(write_csv: WriteCsv) -> tuple[Path, Path]:
    """Write animals.csv and logs.csv."""
    animals = write_csv("animals.csv", ANIMALS_HEADER, animal_rows())
    logs = write_csv("logs.csv", LOGS_HEADER, log_rows())
    return animals, logs
