"""Default conformance suite over the bundled fixture files."""

from datetime import datetime, timezone
from pathlib import Path

from plugin_host.conformance import (
    ConformanceCase,
    invalid_check,
    parsing_check,
    required_check,
)
from tabular_plugin.models import Property, PropertyType, Schema


def _schema(name: str, *columns: tuple[str, PropertyType]) -> Schema:
    return Schema(
        name=name,
        properties=[Property(name=n, type=t) for n, t in columns],
    )


def _utc(text: str) -> datetime:
    return datetime.fromisoformat(text).astimezone(timezone.utc)


SCHEMA_ANIMALS = _schema(
    "animals",
    ("id", PropertyType.INTEGER),
    ("name", PropertyType.STRING),
    ("extinct", PropertyType.BOOLEAN),
    ("last spotted", PropertyType.DATETIME),
)

SCHEMA_LOGS = _schema(
    "logs",
    ("timestamp", PropertyType.DATETIME),
    ("event", PropertyType.STRING),
    ("magnitude", PropertyType.NUMBER),
)

SCHEMA_PEOPLE = _schema(
    "people",
    ("id", PropertyType.INTEGER),
    ("first_name", PropertyType.STRING),
    ("last_name", PropertyType.STRING),
    ("email", PropertyType.STRING),
    ("gender", PropertyType.STRING),
    ("ip_address", PropertyType.STRING),
)

SCHEMA_GARBAGE = _schema(
    "garbage",
    ("key", PropertyType.STRING),
    ("interleaved", PropertyType.STRING),
    ("count", PropertyType.INTEGER),
    ("is", PropertyType.BOOLEAN),
    ("math", PropertyType.STRING),
    ("result", PropertyType.NUMBER),
    ("epoch", PropertyType.DATETIME),
)


def default_cases(data_dir: Path) -> list[ConformanceCase]:
    """Build the default cases for fixture files under data_dir."""
    data_dir = data_dir.resolve()

    return [
        ConformanceCase(
            name="animals",
            description=(
                'This test exercises schema type discovery, because "animals.csv" '
                "has multiple data types"
            ),
            pattern=str(data_dir / "animals.csv"),
            expected_count=100,
            publish_schema=SCHEMA_ANIMALS,
            expected_schemas=[SCHEMA_ANIMALS],
            record_checks=[
                required_check(1, "Vulpes chama"),
                invalid_check(
                    1, "Macropus fuliginosus", " because blue is not a valid boolean"
                ),
                parsing_check(
                    0, 52.0, 0, 52.0, " because id column should be parsed as number"
                ),
                parsing_check(
                    0,
                    83.0,
                    3,
                    _utc("1796-07-23T00:00:00+00:00"),
                    ' because "last spotted" column should be parsed as date',
                ),
            ],
        ),
        ConformanceCase(
            name="logs",
            description=(
                "This test checks that schemas are based on headers in files, and "
                "that the plugin can handle complex data."
            ),
            pattern=str(data_dir / "*.csv"),
            expected_count=300,
            publish_schema=SCHEMA_LOGS,
            expected_schemas=[SCHEMA_ANIMALS, SCHEMA_LOGS, SCHEMA_PEOPLE],
            record_checks=[
                required_check(1, "社會科學院語學研究所"),
                required_check(1, "Ω≈ç√∫˜µ≤≥÷"),
                parsing_check(
                    1, "normal", 2, 27.78092, " because magnitude should be parsed as number"
                ),
            ],
        ),
        ConformanceCase(
            name="people",
            description=(
                "This test checks that the plugin can publishes large amounts of "
                "data quickly."
            ),
            pattern=str(data_dir / "people.*.csv"),
            expected_count=3000,
            publish_schema=SCHEMA_PEOPLE,
            expected_schemas=[SCHEMA_LOGS, SCHEMA_PEOPLE],
            record_checks=[
                required_check(3, "lroylr4@indiatimes.com"),
                required_check(3, "mbranstoncs@mit.edu"),
                required_check(3, "bmageei@linkedin.com"),
            ],
        ),
        ConformanceCase(
            name="garbage",
            description=(
                "This test checks if any types have been inferred from a very "
                "unclean data set."
            ),
            pattern=str(data_dir / "garbage.csv"),
            expected_count=10,
            publish_schema=SCHEMA_GARBAGE,
            expected_schemas=[SCHEMA_GARBAGE],
            record_checks=[
                required_check(0, "a"),
                parsing_check(
                    0,
                    "a",
                    1,
                    "1",
                    " because 'interleaved' column should be inferred to be a string",
                ),
                parsing_check(
                    0,
                    "b",
                    2,
                    None,
                    " because 'count' column should be inferred to be a number, and "
                    "'seventeen' is not a valid number",
                ),
                parsing_check(
                    0,
                    "d",
                    3,
                    True,
                    " because 'is' column should be inferred to be a boolean, and "
                    "'True' is reasonably parsable as a boolean",
                ),
                parsing_check(
                    0, "g", 4, "12", " because 'math' column should be inferred to be a string"
                ),
                parsing_check(
                    0,
                    "i",
                    6,
                    _utc("1970-01-06T16:57:07.445+00:00"),
                    " because 'epoch' column could be inferred to be a date, maybe",
                ),
            ],
        ),
    ]
