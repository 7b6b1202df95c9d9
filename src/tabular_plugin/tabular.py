"""Pattern expansion and delimited-text reading."""

import csv
import glob as globmodule
from dataclasses import dataclass, field
from pathlib import Path

from tabular_plugin.errors import SourceReadError


@dataclass
class Table:
    """Header and data rows of one delimited file."""

    path: Path
    header: list[str]
    rows: list[list[str]] = field(default_factory=list)


def collect_files(pattern: str, base_dir: Path) -> list[Path]:
    """Collect files matching the glob pattern.

    Relative patterns are resolved against base_dir. Results are sorted so
    the same pattern always yields the same file order.
    """
    if not pattern:
        return []
    path_pattern = Path(pattern)
    if not path_pattern.is_absolute():
        path_pattern = base_dir / path_pattern
    matches = globmodule.glob(str(path_pattern), recursive=True)
    return sorted(Path(p) for p in matches if Path(p).is_file())


def schema_name(path: Path) -> str:
    """Name a schema after its file, e.g. "people.1.csv" -> "people"."""
    return path.name.split(".")[0]


def read_table(path: Path, delimiter: str = ",", encoding: str = "utf-8-sig") -> Table:
    """Read a delimited file into a header and rows.

    Blank lines are ignored.

    Raises:
        SourceReadError: If the file cannot be decoded or parsed, or has no header.
    """
    try:
        with open(path, newline="", encoding=encoding) as f:
            reader = csv.reader(f, delimiter=delimiter, strict=True)
            lines = [line for line in reader if line]
    except UnicodeDecodeError as e:
        raise SourceReadError(path, f"not valid {encoding}: {e}") from e
    except csv.Error as e:
        raise SourceReadError(path, f"malformed line: {e}") from e
    except OSError as e:
        raise SourceReadError(path, str(e)) from e

    if not lines:
        raise SourceReadError(path, "no header row")

    header = [name.strip() for name in lines[0]]
    return Table(path=path, header=header, rows=lines[1:])
