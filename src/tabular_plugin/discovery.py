"""Schema discovery over delimited files."""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from tabular_plugin.inference import infer_column_type
from tabular_plugin.models import Property, Schema
from tabular_plugin.registry import SchemaRegistry
from tabular_plugin.settings import DEFAULT_SAMPLE_SIZE
from tabular_plugin.tabular import Table, collect_files, read_table, schema_name

logger = logging.getLogger(__name__)


def infer_table_schema(
    table: Table,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    permissive_booleans: bool = False,
) -> Schema:
    """Infer the schema of a single table.

    Each column's type is voted from its first ``sample_size`` values. Rows
    too short to reach a column do not vote for it, so a header-only table
    yields string columns.
    """
    sample = table.rows[:sample_size]
    properties = []
    for index, name in enumerate(table.header):
        values = [row[index] for row in sample if index < len(row)]
        properties.append(
            Property(name=name, type=infer_column_type(values, permissive_booleans))
        )

    return Schema(
        name=schema_name(table.path),
        properties=properties,
        settings=[str(table.path)],
    )


class DiscoveryEngine:
    """Resolves patterns to files and merges their schemas into a registry."""

    def __init__(
        self,
        registry: SchemaRegistry,
        base_dir: Path,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        permissive_booleans: bool = False,
        delimiter: str = ",",
        encoding: str = "utf-8-sig",
        workers: int = 4,
    ) -> None:
        self.registry = registry
        self.base_dir = base_dir
        self.sample_size = sample_size
        self.permissive_booleans = permissive_booleans
        self.delimiter = delimiter
        self.encoding = encoding
        self.workers = workers

    def collect(self, pattern: str) -> list[Path]:
        """Collect files matching a pattern."""
        return collect_files(pattern, self.base_dir)

    def read(self, path: Path) -> Table:
        """Read one file with the configured dialect."""
        return read_table(path, delimiter=self.delimiter, encoding=self.encoding)

    def infer_file(self, path: Path) -> Schema:
        """Read a file and infer its schema."""
        logger.info(f"Getting schema for: {path}")
        return infer_table_schema(
            self.read(path), self.sample_size, self.permissive_booleans
        )

    def discover(self, pattern: str) -> list[Schema]:
        """Discover the schemas of all files matching a pattern.

        Args:
            pattern: Glob pattern, absolute or relative to the base directory.

        Returns:
            Distinct schemas touched by this call, in the order first touched.
            Each carries the locations of this call's files with its signature.

        Raises:
            SourceReadError: If any matching file cannot be read.
        """
        files = self.collect(pattern)
        logger.info(f"Files found for {pattern!r}: {[str(f) for f in files]}")
        if not files:
            return []

        with ThreadPoolExecutor(max_workers=max(1, self.workers)) as pool:
            per_file = list(pool.map(self.infer_file, files))

        touched: dict[tuple[str, ...], Schema] = {}
        for schema in per_file:
            merged = self.registry.merge(schema)
            found = touched.get(merged.signature)
            if found is None:
                touched[merged.signature] = merged
            else:
                for location in merged.settings:
                    if location not in found.settings:
                        found.settings.append(location)

        logger.info(
            f"Found {len(touched)} schema(s) in {len(files)} file(s), "
            f"{len(self.registry)} known"
        )
        return list(touched.values())

    def resolve_settings(self, pattern: str, schema: Schema) -> list[str]:
        """Find the source locations to publish for a schema.

        Uses the schema's own settings if it has any, then the registry entry
        with the same signature, and finally the files matching the pattern
        whose header has the schema's signature.
        """
        if schema.settings:
            return list(schema.settings)

        known = self.registry.lookup(schema.signature)
        if known is not None and known.settings:
            return known.settings

        locations = []
        for path in self.collect(pattern):
            if tuple(self.read(path).header) == schema.signature:
                locations.append(str(path))
        return locations
