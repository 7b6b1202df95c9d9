"""Tests for discovery module."""

from pathlib import Path

import pytest

from conftest import ANIMALS_HEADER, LOGS_HEADER, WriteCsv
from tabular_plugin.discovery import DiscoveryEngine, infer_table_schema
from tabular_plugin.errors import SourceReadError
from tabular_plugin.models import PropertyType, Schema
from tabular_plugin.registry import SchemaRegistry
from tabular_plugin.tabular import Table


def make_engine(base_dir: Path, **kwargs) -> DiscoveryEngine:
    return DiscoveryEngine(SchemaRegistry(), base_dir=base_dir, **kwargs)


def property_types(schema: Schema) -> dict[str, PropertyType]:
    return {p.name: p.type for p in schema.properties}


class TestInferTableSchema:
    """Tests for infer_table_schema function."""

    def test_header_only_is_all_strings(self, tmp_path: Path) -> None:
        """Columns with no samples are strings."""
        table = Table(path=tmp_path / "empty.csv", header=["a", "b"], rows=[])

        schema = infer_table_schema(table)

        assert schema.name == "empty"
        assert schema.types == [PropertyType.STRING, PropertyType.STRING]
        assert schema.settings == [str(tmp_path / "empty.csv")]

    def test_only_sample_rows_vote(self, tmp_path: Path) -> None:
        """Rows past the sample size do not affect the type."""
        rows = [["1"]] * 3 + [["x"]] * 10
        table = Table(path=tmp_path / "t.csv", header=["n"], rows=rows)

        assert infer_table_schema(table, sample_size=3).types == [PropertyType.INTEGER]
        assert infer_table_schema(table, sample_size=13).types == [PropertyType.STRING]

    def test_short_rows_do_not_vote(self, tmp_path: Path) -> None:
        """A row missing a column contributes nothing to it."""
        rows = [["1"], ["2", "true"]]
        table = Table(path=tmp_path / "t.csv", header=["n", "flag"], rows=rows)

        schema = infer_table_schema(table)

        assert schema.types == [PropertyType.INTEGER, PropertyType.BOOLEAN]


class TestDiscoveryEngine:
    """Tests for DiscoveryEngine class."""

    def test_fixture_schemas(self, tmp_path: Path, fixture_files: tuple[Path, Path]) -> None:
        """Animals and logs get their expected column types."""
        engine = make_engine(tmp_path)

        schemas = engine.discover("*.csv")

        assert [s.name for s in schemas] == ["animals", "logs"]
        animals, logs = schemas
        assert list(animals.signature) == ANIMALS_HEADER
        assert property_types(animals) == {
            "id": PropertyType.INTEGER,
            "name": PropertyType.STRING,
            "extinct": PropertyType.BOOLEAN,
            "last spotted": PropertyType.DATETIME,
        }
        assert list(logs.signature) == LOGS_HEADER
        assert property_types(logs) == {
            "timestamp": PropertyType.DATETIME,
            "event": PropertyType.STRING,
            "magnitude": PropertyType.NUMBER,
        }
        assert animals.settings == [str(fixture_files[0])]
        assert logs.settings == [str(fixture_files[1])]

    def test_same_header_merges(self, tmp_path: Path, write_csv: WriteCsv) -> None:
        """Files sharing a header become one schema named after the first file."""
        header = ["id", "first name", "salary"]
        first = write_csv("people.1.csv", header, [["1", "Ada", "10.5"]])
        second = write_csv("people.2.csv", header, [["2", "Bob", "11.5"]])
        engine = make_engine(tmp_path)

        schemas = engine.discover("people*.csv")

        assert len(schemas) == 1
        assert schemas[0].name == "people"
        assert schemas[0].settings == [str(first), str(second)]

    def test_discover_is_idempotent(
        self, tmp_path: Path, fixture_files: tuple[Path, Path]
    ) -> None:
        """Repeated discovery returns the same schemas and no duplicate locations."""
        engine = make_engine(tmp_path)

        first = engine.discover("*.csv")
        second = engine.discover("*.csv")

        assert first == second
        assert len(engine.registry) == 2
        for schema in second:
            assert len(engine.registry.lookup(schema.signature).settings) == 1

    def test_settings_scoped_to_call(
        self, tmp_path: Path, fixture_files: tuple[Path, Path]
    ) -> None:
        """Each call reports only the files it matched."""
        engine = make_engine(tmp_path)

        engine.discover("*.csv")
        schemas = engine.discover("logs.csv")

        assert [s.name for s in schemas] == ["logs"]
        assert schemas[0].settings == [str(fixture_files[1])]

    def test_no_match(self, tmp_path: Path) -> None:
        """A pattern matching nothing yields no schemas."""
        assert make_engine(tmp_path).discover("nothing/*.csv") == []

    def test_unreadable_file_fails(self, tmp_path: Path) -> None:
        """A file that cannot be read fails the whole call."""
        (tmp_path / "bad.csv").write_bytes(b"a,b\n\xff,1\n")

        with pytest.raises(SourceReadError):
            make_engine(tmp_path).discover("*.csv")

    def test_custom_delimiter(self, tmp_path: Path) -> None:
        """The configured delimiter splits cells."""
        (tmp_path / "t.tsv").write_text("a\tb\n1\ttrue\n")
        engine = make_engine(tmp_path, delimiter="\t")

        schemas = engine.discover("*.tsv")

        assert schemas[0].types == [PropertyType.INTEGER, PropertyType.BOOLEAN]


class TestResolveSettings:
    """Tests for DiscoveryEngine.resolve_settings."""

    def test_own_settings_win(self, tmp_path: Path) -> None:
        """A schema with settings publishes exactly those."""
        schema = Schema(name="x", settings=["/some/file.csv"])

        assert make_engine(tmp_path).resolve_settings("*.csv", schema) == [
            "/some/file.csv"
        ]

    def test_registry_then_pattern(
        self, tmp_path: Path, fixture_files: tuple[Path, Path]
    ) -> None:
        """Without settings, known schemas use the registry, others the pattern."""
        engine = make_engine(tmp_path)
        logs = engine.discover("logs.csv")[0]
        bare_logs = logs.model_copy(update={"settings": []})

        assert engine.resolve_settings("nothing", bare_logs) == [str(fixture_files[1])]

        fresh = make_engine(tmp_path)
        assert fresh.resolve_settings("*.csv", bare_logs) == [str(fixture_files[1])]
