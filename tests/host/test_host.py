"""Tests for the host entry point."""

import asyncio
import os
import signal
import sys
from pathlib import Path

import pytest

from plugin_host.conformance import ConformanceCase, parsing_check, required_check
from plugin_host.host import (
    EXIT_CHECKS_FAILED,
    EXIT_HARD_FAILURE,
    EXIT_OK,
    main,
    run,
    run_session,
)
from plugin_host.settings import Settings
from plugin_host.supervisor import PluginSupervisor
from tabular_plugin.models import Property, PropertyType, Schema

PEOPLE = Schema(
    name="people",
    properties=[
        Property(name="id", type=PropertyType.INTEGER),
        Property(name="email", type=PropertyType.STRING),
        Property(name="salary", type=PropertyType.NUMBER),
    ],
)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        startup_timeout=30,
        discover_deadline=10,
        publish_deadline=10,
        data_dir=tmp_path,
        log_file=None,
        stop_timeout=5,
    )


@pytest.fixture
def people_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Two people files sharing a header, served from tmp_path."""
    for part in (1, 2):
        lines = ["id,email,salary"] + [
            f"{part * 100 + i},user{part}_{i}@example.com,{i}.5" for i in range(10)
        ]
        (tmp_path / f"people.{part}.csv").write_text("\n".join(lines) + "\n")
    monkeypatch.setenv("TABULAR_PLUGIN_BASE_DIR", str(tmp_path))
    return tmp_path


def plugin_supervisor(settings: Settings) -> PluginSupervisor:
    return PluginSupervisor(
        [sys.executable, "-m", "tabular_plugin.server"],
        startup_timeout=settings.startup_timeout,
        stop_timeout=settings.stop_timeout,
    )


def people_case(expected_count: int) -> ConformanceCase:
    return ConformanceCase(
        name="people",
        description="people files share one schema",
        pattern="people.*.csv",
        expected_count=expected_count,
        publish_schema=PEOPLE,
        expected_schemas=[PEOPLE],
        record_checks=[
            required_check(1, "user2_9@example.com"),
            parsing_check(0, 103, 2, 3.5, " because salary is a number"),
        ],
    )


class TestRunSession:
    """Tests for run_session function."""

    @pytest.mark.anyio
    async def test_plugin_passes(self, people_dir: Path, settings: Settings) -> None:
        """A real plugin passes a case over its own data."""
        supervisor = plugin_supervisor(settings)
        try:
            code = await run_session(supervisor, [people_case(20)], settings)
        finally:
            await supervisor.stop()

        assert code == EXIT_OK

    @pytest.mark.anyio
    async def test_failed_check(self, people_dir: Path, settings: Settings) -> None:
        """A failed required check exits with the checks-failed code."""
        supervisor = plugin_supervisor(settings)
        try:
            code = await run_session(supervisor, [people_case(21)], settings)
        finally:
            await supervisor.stop()

        assert code == EXIT_CHECKS_FAILED

    @pytest.mark.anyio
    async def test_startup_failure(self, settings: Settings) -> None:
        """A plugin that exits before its handshake is a hard failure."""
        supervisor = PluginSupervisor([sys.executable, "-c", "raise SystemExit(1)"])

        assert await run_session(supervisor, [], settings) == EXIT_HARD_FAILURE

    @pytest.mark.anyio
    async def test_plugin_dies_mid_run(self, settings: Settings) -> None:
        """A plugin that exits after its handshake is a hard failure."""
        supervisor = PluginSupervisor(
            [sys.executable, "-c", "print(40123, flush=True)"],
            startup_timeout=10,
        )
        try:
            code = await run_session(supervisor, [people_case(20)], settings)
        finally:
            await supervisor.stop()

        assert code == EXIT_HARD_FAILURE


SILENT_PLUGIN = """
import os, socket, sys, time
sock = socket.socket()
sock.bind(("127.0.0.1", 0))
sock.listen()
open(sys.argv[1], "w").write(str(os.getpid()))
print(sock.getsockname()[1], flush=True)
time.sleep(60)
"""


class TestRun:
    """Tests for the run function."""

    @pytest.mark.anyio
    async def test_sigint_exits_cleanly(self, tmp_path: Path, settings: Settings) -> None:
        """SIGINT during a run stops the plugin and exits with code 0."""
        ready = tmp_path / "ready"

        async def interrupt() -> None:
            while not ready.exists() or not ready.read_text():
                await asyncio.sleep(0.05)
            await asyncio.sleep(0.2)
            os.kill(os.getpid(), signal.SIGINT)

        sender = asyncio.create_task(interrupt())
        code = await run([sys.executable, "-c", SILENT_PLUGIN, str(ready)], settings)
        await sender

        assert code == EXIT_OK
        with pytest.raises(ProcessLookupError):
            os.kill(int(ready.read_text()), 0)


def test_main_requires_command(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Running without a plugin command prints usage."""
    monkeypatch.setattr(sys, "argv", ["plugin-host"])

    with pytest.raises(SystemExit) as exc_info:
        main()

    assert exc_info.value.code == EXIT_HARD_FAILURE
    assert "Usage" in capsys.readouterr().err
