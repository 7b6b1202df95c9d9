"""Host entry point: start a plugin and run the conformance suite against it."""

import asyncio
import logging
import sys
from typing import Any

from plugin_host.client import connect
from plugin_host.conformance import (
    CaseResult,
    ConformanceCase,
    ConformanceRunner,
    format_report,
)
from plugin_host.console import paint, setup_logging
from plugin_host.errors import PluginExited, StartupError
from plugin_host.settings import Settings, get_settings
from plugin_host.suite import default_cases
from plugin_host.supervisor import PluginSupervisor, wait_for_signal

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CHECKS_FAILED = 1
EXIT_HARD_FAILURE = 2


async def cancel_and_wait(task: "asyncio.Task[Any]") -> None:
    """Cancel a task if still running and wait until it has finished."""
    if not task.done():
        task.cancel()
        await asyncio.wait({task})


async def run_suite(
    port: int, cases: list[ConformanceCase], settings: Settings
) -> list[CaseResult]:
    """Connect to a plugin and run the cases against it."""
    async with connect(port, timeout=settings.discover_deadline) as client:
        runner = ConformanceRunner(
            client,
            discover_deadline=settings.discover_deadline,
            publish_deadline=settings.publish_deadline,
        )
        return await runner.run(cases)


async def run_session(
    supervisor: PluginSupervisor,
    cases: list[ConformanceCase],
    settings: Settings,
) -> int:
    """Start the plugin, run the cases and report.

    Returns:
        Exit code for the host.
    """
    try:
        port = await supervisor.start()
    except StartupError as e:
        logger.error(str(e))
        return EXIT_HARD_FAILURE

    suite = asyncio.create_task(run_suite(port, cases, settings))
    try:
        await asyncio.wait(
            {suite, supervisor.exited}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        await cancel_and_wait(suite)

    error = None if suite.cancelled() else suite.exception()
    if suite.cancelled() or error is not None:
        try:
            supervisor.check_alive()
        except PluginExited as e:
            logger.error(f"{e} during the run")
            return EXIT_HARD_FAILURE
        logger.error(f"connection failed: {error!r}")
        return EXIT_HARD_FAILURE

    results = suite.result()

    for line in format_report(results):
        print(line)

    if all(r.passed for r in results):
        return EXIT_OK
    if settings.log_file is not None:
        print(paint(f"see {settings.log_file} file for all data processed", "yellow"))
    return EXIT_CHECKS_FAILED


async def run(command: list[str], settings: Settings) -> int:
    """Run a plugin command through the suite, exiting cleanly on SIGINT/SIGTERM."""
    supervisor = PluginSupervisor(
        command,
        startup_timeout=settings.startup_timeout,
        stop_timeout=settings.stop_timeout,
    )
    session = asyncio.create_task(
        run_session(supervisor, default_cases(settings.data_dir), settings)
    )
    interrupted = asyncio.create_task(wait_for_signal())

    try:
        done, _ = await asyncio.wait(
            {session, interrupted}, return_when=asyncio.FIRST_COMPLETED
        )
        if session in done:
            return session.result()

        logger.info(f"user exit: {interrupted.result().name}")
        await cancel_and_wait(session)
        return EXIT_OK
    finally:
        await cancel_and_wait(interrupted)
        await supervisor.stop()


def main() -> None:
    """Entry point for the host."""
    args = sys.argv[1:]
    if not args:
        print(
            "Error: expected at least one argument, the command to start the "
            "plugin (and its arguments, if any)",
            file=sys.stderr,
        )
        print("Usage: plugin-host <command> [args...]", file=sys.stderr)
        sys.exit(EXIT_HARD_FAILURE)

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
