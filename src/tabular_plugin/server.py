"""Plugin server implementation using FastMCP."""

import asyncio
import contextlib
import logging
import signal
import socket
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import uvicorn
from mcp.server.fastmcp import Context, FastMCP

from tabular_plugin.context import get_engine, get_shutdown_event
from tabular_plugin.models import Schema
from tabular_plugin.publisher import PublishStats, StopCondition, publish_records
from tabular_plugin.settings import Settings, get_settings

logger = logging.getLogger(__name__)

mcp = FastMCP("tabular-plugin")


@mcp.tool()
async def discover(pattern: str) -> dict[str, Any]:
    """Discover the schemas of delimited files matching a glob pattern.

    Args:
        pattern: Glob pattern, absolute or relative to the base directory
            (e.g. "data/*.csv").

    Returns:
        Dict with schemas, one per distinct header among the matching files.
        Each schema lists the matching files sharing its header in settings.
    """
    logger.info(f"Discover called for {pattern!r}")
    schemas = await asyncio.to_thread(get_engine().discover, pattern)
    return {"schemas": [s.model_dump(mode="json") for s in schemas]}


@mcp.tool()
async def publish(
    pattern: str,
    schema: Schema,
    ctx: Context,
    deadline_seconds: float | None = None,
) -> dict[str, Any]:
    """Publish one typed record per data row of the files behind a schema.

    Args:
        pattern: Glob pattern used to find files if the schema carries no settings.
        schema: A schema returned by discover.
        deadline_seconds: Optional time budget; publishing stops with an error
            once it is used up.

    Returns:
        Dict with count of records published and skipped rows.

    Notes:
        - Records are streamed in order as progress notifications whose
          message is the JSON-encoded record. Without a progress token they
          are returned under records instead.
        - Rows whose cell count differs from the schema are skipped.
    """
    settings = get_settings()
    engine = get_engine()

    locations = await asyncio.to_thread(engine.resolve_settings, pattern, schema)
    logger.info(f"Publish called for {schema.name}, files: {locations}")

    # Files are read in parallel but published in settings order
    tables = await asyncio.gather(
        *(asyncio.to_thread(engine.read, Path(loc)) for loc in locations)
    )

    meta = ctx.request_context.meta
    streaming = meta is not None and meta.progressToken is not None

    stats = PublishStats()
    stop = StopCondition(get_shutdown_event(), deadline_seconds)
    records = publish_records(
        tables, schema, stats, stop, permissive_booleans=settings.permissive_booleans
    )
    buffered: list[dict[str, Any]] = []
    if streaming:
        for record in records:
            await ctx.report_progress(stats.count, None, record.model_dump_json())
    else:
        # Built in a worker thread; the stop condition is still checked per row
        buffered = await asyncio.to_thread(
            lambda: [record.model_dump(mode="json") for record in records]
        )

    logger.info(
        f"Finished publishing {schema.name}: {stats.count} record(s), "
        f"{stats.skipped} skipped"
    )

    result: dict[str, Any] = {"count": stats.count, "skipped": stats.skipped}
    if not streaming:
        result["records"] = buffered
    return result


class PluginServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the plugin."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind and listen before the handshake so the port accepts connections."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind((host, port))
    sock.listen()
    return sock


def configure_logging(level: str) -> None:
    """Send all log output to stdout, where the host forwards it from."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")
    )
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


async def serve(sock: socket.socket, settings: Settings) -> None:
    """Serve the MCP app on a bound socket until SIGINT or SIGTERM."""
    config = uvicorn.Config(
        mcp.streamable_http_app(),
        log_config=None,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=settings.shutdown_grace,
    )
    server = PluginServer(config)

    def stop(sig: signal.Signals) -> None:
        logger.info(f"{sig.name} received, exiting")
        get_shutdown_event().set()
        server.should_exit = True

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop, sig)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    # A signal may have arrived before the loop took over
    if get_shutdown_event().is_set():
        logger.info("Shutdown requested during startup, exiting")
        return

    await server.serve(sockets=[sock])


def install_startup_handlers() -> None:
    """Turn SIGINT and SIGTERM into a clean exit until serve() takes over."""

    def request_shutdown(signum: int, frame: Any) -> None:
        get_shutdown_event().set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, request_shutdown)


def main() -> None:
    """Entry point for the plugin.

    Binds the port, writes it as the first line of stdout, then serves.
    """
    settings = get_settings()
    install_startup_handlers()

    try:
        sock = bind_socket(settings.host, settings.port)
    except OSError as e:
        print(f"Error: cannot bind {settings.host}:{settings.port}: {e}", file=sys.stderr)
        sys.exit(1)

    print(sock.getsockname()[1], flush=True)
    configure_logging(settings.log_level)

    try:
        asyncio.run(serve(sock, settings))
    finally:
        sock.close()


if __name__ == "__main__":
    main()
