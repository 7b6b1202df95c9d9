"""Protocol client for plugins served over MCP."""

import json
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from mcp.shared.exceptions import McpError
from mcp.shared.session import ProgressFnT
from mcp.types import CallToolResult, TextContent
from pydantic import ValidationError

from plugin_host.errors import TransportError
from tabular_plugin.models import PublishRecord, Schema

logger = logging.getLogger(__name__)

DEFAULT_DISCOVER_DEADLINE = 1.0
DEFAULT_PUBLISH_DEADLINE = 2.0


@dataclass
class PublishSummary:
    """End-of-stream summary returned by a publish call."""

    count: int
    skipped: int = 0


def _result_text(result: CallToolResult) -> str:
    return "".join(c.text for c in result.content if isinstance(c, TextContent))


def _result_payload(result: CallToolResult) -> dict[str, Any]:
    """Extract the JSON object a tool returned."""
    text = _result_text(result)
    if text:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise TransportError(f"tool returned invalid JSON: {e}") from e
    else:
        payload = result.structuredContent
    if not isinstance(payload, dict):
        raise TransportError(f"tool returned {type(payload).__name__}, expected an object")
    return payload


class PluginClient:
    """Calls a plugin's discover and publish tools under deadlines."""

    def __init__(self, session: ClientSession) -> None:
        self.session = session

    async def _call(
        self,
        name: str,
        arguments: dict[str, Any],
        deadline: float,
        progress: ProgressFnT | None = None,
    ) -> dict[str, Any]:
        try:
            result = await self.session.call_tool(
                name,
                arguments,
                read_timeout_seconds=timedelta(seconds=deadline),
                progress_callback=progress,
            )
        except McpError as e:
            raise TransportError(f"{name} failed: {e.error.message}") from e

        if result.isError:
            raise TransportError(f"{name} failed: {_result_text(result)}")
        return _result_payload(result)

    async def discover(
        self, pattern: str, deadline: float = DEFAULT_DISCOVER_DEADLINE
    ) -> list[Schema]:
        """Discover the schemas of files matching a pattern.

        Raises:
            TransportError: If the call fails, times out, or returns no schema list.
        """
        payload = await self._call("discover", {"pattern": pattern}, deadline)
        schemas = payload.get("schemas")
        if not isinstance(schemas, list):
            raise TransportError("discover did not return a list of schemas")
        try:
            return [Schema.model_validate(s) for s in schemas]
        except ValidationError as e:
            raise TransportError(f"discover returned an invalid schema: {e}") from e

    async def publish(
        self,
        pattern: str,
        schema: Schema,
        on_record: Callable[[PublishRecord], None],
        deadline: float = DEFAULT_PUBLISH_DEADLINE,
    ) -> PublishSummary:
        """Publish a schema, handing each record to on_record in stream order.

        Returns:
            Summary sent by the plugin once the stream has ended.

        Raises:
            TransportError: If the call fails, times out, or a record is malformed.
        """
        received = 0
        malformed: list[str] = []

        # Runs inside the session's receive loop, so it must not raise
        async def progress(_: float, __: float | None, message: str | None) -> None:
            nonlocal received
            if message is None or malformed:
                return
            try:
                record = PublishRecord.model_validate_json(message)
            except ValidationError as e:
                malformed.append(f"publish error on record {received}: {e}")
                return
            received += 1
            on_record(record)

        arguments = {
            "pattern": pattern,
            "schema": schema.model_dump(mode="json"),
            "deadline_seconds": deadline,
        }
        payload = await self._call("publish", arguments, deadline, progress)
        if malformed:
            raise TransportError(malformed[0])

        # Plugins that do not stream return every record at the end
        try:
            for record in payload.get("records", []):
                on_record(PublishRecord.model_validate(record))
                received += 1
        except ValidationError as e:
            raise TransportError(f"publish error on record {received}: {e}") from e

        summary = PublishSummary(
            count=int(payload.get("count", received)),
            skipped=int(payload.get("skipped", 0)),
        )
        if summary.count != received:
            logger.warning(
                f"plugin reported {summary.count} record(s) but {received} arrived"
            )
        return summary


@asynccontextmanager
async def connect(
    port: int, host: str = "127.0.0.1", timeout: float = 1.0
) -> AsyncIterator[PluginClient]:
    """Open an MCP session to a plugin listening on a local port.

    Args:
        port: Port from the plugin's handshake.
        host: Host the plugin listens on.
        timeout: Deadline for requests without one of their own, including
            session initialization.
    """
    url = f"http://{host}:{port}/mcp"
    logger.info(f"connecting to {url}")
    async with streamablehttp_client(url) as (read_stream, write_stream, _):
        async with ClientSession(
            read_stream, write_stream, read_timeout_seconds=timedelta(seconds=timeout)
        ) as session:
            try:
                await session.initialize()
            except McpError as e:
                raise TransportError(f"connection failed: {e.error.message}") from e
            yield PluginClient(session)
