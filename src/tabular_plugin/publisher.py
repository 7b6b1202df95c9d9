"""Row validation and record publishing."""

import logging
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from tabular_plugin.errors import ConversionError, PublishAborted
from tabular_plugin.inference import classify, convert
from tabular_plugin.models import PropertyType, PublishRecord, Schema
from tabular_plugin.tabular import Table

logger = logging.getLogger(__name__)


@dataclass
class PublishStats:
    """Counters for one publish call."""

    count: int = 0
    """Records emitted."""

    skipped: int = 0
    """Rows dropped because their cell count did not match the schema."""


class StopCondition:
    """Checks whether a running publish must stop.

    Combines an optional shutdown event with an optional deadline, measured
    on the monotonic clock from construction.
    """

    def __init__(
        self,
        shutdown: threading.Event | None = None,
        deadline_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._shutdown = shutdown
        self._clock = clock
        self._deadline = (
            clock() + deadline_seconds if deadline_seconds is not None else None
        )

    def check(self) -> None:
        """Raise if the publish must stop.

        Raises:
            PublishAborted: On shutdown or once the deadline has passed.
        """
        if self._shutdown is not None and self._shutdown.is_set():
            raise PublishAborted("Plugin is shutting down")
        if self._deadline is not None and self._clock() > self._deadline:
            raise PublishAborted("Publish deadline exceeded")


def find_mismatch(
    cells: list[str], types: list[PropertyType], permissive_booleans: bool = False
) -> tuple[int, PropertyType] | None:
    """Find the first cell whose classified type differs from its declared type.

    Returns:
        Index and observed type of the first mismatch, or None if all match.
    """
    for index, (cell, expected) in enumerate(zip(cells, types, strict=True)):
        observed = classify(cell, permissive_booleans)
        if observed is not expected:
            return index, observed
    return None


def _convert_or_none(kind: PropertyType, text: str, permissive_booleans: bool) -> Any:
    try:
        return convert(kind, text, permissive_booleans)
    except ConversionError:
        return None


def build_record(
    cells: list[str], types: list[PropertyType], permissive_booleans: bool = False
) -> PublishRecord | None:
    """Validate and convert one row.

    Args:
        cells: Raw cell text.
        types: Declared types, in column order.
        permissive_booleans: Also accept "t" and "f" as booleans.

    Returns:
        The record, or None if the row has the wrong number of cells.
    """
    if len(cells) != len(types):
        return None

    mismatch = find_mismatch(cells, types, permissive_booleans)
    data = [
        _convert_or_none(kind, cell, permissive_booleans)
        for cell, kind in zip(cells, types, strict=True)
    ]

    if mismatch is None:
        return PublishRecord(invalid=False, error=None, data=data)

    index, observed = mismatch
    data[index] = None
    return PublishRecord(
        invalid=True,
        error=(
            f"Expected type: {types[index].value} but got type: {observed.value} "
            f"at index {index}"
        ),
        data=data,
    )


def publish_table(
    table: Table,
    schema: Schema,
    stats: PublishStats,
    stop: StopCondition | None = None,
    permissive_booleans: bool = False,
) -> Iterator[PublishRecord]:
    """Yield one record per well-formed row of a table, in row order.

    Raises:
        PublishAborted: If the stop condition trips before a row.
    """
    types = schema.types
    skipped = 0
    for row in table.rows:
        if stop is not None:
            stop.check()
        record = build_record(row, types, permissive_booleans)
        if record is None:
            skipped += 1
            stats.skipped += 1
            continue
        stats.count += 1
        yield record

    if skipped:
        logger.warning(
            f"Skipped {skipped} row(s) in {table.path} with a cell count other "
            f"than {len(types)}"
        )


def publish_records(
    tables: Iterable[Table],
    schema: Schema,
    stats: PublishStats,
    stop: StopCondition | None = None,
    permissive_booleans: bool = False,
) -> Iterator[PublishRecord]:
    """Yield the records of every table, in table order then row order.

    Raises:
        PublishAborted: If the stop condition trips between two records.
    """
    for table in tables:
        yield from publish_table(table, schema, stats, stop, permissive_booleans)
