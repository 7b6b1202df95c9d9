"""Conformance cases and scoring.

A case discovers a pattern, checks the expected schemas are present, publishes
one of them and checks the record count and a handful of record values.
Required checks fail the case; advisory checks only add comments.
"""

import copy
import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from plugin_host.client import PluginClient
from plugin_host.console import DATA_LOGGER, paint
from plugin_host.errors import CheckFailed, TransportError
from tabular_plugin.models import PublishRecord, Schema

logger = logging.getLogger(__name__)
data_log = logging.getLogger(DATA_LOGGER)

FLOAT_TOLERANCE = 0.00001


class CaseState(str, Enum):
    """Progress of a conformance case."""

    INIT = "init"
    DISCOVERING = "discovering"
    PUBLISHING = "publishing"
    DONE = "done"


class CheckKind(str, Enum):
    """How a record check is scored."""

    REQUIRED = "required"
    """Some record must have the value at the index."""

    INVALID = "invalid"
    """The matching record should be marked invalid."""

    PARSING = "parsing"
    """The matching record should hold a converted value at another index."""


def same_value(actual: Any, expected: Any) -> bool:
    """Compare JSON values without treating booleans as numbers."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return bool(actual == expected)


@dataclass
class RecordCheck:
    """Looks for a record by value and scores it."""

    match_index: int
    match_value: Any
    kind: CheckKind = CheckKind.REQUIRED
    check_index: int = 0
    check_value: Any = None
    reason: str = ""
    match: PublishRecord | None = None
    parse_error: str | None = None

    @property
    def required(self) -> bool:
        return self.kind is CheckKind.REQUIRED

    def evaluate(self, record: PublishRecord) -> None:
        """Match the record if this check has not matched one yet."""
        if self.match is not None or self.match_index >= len(record.data):
            return
        if not same_value(record.data[self.match_index], self.match_value):
            return
        self.match = record
        if self.kind is CheckKind.PARSING:
            self.parse_error = self._evaluate_parsing(record)

    def _evaluate_parsing(self, record: PublishRecord) -> str | None:
        if self.check_index >= len(record.data):
            return "record too narrow"

        actual = record.data[self.check_index]
        expected = self.check_value
        if actual is None or expected is None:
            if actual is expected:
                return None
            return f"expected value at {self.check_index} to be {expected!r} but it was {actual!r}"

        if isinstance(expected, datetime):
            try:
                actual_time = datetime.fromisoformat(str(actual))
            except ValueError as e:
                return f"expected value at {self.check_index} to be valid date: {e}"
            if actual_time != expected:
                return (
                    f"expected value at {self.check_index} to equal "
                    f"{expected.isoformat()} but it was {actual_time.isoformat()}"
                )
            return None

        if isinstance(expected, float):
            if isinstance(actual, bool) or not isinstance(actual, int | float):
                return (
                    f"expected value at {self.check_index} ({actual!r}) to be a "
                    f"number, but it was a {type(actual).__name__}"
                )
            if math.fabs(actual - expected) > FLOAT_TOLERANCE:
                return f"expected value at {self.check_index} to equal {expected} but it was {actual}"
            return None

        if not same_value(actual, expected):
            return (
                f"expected value at {self.check_index} to equal {expected!r} "
                f"({type(expected).__name__}) but it was {actual!r} ({type(actual).__name__})"
            )
        return None

    def result(self) -> tuple[bool, str]:
        """Score the check once the stream has ended.

        Returns:
            Whether the check holds, and a colored message (may be empty).
        """
        if self.match is None:
            return False, paint(
                f"expected to see a record with value {self.match_value!r} at data "
                f"index {self.match_index}{self.reason}",
                "red",
            )

        shown = self.match.model_dump_json()
        if self.kind is CheckKind.INVALID:
            if self.match.invalid:
                return True, paint(f"detected invalid record {shown}", "green")
            return False, paint(
                f"record should have been marked invalid{self.reason}: {shown}", "red"
            )

        if self.kind is CheckKind.PARSING:
            if self.parse_error is None:
                return True, paint(f"correctly parsed record {shown}", "green")
            return False, paint(
                f"parsing failed on record {shown}: {self.parse_error}{self.reason}", "red"
            )

        return True, ""


def required_check(index: int, value: Any) -> RecordCheck:
    return RecordCheck(match_index=index, match_value=value)


def invalid_check(index: int, value: Any, reason: str) -> RecordCheck:
    return RecordCheck(
        match_index=index, match_value=value, kind=CheckKind.INVALID, reason=reason
    )


def parsing_check(
    key_index: int, key_value: Any, check_index: int, check_value: Any, reason: str
) -> RecordCheck:
    return RecordCheck(
        match_index=key_index,
        match_value=key_value,
        kind=CheckKind.PARSING,
        check_index=check_index,
        check_value=check_value,
        reason=reason,
    )


def find_schema(want: Schema, schemas: list[Schema]) -> Schema | None:
    """Find the first schema with the same property names as want."""
    for have in schemas:
        if want.same_signature(have):
            return have
    return None


def describe_type_mismatch(want: Schema, have: Schema) -> str:
    parts = []
    for wp, hp in zip(want.properties, have.properties, strict=True):
        if wp.type is not hp.type:
            parts.append(
                f"{wp.name}: wanted {paint(wp.type.value, 'green')}, "
                f"got {paint(hp.type.value, 'red')}; "
            )
    return "".join(parts)


@dataclass
class ConformanceCase:
    """Expected behaviour of a plugin for one pattern."""

    name: str
    description: str
    pattern: str
    expected_count: int
    publish_schema: Schema
    expected_schemas: list[Schema] = field(default_factory=list)
    record_checks: list[RecordCheck] = field(default_factory=list)


@dataclass
class CaseResult:
    """Outcome of a conformance case."""

    case: ConformanceCase
    state: CaseState = CaseState.INIT
    error: str | None = None
    comments: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.error is None

    def comment(self, message: str) -> None:
        if message:
            self.comments.append(message)


class ConformanceRunner:
    """Runs conformance cases one after another against a plugin."""

    def __init__(
        self,
        client: PluginClient,
        discover_deadline: float = 1.0,
        publish_deadline: float = 2.0,
    ) -> None:
        self.client = client
        self.discover_deadline = discover_deadline
        self.publish_deadline = publish_deadline

    def _log(self, result: CaseResult, message: str) -> None:
        logger.info(paint(f"{result.case.name}: ", "cyan") + message)

    def _advance(self, result: CaseResult, state: CaseState) -> None:
        logger.debug(f"{result.case.name}: {result.state.value} -> {state.value}")
        result.state = state

    async def run_case(self, case: ConformanceCase) -> CaseResult:
        """Run one case.

        Transport failures and failed required checks end the case with an
        error; they never propagate.
        """
        result = CaseResult(case=case)
        try:
            await self._execute(case, result)
        except (TransportError, CheckFailed) as e:
            result.error = str(e)
        return result

    async def _execute(self, case: ConformanceCase, result: CaseResult) -> None:
        self._advance(result, CaseState.DISCOVERING)
        self._log(result, "executing discover...")
        try:
            schemas = await self.client.discover(case.pattern, self.discover_deadline)
        except TransportError as e:
            raise TransportError(f"discovery failed: {e}") from e

        self._log(result, f"discover completed: {len(schemas)} schema(s)")
        data_log.info("discover response:")
        data_log.info(
            json.dumps([s.model_dump(mode="json") for s in schemas], indent=2)
        )

        self._log(result, "scoring discover...")
        for want in case.expected_schemas:
            have = find_schema(want, schemas)
            if have is None:
                raise CheckFailed(
                    f"no schema matching {want.name!r} was discovered "
                    f"(want: {list(want.signature)}, got: {[s.name for s in schemas]})"
                )
            if want.same_shape(have):
                types = ", ".join(f"{p.name}:{p.type.value}" for p in want.properties)
                result.comment(
                    paint(f"inferred types on schema {want.name}: ", "green") + types
                )
            else:
                result.comment(
                    paint(f"did not infer types on schema {want.name}: ", "red")
                    + describe_type_mismatch(want, have)
                )
        self._log(result, "discover looks correct")

        target = find_schema(case.publish_schema, schemas)
        if target is None:
            raise CheckFailed(f"no schema matching {case.publish_schema.name!r} to publish")

        self._advance(result, CaseState.PUBLISHING)
        self._log(result, "executing publish...")
        checks = copy.deepcopy(case.record_checks)
        count = 0

        def on_record(record: PublishRecord) -> None:
            nonlocal count
            count += 1
            data_log.info(record.model_dump_json(indent=2))
            for check in checks:
                check.evaluate(record)

        try:
            summary = await self.client.publish(
                case.pattern, target, on_record, self.publish_deadline
            )
        except TransportError as e:
            raise TransportError(f"publish failed after {count} record(s): {e}") from e

        self._log(result, "publish completed, analyzing data...")
        if summary.skipped:
            result.comment(
                paint(f"plugin skipped {summary.skipped} malformed row(s)", "yellow")
            )

        if count != case.expected_count:
            raise CheckFailed(
                "publish did not return the right number of records "
                f"(wanted {case.expected_count}, got {count})"
            )
        self._log(result, f"publish has correct count, {count}")

        for check in checks:
            ok, message = check.result()
            if ok or not check.required:
                result.comment(message)
            else:
                raise CheckFailed(f"record check failed: {message}")

        self._log(result, "published data looks correct")
        self._advance(result, CaseState.DONE)

    async def run(self, cases: list[ConformanceCase]) -> list[CaseResult]:
        """Run cases in order, logging progress."""
        results = []
        total = len(cases)
        for i, case in enumerate(cases, start=1):
            logger.info(f"{i}/{total}: executing test {case.name!r}")
            logger.info(f"description: {case.description}")
            data_log.info("-" * 50)
            data_log.info(case.name)
            data_log.info("-" * 50)

            result = await self.run_case(case)
            if result.passed:
                logger.info(paint(f"test {case.name} passed", "green"))
            else:
                logger.info(paint(f"test {case.name} failed: {result.error}", "red"))
            results.append(result)
        return results


def format_report(results: list[CaseResult]) -> list[str]:
    """Render the colored summary of a run, one line per entry."""
    lines = [paint("RESULTS", "blue")]
    failed = 0
    for result in results:
        if result.passed:
            lines.append(f"{result.case.name}: " + paint("passed", "bold_green"))
        else:
            failed += 1
            lines.append(
                f"{result.case.name}: "
                + paint(f"failed ({result.state.value}): {result.error}", "bold_red")
            )
        lines.append("  " + paint(result.case.description, "white"))
        lines.extend("  " + c for c in result.comments)

    if failed == 0:
        lines.append(paint("PASSED", "bold_green"))
    else:
        lines.append(paint(f"{failed} TESTS FAILED", "bold_red"))
    return lines
