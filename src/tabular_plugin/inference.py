"""Type inference for textual cell values.

A value is classified by trying each type in priority order and keeping the
first that fits. A column's type is the most common classification among its
sampled values, with ties going to the higher-priority type.
"""

import math
import re
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone

from dateutil import parser as dateparser

from tabular_plugin.errors import ConversionError
from tabular_plugin.models import PropertyType

# Decimal numbers only: no hex, underscores, inf or nan
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_DIGIT_RE = re.compile(r"\d")

TRUE_TOKENS = frozenset({"true"})
FALSE_TOKENS = frozenset({"false"})
PERMISSIVE_TRUE_TOKENS = TRUE_TOKENS | {"t"}
PERMISSIVE_FALSE_TOKENS = FALSE_TOKENS | {"f"}

# Timezone dates are normalized into before dropping the time of day
REFERENCE_TZ = timezone.utc

PRIORITY: tuple[PropertyType, ...] = tuple(PropertyType)


def _boolean_tokens(permissive: bool) -> tuple[frozenset[str], frozenset[str]]:
    if permissive:
        return PERMISSIVE_TRUE_TOKENS, PERMISSIVE_FALSE_TOKENS
    return TRUE_TOKENS, FALSE_TOKENS


def _parse_number(text: str) -> float | None:
    if not _NUMBER_RE.match(text):
        return None
    value = float(text)
    # Exponents like 1e999 overflow to inf
    if not math.isfinite(value):
        return None
    return value


def _parse_date(text: str) -> datetime | None:
    """Parse text as a date, normalized to midnight UTC."""
    if not _DIGIT_RE.search(text):
        return None
    try:
        parsed = dateparser.parse(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=REFERENCE_TZ)
        else:
            parsed = parsed.astimezone(REFERENCE_TZ)
    except (ValueError, OverflowError):
        return None
    return parsed.replace(hour=0, minute=0, second=0, microsecond=0)


def classify(text: str, permissive_booleans: bool = False) -> PropertyType:
    """Classify a single value.

    Args:
        text: Raw cell text.
        permissive_booleans: Also accept "t" and "f" as booleans.

    Returns:
        The first type in priority order the text fits.
    """
    value = text.strip()

    if _NUMBER_RE.match(value):
        if _parse_number(value) is None:
            return PropertyType.STRING
        if "." in value:
            return PropertyType.NUMBER
        return PropertyType.INTEGER

    true_tokens, false_tokens = _boolean_tokens(permissive_booleans)
    lowered = value.lower()
    if lowered in true_tokens or lowered in false_tokens:
        return PropertyType.BOOLEAN

    if _parse_date(value) is not None:
        return PropertyType.DATETIME

    return PropertyType.STRING


def convert(
    kind: PropertyType, text: str, permissive_booleans: bool = False
) -> int | float | bool | datetime | str:
    """Convert text to the Python value for a property type.

    Args:
        kind: Target type.
        text: Raw cell text.
        permissive_booleans: Also accept "t" and "f" as booleans.

    Returns:
        Converted value. Datetimes are midnight UTC of the parsed date.

    Raises:
        ConversionError: If the text does not fit the type.
    """
    if kind is PropertyType.STRING:
        return text

    value = text.strip()

    if kind is PropertyType.INTEGER or kind is PropertyType.NUMBER:
        number = _parse_number(value)
        if number is None:
            raise ConversionError(f"{text!r} is not a valid {kind.value}")
        if kind is PropertyType.NUMBER:
            return number
        # Exponent forms like 1e5 carry no fractional separator
        if "e" in value.lower():
            return int(number)
        return int(value)

    if kind is PropertyType.BOOLEAN:
        true_tokens, false_tokens = _boolean_tokens(permissive_booleans)
        lowered = value.lower()
        if lowered in true_tokens:
            return True
        if lowered in false_tokens:
            return False
        raise ConversionError(f"{text!r} is not a valid boolean")

    parsed = _parse_date(value)
    if parsed is None:
        raise ConversionError(f"{text!r} is not a valid datetime")
    return parsed


def vote(kinds: Iterable[PropertyType]) -> PropertyType:
    """Pick the most common type, breaking ties by priority.

    An empty input yields string.
    """
    tally = Counter(kinds)
    if not tally:
        return PropertyType.STRING
    return max(PRIORITY, key=lambda kind: (tally[kind], -PRIORITY.index(kind)))


def infer_column_type(
    values: Iterable[str], permissive_booleans: bool = False
) -> PropertyType:
    """Infer a column's type by majority vote over sampled values."""
    return vote(classify(v, permissive_booleans) for v in values)
