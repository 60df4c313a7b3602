"""
Data Cleaning Module

Value-level cleaning for documents read from the storefront's document
database. Handles:
- Currency and numeric normalization
- Phone number cleanup
- Timestamp and free-text date parsing
- Local timezone conversion

Every function is tolerant: a value that cannot be cleaned comes back as
``None`` instead of raising.
"""

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

import structlog

logger = structlog.get_logger(__name__)

CURRENCY_PATTERN = re.compile(r"(?i)(rs\.?|inr|[$€£¥₹,\s])")
NON_DIGIT_PATTERN = re.compile(r"[^\d]")

# Epoch values above this are treated as milliseconds
EPOCH_MILLIS_THRESHOLD = 100_000_000_000

# Formats produced by the storefront (toLocaleString / "MMM DD, YYYY" dates).
# Month-first is tried before day-first, matching browser date parsing.
DATE_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d, %Y %H:%M:%S",
    "%b %d, %Y, %I:%M:%S %p",
    "%d %b %Y",
    "%d %B %Y",
    "%m/%d/%Y, %I:%M:%S %p",
    "%m/%d/%Y, %H:%M:%S",
    "%m/%d/%Y",
    "%d/%m/%Y, %I:%M:%S %p",
    "%d/%m/%Y, %H:%M:%S",
    "%d/%m/%Y",
    "%d-%m-%Y",
]

NEVER_MARKERS = {"", "never", "n/a", "na", "none", "null", "undefined", "invalid date"}


def normalize_text(value: Any) -> Optional[str]:
    """Trim a text value; empty strings and non-scalars become None"""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    text = str(value).strip()
    return text or None


def coerce_amount(value: Any) -> Optional[float]:
    """Convert a price/amount (number or currency string) to float"""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            amount = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        cleaned = CURRENCY_PATTERN.sub("", value)
        if not cleaned:
            return None
        try:
            amount = float(cleaned)
        except ValueError:
            return None
    else:
        return None

    if math.isnan(amount) or math.isinf(amount):
        return None
    return amount


def coerce_count(value: Any) -> int:
    """Convert a counter to a non-negative int, defaulting to 0"""
    amount = coerce_amount(value)
    if amount is None or amount < 0:
        return 0
    return int(amount)


def clean_phone(value: Any) -> Optional[str]:
    """Clean phone numbers - keep only digits"""
    text = normalize_text(value)
    if text is None:
        return None
    digits = NON_DIGIT_PATTERN.sub("", text)
    return digits or None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _from_epoch(value: float, nanos: float = 0) -> Optional[datetime]:
    try:
        seconds = float(value) + float(nanos) / 1_000_000_000
    except OverflowError:
        return None
    if math.isnan(seconds) or math.isinf(seconds):
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_date_text(value: Any) -> Optional[datetime]:
    """
    Parse a free-text date string.

    Tries ISO-8601 first, then the storefront's display formats.
    """
    text = normalize_text(value)
    if text is None or text.lower() in NEVER_MARKERS:
        return None

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a structured timestamp.

    Accepts datetimes, dates, epoch seconds/milliseconds, document-database
    timestamp mappings (``{"seconds": ..., "nanoseconds": ...}``) and
    date strings.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())

    if isinstance(value, (int, float)):
        seconds = coerce_amount(value)
        if seconds is None:
            return None
        if abs(seconds) >= EPOCH_MILLIS_THRESHOLD:
            seconds /= 1000
        return _from_epoch(seconds)

    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds"))
        if not _is_number(seconds):
            return None
        return _from_epoch(seconds, nanos if _is_number(nanos) else 0)

    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            try:
                return parse_timestamp(int(text))
            except ValueError:
                return None
        return parse_date_text(text)

    return None


def to_local(value: datetime, tz_name: str) -> datetime:
    """Convert to naive local wall time; naive values are already local"""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


def local_now(tz_name: str) -> datetime:
    """Current naive local wall time in the given timezone"""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def resolve_now(now: Optional[datetime], tz_name: str) -> datetime:
    """Use an injected reference time when given, the local clock otherwise"""
    if now is None:
        return local_now(tz_name)
    return to_local(now, tz_name)
