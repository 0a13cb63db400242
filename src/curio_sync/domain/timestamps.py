"""Lenient ISO-8601 timestamp parsing.

Timestamps travel as strings between the local cache, Supabase rows and
user-entered date fields, so parsing never raises: anything that is not a
recognizable instant yields ``None``.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

_ISO_PATTERN = re.compile(
    r"^(?P<year>\d{4})"
    r"(?:-(?P<month>\d{2})(?:-(?P<day>\d{2}))?)?"
    r"(?:[T ](?P<hour>\d{2}):(?P<minute>\d{2})(?::(?P<second>\d{2})(?:\.(?P<fraction>\d+))?)?)?"
    r"(?P<offset>Z|z|[+-]\d{2}:?\d{2})?$"
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

TimestampLike = Union[str, datetime, None]


def parse_timestamp(value: TimestampLike) -> Optional[datetime]:
    """Parse a timestamp into an aware UTC datetime.

    Strings without an offset are read as UTC. Fractional seconds are
    truncated to milliseconds. Instants that fall outside the datetime range
    once shifted to UTC are treated as invalid.

    Returns:
        Aware datetime, or None when the value is absent or not a valid instant
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        try:
            return value.astimezone(timezone.utc)
        except (ValueError, OverflowError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    match = _ISO_PATTERN.match(text)
    if match is None:
        return None

    parts = match.groupdict()
    # A time component requires a full date.
    if parts["hour"] is not None and parts["day"] is None:
        return None

    offset = parts["offset"]
    if not offset or offset in ("Z", "z"):
        offset = "+00:00"
    else:
        digits = offset[1:].replace(":", "")
        if int(digits[2:]) > 59:
            return None
        offset = f"{offset[0]}{digits[:2]}:{digits[2:]}"

    canonical = "{}-{}-{}T{}:{}:{}.{}{}".format(
        parts["year"],
        parts["month"] or "01",
        parts["day"] or "01",
        parts["hour"] or "00",
        parts["minute"] or "00",
        parts["second"] or "00",
        (parts["fraction"] or "")[:3].ljust(3, "0"),
        offset,
    )
    try:
        return datetime.fromisoformat(canonical).astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def to_epoch_millis(value: TimestampLike) -> Optional[int]:
    """Milliseconds since the Unix epoch, or None if unparsable."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return (parsed - _EPOCH) // timedelta(milliseconds=1)
