"""
acadledger/core/time.py

THE ONLY TIMESTAMP HANDLING IN ACADLEDGER.

Wire Format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)

Ledger programs never read a wall clock. The substrate supplies one
instant per operation; DeterministicClock carries it through every
computation that needs "now".
"""

import re
from datetime import datetime, timedelta, timezone

from acadledger.core.exceptions import InvalidArgumentError


_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"
)


def format_instant(instant: datetime) -> str:
    """
    Render an instant in wire format.
    Naive datetimes are taken as UTC.
    """
    i = normalize_instant(instant)
    return (
        f"{i.year:04d}-{i.month:02d}-{i.day:02d}T"
        f"{i.hour:02d}:{i.minute:02d}:{i.second:02d}.{i.microsecond // 1000:03d}Z"
    )


def normalize_instant(instant: datetime) -> datetime:
    """UTC, millisecond precision."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    instant = instant.astimezone(timezone.utc)
    return instant.replace(microsecond=(instant.microsecond // 1000) * 1000)


def parse_instant(value: str, field: str = "date") -> datetime:
    """
    Parse an ISO 8601 instant.

    Accepts a trailing 'Z', explicit offsets, and date-only values.
    Values without an offset are read as UTC.

    Raises InvalidArgumentError when the value is not a valid instant.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(
            f"Invalid {field} format. Use ISO 8601 (e.g. \"2024-02-01T10:00:00Z\")",
            {field: value},
        )
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return normalize_instant(datetime.fromisoformat(text))
    except ValueError as exc:
        raise InvalidArgumentError(
            f"Invalid {field} format. Use ISO 8601 (e.g. \"2024-02-01T10:00:00Z\")",
            {field: value},
        ) from exc
    except OverflowError as exc:
        # offset pushes the instant outside the representable range
        raise InvalidArgumentError(f"{field} is out of range", {field: value}) from exc


def is_wire_timestamp(value: str) -> bool:
    return isinstance(value, str) and bool(_TIMESTAMP_RE.match(value))


class DeterministicClock:
    """
    The single consensus-agreed instant of one operation.

    Built once per operation from the substrate's timestamp and passed
    down; never refreshed.
    """

    def __init__(self, instant: datetime) -> None:
        self._now = normalize_instant(instant)

    @property
    def now(self) -> datetime:
        return self._now

    def stamp(self) -> str:
        """The operation instant in wire format."""
        return format_instant(self._now)

    def hours_until(self, instant: datetime) -> int:
        """Whole hours (rounded up) from now until instant; 0 if passed."""
        remaining = instant - self._now
        if remaining <= timedelta(0):
            return 0
        hours, rest = divmod(remaining, timedelta(hours=1))
        return hours + (1 if rest else 0)

    def __repr__(self) -> str:
        return f"DeterministicClock({self.stamp()})"
