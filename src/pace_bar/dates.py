"""Timestamp parsing and minute rounding for API reset times.

Pure stdlib — no rumps or PyObjC imports.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

FRACTIONAL_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"
WHOLE_SECOND_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# strptime's %f accepts at most 6 digits; the API sometimes sends more.
_LONG_FRACTION_RE = re.compile(r"(\.\d{6})\d+")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MINUTE_US = 60_000_000


def round_to_minute(moment: datetime) -> datetime:
    """Round an aware datetime to the nearest whole minute (half rounds up)."""
    micros = (moment - _EPOCH) // timedelta(microseconds=1)
    rounded = (micros + _MINUTE_US // 2) // _MINUTE_US * _MINUTE_US
    return _EPOCH + timedelta(microseconds=rounded)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 reset timestamp, rounded to the nearest minute.

    Fractional seconds are tried first, then whole seconds.  Returns
    ``None`` for anything that parses under neither format; a single bad
    timestamp must not fail the whole fetch.
    """
    if not isinstance(value, str) or not value.strip():
        return None

    text = _LONG_FRACTION_RE.sub(r"\1", value.strip())
    for fmt in (FRACTIONAL_FORMAT, WHOLE_SECOND_FORMAT):
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return round_to_minute(parsed)

    logger.warning("Could not parse timestamp %r", value)
    return None
