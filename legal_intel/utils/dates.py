"""Lenient date parsing for extracted and user-supplied values."""

from datetime import date, datetime, timezone
from typing import Any, Optional

DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
]


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp or a common date format.

    Naive results are treated as UTC. Returns None when nothing matches.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_day(value: Any) -> Optional[date]:
    parsed = parse_datetime(value)
    return parsed.astimezone(timezone.utc).date() if parsed else None
