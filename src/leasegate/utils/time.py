"""Time utilities."""

import re
from datetime import datetime, timezone
from typing import Optional

# Docker reports nanosecond precision; datetime only holds microseconds.
_FRACTION = re.compile(r"\.(\d{6})\d*")


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as reported by the container runtime."""
    if not value or value.startswith("0001-01-01"):
        return None
    value = _FRACTION.sub(r".\1", value.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
