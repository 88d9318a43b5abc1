"""
Timestamp utilities for RFC 3339 values exchanged with the APIs.
"""

import re
from datetime import datetime, timezone

_FRACTION_RE = re.compile(r'\.(\d+)')


def to_rfc3339(value: datetime) -> str:
    """Convert a datetime to an RFC 3339 string in UTC.

    Naive datetimes are assumed to already be in UTC.

    Args:
        value: datetime to convert

    Returns:
        Timestamp string such as ``2014-10-02T15:01:23.045123Z``
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec='microseconds') + 'Z'


def from_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    The API may send up to nanosecond precision; digits past microseconds
    are dropped.

    Args:
        value: Timestamp string

    Returns:
        datetime object in UTC
    """
    value = value.strip()
    if value.endswith('Z') or value.endswith('z'):
        value = value[:-1] + '+00:00'

    match = _FRACTION_RE.search(value)
    if match:
        fraction = match.group(1)[:6].ljust(6, '0')
        value = value[:match.start()] + '.' + fraction + value[match.end():]

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
