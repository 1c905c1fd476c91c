"""Wall-clock helpers.

All timestamps are stored as naive UTC datetimes, matching the DateTime
columns of the models.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_z(value: datetime) -> str:
    """Render a naive UTC datetime as ``2024-01-01T08:00:00.000Z``."""
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f'{value.microsecond // 1000:03d}Z'


def parse_iso(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into a naive UTC datetime.

    Raises ValueError for anything unparseable.
    """
    if not isinstance(value, str) or not value:
        raise ValueError('timestamp must be a non-empty string')
    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
