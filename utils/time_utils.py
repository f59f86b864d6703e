"""
UTC time helpers.

Timestamps are stored as naive UTC datetimes so that values read back from
SQLite and PostgreSQL compare cleanly with values computed in process.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def expiry_from_seconds(expires_in: Optional[int], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Calculate token expiration datetime from expires_in seconds.

    Returns None when the provider did not report a lifetime, which callers
    treat as a non-expiring token.
    """
    if expires_in is None:
        return None
    return (now or utc_now()) + timedelta(seconds=int(expires_in))
