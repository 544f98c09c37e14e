"""Timestamp formatting for sealing metadata."""

from datetime import datetime, timezone, tzinfo
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_iso(moment: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision and a ``Z`` suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    millis = moment.microsecond // 1000
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{millis:03d}Z"


def local_display(moment: datetime, tz: Optional[tzinfo] = None) -> str:
    """
    Human-readable local time including the zone name.

    Naive datetimes are treated as UTC. Without ``tz`` the host's local
    zone is used.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(tz)
    return local.strftime("%m/%d/%Y, %I:%M:%S %p %Z")
