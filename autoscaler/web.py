"""Helpers for the HTML dashboard: cache headers and template functions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import MutableMapping

_EPOCH_DT = datetime(1970, 1, 1, tzinfo=timezone.utc)
_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _rfc1123(moment: datetime) -> str:
    return (
        f"{_DAYS[moment.weekday()]}, {moment.day:02d} {_MONTHS[moment.month - 1]} "
        f"{moment.year:04d} {moment:%H:%M:%S} UTC"
    )


EPOCH = _rfc1123(_EPOCH_DT)

NO_CACHE_HEADERS = {
    "Expires": EPOCH,
    "Cache-Control": "no-cache, private, max-age=0",
    "Pragma": "no-cache",
    "X-Accel-Expires": "0",
}


def nocache(headers: MutableMapping[str, str]) -> MutableMapping[str, str]:
    """Set headers that prevent the response being cached; returns the mapping."""
    for name, value in NO_CACHE_HEADERS.items():
        headers[name] = value
    return headers


def timestamp(value: int) -> str:
    """Format a unix timestamp as an ISO-8601 UTC string."""
    moment = _EPOCH_DT + timedelta(seconds=int(value))
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")