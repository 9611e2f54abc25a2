"""Utility functions."""

from __future__ import annotations

import re
from datetime import datetime, timezone, tzinfo
from typing import Any, Optional

from dateutil import parser as dtparser
from dateutil import tz

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_ws(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip()


def get_zone(name: str) -> tzinfo:
    """Resolve an IANA zone name, failing loudly on typos."""
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown time zone: {name!r}")
    return zone


def parse_created_at(value: Any) -> Optional[datetime]:
    # the stream uses "Wed Oct 10 20:19:24 +0000 2018"; ISO strings are accepted too
    if not value or not isinstance(value, str):
        return None
    try:
        dt = dtparser.parse(value)
    except (ValueError, OverflowError):
        return None
    return dt.astimezone(timezone.utc) if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def format_local(dt: datetime, zone: tzinfo) -> str:
    local = dt.astimezone(zone)
    return local.strftime("%A, %B %d %Y at %I:%M %p %Z")
