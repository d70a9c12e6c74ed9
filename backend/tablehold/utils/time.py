from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_now(tz_name: str) -> datetime:
    """Wall-clock now in the restaurant timezone, tz-naive (slots carry no zone)."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def local_today(tz_name: str) -> str:
    return local_now(tz_name).date().isoformat()
