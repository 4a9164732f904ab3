from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo
from .config import settings


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def local_tz() -> tzinfo:
    return ZoneInfo(settings.timezone)


def now_local() -> datetime:
    return now_utc().astimezone(local_tz())
