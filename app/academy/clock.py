"""
Time helpers - everything is UTC-aware
"""
from datetime import date, datetime, timezone
from typing import Callable, Optional, Union

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_start(now: datetime) -> datetime:
    """First calendar day of now's month, 00:00 UTC (billing-month boundary)"""
    now = now.astimezone(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """ISO string (Supabase timestamptz, may end in Z) -> aware datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def from_epoch(seconds: Optional[int]) -> Optional[str]:
    """Processor epoch seconds -> ISO UTC"""
    if seconds is None:
        return None
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc).isoformat()
