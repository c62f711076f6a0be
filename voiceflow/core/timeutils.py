"""
Time helpers shared by the billing code.

Gateway timestamps arrive as epoch seconds; the API renders datetimes the way
JavaScript's ``Date.prototype.toISOString`` does (millisecond precision, ``Z``).
"""
from datetime import datetime, timezone
from typing import Optional, Union
from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def epoch_to_datetime(seconds: Optional[Union[int, float]]) -> Optional[datetime]:
    """Convert gateway epoch seconds to an aware UTC datetime. Missing stays None."""
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def to_iso8601(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def epoch_to_iso8601(seconds: Optional[Union[int, float]]) -> Optional[str]:
    return to_iso8601(epoch_to_datetime(seconds))


def billing_period_end(start: datetime, billing_cycle: str) -> datetime:
    """End of a billing period: one calendar year for yearly, one month otherwise."""
    if billing_cycle == "yearly":
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


def month_bounds(now: Optional[datetime] = None):
    """First instant of the current calendar month and the last second of it."""
    now = now or utcnow()
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = start + relativedelta(months=1, seconds=-1)
    return start, end
