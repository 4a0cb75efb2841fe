# utils/time_utils.py
from datetime import datetime, timedelta, timezone, date, tzinfo
from zoneinfo import ZoneInfo


def utcnow():
    return datetime.now(timezone.utc)


def resolve_tz(name: str) -> tzinfo:
    """QUOTA_TIMEZONE -> tzinfo. 'UTC' short-circuits so no tz database is needed."""
    name = (name or "UTC").strip()
    if name.upper() in ("UTC", "Z"):
        return timezone.utc
    return ZoneInfo(name)


def _to_aware(dt: datetime) -> datetime:
    # naive datetimes are treated as UTC (DB columns are naive UTC)
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def local_date(dt: datetime, tz: tzinfo) -> date:
    return _to_aware(dt).astimezone(tz).date()


def day_window(dt: datetime, tz: tzinfo):
    """[start, end) of dt's calendar day in tz, both aware."""
    d = local_date(dt, tz)
    start = datetime(d.year, d.month, d.day, tzinfo=tz)
    end = datetime.combine(d + timedelta(days=1), datetime.min.time(), tzinfo=tz)
    return start, end


def to_utc_naive(dt_aware: datetime) -> datetime:
    return _to_aware(dt_aware).astimezone(timezone.utc).replace(tzinfo=None)
