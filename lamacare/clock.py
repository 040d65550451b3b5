"""Wall clock used by business rules (age checks, booking progression).

Naive datetimes are treated as UTC throughout the database layer.
"""
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_rfc3339(raw: str) -> datetime:
    raw = raw.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    return to_utc_naive(datetime.fromisoformat(raw))


def isoformat(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc_naive(value).isoformat(timespec="seconds") + "Z"
    return value.isoformat()


def add_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # 29 Feb in a non-leap target year
        return day.replace(year=day.year + years, day=28)
