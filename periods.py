from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ValidationError


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def local_now() -> datetime:
    """Timezone-naive wall clock in the configured timezone."""
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    """Same day-of-month ``months`` later, snapped to the last day of short months."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def month_period(year: int, month: int) -> Period:
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month: {month}")
    return Period(
        month_key(year, month),
        date(year, month, 1),
        date(year, month, days_in_month(year, month)),
    )


def month_of(day: date) -> Period:
    return month_period(day.year, day.month)


def previous_month_of(day: date) -> Period:
    prev = add_months(day.replace(day=1), -1)
    return month_period(prev.year, prev.month)


def year_period(year: int) -> Period:
    return Period(f"{year:04d}", date(year, 1, 1), date(year, 12, 31))


def trailing_days(days: int, *, today: Optional[date] = None) -> Period:
    today = today or local_today()
    if days < 0:
        raise ValidationError("Window length must not be negative")
    return Period(f"last_{days}_days", today - timedelta(days=days), today)


def budget_window(year: int, month: Optional[int], *, yearly: bool) -> Period:
    if yearly:
        return year_period(year)
    if month is None:
        raise ValidationError("Monthly budgets require a month")
    return month_period(year, month)
