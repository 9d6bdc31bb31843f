from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from errors import ValidationError


class TrendPeriod(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


@dataclass(frozen=True)
class DateRange:
    start: Optional[date] = None
    end: Optional[date] = None


def parse_iso_date(value: Optional[str], field: str) -> Optional[date]:
    if value is None or value.strip() == "":
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)") from exc


def resolve_range(start: Optional[str], end: Optional[str]) -> DateRange:
    # A start after the end is allowed; the range simply matches nothing.
    return DateRange(parse_iso_date(start, "startDate"), parse_iso_date(end, "endDate"))


def resolve_trend_period(value: Optional[str]) -> TrendPeriod:
    if not value:
        return TrendPeriod.monthly
    try:
        return TrendPeriod(value.strip().lower())
    except ValueError as exc:
        raise ValidationError("period must be one of daily, weekly, monthly") from exc


def bucket_label(day: date, period: TrendPeriod) -> str:
    if period == TrendPeriod.daily:
        return day.isoformat()
    if period == TrendPeriod.weekly:
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    return f"{day.year:04d}-{day.month:02d}"
