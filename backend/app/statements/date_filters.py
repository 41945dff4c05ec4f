from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Literal, Optional

from .records import DateRange

DateFilterType = Literal[
    "all",
    "today",
    "current_week",
    "last_week",
    "current_month",
    "last_month",
    "custom",
]

DATE_FILTER_TYPES = (
    "all",
    "today",
    "current_week",
    "last_week",
    "current_month",
    "last_month",
    "custom",
)

# weeks start on Saturday
_WEEK_START = 5


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _day_end(d: date) -> datetime:
    return datetime.combine(d, time.max)


def _week_start(d: date) -> date:
    return d - timedelta(days=(d.weekday() - _WEEK_START) % 7)


@dataclass(frozen=True)
class DateFilter:
    type: DateFilterType = "all"
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def __post_init__(self) -> None:
        if self.type not in DATE_FILTER_TYPES:
            raise ValueError(f"unknown date filter type: {self.type!r}")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")

    def to_range(self, now: datetime) -> DateRange:
        """Translate the filter into inclusive timestamp bounds relative to ``now``."""
        today = now.date()

        if self.type == "today":
            return DateRange(_day_start(today), _day_end(today))

        if self.type == "current_week":
            return DateRange(_day_start(_week_start(today)), _day_end(today))

        if self.type == "last_week":
            start = _week_start(today) - timedelta(days=7)
            return DateRange(_day_start(start), _day_end(start + timedelta(days=6)))

        if self.type == "current_month":
            return DateRange(_day_start(today.replace(day=1)), _day_end(today))

        if self.type == "last_month":
            last_day = today.replace(day=1) - timedelta(days=1)
            return DateRange(_day_start(last_day.replace(day=1)), _day_end(last_day))

        if self.type == "custom":
            return DateRange(
                _day_start(self.start_date) if self.start_date else None,
                _day_end(self.end_date) if self.end_date else None,
            )

        return DateRange()
