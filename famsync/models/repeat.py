"""Repeat (recurrence) configuration for tasks.

Only the next occurrence is ever materialized: completing (or approving) a
recurring task produces the following instance of the series.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from famsync.models.constants import MAX_OCCURRENCES_IN_RANGE


class RepeatType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class WeekDay(str, Enum):
    SUN = "sun"
    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"


# Sunday-first index, matching how week days are stored
_WEEKDAY_INDEX = {
    WeekDay.SUN: 0,
    WeekDay.MON: 1,
    WeekDay.TUE: 2,
    WeekDay.WED: 3,
    WeekDay.THU: 4,
    WeekDay.FRI: 5,
    WeekDay.SAT: 6,
}


def _sunday_index(d: date) -> int:
    # Python weekday: Monday=0 ... Sunday=6
    return (d.weekday() + 1) % 7


def _add_months(d: date, months: int, month_day: Optional[int] = None) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(month_day or d.day, last_day))


class RepeatConfig(BaseModel):
    """How a task repeats."""

    enabled: bool = Field(True, description="Whether repetition is active")
    type: RepeatType = Field(RepeatType.DAILY, description="Repeat unit")
    interval: int = Field(1, ge=1, description="Every N units (days/weeks/months/years)")
    week_days: List[WeekDay] = Field(default_factory=list, description="For weekly repetition")
    month_day: Optional[int] = Field(None, ge=1, le=31, description="For monthly repetition")
    end_date: Optional[date] = Field(None, description="Last date an occurrence may fall on")
    occurrences: Optional[int] = Field(None, ge=1, description="Maximum number of occurrences")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        frozen = True

    @model_validator(mode="after")
    def _weekly_needs_days(self) -> "RepeatConfig":
        if self.enabled and self.type == RepeatType.WEEKLY and not self.week_days:
            raise ValueError("weekly repetition requires at least one week day")
        return self

    def next_occurrence(self, from_date: date) -> Optional[date]:
        """Date of the occurrence after ``from_date`` (None when the series ends)."""
        if not self.enabled:
            return None

        if self.type == RepeatType.DAILY:
            nxt = from_date + timedelta(days=self.interval)
        elif self.type == RepeatType.WEEKLY:
            if self.week_days:
                targets = sorted(_WEEKDAY_INDEX[WeekDay(d)] for d in self.week_days)
                current = _sunday_index(from_date)
                later = [d for d in targets if d > current]
                if later:
                    nxt = from_date + timedelta(days=later[0] - current)
                else:
                    # first listed day of the next cycle
                    days = 7 - current + targets[0] + (self.interval - 1) * 7
                    nxt = from_date + timedelta(days=days)
            else:
                nxt = from_date + timedelta(days=7 * self.interval)
        elif self.type == RepeatType.MONTHLY:
            nxt = _add_months(from_date, self.interval, self.month_day)
        elif self.type == RepeatType.YEARLY:
            nxt = _add_months(from_date, 12 * self.interval)
        else:
            return None

        if self.end_date and nxt > self.end_date:
            return None
        return nxt

    def occurrences_in_range(
        self,
        start: date,
        end: date,
        max_occurrences: int = MAX_OCCURRENCES_IN_RANGE,
    ) -> List[date]:
        """All occurrence dates from ``start`` (inclusive) up to ``end``."""
        if not self.enabled:
            return []
        limit = min(max_occurrences, self.occurrences or max_occurrences)
        out: List[date] = []
        current: Optional[date] = start
        while current is not None and current <= end and len(out) < limit:
            out.append(current)
            current = self.next_occurrence(current)
        return out

    def describe(self) -> str:
        """Short human readable description."""
        if not self.enabled:
            return "Does not repeat"
        unit = {
            RepeatType.DAILY: "day",
            RepeatType.WEEKLY: "week",
            RepeatType.MONTHLY: "month",
            RepeatType.YEARLY: "year",
        }.get(RepeatType(self.type))
        if unit is None:
            return "Custom"
        text = f"Every {unit}" if self.interval == 1 else f"Every {self.interval} {unit}s"
        if self.type == RepeatType.WEEKLY and self.week_days:
            text += " on " + ", ".join(WeekDay(d).value for d in self.week_days)
        if self.type == RepeatType.MONTHLY and self.month_day:
            text += f" on day {self.month_day}"
        return text
