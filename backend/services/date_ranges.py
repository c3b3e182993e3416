"""
Date range presets for dashboard views.

All dates are ISO strings (YYYY-MM-DD), the format the insights store filters on.
"""

import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

# Insights dates are stored as UTC calendar days
DASHBOARD_TZ = ZoneInfo(os.getenv("DASHBOARD_TZ", "UTC"))

DATE_PRESETS = {
    "today": "Hoy",
    "yesterday": "Ayer",
    "last_7": "Últimos 7 días",
    "last_14": "Últimos 14 días",
    "last_30": "Últimos 30 días",
    "mtd": "Mes en curso",
    "last_month": "Mes anterior",
}

DEFAULT_PRESET = "mtd"


@dataclass(frozen=True)
class DateRange:
    date_from: str
    date_to: str

    def __post_init__(self):
        start = date.fromisoformat(self.date_from)
        end = date.fromisoformat(self.date_to)
        if start > end:
            raise ValueError(f"date_from {self.date_from} is after date_to {self.date_to}")

    def to_dict(self) -> dict:
        return {"from": self.date_from, "to": self.date_to}


def today_local() -> date:
    """Today's date in the dashboard timezone."""
    return datetime.now(DASHBOARD_TZ).date()


def preset_range(preset: str, today: Optional[date] = None) -> DateRange:
    """Resolve a named preset to a concrete range."""
    today = today or today_local()

    if preset == "today":
        start, end = today, today
    elif preset == "yesterday":
        start = end = today - timedelta(days=1)
    elif preset == "last_7":
        start, end = today - timedelta(days=6), today
    elif preset == "last_14":
        start, end = today - timedelta(days=13), today
    elif preset == "last_30":
        start, end = today - timedelta(days=29), today
    elif preset == "mtd":
        start, end = today.replace(day=1), today
    elif preset == "last_month":
        end = today.replace(day=1) - timedelta(days=1)
        start = end.replace(day=1)
    else:
        raise ValueError(f"Invalid date preset: {preset}. Valid options: {list(DATE_PRESETS)}")

    return DateRange(start.isoformat(), end.isoformat())


def mtd_range(today: Optional[date] = None) -> DateRange:
    """First of the current month through today."""
    return preset_range("mtd", today)


def resolve_range(
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    today: Optional[date] = None,
) -> DateRange:
    """
    Pick the range for a request.

    Explicit dates win over a preset; a single explicit date is completed from
    the default (MTD) range. With nothing given, MTD is used.
    """
    if date_from or date_to:
        default = mtd_range(today)
        return DateRange(date_from or default.date_from, date_to or default.date_to)
    return preset_range(preset or DEFAULT_PRESET, today)
