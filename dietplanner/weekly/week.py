# -*- coding: utf-8 -*-
"""Week identity: tokens <-> Monday date <-> ISO (year, week)."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Tuple

from ..errors import InvalidWeekToken

_ISO_WEEK_RE = re.compile(r"^(\d{4})-W(\d{1,2})$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class WeekIdentity:
    week_start_date: str
    week_year: int
    week_number: int

    @property
    def token(self) -> str:
        return format_week_token(self.week_year, self.week_number)

    def dates(self) -> List[str]:
        return week_dates(self.week_start_date)


def _today(today: Optional[date]) -> date:
    return today or date.today()


def parse_date(value: str) -> date:
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        raise InvalidWeekToken(f"Invalid date: {value!r}")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise InvalidWeekToken(f"Invalid date: {value!r}") from exc


def week_info(day: date | str) -> Tuple[int, int]:
    """ISO-8601 (year, week) of ``day`` via the nearest-Thursday rule."""
    if isinstance(day, str):
        day = parse_date(day)
    day_of_week = day.isoweekday()  # Monday=1, Sunday=7
    thursday = day + timedelta(days=4 - day_of_week)
    year_start = date(thursday.year, 1, 1)
    days_since = (thursday - year_start).days
    return thursday.year, math.ceil((days_since + 1) / 7)


def monday_of_date(day: date) -> date:
    return day - timedelta(days=day.isoweekday() - 1)


def weeks_in_year(year: int) -> int:
    # Dec 28 always falls in the last ISO week of its year.
    return week_info(date(year, 12, 28))[1]


def monday_of(year: int, week: int) -> date:
    """Monday of ISO ``week`` in ``year``; Jan 4 is always in week 1."""
    if year < 1 or year > 9999:
        raise InvalidWeekToken(f"Invalid week year: {year}")
    if week < 1 or week > weeks_in_year(year):
        raise InvalidWeekToken(f"Invalid week number: {year}-W{week:02d}")
    jan4 = date(year, 1, 4)
    first_monday = monday_of_date(jan4)
    return first_monday + timedelta(days=(week - 1) * 7)


def format_week_token(year: int, week: int) -> str:
    return f"{year}-W{week:02d}"


def get_this_monday(today: Optional[date] = None) -> str:
    return monday_of_date(_today(today)).isoformat()


def get_next_monday(today: Optional[date] = None) -> str:
    return (monday_of_date(_today(today)) + timedelta(days=7)).isoformat()


def week_dates(monday: date | str) -> List[str]:
    start = parse_date(monday) if isinstance(monday, str) else monday
    return [(start + timedelta(days=i)).isoformat() for i in range(7)]


def identity_for_date(day: date | str) -> WeekIdentity:
    if isinstance(day, str):
        day = parse_date(day)
    monday = monday_of_date(day)
    year, week = week_info(monday)
    return WeekIdentity(monday.isoformat(), year, week)


def resolve_week_token(token: str, today: Optional[date] = None) -> WeekIdentity:
    """Resolve ``this`` / ``next`` / ``YYYY-MM-DD`` / ``YYYY-Www``."""
    raw = (token or "").strip()
    if raw == "this":
        return identity_for_date(get_this_monday(today))
    if raw == "next":
        return identity_for_date(get_next_monday(today))

    match = _ISO_WEEK_RE.match(raw)
    if match:
        year, week = int(match.group(1)), int(match.group(2))
        monday = monday_of(year, week)
        return WeekIdentity(monday.isoformat(), year, week)

    if _DATE_RE.match(raw):
        return identity_for_date(parse_date(raw))

    raise InvalidWeekToken()
