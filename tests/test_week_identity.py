# -*- coding: utf-8 -*-

from __future__ import annotations

import unittest
from datetime import date, timedelta

from dietplanner.errors import InvalidWeekToken
from dietplanner.weekly.week import (
    format_week_token,
    get_next_monday,
    get_this_monday,
    identity_for_date,
    monday_of,
    resolve_week_token,
    week_dates,
    week_info,
    weeks_in_year,
)


class TestWeekInfo(unittest.TestCase):
    def test_matches_isocalendar_across_year_boundaries(self) -> None:
        day = date(2019, 12, 20)
        while day <= date(2027, 1, 10):
            iso = day.isocalendar()
            self.assertEqual(week_info(day), (iso[0], iso[1]), day.isoformat())
            day += timedelta(days=1)

    def test_known_boundaries(self) -> None:
        # 2024-12-30 (Monday) belongs to 2025-W01; 2021-01-03 (Sunday) to 2020-W53.
        self.assertEqual(week_info(date(2024, 12, 30)), (2025, 1))
        self.assertEqual(week_info(date(2021, 1, 3)), (2020, 53))
        self.assertEqual(week_info("2025-01-06"), (2025, 2))

    def test_weeks_in_year(self) -> None:
        self.assertEqual(weeks_in_year(2020), 53)
        self.assertEqual(weeks_in_year(2025), 52)
        self.assertEqual(weeks_in_year(2026), 53)


class TestMondayOf(unittest.TestCase):
    def test_round_trip_for_every_week(self) -> None:
        for year in range(2018, 2030):
            for week in range(1, weeks_in_year(year) + 1):
                monday = monday_of(year, week)
                self.assertEqual(monday.isoweekday(), 1)
                self.assertEqual(week_info(monday), (year, week), format_week_token(year, week))

    def test_rejects_out_of_range_week(self) -> None:
        with self.assertRaises(InvalidWeekToken):
            monday_of(2025, 53)
        with self.assertRaises(InvalidWeekToken):
            monday_of(2025, 0)


class TestResolveWeekToken(unittest.TestCase):
    def test_this_and_next(self) -> None:
        today = date(2025, 1, 8)  # Wednesday
        this_week = resolve_week_token("this", today)
        next_week = resolve_week_token("next", today)
        self.assertEqual(this_week.week_start_date, "2025-01-06")
        self.assertEqual((this_week.week_year, this_week.week_number), (2025, 2))
        self.assertEqual(next_week.week_start_date, "2025-01-13")
        self.assertEqual(next_week.week_number, 3)

    def test_sunday_belongs_to_the_week_before(self) -> None:
        self.assertEqual(get_this_monday(date(2025, 1, 12)), "2025-01-06")
        self.assertEqual(get_next_monday(date(2025, 1, 12)), "2025-01-13")

    def test_iso_week_token(self) -> None:
        week = resolve_week_token("2025-W01")
        self.assertEqual(week.week_start_date, "2024-12-30")
        self.assertEqual(week.token, "2025-W01")
        self.assertEqual(resolve_week_token("2025-W1").token, "2025-W01")

    def test_date_token_is_normalized_to_monday(self) -> None:
        week = resolve_week_token("2025-01-09")
        self.assertEqual(week.week_start_date, "2025-01-06")
        self.assertEqual(week.dates(), week_dates("2025-01-06"))
        self.assertEqual(week.dates()[-1], "2025-01-12")

    def test_invalid_tokens(self) -> None:
        for token in ("", "last", "2025-W54", "2025-13-01", "2025-02-30", "25-W01", "2025W01"):
            with self.subTest(token=token):
                with self.assertRaises(InvalidWeekToken):
                    resolve_week_token(token)

    def test_this_week_matches_today_iso_week(self) -> None:
        iso = date.today().isocalendar()
        self.assertEqual(week_info(get_this_monday()), (iso[0], iso[1]))
        week = identity_for_date(date.today())
        self.assertEqual((week.week_year, week.week_number), (iso[0], iso[1]))


if __name__ == "__main__":
    unittest.main()
