# -*- coding: utf-8 -*-
"""Clear a week's stored plan before it is regenerated."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from . import storage
from .week import WeekIdentity

logger = logging.getLogger(__name__)


@dataclass
class ClearReport:
    plans_deleted: int = 0
    records_deleted: int = 0
    errors: List[str] = field(default_factory=list)


def clear_week(user_id: str, week: WeekIdentity) -> ClearReport:
    """Best-effort delete of the plan row and the week's daily records.

    Each delete is attempted independently and a failure is only logged: the
    two tables are not cleared atomically. Call after the history scan and
    before composing.
    """
    report = ClearReport()
    try:
        report.plans_deleted = storage.delete_weekly_plan(user_id, week.week_year, week.week_number)
    except Exception as exc:
        logger.warning("failed to delete weekly plan %s for user %s: %s", week.token, user_id, exc)
        report.errors.append(f"weekly_diet_plans: {exc}")

    try:
        report.records_deleted = storage.delete_meal_records(user_id, week.dates())
    except Exception as exc:
        logger.warning("failed to delete daily records %s for user %s: %s", week.token, user_id, exc)
        report.errors.append(f"diet_plans: {exc}")

    logger.info(
        "cleared week %s: plans=%d records=%d errors=%d",
        week.token,
        report.plans_deleted,
        report.records_deleted,
        len(report.errors),
    )
    return report
