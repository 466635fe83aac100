# -*- coding: utf-8 -*-
"""Daily nutrition stats: persisted at generation, repaired on read.

Stored stats are trusted only when all seven days are present and none looks
implausibly low. Otherwise they are rebuilt from the week's meal records,
topping up suspiciously low meals from the recipe catalog. The rebuilt view
is returned to the caller and never written back.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..config import settings
from ..errors import RecipeLookupFailure, SecondaryPersistenceFailure
from ..retry import retry_sync
from . import storage
from .models import Nutrition, NutritionStat, parse_composition_summary, summary_titles, to_number

logger = logging.getLogger(__name__)

DAILY_ANOMALY_KCAL = 1000
MEAL_ANOMALY_KCAL = 200

_SUMMARY_KEYS = ("items", "rice", "sides", "soup")

CalorieLookup = Callable[[Iterable[str]], Dict[str, float]]


@dataclass
class ReconcileResult:
    stats: List[NutritionStat]
    reconciled: bool = False
    # record id -> corrected calories
    corrected: Dict[str, float] = field(default_factory=dict)


def persist_generated_stats(weekly_plan_id: str, stats: Sequence[NutritionStat]) -> int:
    """Store the composer's rows verbatim (one per day_of_week)."""
    if len(stats) != 7:
        logger.warning("composer returned %d nutrition stat rows (expected 7)", len(stats))
    try:
        return storage.insert_nutrition_stats(weekly_plan_id, stats)
    except Exception as exc:
        logger.error("failed to save nutrition stats for plan %s: %s", weekly_plan_id, exc)
        raise SecondaryPersistenceFailure("Failed to save nutrition stats", details=str(exc)) from exc


def stats_usable(stored: Sequence[NutritionStat]) -> bool:
    if len(stored) != 7:
        return False
    return all(s.total_calories >= DAILY_ANOMALY_KCAL for s in stored)


def _meal_titles(record: Mapping[str, Any]) -> List[str]:
    """Distinct item titles of a meal, in order; empty if the summary is unusable."""
    raw = record.get("composition_summary")
    if not raw:
        return []
    try:
        summary = parse_composition_summary(raw)
    except ValueError as exc:
        logger.warning(
            "cannot parse composition_summary for %s %s: %s",
            record.get("plan_date"),
            record.get("meal_type"),
            exc,
        )
        return []
    return list(dict.fromkeys(summary_titles(summary, *_SUMMARY_KEYS)))


def _lookup_calories(titles: Iterable[str]) -> Dict[str, float]:
    title_list = list(titles)
    return retry_sync(
        lambda: storage.lookup_recipe_calories(title_list),
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        retry_on=(sqlite3.OperationalError,),
        label="recipe calorie lookup",
    )


def _safe_lookup(lookup: CalorieLookup, titles: Iterable[str]) -> Dict[str, float]:
    try:
        return lookup(titles)
    except Exception as exc:
        failure = RecipeLookupFailure(details=str(exc))
        logger.warning("%s: %s; meals keep their stored calories", failure.error, exc)
        return {}


def reconcile_stats(
    records: Sequence[Mapping[str, Any]],
    dates: Sequence[str],
    stored: Sequence[NutritionStat],
    *,
    lookup: Optional[CalorieLookup] = None,
) -> ReconcileResult:
    """Return usable daily stats for the week.

    ``records`` are the week's meal rows, ``dates`` the seven dates from
    Monday. The catalog is queried at most once, and only when the stored
    stats are unusable and some meal is below ``MEAL_ANOMALY_KCAL``.
    """
    if stats_usable(stored):
        return ReconcileResult(stats=list(stored))

    if stored:
        logger.info("stored nutrition stats unusable (%d rows); recomputing from meals", len(stored))

    accumulators: Dict[str, NutritionStat] = {
        day: NutritionStat(day_of_week=index + 1, date=day) for index, day in enumerate(dates[:7])
    }

    # Meals whose calories look miscomputed, keyed by position in ``records``.
    suspect: Dict[int, List[str]] = {}
    wanted: set[str] = set()
    for index, record in enumerate(records):
        if to_number(record.get("calories")) >= MEAL_ANOMALY_KCAL:
            continue
        # A title counts once per meal. items repeats the rice/sides/soup titles,
        # so summing every list would double-count them.
        titles = _meal_titles(record)
        if titles:
            suspect[index] = titles
            wanted.update(titles)

    catalog: Dict[str, float] = {}
    if wanted:
        catalog = _safe_lookup(lookup or _lookup_calories, sorted(wanted))

    result = ReconcileResult(stats=[], reconciled=True)
    for index, record in enumerate(records):
        stat = accumulators.get(record.get("plan_date") or "")
        if stat is None:
            logger.warning("meal record outside the week: %s", record.get("plan_date"))
            continue
        nutrition = Nutrition.from_raw(record)
        calories = nutrition.calories
        titles = suspect.get(index)
        if titles:
            recomputed = sum(catalog.get(t, 0.0) for t in titles)
            if recomputed > calories:
                logger.info(
                    "recomputed %s %s calories: %s -> %s",
                    record.get("plan_date"),
                    record.get("meal_type"),
                    calories,
                    recomputed,
                )
                calories = recomputed
                if record.get("id"):
                    result.corrected[str(record["id"])] = recomputed
            elif recomputed == 0:
                logger.warning(
                    "no catalog calories for %s %s (%s)",
                    record.get("plan_date"),
                    record.get("meal_type"),
                    ", ".join(titles),
                )

        stat.total_calories += calories
        stat.total_carbohydrates += nutrition.carbs_g
        stat.total_protein += nutrition.protein_g
        stat.total_fat += nutrition.fat_g
        stat.total_sodium += nutrition.sodium_mg
        stat.meal_count += 1

    result.stats = sorted(accumulators.values(), key=lambda s: s.day_of_week)
    return result
