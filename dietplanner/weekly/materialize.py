# -*- coding: utf-8 -*-
"""Turn composed meal slots into ``diet_plans`` rows."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from ..errors import SecondaryPersistenceFailure
from . import storage
from .models import (
    MEAL_LABELS,
    MEAL_TYPES,
    AlreadyPersistedSlot,
    ComposerResult,
    DietPlanRecord,
    MealCompositionSlot,
    MealSlot,
    MealType,
    SingleRecipeSlot,
)

logger = logging.getLogger(__name__)

TITLE_SEPARATOR = " · "


def _composition_title(slot: MealCompositionSlot, label: str) -> str:
    items = [s for s in slot.summary_items if s]
    if items:
        return TITLE_SEPARATOR.join(items)
    titles = [d.title for d in slot.dishes() if d.title]
    if titles:
        return TITLE_SEPARATOR.join(titles)
    return f"{label} meal"


def _composition_recipe_id(slot: MealCompositionSlot) -> Optional[str]:
    if slot.rice and slot.rice.id:
        return slot.rice.id
    for side in slot.sides:
        if side.id:
            return side.id
    if slot.soup and slot.soup.id:
        return slot.soup.id
    return None


def _composition_record(
    slot: MealCompositionSlot, *, user_id: str, plan_date: str, meal_type: MealType, generation_id: Optional[int]
) -> DietPlanRecord:
    label = MEAL_LABELS[meal_type]
    rice = [slot.rice.title] if slot.rice and slot.rice.title else []
    sides = [s.title for s in slot.sides if s.title]
    soup = [slot.soup.title] if slot.soup and slot.soup.title else []
    return DietPlanRecord(
        user_id=user_id,
        plan_date=plan_date,
        meal_type=meal_type,
        recipe_id=_composition_recipe_id(slot),
        recipe_title=_composition_title(slot, label),
        recipe_description=f"{label} meal composition",
        nutrition=slot.total_nutrition,
        composition_summary={
            "items": [s for s in slot.summary_items if s] or rice + sides + soup,
            "rice": rice,
            "sides": sides,
            "soup": soup,
        },
        generation_id=generation_id,
    )


def _single_record(
    slot: SingleRecipeSlot, *, user_id: str, plan_date: str, meal_type: MealType, generation_id: Optional[int]
) -> DietPlanRecord:
    recipe = slot.recipe
    title = recipe.title or f"{MEAL_LABELS[meal_type]} meal"
    summary: Dict[str, List[str]] = {"items": [title]}
    if meal_type is MealType.snack:
        summary["snack"] = [title]
    return DietPlanRecord(
        user_id=user_id,
        plan_date=plan_date,
        meal_type=meal_type,
        recipe_id=recipe.id,
        recipe_title=title,
        recipe_description=recipe.description or MEAL_LABELS[meal_type],
        nutrition=recipe.nutrition,
        composition_summary=summary,
        generation_id=generation_id,
    )


def slot_to_record(
    slot: Optional[MealSlot],
    *,
    user_id: str,
    plan_date: str,
    meal_type: MealType,
    generation_id: Optional[int] = None,
) -> Optional[DietPlanRecord]:
    """Build the row for one slot, or ``None`` when there is nothing to write."""
    if slot is None or isinstance(slot, AlreadyPersistedSlot):
        return None
    kwargs = dict(user_id=user_id, plan_date=plan_date, meal_type=meal_type, generation_id=generation_id)
    if isinstance(slot, MealCompositionSlot):
        if not slot.dishes() and not slot.summary_items:
            return None
        return _composition_record(slot, **kwargs)
    return _single_record(slot, **kwargs)


def build_records(
    result: ComposerResult,
    *,
    user_id: str,
    generation_id: Optional[int] = None,
    dates: Optional[Sequence[str]] = None,
) -> List[DietPlanRecord]:
    """Rows for every non-empty slot, ordered by date.

    With ``dates`` given, composed days outside them are logged and dropped.
    """
    if result.daily_plans_persisted:
        return []
    allowed = set(dates) if dates is not None else None
    records: List[DietPlanRecord] = []
    for plan_date in sorted(result.daily_plans):
        if allowed is not None and plan_date not in allowed:
            logger.warning("dropping composed day %s outside the target week", plan_date)
            continue
        daily = result.daily_plans[plan_date]
        for meal_type in MEAL_TYPES:
            record = slot_to_record(
                daily.slot(meal_type),
                user_id=user_id,
                plan_date=plan_date,
                meal_type=meal_type,
                generation_id=generation_id,
            )
            if record is not None:
                record.is_unified = result.metadata.is_family
                records.append(record)
    return records


def materialize_daily_plans(
    result: ComposerResult,
    *,
    user_id: str,
    generation_id: Optional[int] = None,
    dates: Optional[Sequence[str]] = None,
) -> int:
    """Write the composed meals in one batch and return the row count.

    Raises SecondaryPersistenceFailure; the weekly plan row is already stored
    by then, so callers log and report it rather than failing the request.
    """
    if result.daily_plans_persisted:
        logger.info("composer already persisted daily plans; skipping materialization")
        return 0
    records = build_records(result, user_id=user_id, generation_id=generation_id, dates=dates)
    if not records:
        return 0
    try:
        inserted = storage.insert_meal_records(records)
    except Exception as exc:
        logger.error("failed to insert %d daily plan records: %s", len(records), exc)
        raise SecondaryPersistenceFailure("Failed to save daily meal plans", details=str(exc)) from exc
    logger.info("materialized %d daily plan records (generation=%s)", inserted, generation_id)
    return inserted
