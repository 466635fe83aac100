# -*- coding: utf-8 -*-
"""Weekly diet pipelines: generate (scan, clear, compose, persist) and read."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..app_db import run_blocking
from ..auth.storage import ensure_user, get_user_by_external_id
from ..config import settings
from ..errors import (
    ComposerFailure,
    DietPlannerError,
    PrimaryPersistenceFailure,
    ProfileMissing,
    SecondaryPersistenceFailure,
)
from ..profiles.storage import get_health_profile, list_family_members
from ..tracing import timed
from . import storage
from .cache import invalidate_week, weekly_diet_cache
from .composer import Composer, get_composer
from .history import scan_week_history
from .materialize import materialize_daily_plans
from .models import (
    ComposerMetadata,
    ComposerRequest,
    ComposerResult,
    GenerateWeekRequest,
    GenerateWeekResponse,
    WeekNotFoundResponse,
    WeekResponse,
    parse_composition_summary,
    to_number,
)
from .reconcile import persist_generated_stats, reconcile_stats
from .regenerate import clear_week
from .shopping import persist_shopping_list
from .week import WeekIdentity, get_next_monday, get_this_monday, identity_for_date, resolve_week_token

logger = logging.getLogger(__name__)

CACHEABLE_TOKENS = ("this", "next")


def _target_week(body: GenerateWeekRequest, today: Optional[date]) -> WeekIdentity:
    if body.week_start_date:
        return identity_for_date(body.week_start_date)
    return resolve_week_token(body.week_type, today)


def _week_types_for(week: WeekIdentity, today: Optional[date]) -> List[str]:
    types = []
    if week.week_start_date == get_this_monday(today):
        types.append("this")
    if week.week_start_date == get_next_monday(today):
        types.append("next")
    return types


@dataclass
class _PreparedWeek:
    user_id: str
    week: WeekIdentity
    request: ComposerRequest
    generation_id: int


def _invalidate_cached_reads(external_id: str, week: WeekIdentity, body: GenerateWeekRequest, today: Optional[date]) -> None:
    for week_type in sorted({body.week_type, *_week_types_for(week, today)}):
        invalidate_week(external_id, week_type)


def _prepare_week(
    identity: Mapping[str, Any], body: GenerateWeekRequest, today: Optional[date]
) -> _PreparedWeek:
    external_id = identity["external_id"]
    user = ensure_user(external_id=external_id, name=identity.get("name"))
    user_id = user["id"]

    profile = get_health_profile(user_id)
    if not profile:
        raise ProfileMissing()
    family_members = list_family_members(user_id)

    week = _target_week(body, today)
    dates = week.dates()
    logger.info("generating week %s (%s) for user %s", week.token, week.week_start_date, user_id)

    with timed("history scan"):
        exclusions = scan_week_history(user_id, dates)
    with timed("clear week"):
        clear_week(user_id, week)
    # The stored week is gone from here on, even if composing fails.
    _invalidate_cached_reads(external_id, week, body, today)
    generation_id = storage.next_generation_id(user_id, week.week_start_date)

    request = ComposerRequest(
        user_id=user_id,
        week_start_date=week.week_start_date,
        health_profile=profile,
        family_members=family_members,
        avoid_recent_recipes=True,
        diversity_level=settings.diversity_level,
        existing_used_by_category=exclusions,
    )
    return _PreparedWeek(user_id=user_id, week=week, request=request, generation_id=generation_id)


def _persist_week(
    prepared: _PreparedWeek, result: ComposerResult
) -> Tuple[Dict[str, Any], ComposerMetadata, List[str]]:
    week = prepared.week
    user_id = prepared.user_id
    # The plan is keyed by the requested week even if the composer disagrees.
    metadata = result.metadata.model_copy(
        update={
            "week_start_date": week.week_start_date,
            "week_year": week.week_year,
            "week_number": week.week_number,
        }
    )
    try:
        plan = storage.insert_weekly_plan(user_id=user_id, metadata=metadata, generation_id=prepared.generation_id)
    except Exception as exc:
        logger.error("failed to save weekly plan %s for user %s: %s", week.token, user_id, exc)
        raise PrimaryPersistenceFailure(details=str(exc)) from exc

    warnings: List[str] = []
    with timed("materialize"):
        try:
            materialize_daily_plans(
                result, user_id=user_id, generation_id=prepared.generation_id, dates=week.dates()
            )
        except SecondaryPersistenceFailure as exc:
            warnings.append(exc.error)
    try:
        persist_shopping_list(plan["id"], result.shopping_list)
    except SecondaryPersistenceFailure as exc:
        warnings.append(exc.error)
    try:
        persist_generated_stats(plan["id"], result.nutrition_stats)
    except SecondaryPersistenceFailure as exc:
        warnings.append(exc.error)
    return plan, metadata, warnings


async def generate_week(
    identity: Mapping[str, Any],
    body: GenerateWeekRequest,
    *,
    composer: Optional[Composer] = None,
    today: Optional[date] = None,
) -> GenerateWeekResponse:
    """Scan, clear, compose and persist one week.

    The sqlite steps run on the default executor; only the composer call is
    awaited on the event loop.
    """
    started = time.perf_counter()
    prepared = await run_blocking(_prepare_week, identity, body, today)
    week = prepared.week

    with timed("compose"):
        try:
            result = await (composer or get_composer()).compose(prepared.request)
        except DietPlannerError:
            raise
        except Exception as exc:
            logger.exception("composer failed for week %s", week.token)
            raise ComposerFailure(str(exc) or None, details=repr(exc)) from exc

    plan, metadata, warnings = await run_blocking(_persist_week, prepared, result)
    _invalidate_cached_reads(identity["external_id"], week, body, today)

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.info(
        "generated week %s: plan=%s generation=%s warnings=%d in %dms",
        week.token,
        plan["id"],
        prepared.generation_id,
        len(warnings),
        elapsed_ms,
    )
    return GenerateWeekResponse(
        weekly_plan_id=plan["id"],
        week_start_date=week.week_start_date,
        week_year=week.week_year,
        week_number=week.week_number,
        total_recipes=metadata.total_recipes_count,
        generation_time_ms=elapsed_ms,
        warnings=warnings,
    )


def _present_record(
    record: Dict[str, Any], recipes: Mapping[str, Dict[str, Any]], corrected: Mapping[str, float]
) -> Dict[str, Any]:
    out = dict(record)
    out["is_unified"] = bool(out.get("is_unified"))
    try:
        out["composition_summary"] = parse_composition_summary(out.get("composition_summary"))
    except ValueError:
        out["composition_summary"] = None
    calories = corrected.get(str(out.get("id")))
    if calories is not None:
        out["calories"] = calories
    else:
        out["calories"] = to_number(out.get("calories"))
    recipe = recipes.get(out.get("recipe_id") or "")
    out["recipe"] = recipe
    if recipe and recipe.get("title"):
        out["recipe_title"] = recipe["title"]
    return out


def _not_found(week: WeekIdentity) -> WeekNotFoundResponse:
    return WeekNotFoundResponse(
        week_start_date=week.week_start_date,
        week_year=week.week_year,
        week_number=week.week_number,
    )


def read_week(
    identity: Mapping[str, Any],
    token: str,
    *,
    today: Optional[date] = None,
) -> Union[WeekResponse, WeekNotFoundResponse]:
    week = resolve_week_token(token, today)
    external_id = identity["external_id"]
    cache_key = token.strip()
    if cache_key in CACHEABLE_TOKENS:
        cached = weekly_diet_cache.get(external_id, cache_key)
        if cached is not None and cached.week_start_date == week.week_start_date:
            logger.debug("weekly read cache hit %s/%s", external_id, cache_key)
            return cached

    user = get_user_by_external_id(external_id)
    if not user:
        return _not_found(week)
    user_id = user["id"]
    plan = storage.get_weekly_plan(user_id, week.week_year, week.week_number)
    if not plan:
        return _not_found(week)

    dates = week.dates()
    with timed("read meals"):
        records = storage.fetch_meal_records(
            user_id, dates, own_only=True, min_generation_id=plan.get("generation_id")
        )
    try:
        recipes = storage.get_recipes_by_ids(r.get("recipe_id") for r in records)
    except Exception as exc:
        logger.warning("recipe enrichment failed: %s", exc)
        recipes = {}
    try:
        shopping = storage.list_shopping_items(plan["id"])
    except Exception as exc:
        logger.error("failed to read shopping list for plan %s: %s", plan["id"], exc)
        shopping = []
    try:
        stored_stats = storage.list_nutrition_stats(plan["id"])
    except Exception as exc:
        logger.error("failed to read nutrition stats for plan %s: %s", plan["id"], exc)
        stored_stats = []

    with timed("reconcile stats"):
        reconciled = reconcile_stats(records, dates, stored_stats)

    response = WeekResponse(
        metadata=plan,
        daily_plans=[_present_record(r, recipes, reconciled.corrected) for r in records],
        shopping_list=shopping,
        nutrition_stats=reconciled.stats,
        week_start_date=week.week_start_date,
        week_year=week.week_year,
        week_number=week.week_number,
        stats_reconciled=reconciled.reconciled,
    )
    if cache_key in CACHEABLE_TOKENS:
        weekly_diet_cache.set(external_id, cache_key, response)
    return response
