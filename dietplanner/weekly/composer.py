# -*- coding: utf-8 -*-
"""Composer collaborator: interface, remote client, and output parsing.

The composer may describe each meal slot in one of three shapes. They are
resolved here, once, into tagged slot models; nothing downstream inspects the
raw structure again.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx

from ..config import settings
from ..errors import ComposerFailure
from ..retry import retry_async
from .week import WeekIdentity, identity_for_date
from .models import (
    AlreadyPersistedSlot,
    ComposerMetadata,
    ComposerRequest,
    ComposerResult,
    DailyPlan,
    Dish,
    MEAL_TYPES,
    MealCompositionSlot,
    MealSlot,
    MealType,
    Nutrition,
    NutritionStat,
    ShoppingItem,
    SingleRecipeSlot,
    to_number,
)

logger = logging.getLogger(__name__)


class Composer(Protocol):
    async def compose(self, request: ComposerRequest) -> ComposerResult: ...


def _pick(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _parse_dish(raw: Any) -> Optional[Dish]:
    if not isinstance(raw, Mapping):
        return None
    recipe_id = raw.get("id")
    return Dish(
        id=str(recipe_id) if recipe_id not in (None, "") else None,
        title=str(raw.get("title") or ""),
        description=raw.get("description") if isinstance(raw.get("description"), str) else None,
        nutrition=Nutrition.from_raw(_pick(raw, "nutrition", "totalNutrition", "total_nutrition")),
    )


def _is_persisted_marker(raw: Mapping[str, Any]) -> bool:
    if raw.get("kind") == "persisted":
        return True
    if raw.get("persisted") is True or raw.get("alreadyPersisted") is True:
        return True
    # A stored diet_plans row copied back by the composer.
    return "meal_type" in raw and "plan_date" in raw


def _is_composition(raw: Mapping[str, Any]) -> bool:
    has_total = "totalNutrition" in raw or "total_nutrition" in raw
    return has_total and "sides" in raw


def parse_slot(raw: Any, meal_type: MealType) -> Optional[MealSlot]:
    """Resolve one raw slot into its tagged variant (``None`` for an empty slot)."""
    if not isinstance(raw, Mapping):
        return None
    if _is_persisted_marker(raw):
        return AlreadyPersistedSlot()

    if _is_composition(raw):
        sides = [d for d in (_parse_dish(s) for s in raw.get("sides") or []) if d is not None]
        slot = MealCompositionSlot(
            rice=_parse_dish(raw.get("rice")),
            sides=sides,
            soup=_parse_dish(raw.get("soup")),
            total_nutrition=Nutrition.from_raw(_pick(raw, "totalNutrition", "total_nutrition")),
            summary_items=[
                s for s in (_pick(raw, "compositionSummary", "composition_summary", default=[]) or [])
                if isinstance(s, str) and s
            ],
        )
        if meal_type is not MealType.snack:
            return slot
        # Snacks are always a single recipe.
        dishes = slot.dishes()
        if not dishes:
            return None
        first = dishes[0]
        return SingleRecipeSlot(recipe=first.model_copy(update={"nutrition": slot.total_nutrition}))

    dish = _parse_dish(raw)
    if dish is None:
        return None
    return SingleRecipeSlot(recipe=dish)


def _parse_daily_plan(raw: Any) -> DailyPlan:
    if not isinstance(raw, Mapping):
        return DailyPlan()
    slots = {meal_type.value: parse_slot(raw.get(meal_type.value), meal_type) for meal_type in MEAL_TYPES}
    return DailyPlan(**slots)


def _parse_shopping_item(raw: Any) -> Optional[ShoppingItem]:
    if not isinstance(raw, Mapping):
        return None
    name = _pick(raw, "ingredient_name", "ingredientName", "name")
    if not name:
        return None
    recipes = _pick(raw, "recipes_using", "recipesUsing", default=[]) or []
    return ShoppingItem(
        ingredient_name=str(name),
        total_quantity=to_number(_pick(raw, "total_quantity", "totalQuantity", "quantity")),
        unit=str(raw.get("unit") or ""),
        category=str(raw.get("category") or "other"),
        recipes_using=[str(r) for r in recipes if r],
    )


def _parse_stat(raw: Any) -> Optional[NutritionStat]:
    if not isinstance(raw, Mapping):
        return None
    day_of_week = int(to_number(_pick(raw, "day_of_week", "dayOfWeek")))
    if day_of_week == 0:
        day_of_week = 7  # Sunday=0 convention
    return NutritionStat(
        day_of_week=day_of_week,
        date=str(raw.get("date") or ""),
        total_calories=to_number(_pick(raw, "total_calories", "totalCalories")),
        total_carbohydrates=to_number(_pick(raw, "total_carbohydrates", "totalCarbohydrates")),
        total_protein=to_number(_pick(raw, "total_protein", "totalProtein")),
        total_fat=to_number(_pick(raw, "total_fat", "totalFat")),
        total_sodium=to_number(_pick(raw, "total_sodium", "totalSodium")),
        meal_count=int(to_number(_pick(raw, "meal_count", "mealCount"))),
    )


def parse_composer_result(raw: Mapping[str, Any], week: Optional[WeekIdentity] = None) -> ComposerResult:
    """Validate a composer payload (camelCase or snake_case keys).

    Week fields missing from the metadata fall back to ``week``.
    """
    if not isinstance(raw, Mapping):
        raise ComposerFailure("Composer returned an invalid payload")
    meta = _pick(raw, "metadata", default={}) or {}
    try:
        metadata = ComposerMetadata(
            week_start_date=str(_pick(meta, "week_start_date", "weekStartDate", default=week and week.week_start_date)),
            week_year=int(_pick(meta, "week_year", "weekYear", default=week and week.week_year)),
            week_number=int(_pick(meta, "week_number", "weekNumber", default=week and week.week_number)),
            is_family=bool(_pick(meta, "is_family", "isFamily", default=False)),
            total_recipes_count=int(to_number(_pick(meta, "total_recipes_count", "totalRecipesCount"))),
            generation_duration_ms=int(to_number(_pick(meta, "generation_duration_ms", "generationDurationMs"))),
        )
    except (TypeError, ValueError) as exc:
        raise ComposerFailure("Composer returned invalid metadata", details=str(exc)) from exc

    daily_raw = _pick(raw, "dailyPlans", "daily_plans", default={}) or {}
    daily_plans: Dict[str, DailyPlan] = {
        str(day): _parse_daily_plan(plan) for day, plan in daily_raw.items()
    }
    shopping: List[ShoppingItem] = [
        i for i in (_parse_shopping_item(r) for r in _pick(raw, "shoppingList", "shopping_list", default=[]) or [])
        if i is not None
    ]
    try:
        stats: List[NutritionStat] = [
            s for s in (_parse_stat(r) for r in _pick(raw, "nutritionStats", "nutrition_stats", default=[]) or [])
            if s is not None
        ]
    except ValueError as exc:
        raise ComposerFailure("Composer returned invalid nutrition stats", details=str(exc)) from exc

    return ComposerResult(
        metadata=metadata,
        daily_plans=daily_plans,
        shopping_list=shopping,
        nutrition_stats=stats,
        daily_plans_persisted=bool(_pick(raw, "dailyPlansPersisted", "daily_plans_persisted", default=False)),
    )


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))


class RemoteComposer:
    """POSTs the composer request as JSON and parses the reply."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 15.0,
        attempts: int = 3,
        base_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.attempts = attempts
        self.base_delay = base_delay
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def compose(self, request: ComposerRequest) -> ComposerResult:
        url = self.base_url if self.base_url.endswith("/compose") else f"{self.base_url}/compose"
        payload = request.to_payload()
        logger.info("requesting composition for week %s from %s", request.week_start_date, url)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport, follow_redirects=True) as client:

            async def _call() -> Any:
                resp = await client.post(url, json=payload, headers=self._headers())
                resp.raise_for_status()
                return resp.json()

            try:
                data = await retry_async(
                    _call,
                    attempts=self.attempts,
                    base_delay=self.base_delay,
                    retry_on=(httpx.HTTPError,),
                    should_retry=_is_retryable,
                    label="composer request",
                )
            except httpx.HTTPStatusError as exc:
                raise ComposerFailure(
                    f"Composer API error: {exc.response.status_code}",
                    details=exc.response.text[:500],
                ) from exc
            except httpx.HTTPError as exc:
                raise ComposerFailure(f"Composer API unreachable: {exc}") from exc
            except ValueError as exc:
                raise ComposerFailure("Composer returned non-JSON response", details=str(exc)) from exc

        return parse_composer_result(data, week=identity_for_date(request.week_start_date))


def get_composer() -> Composer:
    if settings.composer_url:
        return RemoteComposer(
            settings.composer_url,
            api_key=settings.composer_api_key,
            timeout=settings.composer_timeout,
            attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
        )
    from .catalog_composer import CatalogComposer

    return CatalogComposer()
