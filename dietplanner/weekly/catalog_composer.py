# -*- coding: utf-8 -*-
"""Local composer: builds a week of meals from the recipe catalog.

Used when no remote composer is configured. Selection is deterministic:
candidates are ranked by how often they were already used (this week and in
the excluded history) and then by title.
"""

from __future__ import annotations

import logging
import time
from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..app_db import run_blocking
from . import storage
from .models import (
    MEAL_TYPES,
    ComposerMetadata,
    ComposerRequest,
    ComposerResult,
    DailyPlan,
    Dish,
    ExclusionSet,
    MealCompositionSlot,
    MealType,
    Nutrition,
    NutritionStat,
    ShoppingItem,
    SingleRecipeSlot,
)
from .week import identity_for_date, week_dates

logger = logging.getLogger(__name__)

MAX_REPEATS = {"high": 1, "medium": 2, "low": 3}

SIDES_PER_MEAL = {
    MealType.breakfast: 2,
    MealType.lunch: 3,
    MealType.dinner: 3,
}


def sum_nutrition(items: Iterable[Nutrition]) -> Nutrition:
    total = Nutrition()
    for n in items:
        total = Nutrition(
            calories=total.calories + n.calories,
            carbs_g=total.carbs_g + n.carbs_g,
            protein_g=total.protein_g + n.protein_g,
            fat_g=total.fat_g + n.fat_g,
            sodium_mg=total.sodium_mg + n.sodium_mg,
        )
    return total


def _allergens(profile: Dict[str, Any], members: Sequence[Dict[str, Any]]) -> List[str]:
    out: List[str] = []
    for source in [profile, *members]:
        values = source.get("allergies") or []
        if isinstance(values, str):
            values = [values]
        out.extend(str(v).strip().lower() for v in values if str(v).strip())
    return out


class _Picker:
    """Tracks weekly usage and picks the least-used allowed recipe."""

    def __init__(self, max_repeats: int, excluded: ExclusionSet) -> None:
        self.max_repeats = max_repeats
        self.excluded = excluded
        self.used: Counter[str] = Counter()

    def _rank(self, bucket: str, recipe: Dict[str, Any]) -> Tuple[int, int, str]:
        title = recipe["title"]
        in_history = 1 if title in getattr(self.excluded, bucket) else 0
        return (self.used[title], in_history, title)

    def pick(
        self,
        bucket: str,
        candidates: Sequence[Dict[str, Any]],
        count: int = 1,
        taken: Optional[set] = None,
    ) -> List[Dict[str, Any]]:
        taken = taken if taken is not None else set()
        pool = [r for r in candidates if r["title"] not in taken]
        allowed = [r for r in pool if self.used[r["title"]] < self.max_repeats]
        # Fall back to repeats rather than leaving the slot empty.
        ranked = sorted(allowed or pool, key=lambda r: self._rank(bucket, r))
        chosen = ranked[:count]
        for recipe in chosen:
            self.used[recipe["title"]] += 1
            taken.add(recipe["title"])
        return chosen


def _dish(row: Dict[str, Any]) -> Dish:
    return Dish(
        id=row.get("id"),
        title=row.get("title") or "",
        description=row.get("description"),
        nutrition=Nutrition.from_raw(row),
    )


class CatalogComposer:
    def __init__(self, *, max_repeats: Optional[Dict[str, int]] = None) -> None:
        self.max_repeats = max_repeats or MAX_REPEATS

    def _load_catalog(self, allergens: Sequence[str]) -> Dict[str, List[Dict[str, Any]]]:
        recipes = storage.list_recipes()
        blocked: set = set()
        if allergens and recipes:
            for ing in storage.list_recipe_ingredients(r["id"] for r in recipes):
                name = str(ing.get("ingredient_name") or "").lower()
                if any(a in name for a in allergens):
                    blocked.add(ing["recipe_id"])
        by_category: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for recipe in recipes:
            if recipe["id"] in blocked:
                continue
            by_category[recipe["category"]].append(recipe)
        if blocked:
            logger.info("catalog composer: %d recipes blocked by allergies", len(blocked))
        return by_category

    def _composition(
        self,
        picker: _Picker,
        catalog: Dict[str, List[Dict[str, Any]]],
        meal_type: MealType,
        day_index: int,
    ) -> Optional[MealCompositionSlot]:
        rice_pool = catalog.get("rice") or []
        rice = rice_pool[(day_index + MEAL_TYPES.index(meal_type)) % len(rice_pool)] if rice_pool else None
        if rice is not None:
            picker.used[rice["title"]] += 1
        sides = picker.pick("side", catalog.get("side") or [], SIDES_PER_MEAL[meal_type], taken=set())
        soups = picker.pick("soup", catalog.get("soup") or [], 1)
        if rice is None and not sides and not soups:
            return None
        dishes = [_dish(r) for r in ([rice] if rice else []) + sides + soups]
        return MealCompositionSlot(
            rice=_dish(rice) if rice else None,
            sides=[_dish(s) for s in sides],
            soup=_dish(soups[0]) if soups else None,
            total_nutrition=sum_nutrition(d.nutrition for d in dishes),
            summary_items=[d.title for d in dishes if d.title],
        )

    def _shopping_list(self, daily_plans: Dict[str, DailyPlan]) -> List[ShoppingItem]:
        uses: Counter[str] = Counter()
        titles: Dict[str, str] = {}
        for daily in daily_plans.values():
            for meal_type in MEAL_TYPES:
                slot = daily.slot(meal_type)
                if slot is None:
                    continue
                for dish in slot.dishes():
                    if dish.id:
                        uses[dish.id] += 1
                        titles[dish.id] = dish.title

        totals: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for ing in storage.list_recipe_ingredients(uses):
            key = (ing["ingredient_name"], ing["unit"] or "")
            entry = totals.setdefault(
                key, {"quantity": 0.0, "category": ing["category"] or "other", "recipes": []}
            )
            entry["quantity"] += float(ing["quantity"] or 0) * uses[ing["recipe_id"]]
            title = titles.get(ing["recipe_id"])
            if title and title not in entry["recipes"]:
                entry["recipes"].append(title)

        items = [
            ShoppingItem(
                ingredient_name=name,
                total_quantity=round(data["quantity"], 2),
                unit=unit,
                category=data["category"],
                recipes_using=data["recipes"],
            )
            for (name, unit), data in totals.items()
        ]
        items.sort(key=lambda i: (i.category, i.ingredient_name))
        return items

    @staticmethod
    def _nutrition_stats(daily_plans: Dict[str, DailyPlan], dates: List[str]) -> List[NutritionStat]:
        stats: List[NutritionStat] = []
        for index, day in enumerate(dates):
            daily = daily_plans.get(day) or DailyPlan()
            totals: List[Nutrition] = []
            for meal_type in MEAL_TYPES:
                slot = daily.slot(meal_type)
                if isinstance(slot, MealCompositionSlot):
                    totals.append(slot.total_nutrition)
                elif isinstance(slot, SingleRecipeSlot):
                    totals.append(slot.recipe.nutrition)
            total = sum_nutrition(totals)
            stats.append(
                NutritionStat(
                    day_of_week=index + 1,
                    date=day,
                    total_calories=total.calories,
                    total_carbohydrates=total.carbs_g,
                    total_protein=total.protein_g,
                    total_fat=total.fat_g,
                    total_sodium=total.sodium_mg,
                    meal_count=len(totals),
                )
            )
        return stats

    async def compose(self, request: ComposerRequest) -> ComposerResult:
        return await run_blocking(self.compose_sync, request)

    def compose_sync(self, request: ComposerRequest) -> ComposerResult:
        started = time.perf_counter()
        week = identity_for_date(request.week_start_date)
        dates = week_dates(week.week_start_date)
        max_repeats = self.max_repeats.get(request.diversity_level, MAX_REPEATS["medium"])
        excluded = request.existing_used_by_category if request.avoid_recent_recipes else ExclusionSet()

        catalog = self._load_catalog(_allergens(request.health_profile, request.family_members))
        picker = _Picker(max_repeats, excluded)

        daily_plans: Dict[str, DailyPlan] = {}
        for day_index, day in enumerate(dates):
            slots: Dict[str, Any] = {}
            for meal_type in (MealType.breakfast, MealType.lunch, MealType.dinner):
                slots[meal_type.value] = self._composition(picker, catalog, meal_type, day_index)
            snack = picker.pick("snack", catalog.get("snack") or [], 1)
            slots[MealType.snack.value] = SingleRecipeSlot(recipe=_dish(snack[0])) if snack else None
            daily_plans[day] = DailyPlan(**slots)

        recipe_ids = {
            d.id
            for daily in daily_plans.values()
            for mt in MEAL_TYPES
            if daily.slot(mt) is not None
            for d in daily.slot(mt).dishes()
            if d.id
        }
        shopping_list = self._shopping_list(daily_plans)
        stats = self._nutrition_stats(daily_plans, dates)
        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "catalog composer: week %s, %d distinct recipes, %d shopping items, %dms",
            week.token,
            len(recipe_ids),
            len(shopping_list),
            duration_ms,
        )
        return ComposerResult(
            metadata=ComposerMetadata(
                week_start_date=week.week_start_date,
                week_year=week.week_year,
                week_number=week.week_number,
                is_family=bool(request.family_members),
                total_recipes_count=len(recipe_ids),
                generation_duration_ms=duration_ms,
            ),
            daily_plans=daily_plans,
            shopping_list=shopping_list,
            nutrition_stats=stats,
            daily_plans_persisted=False,
        )
