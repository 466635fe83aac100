# -*- coding: utf-8 -*-

from __future__ import annotations

import unittest

from dietplanner.weekly.materialize import build_records, slot_to_record
from dietplanner.weekly.models import (
    AlreadyPersistedSlot,
    ComposerMetadata,
    ComposerResult,
    DailyPlan,
    Dish,
    MealCompositionSlot,
    MealType,
    Nutrition,
    SingleRecipeSlot,
)
from dietplanner.weekly.week import week_dates


def _dish(title: str, recipe_id: str | None = None, calories: float = 100) -> Dish:
    return Dish(id=recipe_id, title=title, nutrition=Nutrition(calories=calories))


def _metadata(is_family: bool = False) -> ComposerMetadata:
    return ComposerMetadata(week_start_date="2025-01-06", week_year=2025, week_number=2, is_family=is_family)


class TestSlotToRecord(unittest.TestCase):
    def test_composition_title_summary_and_recipe_id(self) -> None:
        slot = MealCompositionSlot(
            rice=_dish("White rice"),
            sides=[_dish("Spinach"), _dish("Tofu", "side-2"), _dish("Egg roll", "side-3")],
            soup=_dish("Miso soup", "soup-1"),
            total_nutrition=Nutrition(calories=640, carbs_g=80),
        )
        record = slot_to_record(slot, user_id="u1", plan_date="2025-01-06", meal_type=MealType.lunch, generation_id=7)
        self.assertEqual(record.recipe_title, "White rice · Spinach · Tofu · Egg roll · Miso soup")
        # rice has no id, so the first side carrying one wins
        self.assertEqual(record.recipe_id, "side-2")
        self.assertEqual(record.recipe_description, "Lunch meal composition")
        self.assertEqual(record.nutrition.calories, 640)
        self.assertEqual(
            record.composition_summary,
            {
                "items": ["White rice", "Spinach", "Tofu", "Egg roll", "Miso soup"],
                "rice": ["White rice"],
                "sides": ["Spinach", "Tofu", "Egg roll"],
                "soup": ["Miso soup"],
            },
        )
        self.assertEqual(record.generation_id, 7)

    def test_composition_prefers_summary_items_for_title(self) -> None:
        slot = MealCompositionSlot(
            rice=_dish("White rice", "rice-1"),
            sides=[],
            summary_items=["Rice: White rice", "Soup: none"],
        )
        record = slot_to_record(slot, user_id="u1", plan_date="2025-01-06", meal_type=MealType.dinner)
        self.assertEqual(record.recipe_title, "Rice: White rice · Soup: none")
        self.assertEqual(record.recipe_id, "rice-1")
        self.assertEqual(record.composition_summary["items"], ["Rice: White rice", "Soup: none"])

    def test_snack_single_recipe(self) -> None:
        slot = SingleRecipeSlot(recipe=_dish("Apple", "snack-1", 95))
        record = slot_to_record(slot, user_id="u1", plan_date="2025-01-06", meal_type=MealType.snack)
        self.assertEqual(record.composition_summary, {"items": ["Apple"], "snack": ["Apple"]})
        self.assertEqual(record.recipe_id, "snack-1")

    def test_single_recipe_fallback_title(self) -> None:
        slot = SingleRecipeSlot(recipe=Dish(title=""))
        record = slot_to_record(slot, user_id="u1", plan_date="2025-01-06", meal_type=MealType.breakfast)
        self.assertEqual(record.recipe_title, "Breakfast meal")
        self.assertEqual(record.composition_summary, {"items": ["Breakfast meal"]})
        self.assertIsNone(record.recipe_id)

    def test_persisted_and_empty_slots_produce_nothing(self) -> None:
        kwargs = dict(user_id="u1", plan_date="2025-01-06", meal_type=MealType.lunch)
        self.assertIsNone(slot_to_record(AlreadyPersistedSlot(), **kwargs))
        self.assertIsNone(slot_to_record(None, **kwargs))
        self.assertIsNone(slot_to_record(MealCompositionSlot(), **kwargs))


class TestBuildRecords(unittest.TestCase):
    def _result(self, **kwargs) -> ComposerResult:
        daily = DailyPlan(
            breakfast=SingleRecipeSlot(recipe=_dish("Porridge")),
            lunch=AlreadyPersistedSlot(),
            dinner=MealCompositionSlot(rice=_dish("Rice"), sides=[_dish("Kimchi")]),
            snack=SingleRecipeSlot(recipe=_dish("Apple")),
        )
        return ComposerResult(
            metadata=kwargs.pop("metadata", _metadata()),
            daily_plans={"2025-01-07": daily, "2025-01-06": daily},
            **kwargs,
        )

    def test_skips_persisted_slots_and_orders_by_date(self) -> None:
        records = build_records(self._result(), user_id="u1", generation_id=3)
        self.assertEqual(len(records), 6)
        self.assertEqual([r.plan_date for r in records[:3]], ["2025-01-06"] * 3)
        self.assertNotIn(MealType.lunch, {r.meal_type for r in records})
        self.assertTrue(all(r.generation_id == 3 for r in records))

    def test_days_outside_the_week_are_dropped(self) -> None:
        daily = DailyPlan(snack=SingleRecipeSlot(recipe=_dish("Apple")))
        result = ComposerResult(metadata=_metadata(), daily_plans={"2025-01-12": daily, "2025-01-13": daily})
        with self.assertLogs("dietplanner.weekly.materialize", level="WARNING") as logs:
            records = build_records(result, user_id="u1", dates=week_dates("2025-01-06"))
        self.assertEqual([r.plan_date for r in records], ["2025-01-12"])
        self.assertIn("2025-01-13", logs.output[0])

    def test_nothing_when_composer_already_persisted(self) -> None:
        self.assertEqual(build_records(self._result(daily_plans_persisted=True), user_id="u1"), [])

    def test_family_plans_are_unified(self) -> None:
        records = build_records(self._result(metadata=_metadata(is_family=True)), user_id="u1")
        self.assertTrue(all(r.is_unified for r in records))


if __name__ == "__main__":
    unittest.main()
