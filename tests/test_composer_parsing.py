# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import unittest

import httpx

from dietplanner.errors import ComposerFailure
from dietplanner.weekly.composer import RemoteComposer, parse_composer_result, parse_slot
from dietplanner.weekly.models import (
    AlreadyPersistedSlot,
    ComposerRequest,
    MealCompositionSlot,
    MealType,
    SingleRecipeSlot,
)


def _composition(prefix: str = "") -> dict:
    return {
        "rice": {"id": "r1", "title": f"{prefix}Brown rice", "nutrition": {"calories": 300, "carbs_g": 60}},
        "sides": [
            {"id": None, "title": "Spinach", "nutrition": {"calories": "45.4", "protein": 3}},
            {"id": "s2", "title": "Tofu", "nutrition": {"kcal": 120, "sodium": 210.6}},
        ],
        "soup": {"id": "p1", "title": "Miso soup", "nutrition": {"calories": 80}},
        "totalNutrition": {"total_calories": 545.4, "carbohydrates": 72, "protein_g": 20, "fat": "x"},
        "compositionSummary": ["Brown rice", "Spinach", "Tofu", "Miso soup"],
    }


def _payload() -> dict:
    return {
        "metadata": {
            "weekStartDate": "2025-01-06",
            "weekYear": 2025,
            "weekNumber": 2,
            "isFamily": False,
            "totalRecipesCount": 12,
            "generationDurationMs": 42,
        },
        "dailyPlans": {
            "2025-01-06": {
                "breakfast": _composition(),
                "lunch": {"id": "x1", "title": "Bibimbap", "nutrition": {"calories": 650}},
                "dinner": {"persisted": True},
                "snack": {"id": "k1", "title": "Apple", "nutrition": {"calories": 95}},
            }
        },
        "shoppingList": [
            {"ingredientName": "Spinach", "totalQuantity": "200", "unit": "g", "category": "vegetable", "recipesUsing": ["Spinach"]},
            {"unit": "g"},
        ],
        "nutritionStats": [
            {"dayOfWeek": i, "date": f"2025-01-{5 + i:02d}", "totalCalories": 1800, "mealCount": 4} for i in range(1, 7)
        ]
        + [{"dayOfWeek": 0, "date": "2025-01-12", "totalCalories": 1700, "mealCount": 4}],
        "dailyPlansPersisted": False,
    }


class TestParseSlot(unittest.TestCase):
    def test_composition_detected_by_total_and_sides(self) -> None:
        slot = parse_slot(_composition(), MealType.lunch)
        self.assertIsInstance(slot, MealCompositionSlot)
        self.assertEqual(slot.kind, "composition")
        self.assertEqual(slot.total_nutrition.calories, 545.0)
        self.assertEqual(slot.total_nutrition.carbs_g, 72.0)
        self.assertEqual(slot.total_nutrition.protein_g, 20.0)
        self.assertEqual(slot.total_nutrition.fat_g, 0.0)
        self.assertEqual(slot.sides[0].nutrition.calories, 45.0)
        self.assertEqual(slot.sides[1].nutrition.sodium_mg, 211.0)
        self.assertIsNone(slot.sides[0].id)

    def test_snack_composition_is_coerced_to_single_recipe(self) -> None:
        slot = parse_slot(_composition(), MealType.snack)
        self.assertIsInstance(slot, SingleRecipeSlot)
        self.assertEqual(slot.recipe.title, "Brown rice")
        self.assertEqual(slot.recipe.nutrition.calories, 545.0)

    def test_persisted_markers(self) -> None:
        self.assertIsInstance(parse_slot({"persisted": True}, MealType.dinner), AlreadyPersistedSlot)
        self.assertIsInstance(parse_slot({"kind": "persisted"}, MealType.dinner), AlreadyPersistedSlot)
        stored_row = {"plan_date": "2025-01-06", "meal_type": "dinner", "recipe_title": "Curry"}
        self.assertIsInstance(parse_slot(stored_row, MealType.dinner), AlreadyPersistedSlot)

    def test_sides_without_total_is_a_single_recipe(self) -> None:
        slot = parse_slot({"title": "Curry", "sides": [], "nutrition": {"calories": 500}}, MealType.dinner)
        self.assertIsInstance(slot, SingleRecipeSlot)

    def test_empty_slot(self) -> None:
        self.assertIsNone(parse_slot(None, MealType.lunch))
        self.assertIsNone(parse_slot("Curry", MealType.lunch))


class TestParseComposerResult(unittest.TestCase):
    def test_full_payload(self) -> None:
        result = parse_composer_result(_payload())
        self.assertEqual(result.metadata.week_number, 2)
        self.assertEqual(result.metadata.total_recipes_count, 12)
        day = result.daily_plans["2025-01-06"]
        self.assertEqual(day.breakfast.kind, "composition")
        self.assertEqual(day.lunch.kind, "single")
        self.assertEqual(day.dinner.kind, "persisted")
        self.assertEqual(day.snack.kind, "single")
        self.assertEqual(len(result.shopping_list), 1)
        self.assertEqual(result.shopping_list[0].total_quantity, 200.0)
        self.assertEqual([s.day_of_week for s in result.nutrition_stats], [1, 2, 3, 4, 5, 6, 7])

    def test_snake_case_payload(self) -> None:
        result = parse_composer_result(
            {
                "metadata": {"week_start_date": "2025-01-06", "week_year": 2025, "week_number": 2, "is_family": True},
                "daily_plans": {},
                "daily_plans_persisted": True,
            }
        )
        self.assertTrue(result.metadata.is_family)
        self.assertTrue(result.daily_plans_persisted)

    def test_invalid_metadata(self) -> None:
        with self.assertRaises(ComposerFailure):
            parse_composer_result({"metadata": {"weekStartDate": "2025-01-06"}})
        with self.assertRaises(ComposerFailure):
            parse_composer_result(["not", "a", "mapping"])


class TestRemoteComposer(unittest.TestCase):
    def _request(self) -> ComposerRequest:
        return ComposerRequest(user_id="u1", week_start_date="2025-01-06", health_profile={"age": 40})

    def test_retries_server_errors_then_succeeds(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json=_payload())

        composer = RemoteComposer(
            "http://composer.test", timeout=1, attempts=3, base_delay=0, transport=httpx.MockTransport(handler)
        )
        result = asyncio.run(composer.compose(self._request()))
        self.assertEqual(len(calls), 3)
        self.assertEqual(str(calls[0].url), "http://composer.test/compose")
        self.assertEqual(result.metadata.week_start_date, "2025-01-06")

    def test_client_errors_are_not_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(422, json={"error": "bad profile"})

        composer = RemoteComposer(
            "http://composer.test", attempts=3, base_delay=0, transport=httpx.MockTransport(handler)
        )
        with self.assertRaises(ComposerFailure) as ctx:
            asyncio.run(composer.compose(self._request()))
        self.assertEqual(len(calls), 1)
        self.assertIn("422", ctx.exception.error)

    def test_transport_errors_exhaust_attempts(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        composer = RemoteComposer(
            "http://composer.test", attempts=2, base_delay=0, transport=httpx.MockTransport(handler)
        )
        with self.assertRaises(ComposerFailure):
            asyncio.run(composer.compose(self._request()))
        self.assertEqual(len(calls), 2)

    def test_missing_week_metadata_falls_back_to_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"metadata": {}, "dailyPlans": {}})

        composer = RemoteComposer("http://composer.test", base_delay=0, transport=httpx.MockTransport(handler))
        result = asyncio.run(composer.compose(self._request()))
        self.assertEqual((result.metadata.week_year, result.metadata.week_number), (2025, 2))


if __name__ == "__main__":
    unittest.main()
