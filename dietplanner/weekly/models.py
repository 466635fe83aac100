# -*- coding: utf-8 -*-
"""Weekly diet — Pydantic models."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MealType(str, Enum):
    breakfast = "breakfast"
    lunch = "lunch"
    dinner = "dinner"
    snack = "snack"


MEAL_TYPES: List[MealType] = [MealType.breakfast, MealType.lunch, MealType.dinner, MealType.snack]

MEAL_LABELS: Dict[MealType, str] = {
    MealType.breakfast: "Breakfast",
    MealType.lunch: "Lunch",
    MealType.dinner: "Dinner",
    MealType.snack: "Snack",
}

DiversityLevel = Literal["low", "medium", "high"]
WeekType = Literal["this", "next"]

# Accepted spellings per canonical field, in lookup order.
_NUTRITION_KEYS: Dict[str, tuple[str, ...]] = {
    "calories": ("calories", "total_calories", "calories_kcal", "kcal", "energy"),
    "carbs_g": ("carbs_g", "carbohydrates", "carbs", "total_carbohydrates"),
    "protein_g": ("protein_g", "protein", "total_protein"),
    "fat_g": ("fat_g", "fat", "total_fat"),
    "sodium_mg": ("sodium_mg", "sodium", "total_sodium"),
}


def to_number(value: Any) -> float:
    """Coerce a loosely typed nutrition value; anything unusable becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


class Nutrition(BaseModel):
    calories: float = 0.0
    carbs_g: float = 0.0
    protein_g: float = 0.0
    fat_g: float = 0.0
    sodium_mg: float = 0.0

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]]) -> "Nutrition":
        """Build from any of the tolerated key spellings."""
        if isinstance(raw, Nutrition):
            return raw
        if not isinstance(raw, Mapping):
            return cls()
        values: Dict[str, float] = {}
        for field_name, keys in _NUTRITION_KEYS.items():
            values[field_name] = 0.0
            for key in keys:
                if raw.get(key) is not None:
                    values[field_name] = to_number(raw.get(key))
                    break
        values["calories"] = float(round(values["calories"]))
        values["sodium_mg"] = float(round(values["sodium_mg"]))
        return cls(**values)


class Dish(BaseModel):
    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    nutrition: Nutrition = Field(default_factory=Nutrition)


class MealCompositionSlot(BaseModel):
    kind: Literal["composition"] = "composition"
    rice: Optional[Dish] = None
    sides: List[Dish] = Field(default_factory=list)
    soup: Optional[Dish] = None
    total_nutrition: Nutrition = Field(default_factory=Nutrition)
    summary_items: List[str] = Field(default_factory=list)

    def dishes(self) -> List[Dish]:
        out: List[Dish] = []
        if self.rice:
            out.append(self.rice)
        out.extend(self.sides)
        if self.soup:
            out.append(self.soup)
        return out


class SingleRecipeSlot(BaseModel):
    kind: Literal["single"] = "single"
    recipe: Dish

    def dishes(self) -> List[Dish]:
        return [self.recipe]


class AlreadyPersistedSlot(BaseModel):
    kind: Literal["persisted"] = "persisted"

    def dishes(self) -> List[Dish]:
        return []


MealSlot = Annotated[
    Union[MealCompositionSlot, SingleRecipeSlot, AlreadyPersistedSlot],
    Field(discriminator="kind"),
]


class DailyPlan(BaseModel):
    breakfast: Optional[MealSlot] = None
    lunch: Optional[MealSlot] = None
    dinner: Optional[MealSlot] = None
    snack: Optional[MealSlot] = None

    def slot(self, meal_type: MealType) -> Optional[MealSlot]:
        return getattr(self, meal_type.value)


class ShoppingItem(BaseModel):
    ingredient_name: str
    total_quantity: float = 0.0
    unit: str = ""
    category: str = "other"
    recipes_using: List[str] = Field(default_factory=list)


class NutritionStat(BaseModel):
    day_of_week: int = Field(..., ge=1, le=7, description="1=Monday, 7=Sunday")
    date: str = Field(..., description="YYYY-MM-DD")
    total_calories: float = 0.0
    total_carbohydrates: float = 0.0
    total_protein: float = 0.0
    total_fat: float = 0.0
    total_sodium: float = 0.0
    meal_count: int = 0


class ComposerMetadata(BaseModel):
    week_start_date: str
    week_year: int
    week_number: int
    is_family: bool = False
    total_recipes_count: int = 0
    generation_duration_ms: int = 0


class ComposerResult(BaseModel):
    metadata: ComposerMetadata
    daily_plans: Dict[str, DailyPlan] = Field(default_factory=dict)
    shopping_list: List[ShoppingItem] = Field(default_factory=list)
    nutrition_stats: List[NutritionStat] = Field(default_factory=list)
    daily_plans_persisted: bool = False


@dataclass
class ExclusionSet:
    rice: Set[str] = field(default_factory=set)
    side: Set[str] = field(default_factory=set)
    soup: Set[str] = field(default_factory=set)
    snack: Set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.rice or self.side or self.soup or self.snack)

    def to_payload(self) -> Dict[str, List[str]]:
        return {
            "rice": sorted(self.rice),
            "side": sorted(self.side),
            "soup": sorted(self.soup),
            "snack": sorted(self.snack),
        }


@dataclass
class ComposerRequest:
    user_id: str
    week_start_date: str
    health_profile: Dict[str, Any]
    family_members: List[Dict[str, Any]] = field(default_factory=list)
    avoid_recent_recipes: bool = True
    diversity_level: DiversityLevel = "medium"
    existing_used_by_category: ExclusionSet = field(default_factory=ExclusionSet)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "weekStartDate": self.week_start_date,
            "healthProfile": self.health_profile,
            "familyMembers": self.family_members or None,
            "avoidRecentRecipes": self.avoid_recent_recipes,
            "diversityLevel": self.diversity_level,
            "existingUsedByCategory": self.existing_used_by_category.to_payload(),
        }


class DietPlanRecord(BaseModel):
    """One materialized meal row (``diet_plans``)."""

    user_id: str
    plan_date: str
    meal_type: MealType
    family_member_id: Optional[str] = None
    recipe_id: Optional[str] = None
    recipe_title: str
    recipe_description: str = ""
    nutrition: Nutrition = Field(default_factory=Nutrition)
    composition_summary: Dict[str, List[str]] = Field(default_factory=dict)
    is_unified: bool = False
    generation_id: Optional[int] = None


# ---- HTTP payloads ----


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateWeekRequest(_CamelModel):
    week_start_date: Optional[str] = Field(None, description="YYYY-MM-DD (Monday)")
    week_type: WeekType = "this"


class GenerateWeekResponse(_CamelModel):
    success: bool = True
    weekly_plan_id: str
    week_start_date: str
    week_year: int
    week_number: int
    total_recipes: int
    generation_time_ms: int
    warnings: List[str] = Field(default_factory=list)


class WeekNotFoundResponse(_CamelModel):
    exists: Literal[False] = False
    message: str = "Weekly diet plan not found for this week"
    week_start_date: str
    week_year: int
    week_number: int


class WeekResponse(_CamelModel):
    exists: Literal[True] = True
    metadata: Dict[str, Any]
    daily_plans: List[Dict[str, Any]] = Field(default_factory=list)
    shopping_list: List[Dict[str, Any]] = Field(default_factory=list)
    nutrition_stats: List[NutritionStat] = Field(default_factory=list)
    week_start_date: str
    week_year: int
    week_number: int
    stats_reconciled: bool = False


def parse_composition_summary(value: Any) -> Dict[str, Any]:
    """Accept a JSON string or an already-parsed mapping; raise ValueError otherwise."""
    if value is None or value == "":
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (str, bytes)):
        parsed = json.loads(value)
        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ValueError(f"composition summary is not an object: {type(parsed).__name__}")
        return parsed
    raise ValueError(f"unsupported composition summary type: {type(value).__name__}")


def summary_titles(summary: Mapping[str, Any], *keys: str) -> List[str]:
    """Non-empty string titles found under ``keys`` (in order, duplicates kept)."""
    titles: List[str] = []
    for key in keys:
        values = summary.get(key)
        if not isinstance(values, list):
            continue
        for value in values:
            if isinstance(value, str) and value.strip():
                titles.append(value)
    return titles
