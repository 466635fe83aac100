# -*- coding: utf-8 -*-
"""Weekly diet storage helpers (SQLite)."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from ..app_db import db_conn
from ..config import settings
from .models import ComposerMetadata, DietPlanRecord, NutritionStat, ShoppingItem, to_number


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _row_to_plan(row: Dict[str, Any]) -> Dict[str, Any]:
    plan = dict(row)
    plan["is_family"] = bool(plan.get("is_family"))
    return plan


def _row_to_shopping_item(row: Dict[str, Any]) -> Dict[str, Any]:
    item = dict(row)
    raw = item.get("recipes_using")
    try:
        item["recipes_using"] = json.loads(raw) if raw else []
    except Exception:
        item["recipes_using"] = []
    item["is_purchased"] = bool(item.get("is_purchased"))
    return item


# ---- diet_plans (daily meal records) ----


def fetch_meal_records(
    user_id: str,
    dates: Iterable[str],
    *,
    own_only: bool = False,
    min_generation_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    date_list = list(dates)
    if not date_list:
        return []
    sql = f"SELECT * FROM diet_plans WHERE user_id = ? AND plan_date IN ({_placeholders(date_list)})"
    params: List[Any] = [user_id, *date_list]
    if own_only:
        sql += " AND family_member_id IS NULL"
    if min_generation_id is not None:
        # Unstamped rows were written by the composer itself and count as current.
        sql += " AND (generation_id IS NULL OR generation_id >= ?)"
        params.append(min_generation_id)
    sql += " ORDER BY plan_date ASC, meal_type ASC"
    with db_conn(settings.app_db_path) as conn:
        rows = conn.execute(sql, params).fetchall()
    return [dict(r) for r in rows]


def delete_meal_records(user_id: str, dates: Iterable[str]) -> int:
    date_list = list(dates)
    if not date_list:
        return 0
    with db_conn(settings.app_db_path) as conn:
        cur = conn.execute(
            f"DELETE FROM diet_plans WHERE user_id = ? AND plan_date IN ({_placeholders(date_list)})",
            [user_id, *date_list],
        )
        return cur.rowcount


def insert_meal_records(records: Sequence[DietPlanRecord]) -> int:
    """Insert the week's records in one batch; a superseded slot row is replaced."""
    if not records:
        return 0
    now = _iso_now()
    rows = [
        (
            str(uuid4()),
            r.user_id,
            r.plan_date,
            r.meal_type.value,
            r.family_member_id,
            r.recipe_id,
            r.recipe_title,
            r.recipe_description,
            r.nutrition.calories,
            r.nutrition.carbs_g,
            r.nutrition.protein_g,
            r.nutrition.fat_g,
            r.nutrition.sodium_mg,
            json.dumps(r.composition_summary, ensure_ascii=False),
            1 if r.is_unified else 0,
            r.generation_id,
            now,
        )
        for r in records
    ]
    with db_conn(settings.app_db_path) as conn:
        conn.executemany(
            """
            INSERT OR REPLACE INTO diet_plans (
                id, user_id, plan_date, meal_type, family_member_id, recipe_id, recipe_title,
                recipe_description, calories, carbs_g, protein_g, fat_g, sodium_mg,
                composition_summary, is_unified, generation_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
    return len(rows)


# ---- weekly_diet_plans ----


def next_generation_id(user_id: str, week_start_date: str) -> int:
    with db_conn(settings.app_db_path) as conn:
        cur = conn.execute(
            "INSERT INTO plan_generations (user_id, week_start_date, created_at) VALUES (?, ?, ?)",
            (user_id, week_start_date, _iso_now()),
        )
        return int(cur.lastrowid)


def get_weekly_plan(user_id: str, week_year: int, week_number: int) -> Optional[Dict[str, Any]]:
    with db_conn(settings.app_db_path) as conn:
        row = conn.execute(
            """
            SELECT * FROM weekly_diet_plans
            WHERE user_id = ? AND week_year = ? AND week_number = ?
            LIMIT 1
            """,
            (user_id, week_year, week_number),
        ).fetchone()
    return _row_to_plan(dict(row)) if row else None


def delete_weekly_plan(user_id: str, week_year: int, week_number: int) -> int:
    """Delete the plan row; its shopping list and stats cascade with it."""
    with db_conn(settings.app_db_path) as conn:
        cur = conn.execute(
            "DELETE FROM weekly_diet_plans WHERE user_id = ? AND week_year = ? AND week_number = ?",
            (user_id, week_year, week_number),
        )
        return cur.rowcount


def insert_weekly_plan(
    *,
    user_id: str,
    metadata: ComposerMetadata,
    generation_id: Optional[int],
) -> Dict[str, Any]:
    plan_id = str(uuid4())
    now = _iso_now()
    with db_conn(settings.app_db_path) as conn:
        conn.execute(
            """
            INSERT INTO weekly_diet_plans (
                id, user_id, week_start_date, week_year, week_number, is_family,
                total_recipes_count, generation_duration_ms, generation_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                plan_id,
                user_id,
                metadata.week_start_date,
                metadata.week_year,
                metadata.week_number,
                1 if metadata.is_family else 0,
                metadata.total_recipes_count,
                metadata.generation_duration_ms,
                generation_id,
                now,
            ),
        )
        row = conn.execute("SELECT * FROM weekly_diet_plans WHERE id = ?", (plan_id,)).fetchone()
    return _row_to_plan(dict(row))


# ---- weekly_shopping_lists ----


def insert_shopping_items(weekly_plan_id: str, items: Sequence[ShoppingItem]) -> int:
    if not items:
        return 0
    rows = [
        (
            str(uuid4()),
            weekly_plan_id,
            item.ingredient_name,
            item.total_quantity,
            item.unit,
            item.category,
            json.dumps(item.recipes_using, ensure_ascii=False),
            0,
        )
        for item in items
    ]
    with db_conn(settings.app_db_path) as conn:
        conn.executemany(
            """
            INSERT INTO weekly_shopping_lists (
                id, weekly_diet_plan_id, ingredient_name, total_quantity, unit, category,
                recipes_using, is_purchased
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
    return len(rows)


def list_shopping_items(weekly_plan_id: str) -> List[Dict[str, Any]]:
    with db_conn(settings.app_db_path) as conn:
        rows = conn.execute(
            """
            SELECT * FROM weekly_shopping_lists
            WHERE weekly_diet_plan_id = ?
            ORDER BY category ASC, ingredient_name ASC
            """,
            (weekly_plan_id,),
        ).fetchall()
    return [_row_to_shopping_item(dict(r)) for r in rows]


# ---- weekly_nutrition_stats ----


def insert_nutrition_stats(weekly_plan_id: str, stats: Sequence[NutritionStat]) -> int:
    if not stats:
        return 0
    rows = [
        (
            str(uuid4()),
            weekly_plan_id,
            s.day_of_week,
            s.date,
            s.total_calories,
            s.total_carbohydrates,
            s.total_protein,
            s.total_fat,
            s.total_sodium,
            s.meal_count,
        )
        for s in stats
    ]
    with db_conn(settings.app_db_path) as conn:
        conn.executemany(
            """
            INSERT INTO weekly_nutrition_stats (
                id, weekly_diet_plan_id, day_of_week, date, total_calories, total_carbohydrates,
                total_protein, total_fat, total_sodium, meal_count
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
    return len(rows)


def list_nutrition_stats(weekly_plan_id: str) -> List[NutritionStat]:
    with db_conn(settings.app_db_path) as conn:
        rows = conn.execute(
            """
            SELECT * FROM weekly_nutrition_stats
            WHERE weekly_diet_plan_id = ?
            ORDER BY day_of_week ASC
            """,
            (weekly_plan_id,),
        ).fetchall()
    return [
        NutritionStat(
            day_of_week=int(r["day_of_week"]),
            date=r["date"],
            total_calories=to_number(r["total_calories"]),
            total_carbohydrates=to_number(r["total_carbohydrates"]),
            total_protein=to_number(r["total_protein"]),
            total_fat=to_number(r["total_fat"]),
            total_sodium=to_number(r["total_sodium"]),
            meal_count=int(r["meal_count"] or 0),
        )
        for r in rows
    ]


# ---- recipe catalog ----


def lookup_recipe_calories(titles: Iterable[str]) -> Dict[str, float]:
    """Exact-title calorie lookup for all ``titles`` in a single query."""
    title_list = sorted({t for t in titles if t})
    if not title_list:
        return {}
    with db_conn(settings.app_db_path) as conn:
        rows = conn.execute(
            f"SELECT title, calories FROM recipes WHERE title IN ({_placeholders(title_list)})",
            title_list,
        ).fetchall()
    return {r["title"]: to_number(r["calories"]) for r in rows}


def get_recipes_by_ids(recipe_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    id_list = sorted({i for i in recipe_ids if i})
    if not id_list:
        return {}
    with db_conn(settings.app_db_path) as conn:
        rows = conn.execute(
            f"SELECT id, title, description, category FROM recipes WHERE id IN ({_placeholders(id_list)})",
            id_list,
        ).fetchall()
    return {r["id"]: dict(r) for r in rows}


def list_recipes(category: Optional[str] = None) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM recipes"
    params: List[Any] = []
    if category:
        sql += " WHERE category = ?"
        params.append(category)
    sql += " ORDER BY title ASC"
    with db_conn(settings.app_db_path) as conn:
        rows = conn.execute(sql, params).fetchall()
    return [dict(r) for r in rows]


def list_recipe_ingredients(recipe_ids: Iterable[str]) -> List[Dict[str, Any]]:
    id_list = sorted({i for i in recipe_ids if i})
    if not id_list:
        return []
    with db_conn(settings.app_db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT recipe_id, ingredient_name, quantity, unit, category
            FROM recipe_ingredients
            WHERE recipe_id IN ({_placeholders(id_list)})
            ORDER BY recipe_id ASC, display_order ASC
            """,
            id_list,
        ).fetchall()
    return [dict(r) for r in rows]
