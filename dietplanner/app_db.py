# -*- coding: utf-8 -*-
"""App database (users/profiles/recipes/weekly plans) — SQLite helpers."""

from __future__ import annotations

import asyncio
import contextvars
import functools
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

T = TypeVar("T")


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False, timeout=5.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def init_app_db(db_path: Path) -> None:
    conn = connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                external_id TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS user_health_profiles (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL UNIQUE,
                payload_json TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS family_members (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                payload_json TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS recipes (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT,
                category TEXT NOT NULL,
                calories REAL,
                carbs_g REAL,
                protein_g REAL,
                fat_g REAL,
                sodium_mg REAL
            );
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_recipes_title ON recipes(title);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_recipes_category ON recipes(category);")
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS recipe_ingredients (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                recipe_id TEXT NOT NULL,
                ingredient_name TEXT NOT NULL,
                quantity REAL NOT NULL DEFAULT 0,
                unit TEXT NOT NULL DEFAULT '',
                category TEXT NOT NULL DEFAULT 'other',
                display_order INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY(recipe_id) REFERENCES recipes(id) ON DELETE CASCADE
            );
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_recipe_ingredients_recipe ON recipe_ingredients(recipe_id, display_order);"
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS plan_generations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                week_start_date TEXT NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS weekly_diet_plans (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                week_start_date TEXT NOT NULL,
                week_year INTEGER NOT NULL,
                week_number INTEGER NOT NULL,
                is_family INTEGER NOT NULL DEFAULT 0,
                total_recipes_count INTEGER NOT NULL DEFAULT 0,
                generation_duration_ms INTEGER NOT NULL DEFAULT 0,
                generation_id INTEGER,
                created_at TEXT NOT NULL,
                UNIQUE(user_id, week_year, week_number),
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS diet_plans (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                plan_date TEXT NOT NULL,
                meal_type TEXT NOT NULL CHECK (meal_type IN ('breakfast', 'lunch', 'dinner', 'snack')),
                family_member_id TEXT,
                recipe_id TEXT,
                recipe_title TEXT NOT NULL,
                recipe_description TEXT,
                calories REAL NOT NULL DEFAULT 0,
                carbs_g REAL NOT NULL DEFAULT 0,
                protein_g REAL NOT NULL DEFAULT 0,
                fat_g REAL NOT NULL DEFAULT 0,
                sodium_mg REAL NOT NULL DEFAULT 0,
                composition_summary TEXT,
                is_unified INTEGER NOT NULL DEFAULT 0,
                generation_id INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );
            """
        )
        cur.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_diet_plans_slot
            ON diet_plans(user_id, plan_date, meal_type, COALESCE(family_member_id, ''));
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS weekly_shopping_lists (
                id TEXT PRIMARY KEY,
                weekly_diet_plan_id TEXT NOT NULL,
                ingredient_name TEXT NOT NULL,
                total_quantity REAL NOT NULL DEFAULT 0,
                unit TEXT NOT NULL DEFAULT '',
                category TEXT NOT NULL DEFAULT 'other',
                recipes_using TEXT NOT NULL DEFAULT '[]',
                is_purchased INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY(weekly_diet_plan_id) REFERENCES weekly_diet_plans(id) ON DELETE CASCADE
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS weekly_nutrition_stats (
                id TEXT PRIMARY KEY,
                weekly_diet_plan_id TEXT NOT NULL,
                day_of_week INTEGER NOT NULL CHECK (day_of_week BETWEEN 1 AND 7),
                date TEXT NOT NULL,
                total_calories REAL NOT NULL DEFAULT 0,
                total_carbohydrates REAL NOT NULL DEFAULT 0,
                total_protein REAL NOT NULL DEFAULT 0,
                total_fat REAL NOT NULL DEFAULT 0,
                total_sodium REAL NOT NULL DEFAULT 0,
                meal_count INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY(weekly_diet_plan_id) REFERENCES weekly_diet_plans(id) ON DELETE CASCADE
            );
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_weekly_nutrition_stats_plan ON weekly_nutrition_stats(weekly_diet_plan_id, day_of_week);"
        )
        conn.commit()
    finally:
        conn.close()


@contextmanager
def db_conn(db_path: Path) -> Iterator[sqlite3.Connection]:
    conn = connect(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


async def run_blocking(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking (sqlite) call on the default executor.

    The caller's context is copied so the request id still reaches the logs.
    """
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    return await loop.run_in_executor(None, functools.partial(ctx.run, fn, *args, **kwargs))
