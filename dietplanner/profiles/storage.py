# -*- coding: utf-8 -*-
"""Health profile / family member reads (CRUD lives elsewhere)."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..app_db import db_conn
from ..config import settings


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _load_payload(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except Exception:
        return {}
    return payload if isinstance(payload, dict) else {}


def get_health_profile(user_id: str) -> Optional[Dict[str, Any]]:
    with db_conn(settings.app_db_path) as conn:
        row = conn.execute(
            "SELECT * FROM user_health_profiles WHERE user_id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
    if not row:
        return None
    profile = _load_payload(row["payload_json"])
    profile["user_id"] = user_id
    return profile


def save_health_profile(user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    now = _utc_now()
    with db_conn(settings.app_db_path) as conn:
        conn.execute(
            """
            INSERT INTO user_health_profiles (id, user_id, payload_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET payload_json = excluded.payload_json, updated_at = excluded.updated_at
            """,
            (str(uuid4()), user_id, json.dumps(payload, ensure_ascii=False), now, now),
        )
    return {**payload, "user_id": user_id}


def list_family_members(user_id: str) -> List[Dict[str, Any]]:
    with db_conn(settings.app_db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM family_members WHERE user_id = ? ORDER BY created_at ASC",
            (user_id,),
        ).fetchall()
    members: List[Dict[str, Any]] = []
    for row in rows:
        member = _load_payload(row["payload_json"])
        member.update({"id": row["id"], "name": row["name"]})
        members.append(member)
    return members
