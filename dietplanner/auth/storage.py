# -*- coding: utf-8 -*-
"""Auth — user rows keyed by the external identity."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from ..app_db import db_conn
from ..config import settings
from ..errors import UserCreateFailed, UserLookupFailed

logger = logging.getLogger(__name__)

DEFAULT_USER_NAME = "User"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def get_user_by_external_id(external_id: str) -> Optional[Dict[str, Any]]:
    try:
        with db_conn(settings.app_db_path) as conn:
            row = conn.execute("SELECT * FROM users WHERE external_id = ?", (external_id,)).fetchone()
    except Exception as exc:
        raise UserLookupFailed(details=str(exc)) from exc
    return dict(row) if row else None


def create_user(*, external_id: str, name: str | None = None) -> Dict[str, Any]:
    user_id = str(uuid4())
    now = _utc_now()
    display_name = (name or "").strip() or DEFAULT_USER_NAME
    try:
        with db_conn(settings.app_db_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO users (id, external_id, name, created_at) VALUES (?, ?, ?, ?)",
                (user_id, external_id, display_name, now),
            )
            row = conn.execute("SELECT * FROM users WHERE external_id = ?", (external_id,)).fetchone()
    except Exception as exc:
        raise UserCreateFailed(details=str(exc)) from exc
    if not row:
        raise UserCreateFailed(details=f"user row missing after insert: {external_id}")
    return dict(row)


def ensure_user(*, external_id: str, name: str | None = None) -> Dict[str, Any]:
    """Return the user row for ``external_id``, creating it on first use."""
    user = get_user_by_external_id(external_id)
    if user:
        return user
    logger.info("user %s not found; creating backing record", external_id)
    return create_user(external_id=external_id, name=name)
