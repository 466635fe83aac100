# -*- coding: utf-8 -*-
"""Weekly shopping list persistence."""

from __future__ import annotations

import logging
from typing import Sequence

from ..errors import SecondaryPersistenceFailure
from . import storage
from .models import ShoppingItem

logger = logging.getLogger(__name__)


def persist_shopping_list(weekly_plan_id: str, items: Sequence[ShoppingItem]) -> int:
    # Items arrive pre-aggregated per ingredient; stored as-is.
    try:
        inserted = storage.insert_shopping_items(weekly_plan_id, items)
    except Exception as exc:
        logger.error("failed to save shopping list for plan %s: %s", weekly_plan_id, exc)
        raise SecondaryPersistenceFailure("Failed to save shopping list", details=str(exc)) from exc
    logger.info("saved %d shopping list items for plan %s", inserted, weekly_plan_id)
    return inserted
