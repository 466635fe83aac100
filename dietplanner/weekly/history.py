# -*- coding: utf-8 -*-
"""Diversity exclusions from the meals currently stored for a week."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from . import storage
from .models import ExclusionSet, MealType, parse_composition_summary, summary_titles

logger = logging.getLogger(__name__)

# composition_summary key -> ExclusionSet bucket
_SUMMARY_BUCKETS = (("rice", "rice"), ("sides", "side"), ("soup", "soup"))


def extract_exclusions(records: Iterable[Dict[str, Any]]) -> ExclusionSet:
    """Union the rice/side/soup titles and snack titles found in ``records``.

    A record whose summary cannot be parsed is logged and skipped; it never
    aborts the scan.
    """
    exclusions = ExclusionSet()
    for record in records:
        raw = record.get("composition_summary")
        if raw:
            try:
                summary = parse_composition_summary(raw)
            except ValueError as exc:
                logger.warning(
                    "skipping unparsable composition_summary (date=%s meal=%s): %s",
                    record.get("plan_date"),
                    record.get("meal_type"),
                    exc,
                )
                summary = {}
            for key, bucket in _SUMMARY_BUCKETS:
                getattr(exclusions, bucket).update(summary_titles(summary, key))

        title = record.get("recipe_title")
        if record.get("meal_type") == MealType.snack.value and isinstance(title, str) and title.strip():
            exclusions.snack.add(title)
    return exclusions


def scan_week_history(user_id: str, dates: List[str]) -> ExclusionSet:
    """Read every stored meal for ``dates`` (any member) and derive exclusions.

    Must run before the week is cleared for regeneration.
    """
    records = storage.fetch_meal_records(user_id, dates)
    exclusions = extract_exclusions(records)
    logger.info(
        "history scan: %d records -> rice=%d side=%d soup=%d snack=%d",
        len(records),
        len(exclusions.rice),
        len(exclusions.side),
        len(exclusions.soup),
        len(exclusions.snack),
    )
    return exclusions
