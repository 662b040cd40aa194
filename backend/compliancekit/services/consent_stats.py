"""Aggregate stored banner consents for the dashboard."""
from typing import Any

CONSENT_CATEGORIES = ("analytics", "marketing", "functional")


def summarize_consents(rows: list[dict]) -> dict[str, Any]:
    stats = {"total": 0, "accepted_all": 0, "rejected_all": 0, "partial": 0}
    stats.update({category: 0 for category in CONSENT_CATEGORIES})

    for row in rows:
        preferences = row.get("preferences") or {}
        granted = [category for category in CONSENT_CATEGORIES if preferences.get(category)]
        stats["total"] += 1
        if len(granted) == len(CONSENT_CATEGORIES):
            stats["accepted_all"] += 1
        elif not granted:
            stats["rejected_all"] += 1
        else:
            stats["partial"] += 1
        for category in granted:
            stats[category] += 1
    return stats
