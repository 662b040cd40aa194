"""
Data Subject Access Request rules (GDPR Articles 15-22).

Deadline state is derived at read time from created_at / due_date and status;
nothing here touches storage.
"""
import math
from datetime import datetime, timedelta
from typing import Any

from compliancekit.utils import parse_timestamp, utcnow

# Art. 12(3): respond within one month of receipt
DSAR_RESPONSE_DAYS = 30
SECONDS_PER_DAY = 24 * 60 * 60

REQUEST_TYPES = {
    "access": {
        "label": "Right of Access",
        "description": "Request a copy of all personal data held about you",
    },
    "erasure": {
        "label": "Right to Erasure",
        "description": "Request deletion of your personal data",
    },
    "rectification": {
        "label": "Right to Rectification",
        "description": "Request correction of inaccurate personal data",
    },
    "portability": {
        "label": "Data Portability",
        "description": "Request your data in a portable format",
    },
    "restriction": {
        "label": "Restriction of Processing",
        "description": "Request limitation on how your data is processed",
    },
    "objection": {
        "label": "Right to Object",
        "description": "Object to certain types of data processing",
    },
}

STATUSES = {
    "pending": {"label": "Pending", "color": "yellow"},
    "verified": {"label": "Verified", "color": "blue"},
    "in_progress": {"label": "In Progress", "color": "purple"},
    "completed": {"label": "Completed", "color": "green"},
    "rejected": {"label": "Rejected", "color": "red"},
}

PRIORITIES = {
    "low": {"label": "Low", "color": "slate"},
    "normal": {"label": "Normal", "color": "blue"},
    "high": {"label": "High", "color": "orange"},
    "urgent": {"label": "Urgent", "color": "red"},
}

ACTIVITY_ACTIONS = {
    "created", "verified", "status_changed", "assigned", "note_added",
    "response_drafted", "response_sent", "extended", "completed", "rejected",
}

TERMINAL_STATUSES = frozenset({"completed", "rejected"})


def request_type_options() -> list[dict]:
    return [{"value": value, **info} for value, info in REQUEST_TYPES.items()]


def activity(action: str, description: str, **extra: Any) -> dict:
    if action not in ACTIVITY_ACTIONS:
        raise ValueError(f"Unknown DSAR activity: {action}")
    return {"action": action, "description": description, **extra}


def calculate_due_date(created_at: datetime | None = None) -> datetime:
    """Due date is a fixed 30 days after receipt. No business-day adjustment."""
    if created_at is None:
        created_at = utcnow()
    return created_at + timedelta(days=DSAR_RESPONSE_DAYS)


def is_overdue(due_date: datetime | str, status: str, now: datetime | None = None) -> bool:
    if status in TERMINAL_STATUSES:
        return False
    now = now or utcnow()
    return now > parse_timestamp(due_date)


def days_remaining(due_date: datetime | str, now: datetime | None = None) -> int:
    """Whole days until due, rounded up. Negative once overdue."""
    now = now or utcnow()
    diff = (parse_timestamp(due_date) - now).total_seconds()
    return math.ceil(diff / SECONDS_PER_DAY)


def deadline_view(row: dict, now: datetime | None = None) -> dict:
    now = now or utcnow()
    due = row.get("due_date") or calculate_due_date(parse_timestamp(row["created_at"]))
    due = parse_timestamp(due)
    return {
        "due_date": due.isoformat(),
        "is_overdue": is_overdue(due, row.get("status", "pending"), now),
        "days_remaining": days_remaining(due, now),
    }


def with_deadline(row: dict, now: datetime | None = None) -> dict:
    return {**row, **deadline_view(row, now)}


def plan_update(current: dict, changes: dict[str, Any], now: datetime | None = None) -> tuple[dict, list[dict]]:
    """Turn a dashboard edit into (update_data, activities).

    Only keys present in ``changes`` are considered; unchanged status and
    priority produce nothing. Unknown status or priority values raise
    ValueError.
    """
    now = now or utcnow()
    update_data: dict[str, Any] = {}
    activities: list[dict] = []

    status = changes.get("status")
    if status and status not in STATUSES:
        raise ValueError(f"Unknown DSAR status: {status}")
    if status and status != current.get("status"):
        update_data["status"] = status
        activities.append(activity("status_changed", f"Status changed from {current.get('status')} to {status}"))
        if status == "completed":
            update_data["completed_at"] = now.isoformat()
            activities.append(activity("completed", "Request marked as completed"))

    priority = changes.get("priority")
    if priority and priority not in PRIORITIES:
        raise ValueError(f"Unknown DSAR priority: {priority}")
    if priority and priority != current.get("priority"):
        update_data["priority"] = priority

    if "assigned_to" in changes:
        assigned_to = changes["assigned_to"]
        update_data["assigned_to"] = assigned_to or None
        if assigned_to:
            activities.append(activity("assigned", "Request assigned to team member"))

    if "internal_notes" in changes:
        update_data["internal_notes"] = changes["internal_notes"]
        activities.append(activity("note_added", "Internal notes updated"))

    if "response_content" in changes:
        update_data["response_content"] = changes["response_content"]
        activities.append(activity("response_drafted", "Response content drafted"))

    return update_data, activities


def summarize(rows: list[dict], now: datetime | None = None) -> dict:
    """Dashboard metrics. Response time is averaged over rows with completed_at."""
    now = now or utcnow()
    stats: dict[str, Any] = {
        "total": 0,
        "pending": 0,
        "in_progress": 0,
        "completed": 0,
        "rejected": 0,
        "overdue": 0,
        "average_response_time": 0,
        "by_type": {request_type: 0 for request_type in REQUEST_TYPES},
    }
    response_days: list[float] = []
    for row in rows:
        status = row.get("status")
        stats["total"] += 1
        if status in ("pending", "verified"):
            stats["pending"] += 1
        elif status in ("in_progress", "completed", "rejected"):
            stats[status] += 1
        if deadline_view(row, now)["is_overdue"]:
            stats["overdue"] += 1
        if row.get("request_type") in stats["by_type"]:
            stats["by_type"][row["request_type"]] += 1
        if row.get("completed_at") and row.get("created_at"):
            elapsed = parse_timestamp(row["completed_at"]) - parse_timestamp(row["created_at"])
            response_days.append(elapsed.total_seconds() / SECONDS_PER_DAY)

    if response_days:
        # Half-up, not banker's rounding
        stats["average_response_time"] = math.floor(sum(response_days) / len(response_days) + 0.5)
    return stats
