"""Shared utility functions."""
from datetime import datetime, timezone


def mask_email(email: str) -> str:
    """Mask email for safe logging: j***@example.com"""
    if "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    if not local:
        return f"***@{domain}"
    return f"{local[0]}***@{domain}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: datetime | str) -> datetime:
    """Accept PostgREST ISO strings or datetimes; naive values are treated as UTC."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value
