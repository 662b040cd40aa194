"""Security event logging for monitoring and audit."""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from compliancekit.utils import mask_email

logger = logging.getLogger("compliancekit.security")


class SecurityEventType(str, Enum):
    # Authentication
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGIN_LOCKED = "login_locked"
    LOGOUT = "logout"
    SIGNUP = "signup"
    PASSWORD_CHANGED = "password_changed"
    # Authorization
    UNAUTHORIZED_ACCESS = "unauthorized_access"
    PERMISSION_DENIED = "permission_denied"
    # Rate limiting
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    # Suspicious activity
    INVALID_TOKEN = "invalid_token"
    CSRF_DETECTED = "csrf_detected"
    SQL_INJECTION_ATTEMPT = "sql_injection_attempt"
    XSS_ATTEMPT = "xss_attempt"
    # Data access
    SENSITIVE_DATA_ACCESS = "sensitive_data_access"
    BULK_DATA_EXPORT = "bulk_data_export"
    # Configuration changes
    SECURITY_SETTINGS_CHANGED = "security_settings_changed"
    USER_ROLE_CHANGED = "user_role_changed"
    PROFILE_UPDATED = "profile_updated"


ALERT_TYPES = {
    SecurityEventType.LOGIN_LOCKED,
    SecurityEventType.CSRF_DETECTED,
    SecurityEventType.SQL_INJECTION_ATTEMPT,
    SecurityEventType.XSS_ATTEMPT,
    SecurityEventType.UNAUTHORIZED_ACCESS,
}

SENSITIVE_KEYS = ("password", "token", "secret", "apikey", "creditcard", "ssn")


class SecurityEvent(BaseModel):
    type: SecurityEventType
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    user_id: str | None = None
    email: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    resource: str | None = None
    action: str | None = None
    success: bool
    message: str | None = None
    metadata: dict[str, Any] | None = None


def sanitize_for_log(data: dict[str, Any]) -> dict[str, Any]:
    """Redact credential-like values. Never log passwords, tokens or secrets."""
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        lower_key = key.lower().replace("_", "")
        if any(sensitive in lower_key for sensitive in SENSITIVE_KEYS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_for_log(value)
        else:
            sanitized[key] = value
    return sanitized


def should_alert(event_type: SecurityEventType) -> bool:
    return event_type in ALERT_TYPES


def log_security_event(event_type: SecurityEventType, success: bool, **fields: Any) -> SecurityEvent:
    if fields.get("metadata"):
        fields["metadata"] = sanitize_for_log(fields["metadata"])
    event = SecurityEvent(type=event_type, success=success, **fields)
    payload = event.model_dump_json(exclude_none=True)

    logger.info("[SECURITY] %s", payload)
    if not success and should_alert(event_type):
        logger.error("[SECURITY ALERT] %s", payload)
    return event


def log_auth_event(
    event_type: SecurityEventType,
    email: str,
    ip_address: str,
    user_agent: str | None,
    success: bool,
    metadata: dict[str, Any] | None = None,
) -> SecurityEvent:
    return log_security_event(
        event_type,
        success,
        email=mask_email(email),
        ip_address=ip_address,
        user_agent=user_agent,
        metadata=metadata,
    )


def log_rate_limit_event(ip_address: str, resource: str, user_agent: str | None = None) -> SecurityEvent:
    return log_security_event(
        SecurityEventType.RATE_LIMIT_EXCEEDED,
        False,
        ip_address=ip_address,
        user_agent=user_agent,
        resource=resource,
        message="Rate limit exceeded",
    )


def log_suspicious_activity(
    event_type: SecurityEventType,
    ip_address: str,
    resource: str,
    message: str,
    metadata: dict[str, Any] | None = None,
) -> SecurityEvent:
    return log_security_event(
        event_type,
        False,
        ip_address=ip_address,
        resource=resource,
        message=message,
        metadata=metadata,
    )


def log_data_access(
    user_id: str,
    resource: str,
    action: str,
    ip_address: str | None = None,
    success: bool = True,
) -> SecurityEvent:
    return log_security_event(
        SecurityEventType.SENSITIVE_DATA_ACCESS,
        success,
        user_id=user_id,
        resource=resource,
        action=action,
        ip_address=ip_address,
    )
