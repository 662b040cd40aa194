"""Input sanitization for public form submissions."""
import re

MAX_INPUT_LENGTH = 10000

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")
_EMAIL_UNSAFE = re.compile(r"[^\w.@+-]")


def sanitize_html(value: str) -> str:
    if not value:
        return ""
    return (
        value.replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#x27;")
        .replace("/", "&#x2F;")
    )


def sanitize_text(value: str) -> str:
    if not value:
        return ""
    value = _CONTROL_CHARS.sub("", value)
    return _WHITESPACE.sub(" ", value).strip()


def sanitize_email(email: str) -> str:
    if not email:
        return ""
    return _EMAIL_UNSAFE.sub("", email.lower().strip())


def sanitize_input(value: str | None) -> str:
    if not value:
        return ""
    return sanitize_text(value)[:MAX_INPUT_LENGTH]


def sanitize_filter_value(value: str) -> str:
    """Strip characters with meaning in PostgREST filter expressions."""
    return re.sub(r"[(),.*\\:]", "", value)
