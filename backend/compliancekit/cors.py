"""
CORS origin policy for the embeddable widget and public forms.

Widget routes must answer cross-origin requests from customer websites, so
the Starlette CORSMiddleware (dashboard origin only) does not cover them.
"""
from urllib.parse import urlsplit

from compliancekit.config import settings

LOCAL_HOSTS = {"localhost", "127.0.0.1"}
DEFAULT_PORTS = {"http": 80, "https": 443}


def _origin_of(url: str) -> str | None:
    """Serialize like a browser Origin header: no userinfo, no default port."""
    parts = urlsplit(url)
    if parts.scheme not in DEFAULT_PORTS or not parts.hostname:
        return None
    host = f"[{parts.hostname}]" if ":" in parts.hostname else parts.hostname
    origin = f"{parts.scheme}://{host}"
    port = parts.port
    if port is not None and port != DEFAULT_PORTS[parts.scheme]:
        origin += f":{port}"
    return origin


def is_allowed_origin(origin: str | None, website_url: str | None = None) -> bool:
    if not origin:
        return False

    # Our own app
    if origin == settings.app_url:
        return True

    if website_url:
        try:
            website_origin = _origin_of(website_url)
        except ValueError:
            return False
        if website_origin is None:
            return False
        if origin == website_origin:
            return True
        www_variant = website_origin.replace("://", "://www.", 1)
        bare_variant = website_origin.replace("://www.", "://", 1)
        if origin in (www_variant, bare_variant):
            return True

    if settings.is_development:
        try:
            if urlsplit(origin).hostname in LOCAL_HOSTS:
                return True
        except ValueError:
            return False

    return False


def widget_cors_headers(origin: str | None, website_url: str | None = None) -> dict[str, str]:
    if origin and is_allowed_origin(origin, website_url):
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Authorization",
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Max-Age": "86400",
            "Vary": "Origin",
        }
    return {
        "Access-Control-Allow-Origin": settings.app_url,
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Vary": "Origin",
    }


def api_cors_headers(origin: str | None) -> dict[str, str]:
    if origin and is_allowed_origin(origin):
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Authorization",
            "Access-Control-Allow-Credentials": "true",
        }
    return {
        "Access-Control-Allow-Origin": settings.app_url,
        "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def public_form_cors_headers(origin: str | None, website_url: str | None = None) -> dict[str, str]:
    """DSAR form endpoints share the widget policy."""
    return widget_cors_headers(origin, website_url)
