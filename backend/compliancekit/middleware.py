"""Security headers and CORS policy middleware."""
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from compliancekit.cors import api_cors_headers, public_form_cors_headers, widget_cors_headers

# Embedded on customer websites; origin is checked against the website's registered URL
PUBLIC_CORS_POLICIES = {
    "/api/widget/": widget_cors_headers,
    "/api/dsar/": public_form_cors_headers,
}


def public_cors_policy(path: str):
    for prefix, policy in PUBLIC_CORS_POLICIES.items():
        if path.startswith(prefix):
            return policy
    return None


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "0"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        return response


class CorsPolicyMiddleware(BaseHTTPMiddleware):
    """Attach CORS headers to every response.

    Public widget routes set request.state.website_url once the embed code is
    resolved; responses produced before that (throttled, unknown embed code)
    get the restrictive header set.
    """

    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin")
        policy = public_cors_policy(request.url.path)

        if (
            policy is None
            and request.method == "OPTIONS"
            and "access-control-request-method" in request.headers
        ):
            return Response(status_code=204, headers=api_cors_headers(origin))

        response = await call_next(request)

        if policy is not None:
            headers = policy(origin, getattr(request.state, "website_url", None))
        else:
            headers = api_cors_headers(origin)
        for name, value in headers.items():
            response.headers[name] = value
        return response
