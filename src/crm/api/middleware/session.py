"""Session gate for browser pages plus security headers on every response.

Browser pages require a valid session cookie (an access JWT). Requests
without one are redirected to /login, and signed-in users hitting /login
are sent on to /dashboard. API routes are not gated here: they
authenticate through the get_current_user dependency and answer 401.
"""

from __future__ import annotations

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import RedirectResponse

from src.crm.config import get_settings
from src.crm.core.security import decode_session_token

SECURITY_HEADERS: dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

LOGIN_PATH = "/login"
HOME_PATH = "/dashboard"

PUBLIC_PREFIXES: tuple[str, ...] = (
    "/api",
    "/static",
    "/metrics",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
)


def is_public_path(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") or path.startswith(p + ".") for p in PUBLIC_PREFIXES)


def has_valid_session(request: Request) -> bool:
    token = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    return bool(token) and decode_session_token(token) is not None


def _with_headers(response: Response) -> Response:
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


class SessionMiddleware(BaseHTTPMiddleware):
    """Redirects page requests based on session state and adds security headers."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        if path == LOGIN_PATH:
            if has_valid_session(request):
                return _with_headers(RedirectResponse(HOME_PATH, status_code=307))
        elif not is_public_path(path) and not has_valid_session(request):
            return _with_headers(RedirectResponse(LOGIN_PATH, status_code=307))

        response = await call_next(request)
        return _with_headers(response)
