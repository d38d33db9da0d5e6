"""Browser-facing routes outside /api.

SessionMiddleware guards these paths: without a session cookie every page
except /login redirects to /login.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from src.crm.api.deps import get_current_user
from src.crm.api.v1.analytics import load_dashboard
from src.crm.models.user import User

router = APIRouter(include_in_schema=False)

LOGIN_PAGE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Sign in - Purrify CRM</title>
</head>
<body>
  <h1>Purrify CRM</h1>
  <form id="login">
    <label>Email <input type="email" name="email" required autocomplete="username"></label>
    <label>Password <input type="password" name="password" required autocomplete="current-password"></label>
    <button type="submit">Sign in</button>
    <p id="error" role="alert"></p>
  </form>
  <script>
    document.getElementById("login").addEventListener("submit", async (event) => {
      event.preventDefault();
      const form = new FormData(event.target);
      const response = await fetch("/api/auth/login", {
        method: "POST",
        headers: {"Content-Type": "application/json"},
        credentials: "same-origin",
        body: JSON.stringify({email: form.get("email"), password: form.get("password")}),
      });
      if (response.ok) {
        window.location.href = "/dashboard";
      } else {
        document.getElementById("error").textContent = "Invalid email or password";
      }
    });
  </script>
</body>
</html>
"""


@router.get("/")
async def index() -> RedirectResponse:
    return RedirectResponse("/dashboard", status_code=307)


@router.get("/login", response_class=HTMLResponse)
async def login_page() -> HTMLResponse:
    return HTMLResponse(LOGIN_PAGE)


@router.get("/dashboard")
async def dashboard_page(
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    summary = await load_dashboard(request)
    return {"user": {"email": user.email, "name": user.name}, **summary}
