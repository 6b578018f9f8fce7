"""Shared-secret gate: auth cookie or HTTP Basic credentials."""

from __future__ import annotations

import base64
import hashlib
import html
import hmac
from urllib.parse import quote, unquote

from fastapi import APIRouter, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from core.config import settings

router = APIRouter(tags=["auth"])

OPEN_PATHS = {"/login", "/logout", "/health"}


def auth_token(user: str | None = None, password: str | None = None) -> str:
    user = settings.BASIC_AUTH_USER if user is None else user
    password = settings.BASIC_AUTH_PASS if password is None else password
    return hashlib.sha256(f"{user}:{password}".encode("utf-8")).hexdigest()


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def credentials_valid(username: str, password: str) -> bool:
    return _same(username, settings.BASIC_AUTH_USER) and _same(password, settings.BASIC_AUTH_PASS)


def has_valid_cookie(request: Request) -> bool:
    return _same(request.cookies.get(settings.AUTH_COOKIE_NAME, ""), auth_token())


def basic_credentials_valid(request: Request) -> bool:
    header = request.headers.get("authorization", "")
    if not header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(header[len("Basic "):]).decode("utf-8")
    except ValueError:
        return False
    username, sep, password = decoded.partition(":")
    if not sep:
        return False
    return credentials_valid(username, password)


def sanitize_redirect(target: str | None) -> str:
    """Only same-origin absolute paths are allowed as redirect targets."""
    if not target:
        return "/"
    decoded = unquote(target)
    if decoded.startswith("/") and not decoded.startswith("//"):
        return decoded
    return "/"


def set_auth_cookie(response: Response, remember: bool) -> None:
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        auth_token(),
        max_age=settings.AUTH_COOKIE_MAX_AGE_SECONDS if remember else None,
        httponly=True,
        samesite="strict",
    )


def render_login_page(error: str = "", remember: bool = False, next_path: str = "/") -> str:
    error_html = f'<p class="error">{html.escape(error)}</p>' if error else ""
    checked = " checked" if remember else ""
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Media Tracker Login</title></head>
<body>
  <form method="post" action="/login">
    {error_html}
    <input type="hidden" name="next" value="{html.escape(next_path)}">
    <label>Username <input name="username" autocomplete="username" required></label>
    <label>Password <input name="password" type="password" autocomplete="current-password" required></label>
    <label><input type="checkbox" name="remember"{checked}> Remember me</label>
    <button type="submit">Sign in</button>
  </form>
</body>
</html>"""


def install_auth_gate(app: FastAPI) -> None:
    @app.middleware("http")
    async def auth_gate(request: Request, call_next):
        if has_valid_cookie(request) or request.url.path in OPEN_PATHS:
            return await call_next(request)

        if basic_credentials_valid(request):
            remember = request.query_params.get("remember") in ("true", "1")
            response = await call_next(request)
            set_auth_cookie(response, remember)
            return response

        if "text/html" not in request.headers.get("accept", ""):
            return JSONResponse(status_code=401, content={"error": "Authentication required."})

        target = request.url.path + (f"?{request.url.query}" if request.url.query else "")
        return RedirectResponse(f"/login?next={quote(target, safe='')}", status_code=302)


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, next: str | None = None) -> Response:
    target = sanitize_redirect(next)
    if has_valid_cookie(request):
        return RedirectResponse(target, status_code=302)
    return HTMLResponse(render_login_page(next_path=target), headers={"Cache-Control": "no-store"})


@router.post("/login")
async def login(
    username: str = Form(""),
    password: str = Form(""),
    remember: str | None = Form(None),
    next: str | None = Form(None),
) -> Response:
    target = sanitize_redirect(next)
    remember_on = remember == "on"
    if not credentials_valid(username, password):
        return HTMLResponse(
            render_login_page("Invalid username or password. Please try again.", remember_on, target),
            status_code=401,
        )
    response = RedirectResponse(target, status_code=302)
    set_auth_cookie(response, remember_on)
    return response


@router.post("/logout")
async def logout() -> Response:
    response = RedirectResponse("/login", status_code=302)
    response.delete_cookie(settings.AUTH_COOKIE_NAME, httponly=True, samesite="strict")
    return response
