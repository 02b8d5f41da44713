"""
Auth routes for the demo app.

SSR (form + redirect):
    GET  /         – logged-in page if there is a session, otherwise the login
                     form (sets a double-submit CSRF cookie)
    POST /         – log in; form checked against the double-submit cookie
    POST /logout   – log out; form checked against the session's CSRF token

API:
    GET  /header       – passes only with the session's token in X-CSRF-Token
    POST /api/logout   – header-checked logout, via require_csrf_proof
"""

import logging
import pathlib

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, field_validator
from starlette.concurrency import run_in_threadpool

from src.csrf_guard.cookie import SetDoubleSubmitCookieCsrfToken
from src.csrf_guard.derive import with_csrf_token
from src.csrf_guard.errors import CsrfForward
from src.csrf_guard.form import (
    CsrfProtectedForm,
    CsrfProtectedFormWithGuard,
    DoubleSubmitCookieCsrfProtectedForm,
    csrf_protected_form_with_guard,
)
from src.csrf_guard.header import CheckCsrfProtectionHeader, check_csrf_protection_header
from src.csrf_guard.proof import require_csrf_proof
from src.demo_app.sessions import (
    SessionManager,
    UserSession,
    clear_session_cookie,
    get_session_manager,
    set_session_cookie,
)

_BASE_DIR = pathlib.Path(__file__).parent.parent
templates = Jinja2Templates(directory=str(_BASE_DIR / "templates"))

router = APIRouter()
logger = logging.getLogger(__name__)


# ── Forms ─────────────────────────────────────────────────────────────────────


@with_csrf_token
class LoginForm(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v


@with_csrf_token
class LogoutForm(BaseModel):
    pass


VerifyCsrfTokenViaHeaders = check_csrf_protection_header(UserSession)


# ── SSR pages ─────────────────────────────────────────────────────────────────


@router.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    csrf_token: SetDoubleSubmitCookieCsrfToken = Depends(),
):
    try:
        session = await UserSession.from_request(request)
    except CsrfForward:
        # Rendering {{ csrf_token }} issues the double-submit cookie.
        return templates.TemplateResponse(request, "login.html", {"csrf_token": csrf_token})
    return templates.TemplateResponse(
        request,
        "loggedin.html",
        {"name": session.username, "csrf_token": session.session_csrf_token},
    )


@router.post("/")
async def do_login(
    form: CsrfProtectedForm = Depends(DoubleSubmitCookieCsrfProtectedForm(LoginForm)),
    manager: SessionManager = Depends(get_session_manager),
):
    # A real application would check a password here.
    session_id, _ = await run_in_threadpool(manager.create_session, form.name)
    logger.info("demo_login name=%s", form.name)
    redirect = RedirectResponse(url="/", status_code=303)
    set_session_cookie(redirect, session_id)
    return redirect


@router.post("/logout")
async def do_logout(
    form: CsrfProtectedFormWithGuard = Depends(
        csrf_protected_form_with_guard(UserSession, LogoutForm, UserSession.from_request)
    ),
    manager: SessionManager = Depends(get_session_manager),
):
    proof, session, _ = form.into_parts_with_proof()
    await run_in_threadpool(manager.logout, proof, session.session_id_hash)
    redirect = RedirectResponse(url="/", status_code=303)
    clear_session_cookie(redirect)
    return redirect


# ── API ───────────────────────────────────────────────────────────────────────


@router.get("/header", response_class=PlainTextResponse)
async def check_csrf_header(_csrf_check: CheckCsrfProtectionHeader = Depends(VerifyCsrfTokenViaHeaders)):
    return "You successfully passed the right CSRF token, congrats!"


@router.post("/api/logout")
async def api_logout(
    _csrf_check: CheckCsrfProtectionHeader = Depends(VerifyCsrfTokenViaHeaders),
    proof=Depends(require_csrf_proof),
    session: UserSession = Depends(UserSession.from_request),
    manager: SessionManager = Depends(get_session_manager),
) -> dict:
    await run_in_threadpool(manager.logout, proof, session.session_id_hash)
    return {"logged_out": session.username}
