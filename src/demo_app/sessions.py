"""
Session handling for the demo app.

Provides:
- SessionManager: create / fetch / log out sessions (SQLAlchemy)
- UserSession: the logged-in session, doubling as a CSRF verifier that
  expects the session's own token
- Signed session cookie helpers (itsdangerous)
- FastAPI dependency: get_session_manager
"""

import hashlib
import logging
from dataclasses import dataclass

from fastapi import Request
from itsdangerous import BadSignature, URLSafeSerializer
from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from src.csrf_guard.config import SECRET_KEY
from src.csrf_guard.context import get_csrf_context
from src.csrf_guard.errors import CsrfForward
from src.csrf_guard.proof import CsrfCheckProof
from src.csrf_guard.util import random_id
from src.csrf_guard.verifier import VerifierWithKnownExpectedToken
from src.demo_app.models import LoginSession

logger = logging.getLogger(__name__)

SESSION_COOKIE = "__Host-session"
SESSION_HEADER = "Authorization"
COOKIE_MAX_AGE = 24 * 60 * 60  # 1 day

_SESSION_SALT = "session-v1"
_MEMO_KEY = "demo_app.session"


def hash_session_id(session_id: str) -> str:
    return hashlib.sha3_256(session_id.encode()).hexdigest()


# ── Session cookie ────────────────────────────────────────────────────────────


def _serializer() -> URLSafeSerializer:
    return URLSafeSerializer(SECRET_KEY, salt=_SESSION_SALT)


def set_session_cookie(response, session_id: str) -> None:
    """Attach a signed session cookie to any Response (or RedirectResponse)."""
    response.set_cookie(
        key=SESSION_COOKIE,
        value=_serializer().dumps(session_id),
        httponly=True,
        samesite="strict",
        secure=True,
        max_age=COOKIE_MAX_AGE,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(key=SESSION_COOKIE, secure=True, httponly=True, samesite="strict")


def _session_id_from_request(request: Request) -> str | None:
    # Prefer an explicit bearer header over the cookie.
    header = request.headers.get(SESSION_HEADER, "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):] or None
    raw = request.cookies.get(SESSION_COOKIE)
    if not raw:
        return None
    try:
        return _serializer().loads(raw)
    except BadSignature:
        return None


# ── UserSession ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UserSession(VerifierWithKnownExpectedToken):
    session_id_hash: str
    username: str
    session_csrf_token: str

    def __repr__(self) -> str:
        return f"UserSession(username={self.username!r})"

    @property
    def expected_token(self) -> str:
        return self.session_csrf_token

    @classmethod
    async def from_request(cls, request: Request) -> "UserSession":
        """Return the caller's session, or forward if there is none.

        The lookup is memoised on the request's CSRF context, so several
        dependencies asking for the session cost one database read.
        """

        async def load() -> UserSession | None:
            session_id = _session_id_from_request(request)
            if session_id is None:
                return None
            manager = get_session_manager(request)
            return await run_in_threadpool(manager.fetch_session, hash_session_id(session_id))

        session = await get_csrf_context(request).memoize(_MEMO_KEY, load)
        if session is None:
            raise CsrfForward()
        return session


# ── SessionManager ────────────────────────────────────────────────────────────


class SessionManager:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def create_session(self, username: str) -> tuple[str, UserSession]:
        """Create a session and return ``(raw session id, session)``."""
        session_id = random_id(16)
        row = LoginSession(
            session_id_hash=hash_session_id(session_id),
            username=username,
            csrf_token=random_id(16),
        )
        with self._session_factory() as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info("session_created session_pk=%d username=%s", row.id, row.username)
            return session_id, _to_user_session(row)

    def fetch_session(self, session_id_hash: str) -> UserSession | None:
        with self._session_factory() as db:
            row = db.scalars(
                select(LoginSession).where(LoginSession.session_id_hash == session_id_hash)
            ).first()
            return _to_user_session(row) if row else None

    def logout(self, proof: CsrfCheckProof, session_id_hash: str) -> None:
        """
        Invalidate a session.

        Requires a proof that CSRF checks passed, so there is no way to wire
        this up to a route that skips them (logout CSRF).
        """
        if not isinstance(proof, CsrfCheckProof):
            raise TypeError("logout requires a CsrfCheckProof")
        with self._session_factory() as db:
            db.execute(delete(LoginSession).where(LoginSession.session_id_hash == session_id_hash))
            db.commit()
        logger.info("session_logout")


def _to_user_session(row: LoginSession) -> UserSession:
    return UserSession(
        session_id_hash=row.session_id_hash,
        username=row.username,
        session_csrf_token=row.csrf_token,
    )


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager
