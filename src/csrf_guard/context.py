"""
Per-request state for CSRF checks.

Every request gets one ``CsrfRequestContext`` (created by
``CsrfCookieMiddleware`` and stored on ``request.state``). It holds:

  - the proof slot, written by successful verifications and read by
    ``require_csrf_proof``;
  - the request's ``CsrfCookieJar``, which records cookie writes/removals so
    the middleware can apply them to whatever response goes out;
  - a memo dict hosts can use to avoid repeating lookups (e.g. fetching the
    session) when several dependencies build the same verifier.

Nothing here is shared between requests, so nothing needs locking.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from fastapi import Request
from itsdangerous import BadSignature, URLSafeSerializer

from src.csrf_guard.config import SECRET_KEY

_STATE_ATTR = "csrf_context"
COOKIE_SIGNING_SALT = "csrf-double-submit-v1"


@dataclass(frozen=True)
class _CookieOp:
    name: str
    value: str | None  # None means delete
    samesite: str
    max_age: int | None = None


class CsrfCookieJar:
    """
    Signed cookie access for one request.

    Reads come from the incoming cookies; writes are queued and applied to the
    outgoing response by ``apply``. ``pop_signed`` removes the cookie from the
    jar as it reads it, so a second read in the same request sees nothing.
    """

    def __init__(
        self,
        incoming: Mapping[str, str],
        secret_key: str = SECRET_KEY,
        salt: str = COOKIE_SIGNING_SALT,
    ) -> None:
        self._incoming = dict(incoming)
        self._pending: list[_CookieOp] = []
        self._serializer = URLSafeSerializer(secret_key, salt=salt)

    def __contains__(self, name: str) -> bool:
        return name in self._incoming

    def add_signed(self, name: str, value: Any, *, samesite: str, max_age: int) -> None:
        self._pending.append(
            _CookieOp(name, self._serializer.dumps(value), samesite, max_age)
        )

    def pop_signed(self, name: str) -> Any:
        """Remove *name* from the jar and return its verified payload.

        Returns None when the cookie is absent or its signature is bad. Only the
        jar forgets the cookie; use ``delete`` to remove it from the browser.
        """
        raw = self._incoming.pop(name, None)
        if raw is None:
            return None
        try:
            return self._serializer.loads(raw)
        except BadSignature:
            return None

    def delete(self, name: str, *, samesite: str) -> None:
        self._pending.append(_CookieOp(name, None, samesite))

    @property
    def pending(self) -> tuple[_CookieOp, ...]:
        return tuple(self._pending)

    def apply(self, response) -> None:
        """Write queued cookie operations onto *response*. Each op is applied once."""
        ops, self._pending = self._pending, []
        for op in ops:
            if op.value is None:
                response.delete_cookie(
                    key=op.name, path="/", secure=True, httponly=True, samesite=op.samesite
                )
            else:
                response.set_cookie(
                    key=op.name,
                    value=op.value,
                    max_age=op.max_age,
                    path="/",
                    secure=True,
                    httponly=True,
                    samesite=op.samesite,
                )


@dataclass
class CsrfRequestContext:
    cookies: CsrfCookieJar
    proof: Any = None
    memo: dict[str, Any] = field(default_factory=dict)

    def set_proof(self, proof: Any) -> None:
        # Last successful verification wins.
        self.proof = proof

    async def memoize(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        if key not in self.memo:
            self.memo[key] = await factory()
        return self.memo[key]


def attach_csrf_context(request: Request, secret_key: str = SECRET_KEY) -> CsrfRequestContext:
    """Create the context for *request* and store it on ``request.state``."""
    context = CsrfRequestContext(cookies=CsrfCookieJar(request.cookies, secret_key))
    setattr(request.state, _STATE_ATTR, context)
    return context


def get_csrf_context(request: Request) -> CsrfRequestContext:
    """
    FastAPI dependency returning the request's ``CsrfRequestContext``.

    Raises RuntimeError when ``CsrfCookieMiddleware`` is not installed.
    """
    context = getattr(request.state, _STATE_ATTR, None)
    if context is None:
        raise RuntimeError("CsrfCookieMiddleware is not installed on this application")
    return context
