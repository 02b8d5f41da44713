"""
Double-submit cookie CSRF protection.

For forms shown before a user has a session (login, signup), there is no
server-side place to keep an expected token. Instead:

  1. The page handler depends on ``SetDoubleSubmitCookieCsrfToken`` and embeds
     ``token.set()`` (or just ``{{ token }}``) in the form. That schedules a
     signed ``__Host-csrf-token`` cookie holding the same fresh random value.
  2. The POST handler uses a form protected by ``DoubleSubmitCookieCsrfToken``.
     Building that verifier takes the cookie out of the jar and queues its
     deletion *before* anything is compared, so the value is single-use
     whether or not verification succeeds.

A cross-origin attacker can neither read the token nor plant a signed cookie,
so they cannot make the two values agree.

Prefer session-bound tokens (``VerifierWithKnownExpectedToken``) where a
session exists.
"""

import enum
import logging
from typing import Any

from fastapi import Depends, Request

from src.csrf_guard.context import CsrfRequestContext, get_csrf_context
from src.csrf_guard.errors import CsrfForward
from src.csrf_guard.proof import CsrfCheckProof
from src.csrf_guard.token import WithUserProvidedCsrfToken
from src.csrf_guard.util import random_id
from src.csrf_guard.verifier import CsrfTokenMismatch, CsrfTokenVerifier, tokens_match

logger = logging.getLogger(__name__)

DOUBLE_SUBMIT_CSRF_TOKEN_COOKIE_NAME = "__Host-csrf-token"
DOUBLE_SUBMIT_CSRF_TOKEN_EXPIRY_SECONDS = 600  # 10 minutes
DOUBLE_SUBMIT_CSRF_TOKEN_NONE_EXPIRY_SECONDS = 20


class SameSitePolicy(str, enum.Enum):
    STRICT = "strict"
    LAX = "lax"
    # Cross-site POSTs will carry this cookie. Avoid unless you really need it.
    NONE_DO_NOT_USE_UNLESS_YOU_ARE_SURE = "none"

    @property
    def max_age(self) -> int:
        if self is SameSitePolicy.NONE_DO_NOT_USE_UNLESS_YOU_ARE_SURE:
            return DOUBLE_SUBMIT_CSRF_TOKEN_NONE_EXPIRY_SECONDS
        return DOUBLE_SUBMIT_CSRF_TOKEN_EXPIRY_SECONDS


def _unpack(payload: Any) -> tuple[str | None, SameSitePolicy]:
    """Split a cookie payload into ``(token, policy it was set with)``.

    The cookie holds ``[token, samesite]`` so its deletion can repeat the
    SameSite attribute it was set with. Unusable payloads give no token.
    """
    if not (isinstance(payload, list) and len(payload) == 2):
        return None, SameSitePolicy.STRICT
    token, samesite = payload
    try:
        policy = SameSitePolicy(samesite)
    except ValueError:
        return None, SameSitePolicy.STRICT
    return (token if isinstance(token, str) else None), policy


class DoubleSubmitCookieCsrfToken(CsrfTokenVerifier):
    """Verifies a submitted token against the value from the double-submit cookie."""

    def __init__(self, expected_token: str) -> None:
        self._expected_token = expected_token

    def __repr__(self) -> str:
        return "DoubleSubmitCookieCsrfToken(<redacted>)"

    async def verify(self, token: WithUserProvidedCsrfToken) -> CsrfCheckProof:
        if tokens_match(token.csrf_token, self._expected_token):
            return CsrfCheckProof.PASSED_CSRF_CHECKS
        raise CsrfTokenMismatch()

    @classmethod
    def from_context(cls, context: CsrfRequestContext) -> "DoubleSubmitCookieCsrfToken":
        """Consume the cookie from *context*; forward if it is absent or unsigned."""
        jar = context.cookies
        if DOUBLE_SUBMIT_CSRF_TOKEN_COOKIE_NAME not in jar:
            raise CsrfForward()
        token, policy = _unpack(jar.pop_signed(DOUBLE_SUBMIT_CSRF_TOKEN_COOKIE_NAME))
        # Removed before anything is compared, whatever the outcome.
        jar.delete(DOUBLE_SUBMIT_CSRF_TOKEN_COOKIE_NAME, samesite=policy.value)
        logger.info("csrf_double_submit_cookie_consumed valid_signature=%s", token is not None)
        if token is None:
            raise CsrfForward()
        return cls(token)

    @classmethod
    async def from_request(cls, request: Request) -> "DoubleSubmitCookieCsrfToken":
        return cls.from_context(get_csrf_context(request))


class SetDoubleSubmitCookieCsrfToken:
    """
    FastAPI dependency that generates a fresh double-submit token.

    Nothing is written until ``set()`` is called (or the object is rendered
    with ``str()``, e.g. in a Jinja template), so a handler that ends up not
    showing the form does not leave a stray cookie behind.
    """

    policy = SameSitePolicy.STRICT

    def __init__(self, context: CsrfRequestContext = Depends(get_csrf_context)) -> None:
        self._context = context
        self._csrf_token = random_id(16)
        self._is_set = False

    def set(self) -> str:
        """Schedule the cookie (once) and return the token to embed in the form."""
        if not self._is_set:
            self._context.cookies.add_signed(
                DOUBLE_SUBMIT_CSRF_TOKEN_COOKIE_NAME,
                [self._csrf_token, self.policy.value],
                samesite=self.policy.value,
                max_age=self.policy.max_age,
            )
            self._is_set = True
            logger.info("csrf_double_submit_cookie_set samesite=%s", self.policy.value)
        return self._csrf_token

    def __str__(self) -> str:
        return self.set()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(set={self._is_set})"


class SetLaxDoubleSubmitCookieCsrfToken(SetDoubleSubmitCookieCsrfToken):
    policy = SameSitePolicy.LAX


class SetNoneDoubleSubmitCookieCsrfToken_DO_NOT_USE_UNLESS_YOU_ARE_SURE(  # noqa: N801
    SetDoubleSubmitCookieCsrfToken
):
    """SameSite=None with a 20 second lifetime. Avoid this as much as possible."""

    policy = SameSitePolicy.NONE_DO_NOT_USE_UNLESS_YOU_ARE_SURE
