"""
Verifier protocol.

A verifier decides whether a token source holds the right token and, if so,
hands back a proof. Two shapes are supported:

  - implement ``CsrfTokenVerifier.verify`` directly (see
    ``DoubleSubmitCookieCsrfToken``), or
  - subclass ``VerifierWithKnownExpectedToken`` and expose
    ``expected_token``; the comparison is done here once for everybody.

``verify`` is async so it may consult external state, but keep it fast:
fetch anything expensive once per request (see ``CsrfRequestContext.memoize``)
rather than inside ``verify``.

Verifiers used by the FastAPI wrappers also provide an async
``from_request(request)`` classmethod that builds them from the request.
"""

import secrets
from abc import ABC, abstractmethod
from typing import Any

from src.csrf_guard.proof import CsrfCheckProof
from src.csrf_guard.token import WithUserProvidedCsrfToken


class CsrfTokenVerificationError(Exception):
    """Base class for verification failures."""


class CsrfTokenMismatch(CsrfTokenVerificationError):
    # Never include the submitted or expected value here.
    def __init__(self) -> None:
        super().__init__("CSRF token did not match!")


class UnknownCsrfVerificationError(CsrfTokenVerificationError):
    """Escape hatch for custom verifiers; wraps whatever went wrong."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Unknown error: {type(cause).__name__}")
        self.__cause__ = cause


def tokens_match(submitted: str, expected: str) -> bool:
    # surrogatepass: JSON bodies can carry lone surrogates ("\ud800").
    return secrets.compare_digest(
        submitted.encode("utf-8", "surrogatepass"),
        expected.encode("utf-8", "surrogatepass"),
    )


class CsrfTokenVerifier(ABC):
    @abstractmethod
    async def verify(self, token: WithUserProvidedCsrfToken) -> Any:
        """Return a proof, or raise ``CsrfTokenVerificationError``."""


class VerifierWithKnownExpectedToken(CsrfTokenVerifier):
    """
    Verifier for anything that knows the token it expects, typically a session.

    Override ``make_proof`` to mint a different proof kind.
    """

    @property
    @abstractmethod
    def expected_token(self) -> str: ...

    def make_proof(self) -> Any:
        return CsrfCheckProof.default()

    async def verify(self, token: WithUserProvidedCsrfToken) -> Any:
        if tokens_match(token.csrf_token, self.expected_token):
            return self.make_proof()
        raise CsrfTokenMismatch()
