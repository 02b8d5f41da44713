"""
CSRF checks for API requests carrying the token in a header.

``check_csrf_protection_header(Verifier)`` builds a FastAPI dependency that
verifies ``X-CSRF-Token`` against the verifier and records the proof, so the
same ``require_csrf_proof`` consumers work for JSON APIs and HTML forms.
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import Depends, Request

from src.csrf_guard.context import CsrfRequestContext, get_csrf_context
from src.csrf_guard.errors import (
    HeaderNoVerifierFound,
    HeaderTokenVerificationFailed,
    NoHeaderPresent,
)
from src.csrf_guard.form import resolve_verifier, verify_token
from src.csrf_guard.token import CsrfTokenSourcedFromHeader

logger = logging.getLogger(__name__)

CSRF_HEADER_NAME = "X-CSRF-Token"


class CheckCsrfProtectionHeader:
    """Marker returned once the header check passed; holds the proof."""

    __slots__ = ("proof",)

    def __init__(self, proof: Any) -> None:
        self.proof = proof


def check_csrf_protection_header(verifier_cls: Any) -> Callable[..., Any]:
    async def dependency(
        request: Request,
        context: CsrfRequestContext = Depends(get_csrf_context),
    ) -> CheckCsrfProtectionHeader:
        verifier = await resolve_verifier(verifier_cls, request, HeaderNoVerifierFound)
        token = request.headers.get(CSRF_HEADER_NAME)
        if token is None:
            logger.warning("csrf_header_missing path=%s", request.url.path)
            raise NoHeaderPresent()
        proof = await verify_token(
            verifier, CsrfTokenSourcedFromHeader(token), request, HeaderTokenVerificationFailed
        )
        context.set_proof(proof)
        return CheckCsrfProtectionHeader(proof)

    dependency.__name__ = f"check_csrf_header_{getattr(verifier_cls, '__name__', 'verifier')}"
    return dependency
