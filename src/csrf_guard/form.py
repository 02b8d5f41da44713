"""
CSRF-protected request payloads.

``csrf_protected_form(Verifier, Form)`` builds a FastAPI dependency that runs
the checks in a fixed order and only then hands the route its parsed form:

  1. build the verifier from the request (``Verifier.from_request``)
  2. parse the payload into ``Form``           (fails before any verification)
  3. ``verifier.verify(form)``                 (403 on mismatch; form dropped)
  4. record the proof on the request context, return the wrapper

Usage::

    @with_csrf_token
    class LogoutForm(BaseModel):
        pass

    @router.post("/logout")
    async def logout(form: CsrfProtectedForm = Depends(csrf_protected_form(Session, LogoutForm))):
        proof, _ = form.into_parts()
        ...

``csrf_protected_form_with_guard`` additionally runs one more dependency-like
callable after the proof is recorded, so a route can require "CSRF passed and
the guard passed" in one go.
"""

import inspect
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from fastapi import Depends, HTTPException, Request
from pydantic import BaseModel, ValidationError

from src.csrf_guard.context import CsrfRequestContext, get_csrf_context
from src.csrf_guard.cookie import DoubleSubmitCookieCsrfToken
from src.csrf_guard.errors import (
    CsrfForward,
    CsrfTokenVerificationFailed,
    FormNoVerifierFound,
    FormParsing,
    FormTokenVerificationFailed,
    GuardFailed,
    GuardForwarded,
    NoVerifierFound,
)
from src.csrf_guard.verifier import CsrfTokenVerificationError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=BaseModel)
G = TypeVar("G")


# ── Shared steps ──────────────────────────────────────────────────────────────


async def resolve_verifier(
    verifier_cls: Any,
    request: Request,
    error: type[NoVerifierFound] = FormNoVerifierFound,
) -> Any:
    """Build a verifier for *request*; forwards propagate, failures become *error*."""
    try:
        return await verifier_cls.from_request(request)
    except CsrfForward:
        raise
    except HTTPException as exc:
        logger.warning(
            "csrf_no_verifier path=%s status=%d", request.url.path, exc.status_code
        )
        raise error(exc.status_code) from exc
    except Exception as exc:
        logger.exception("csrf_no_verifier path=%s status=500", request.url.path)
        raise error() from exc


async def _read_payload(request: Request) -> Any:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            return await request.json()
        except ValueError as exc:
            raise FormParsing([{"type": "json_invalid", "msg": "Invalid JSON body"}]) from exc
    try:
        form_data = await request.form()
    except HTTPException as exc:
        raise FormParsing(exc.detail, status_code=exc.status_code) from exc
    return dict(form_data)


async def parse_form(form_cls: type[F], request: Request) -> F:
    payload = await _read_payload(request)
    try:
        return form_cls.model_validate(payload)
    except ValidationError as exc:
        logger.info("csrf_form_parsing_failed path=%s", request.url.path)
        # Submitted values stay out of the response: one of them is the token.
        raise FormParsing(
            exc.errors(include_url=False, include_context=False, include_input=False)
        ) from exc


async def verify_token(
    verifier: Any,
    token: Any,
    request: Request,
    error: type[CsrfTokenVerificationFailed] = FormTokenVerificationFailed,
) -> Any:
    try:
        return await verifier.verify(token)
    except CsrfTokenVerificationError as exc:
        logger.warning("csrf_verification_failed path=%s", request.url.path)
        raise error() from exc


# ── CsrfProtectedForm ─────────────────────────────────────────────────────────


class CsrfProtectedForm(Generic[F]):
    """A parsed form that has passed CSRF checks. Attribute reads go to the form."""

    __slots__ = ("form", "proof")

    def __init__(self, form: F, proof: Any) -> None:
        self.form = form
        self.proof = proof

    def __getattr__(self, name: str) -> Any:
        if name in CsrfProtectedForm.__slots__:
            raise AttributeError(name)
        return getattr(self.form, name)

    def into_inner(self) -> F:
        return self.form

    def into_parts(self) -> tuple[Any, F]:
        return self.proof, self.form


def csrf_protected_form(
    verifier_cls: Any, form_cls: type[F]
) -> Callable[..., Any]:
    """Return a FastAPI dependency yielding ``CsrfProtectedForm[form_cls]``."""

    async def dependency(
        request: Request,
        context: CsrfRequestContext = Depends(get_csrf_context),
    ) -> CsrfProtectedForm[F]:
        verifier = await resolve_verifier(verifier_cls, request)
        form = await parse_form(form_cls, request)
        proof = await verify_token(verifier, form, request)
        context.set_proof(proof)
        return CsrfProtectedForm(form, proof)

    dependency.__name__ = f"csrf_protected_{form_cls.__name__}"
    return dependency


def DoubleSubmitCookieCsrfProtectedForm(form_cls: type[F]) -> Callable[..., Any]:  # noqa: N802
    return csrf_protected_form(DoubleSubmitCookieCsrfToken, form_cls)


# ── CsrfProtectedFormWithGuard ────────────────────────────────────────────────


class CsrfProtectedFormWithGuard(Generic[F, G]):
    __slots__ = ("form", "proof", "guard")

    def __init__(self, form: F, proof: Any, guard: G) -> None:
        self.form = form
        self.proof = proof
        self.guard = guard

    def __getattr__(self, name: str) -> Any:
        if name in CsrfProtectedFormWithGuard.__slots__:
            raise AttributeError(name)
        return getattr(self.form, name)

    def into_parts(self) -> tuple[G, F]:
        return self.guard, self.form

    def into_parts_with_proof(self) -> tuple[Any, G, F]:
        return self.proof, self.guard, self.form


async def run_guard(guard: Callable[[Request], Any], request: Request) -> Any:
    """
    Run *guard* after CSRF checks passed.

    A forward at this point is escalated to a 500: the proof is already
    recorded, so quietly skipping the route would leave the request in a
    half-checked state.
    """
    try:
        result = guard(request)
        if inspect.isawaitable(result):
            result = await result
    except CsrfForward as exc:
        logger.error("csrf_guard_forwarded path=%s", request.url.path)
        raise GuardForwarded() from exc
    except HTTPException as exc:
        logger.warning(
            "csrf_guard_failed path=%s status=%d", request.url.path, exc.status_code
        )
        raise GuardFailed(exc) from exc
    return result


def csrf_protected_form_with_guard(
    verifier_cls: Any,
    form_cls: type[F],
    guard: Callable[[Request], Any],
) -> Callable[..., Any]:
    """Like ``csrf_protected_form`` but also requires *guard(request)* to succeed."""

    async def dependency(
        request: Request,
        context: CsrfRequestContext = Depends(get_csrf_context),
    ) -> CsrfProtectedFormWithGuard[F, Any]:
        verifier = await resolve_verifier(verifier_cls, request)
        form = await parse_form(form_cls, request)
        proof = await verify_token(verifier, form, request)
        context.set_proof(proof)
        guard_value = await run_guard(guard, request)
        return CsrfProtectedFormWithGuard(form, proof, guard_value)

    dependency.__name__ = f"csrf_protected_{form_cls.__name__}_with_guard"
    return dependency
