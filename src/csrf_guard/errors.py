"""
HTTP-facing errors raised by the CSRF wrappers.

They subclass FastAPI's HTTPException so routes need no extra exception
handlers. ``detail`` never contains a submitted or expected token.

    CsrfForward                  404  check not applicable / no proof recorded
    NoVerifierFound              500  (or the verifier's own status)
    FormParsing                  422  payload did not parse; nothing was verified
    CsrfTokenVerificationFailed  403
    NoHeaderPresent              403
    GuardFailed                  guard's own status
    GuardForwarded               500  guard declined after CSRF already passed

Every failure belongs to one family, so either wrapper's errors can be caught
on their own:

    CsrfCheckError
    ├── CsrfProtectedFormError          (form wrappers)
    │     FormNoVerifierFound, FormParsing, FormTokenVerificationFailed,
    │     GuardFailed, GuardForwarded
    └── CheckCsrfProtectionHeaderError  (header check)
          HeaderNoVerifierFound, NoHeaderPresent, HeaderTokenVerificationFailed

``NoVerifierFound`` and ``CsrfTokenVerificationFailed`` catch their kind from
either family.
"""

from typing import Any

from fastapi import HTTPException


class CsrfForward(HTTPException):
    """
    The check does not apply to this request (no cookie, no session, no proof).

    Surfaces as a 404, the same thing a client sees when no route matches,
    so a missing precondition is never mistaken for a passed check.
    """

    def __init__(self) -> None:
        super().__init__(status_code=404, detail="Not Found")


class CsrfCheckError(HTTPException):
    """Base class for failures of the form and header wrappers."""


class CsrfProtectedFormError(CsrfCheckError):
    """Raised by ``csrf_protected_form`` and ``csrf_protected_form_with_guard``."""


class CheckCsrfProtectionHeaderError(CsrfCheckError):
    """Raised by ``check_csrf_protection_header``."""


# ── Kinds shared by both families ─────────────────────────────────────────────


class NoVerifierFound(CsrfCheckError):
    def __init__(self, status_code: int = 500) -> None:
        super().__init__(status_code=status_code, detail="No CSRF verifier available")


class CsrfTokenVerificationFailed(CsrfCheckError):
    def __init__(self) -> None:
        super().__init__(status_code=403, detail="CSRF token verification failed")


# ── Form wrappers ─────────────────────────────────────────────────────────────


class FormNoVerifierFound(CsrfProtectedFormError, NoVerifierFound):
    pass


class FormParsing(CsrfProtectedFormError):
    """The payload could not be parsed. ``errors`` holds the parser's report."""

    def __init__(self, errors: Any, status_code: int = 422) -> None:
        super().__init__(status_code=status_code, detail=errors)
        self.errors = errors


class FormTokenVerificationFailed(CsrfProtectedFormError, CsrfTokenVerificationFailed):
    pass


class GuardFailed(CsrfProtectedFormError):
    """The extra guard rejected the request; carries the guard's own error."""

    def __init__(self, inner: HTTPException) -> None:
        super().__init__(
            status_code=inner.status_code, detail=inner.detail, headers=inner.headers
        )
        self.inner = inner


class GuardForwarded(CsrfProtectedFormError):
    def __init__(self) -> None:
        super().__init__(status_code=500, detail="Guard did not apply after CSRF checks passed")


# ── Header check ──────────────────────────────────────────────────────────────


class HeaderNoVerifierFound(CheckCsrfProtectionHeaderError, NoVerifierFound):
    pass


class NoHeaderPresent(CheckCsrfProtectionHeaderError):
    def __init__(self) -> None:
        super().__init__(status_code=403, detail="CSRF token header missing")


class HeaderTokenVerificationFailed(CheckCsrfProtectionHeaderError, CsrfTokenVerificationFailed):
    pass


# Body of the JSON 500 sent for unhandled exceptions.
INTERNAL_ERROR_BODY = {
    "error": {"code": "internal_error", "message": "An internal server error occurred"}
}
