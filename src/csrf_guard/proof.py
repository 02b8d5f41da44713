import enum

from fastapi import Depends

from src.csrf_guard.context import CsrfRequestContext, get_csrf_context
from src.csrf_guard.errors import CsrfForward


class CsrfCheckProof(enum.Enum):
    """
    Marker certifying that CSRF checks passed for the current request.

    It carries no token material. Sensitive operations (logout, say) can take
    one as an argument so they cannot be called from an unchecked code path.
    Only one kind exists today; consumers should check for presence rather
    than matching on the member.
    """

    PASSED_CSRF_CHECKS = "passed_csrf_checks"

    @classmethod
    def default(cls) -> "CsrfCheckProof":
        return cls.PASSED_CSRF_CHECKS


def get_csrf_proof(context: CsrfRequestContext):
    """Return the proof recorded for this request, or None if no check passed."""
    return context.proof


def require_csrf_proof(
    context: CsrfRequestContext = Depends(get_csrf_context),
):
    """
    FastAPI dependency for routes that need a CSRF check to have run earlier
    in the same request (e.g. declared before it in the signature).

    An empty slot forwards (404); it never counts as passed.
    """
    proof = get_csrf_proof(context)
    if proof is None:
        raise CsrfForward()
    return proof
