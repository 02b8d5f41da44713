"""
Token sources.

A token source is anything that carries a CSRF token supplied by the user:
a parsed form, a request header, or (rarely) a string from somewhere else.
Verifiers only ever see the ``csrf_token`` attribute, so they never need to
know where the value came from.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class WithUserProvidedCsrfToken(Protocol):
    """Something holding a CSRF token taken from user input. No validation."""

    @property
    def csrf_token(self) -> str: ...


class CsrfTokenSourcedFromHeader:
    """Token read from the ``X-CSRF-Token`` request header."""

    __slots__ = ("_token",)

    def __init__(self, token: str) -> None:
        self._token = token

    @property
    def csrf_token(self) -> str:
        return self._token

    def __repr__(self) -> str:
        return "CsrfTokenSourcedFromHeader(<redacted>)"


class DangerousManuallySourcedCsrfToken:
    """
    Wrap a raw string so it can be handed to a verifier.

    Use this only when there is no other choice, e.g. the token arrives
    embedded in some unusual location and all you have is the string.
    Anything that lets an attacker influence where this value comes from
    reopens the CSRF hole.
    """

    __slots__ = ("_token",)

    def __init__(self, csrf_token: str) -> None:
        self._token = csrf_token

    @property
    def csrf_token(self) -> str:
        return self._token

    def __repr__(self) -> str:
        return "DangerousManuallySourcedCsrfToken(<redacted>)"
