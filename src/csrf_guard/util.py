import secrets

MIN_RANDOM_ID_BYTES = 16


def random_id(nbytes: int = MIN_RANDOM_ID_BYTES) -> str:
    """Return a URL-safe random identifier built from *nbytes* CSPRNG bytes.

    Errors from the OS random source propagate: a host without a working
    CSPRNG is misconfigured and must not hand out tokens.
    """
    if nbytes < MIN_RANDOM_ID_BYTES:
        raise ValueError(f"random ids need at least {MIN_RANDOM_ID_BYTES} bytes")
    return secrets.token_urlsafe(nbytes)
