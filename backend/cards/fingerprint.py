"""Source text fingerprinting for audit correlation."""

import hashlib


def fingerprint(text: str) -> str:
    """Return the SHA-256 digest of ``text`` (UTF-8) as 64 upper-case hex characters.

    Used to correlate generations and error logs for the same input, not for
    security.
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest().upper()
