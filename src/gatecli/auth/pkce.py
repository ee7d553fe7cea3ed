"""PKCE (RFC 7636) verifier/challenge pairs and OAuth2 ``state`` values.

All randomness comes from :mod:`secrets`. There is no fallback source: if
the operating system CSPRNG is unavailable the call fails.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from gatecli.models import PKCEPair

_VERIFIER_BYTES = 32
_STATE_BYTES = 24


def _b64url_nopad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def compute_challenge(verifier: str) -> str:
    """Return the S256 challenge for *verifier*: ``base64url(sha256(verifier))``."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url_nopad(digest)


def generate() -> PKCEPair:
    """Generate a fresh PKCE pair.

    The verifier is 32 random bytes encoded as unpadded base64url, which is
    always 43 characters from the RFC 7636 unreserved set.

    Returns:
        A frozen :class:`~gatecli.models.PKCEPair`.
    """
    verifier = _b64url_nopad(secrets.token_bytes(_VERIFIER_BYTES))
    return PKCEPair(verifier=verifier, challenge=compute_challenge(verifier))


def generate_state() -> str:
    """Generate an unguessable ``state`` value (24 random bytes, 32 characters)."""
    return _b64url_nopad(secrets.token_bytes(_STATE_BYTES))
