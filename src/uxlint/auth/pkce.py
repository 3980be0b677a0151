"""PKCE parameter generation (:rfc:`7636`, ``S256`` method).

:func:`generate_pkce_parameters` returns a fresh
:class:`~uxlint.models.PKCEParameters` for each authorization attempt: a
``code_verifier`` and an independent ``state`` nonce, each drawn from 32
bytes of CSPRNG output and base64url-encoded without padding, plus the
``code_challenge`` derived from the verifier.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from uxlint.models import PKCEParameters

# 32 random bytes encode to exactly 43 base64url characters.
_ENTROPY_BYTES = 32


def base64url_encode(data: bytes) -> str:
    """Base64url-encode *data* without ``=`` padding (:rfc:`4648` section 5)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def compute_code_challenge(code_verifier: str) -> str:
    """Return ``base64url(SHA-256(code_verifier))``."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64url_encode(digest)


def generate_pkce_parameters() -> PKCEParameters:
    """Generate a PKCE verifier/challenge pair and a CSRF ``state`` nonce.

    Returns:
        A frozen :class:`~uxlint.models.PKCEParameters` with
        ``code_challenge_method="S256"``.
    """
    code_verifier = base64url_encode(secrets.token_bytes(_ENTROPY_BYTES))
    state = base64url_encode(secrets.token_bytes(_ENTROPY_BYTES))
    return PKCEParameters(
        code_verifier=code_verifier,
        code_challenge=compute_code_challenge(code_verifier),
        code_challenge_method="S256",
        state=state,
    )
