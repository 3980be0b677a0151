"""ID token verification against the provider's JSON Web Key Set.

:class:`IdTokenVerifier` checks an OpenID Connect ID token with PyJWT:

- the signing key is selected from the provider's JWKS by ``kid``;
- only asymmetric algorithms (RS256, ES256 by default) are accepted;
- ``iss`` must equal the discovered issuer and ``aud`` the client id;
- ``exp`` must be in the future and ``nbf``, when present, not in the future;
- ``sub`` must be a non-empty string.

Every failure is reported as ``INVALID_RESPONSE``.

References:
- JWKS: :rfc:`7517`
- JWT: :rfc:`7519`
- OIDC ID Token: https://openid.net/specs/openid-connect-core-1_0.html#IDToken
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import jwt

from uxlint.auth.http_client import OAuthHttpClient
from uxlint.exceptions import AuthErrorCode, AuthenticationError
from uxlint.models import OIDCConfiguration, UserProfile

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHMS = ("RS256", "ES256")

FALLBACK_USER_ID = "unknown"
FALLBACK_EMAIL = "unknown@uxlint.org"
FALLBACK_NAME = "UXLint User"


def _invalid(message: str) -> AuthenticationError:
    return AuthenticationError(AuthErrorCode.INVALID_RESPONSE, message)


class IdTokenVerifier:
    """Verify ID token signatures and standard claims.

    Args:
        http_client: Used to fetch the JWKS document.
        allowed_algorithms: Signing algorithms accepted in the token header.
        leeway: Clock skew tolerance in seconds for ``exp``/``nbf``.
    """

    def __init__(
        self,
        http_client: OAuthHttpClient,
        allowed_algorithms: tuple[str, ...] = DEFAULT_ALGORITHMS,
        leeway: float = 0,
    ) -> None:
        self._http = http_client
        self._allowed = allowed_algorithms
        self._leeway = leeway

    def verify(
        self,
        id_token: str,
        discovery: OIDCConfiguration,
        client_id: str,
    ) -> dict[str, Any]:
        """Return the verified claims of *id_token*.

        Raises:
            AuthenticationError: ``INVALID_RESPONSE`` on any verification
                failure; ``NETWORK_ERROR`` if the JWKS cannot be fetched.
        """
        try:
            header = jwt.get_unverified_header(id_token)
        except jwt.PyJWTError as exc:
            raise _invalid(f"ID token is malformed: {exc}") from exc

        alg = header.get("alg")
        if alg not in self._allowed:
            raise _invalid(
                f"ID token algorithm {alg!r} not allowed; expected one of {', '.join(self._allowed)}"
            )

        jwks = self._http.get_jwks(discovery.jwks_uri)
        signing_key = self._select_key(jwks["keys"], header.get("kid"), alg)

        try:
            claims: dict[str, Any] = jwt.decode(
                id_token,
                key=signing_key,
                algorithms=[alg],
                audience=client_id,
                issuer=discovery.issuer,
                leeway=self._leeway,
                options={"require": ["exp", "iss", "aud", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise _invalid("ID token has expired") from exc
        except jwt.ImmatureSignatureError as exc:
            raise _invalid("ID token is not yet valid (nbf claim)") from exc
        except jwt.InvalidAudienceError as exc:
            raise _invalid("ID token audience does not match the client id") from exc
        except jwt.InvalidIssuerError as exc:
            raise _invalid("ID token issuer does not match the provider") from exc
        except jwt.InvalidSignatureError as exc:
            raise _invalid("ID token signature verification failed") from exc
        except jwt.PyJWTError as exc:
            raise _invalid(f"Failed to verify ID token: {exc}") from exc

        sub = claims.get("sub")
        if not isinstance(sub, str) or not sub:
            raise _invalid('Missing required "sub" claim in ID token')

        logger.info("ID token verified for subject %s (alg=%s)", sub, alg)
        return claims

    def _select_key(self, keys: list[dict[str, Any]], kid: Optional[str], alg: str) -> Any:
        candidates = [k for k in keys if isinstance(k, dict)]
        if kid is not None:
            candidates = [k for k in candidates if k.get("kid") == kid]
        elif len(candidates) != 1:
            candidates = []
        if not candidates:
            raise _invalid(f"Signing key with kid={kid} not found in JWKS")
        try:
            return jwt.PyJWK(candidates[0], algorithm=alg).key
        except (jwt.PyJWKError, jwt.InvalidKeyError) as exc:
            raise _invalid(f"JWKS key {kid} is unusable: {exc}") from exc


def profile_from_claims(claims: dict[str, Any]) -> UserProfile:
    """Build a :class:`~uxlint.models.UserProfile` from verified ID token claims."""
    return UserProfile(
        id=claims["sub"],
        email=claims.get("email") or FALLBACK_EMAIL,
        name=claims.get("name") or FALLBACK_NAME,
        organization=claims.get("org") or claims.get("organization"),
        picture=claims.get("picture"),
        email_verified=bool(claims.get("email_verified", False)),
    )


def fallback_profile() -> UserProfile:
    """Minimal profile used when the token response carries no ID token."""
    return UserProfile(
        id=FALLBACK_USER_ID,
        email=FALLBACK_EMAIL,
        name=FALLBACK_NAME,
        email_verified=False,
    )
