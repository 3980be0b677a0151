"""HTTP client for the identity provider's OAuth2 and OIDC endpoints.

:class:`OAuthHttpClient` performs the three protocol operations the login
subsystem needs -- authorization code exchange, token refresh, and OpenID
Connect discovery -- plus the JWKS fetch used for ID token verification.

Every failure is re-classified into an
:class:`~uxlint.exceptions.AuthenticationError`:

* transport failures (DNS, connection refused, timeout) become
  ``NETWORK_ERROR``;
* HTTP error statuses and malformed bodies become ``INVALID_RESPONSE``,
  except for refresh, where they become ``REFRESH_FAILED`` so the caller
  knows to wipe the session.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from uxlint.exceptions import AuthErrorCode, AuthenticationError
from uxlint.models import OIDCConfiguration, TokenSet

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_EXPIRES_IN = 3600
DEFAULT_DISCOVERY_PATH = "/auth/v1/oauth/.well-known/openid-configuration"


def _describe_error_response(response: httpx.Response) -> str:
    """Render an OAuth ``error``/``error_description`` body, or the raw status."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        description = body.get("error_description")
        if description:
            return f"{body['error']}: {description}"
        return str(body["error"])
    return f"HTTP {response.status_code}"


class OAuthHttpClient:
    """Talks to the identity provider's token and discovery endpoints.

    Args:
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    def exchange_code_for_tokens(
        self,
        token_endpoint: str,
        client_id: str,
        code: str,
        redirect_uri: str,
        code_verifier: str,
    ) -> TokenSet:
        """Exchange an authorization code for tokens.

        Args:
            token_endpoint: Absolute URL of the token endpoint.
            client_id: The public OAuth client id.
            code: Authorization code delivered to the redirect URI.
            redirect_uri: The exact redirect URI used in the authorization
                request.
            code_verifier: PKCE verifier proving possession of the challenge.

        Returns:
            The parsed :class:`~uxlint.models.TokenSet`.

        Raises:
            AuthenticationError: ``NETWORK_ERROR`` on transport failure,
                ``INVALID_RESPONSE`` on an error status or malformed body.
        """
        data = {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        return self._fetch_tokens(
            token_endpoint, data, "code exchange", AuthErrorCode.INVALID_RESPONSE
        )

    def refresh_access_token(
        self,
        token_endpoint: str,
        client_id: str,
        refresh_token: str,
        scope: Optional[str] = None,
    ) -> TokenSet:
        """Obtain a new token set using a refresh token.

        Raises:
            AuthenticationError: ``NETWORK_ERROR`` on transport failure,
                ``REFRESH_FAILED`` on an error status or malformed body.
        """
        data = {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "refresh_token": refresh_token,
        }
        if scope:
            data["scope"] = scope
        return self._fetch_tokens(
            token_endpoint, data, "token refresh", AuthErrorCode.REFRESH_FAILED
        )

    def get_openid_configuration(
        self,
        base_url: str,
        path: str = DEFAULT_DISCOVERY_PATH,
    ) -> OIDCConfiguration:
        """Fetch the provider's OpenID Connect discovery document.

        Args:
            base_url: Identity provider base URL.
            path: Discovery document path relative to *base_url*.

        Raises:
            AuthenticationError: ``NETWORK_ERROR`` on transport failure,
                ``INVALID_RESPONSE`` on an error status or a document missing
                required fields.
        """
        url = base_url.rstrip("/") + path
        doc = self._get_json(url, "OIDC discovery")
        try:
            return OIDCConfiguration.model_validate(doc)
        except ValidationError as exc:
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE,
                f"OIDC discovery document at {url} is invalid: {exc.error_count()} error(s)",
            ) from exc

    def get_jwks(self, jwks_uri: str) -> dict[str, Any]:
        """Fetch the provider's JSON Web Key Set (:rfc:`7517`)."""
        jwks = self._get_json(jwks_uri, "JWKS fetch")
        if not isinstance(jwks.get("keys"), list):
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE,
                "JWKS document is missing the 'keys' array",
            )
        return jwks

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _fetch_tokens(
        self,
        endpoint: str,
        data: dict[str, str],
        operation: str,
        failure_code: AuthErrorCode,
    ) -> TokenSet:
        logger.debug("POST %s (%s)", endpoint, operation)
        try:
            response = httpx.post(
                endpoint,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            message = _describe_error_response(exc.response)
            logger.warning("OAuth %s rejected: %s", operation, message)
            raise AuthenticationError(
                failure_code, f"OAuth {operation} failed: {message}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR, f"Network error during {operation}: {exc}"
            ) from exc
        except ValueError as exc:
            raise AuthenticationError(
                failure_code, f"OAuth {operation} returned a non-JSON body"
            ) from exc

        if not isinstance(payload, dict) or "access_token" not in payload:
            raise AuthenticationError(
                failure_code, f"OAuth {operation} response missing 'access_token' field"
            )

        expires_in = payload.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_EXPIRES_IN
        try:
            return TokenSet(
                access_token=payload["access_token"],
                token_type=payload.get("token_type") or "Bearer",
                expires_in=expires_in,
                refresh_token=payload.get("refresh_token"),
                id_token=payload.get("id_token"),
                scope=payload.get("scope") or "",
            )
        except ValidationError as exc:
            raise AuthenticationError(
                failure_code, f"OAuth {operation} returned malformed tokens"
            ) from exc

    def _get_json(self, url: str, operation: str) -> dict[str, Any]:
        logger.debug("GET %s (%s)", url, operation)
        try:
            response = httpx.get(
                url,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            doc = response.json()
        except httpx.HTTPStatusError as exc:
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE,
                f"{operation} failed: {_describe_error_response(exc.response)}",
            ) from exc
        except httpx.HTTPError as exc:
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR, f"Network error during {operation}: {exc}"
            ) from exc
        except ValueError as exc:
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE, f"{operation} returned a non-JSON body"
            ) from exc

        if not isinstance(doc, dict):
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE, f"{operation} returned an unexpected body"
            )
        return doc
