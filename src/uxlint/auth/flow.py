"""OAuth2 Authorization Code flow with PKCE.

:class:`OAuthFlow` composes the PKCE generator, the callback listener, the
browser launcher, and the HTTP client into the two operations the identity
client needs:

1. :meth:`OAuthFlow.authorize` -- the interactive flow. Generates PKCE
   parameters, starts the loopback listener, opens the authorization URL,
   waits (bounded) for the redirect, validates ``state``, and exchanges the
   code for tokens. The listener is always stopped on the way out.
2. :meth:`OAuthFlow.refresh` -- a direct refresh-token grant with no
   browser and no listener.

Progress through :meth:`~OAuthFlow.authorize` is tracked in
:attr:`OAuthFlow.state`::

    INIT -> PKCE_GENERATED -> LISTENER_STARTED -> BROWSER_OPENING
         -> AWAITING_CALLBACK -> STATE_VALIDATED -> EXCHANGING_CODE -> DONE

with ``ERROR`` reachable from every step.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Optional
from urllib.parse import urlencode

from uxlint.auth.browser import BrowserLauncher
from uxlint.auth.callback_server import (
    DEFAULT_CALLBACK_TIMEOUT,
    CallbackServer,
    ListenerFactory,
)
from uxlint.auth.http_client import OAuthHttpClient
from uxlint.auth.pkce import generate_pkce_parameters
from uxlint.exceptions import AuthErrorCode, AuthenticationError
from uxlint.models import AuthorizationResult, TokenSet

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_PATH = "/auth/v1/oauth/token"

StatusCallback = Callable[[str], None]
"""Receives ``opening-browser``, ``waiting-for-authentication``, ``exchanging-tokens``."""


class FlowState(str, enum.Enum):
    """Steps of :meth:`OAuthFlow.authorize`."""

    INIT = "INIT"
    PKCE_GENERATED = "PKCE_GENERATED"
    LISTENER_STARTED = "LISTENER_STARTED"
    BROWSER_OPENING = "BROWSER_OPENING"
    AWAITING_CALLBACK = "AWAITING_CALLBACK"
    STATE_VALIDATED = "STATE_VALIDATED"
    EXCHANGING_CODE = "EXCHANGING_CODE"
    DONE = "DONE"
    ERROR = "ERROR"


def _join(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def build_authorization_url(
    base_url: str,
    authorize_path: str,
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    code_challenge: str,
    state: str,
    code_challenge_method: str = "S256",
) -> str:
    """Return the provider's authorization URL with all PKCE query parameters."""
    query = urlencode(
        {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(scopes),
            "code_challenge": code_challenge,
            "code_challenge_method": code_challenge_method,
            "state": state,
        }
    )
    return f"{_join(base_url, authorize_path)}?{query}"


class OAuthFlow:
    """Runs the authorization code flow against a single identity provider.

    Args:
        http_client: Client for the token endpoint.
        browser: Launcher that opens the authorization URL.
        listener_factory: Builds a :class:`~uxlint.auth.callback_server.CallbackServer`
            for a redirect URI. One listener is created per :meth:`authorize` call.
    """

    def __init__(
        self,
        http_client: OAuthHttpClient,
        browser: BrowserLauncher,
        listener_factory: ListenerFactory = CallbackServer,
    ) -> None:
        self._http = http_client
        self._browser = browser
        self._listener_factory = listener_factory
        self._guard = threading.Lock()
        self.state = FlowState.INIT

    build_authorization_url = staticmethod(build_authorization_url)

    @property
    def in_progress(self) -> bool:
        """True while an :meth:`authorize` call is running."""
        return self._guard.locked()

    def authorize(
        self,
        client_id: str,
        base_url: str,
        authorize_path: str,
        token_path: str,
        redirect_uri: str,
        scopes: list[str],
        timeout: float = DEFAULT_CALLBACK_TIMEOUT,
        on_status: Optional[StatusCallback] = None,
    ) -> AuthorizationResult:
        """Run the interactive flow and return the issued tokens.

        Raises:
            AuthenticationError: ``ALREADY_AUTHENTICATED`` if another flow is in
                progress on this instance; ``BROWSER_FAILED`` (with ``url``) if
                the browser cannot be opened; ``NETWORK_ERROR`` on listener
                failure or timeout; ``INVALID_RESPONSE`` on a state mismatch,
                provider error, or failed code exchange.
        """
        if not self._guard.acquire(blocking=False):
            raise AuthenticationError(
                AuthErrorCode.ALREADY_AUTHENTICATED,
                "A login is already in progress in this process.",
            )
        try:
            return self._authorize(
                client_id=client_id,
                base_url=base_url,
                authorize_path=authorize_path,
                token_path=token_path,
                redirect_uri=redirect_uri,
                scopes=scopes,
                timeout=timeout,
                on_status=on_status or (lambda status: None),
            )
        except BaseException:
            logger.info("Authorization flow failed during %s", self.state.value)
            self.state = FlowState.ERROR
            raise
        finally:
            self._guard.release()

    def refresh(
        self,
        refresh_token: str,
        client_id: str,
        base_url: str,
        token_path: str = DEFAULT_TOKEN_PATH,
        scope: Optional[str] = None,
    ) -> TokenSet:
        """Exchange *refresh_token* for a new token set.

        Raises:
            AuthenticationError: ``REFRESH_FAILED`` or ``NETWORK_ERROR``.
        """
        return self._http.refresh_access_token(
            token_endpoint=_join(base_url, token_path),
            client_id=client_id,
            refresh_token=refresh_token,
            scope=scope,
        )

    def _authorize(
        self,
        client_id: str,
        base_url: str,
        authorize_path: str,
        token_path: str,
        redirect_uri: str,
        scopes: list[str],
        timeout: float,
        on_status: StatusCallback,
    ) -> AuthorizationResult:
        self.state = FlowState.INIT
        pkce = generate_pkce_parameters()
        self.state = FlowState.PKCE_GENERATED

        # Listen before opening the browser so a fast redirect is not missed.
        listener = self._listener_factory(redirect_uri)
        try:
            listener.start(expected_state=pkce.state)
            self.state = FlowState.LISTENER_STARTED
            redirect_uri = listener.redirect_uri

            url = build_authorization_url(
                base_url=base_url,
                authorize_path=authorize_path,
                client_id=client_id,
                redirect_uri=redirect_uri,
                scopes=scopes,
                code_challenge=pkce.code_challenge,
                code_challenge_method=pkce.code_challenge_method,
                state=pkce.state,
            )

            self.state = FlowState.BROWSER_OPENING
            on_status("opening-browser")
            self._open_browser(url)

            self.state = FlowState.AWAITING_CALLBACK
            on_status("waiting-for-authentication")
            callback = listener.wait_for_callback(expected_state=pkce.state, timeout=timeout)
            self.state = FlowState.STATE_VALIDATED
        finally:
            listener.stop()

        self.state = FlowState.EXCHANGING_CODE
        on_status("exchanging-tokens")
        tokens = self._http.exchange_code_for_tokens(
            token_endpoint=_join(base_url, token_path),
            client_id=client_id,
            code=callback.code,
            redirect_uri=redirect_uri,
            code_verifier=pkce.code_verifier,
        )
        self.state = FlowState.DONE
        return AuthorizationResult(tokens=tokens, authorization_url=url)

    def _open_browser(self, url: str) -> None:
        try:
            self._browser.open_url(url)
        except AuthenticationError as exc:
            if exc.code is AuthErrorCode.BROWSER_FAILED and exc.url is None:
                raise AuthenticationError(exc.code, exc.message, url=url) from exc
            raise
        except Exception as exc:
            raise AuthenticationError(
                AuthErrorCode.BROWSER_FAILED,
                f"Failed to open browser: {exc}",
                url=url,
            ) from exc
