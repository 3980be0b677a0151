"""Identity client -- the single entry point of the authentication subsystem.

Other parts of uxlint only ever call :class:`IdentityClient`. It owns:

* the in-memory session cache, populated lazily from the credential store
  the first time it is needed;
* the login operation (authorization flow, ID token verification, session
  assembly and persistence);
* silent refresh of the access token when it is about to expire;
* the guarantee that a failed refresh wipes the stored session.

Every failure that crosses this boundary is an
:class:`~uxlint.exceptions.AuthenticationError`.

See Also:
    :func:`uxlint.auth.factory.create_identity_client` -- the composition
    root that wires production collaborators together.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from uxlint.auth.browser import BrowserLauncher
from uxlint.auth.callback_server import CallbackServer, ListenerFactory
from uxlint.auth.credential_store import CredentialStore
from uxlint.auth.flow import OAuthFlow, StatusCallback
from uxlint.auth.http_client import OAuthHttpClient
from uxlint.auth.id_token import IdTokenVerifier, fallback_profile, profile_from_claims
from uxlint.auth.token_manager import TokenManager
from uxlint.exceptions import AuthErrorCode, AuthenticationError, CredentialStoreError
from uxlint.models import AuthenticationSession, CloudConfig, TokenSet, UserProfile

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED_MESSAGE = "Not authenticated. Please run `uxlint auth login` first."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IdentityClient:
    """Log in to UXLint Cloud and hand out valid access tokens.

    All collaborators are injected; :func:`~uxlint.auth.factory.create_identity_client`
    builds the production set.

    Args:
        config: Resolved cloud OAuth settings.
        credential_store: Where the session blob is persisted.
        browser: Opens the authorization URL.
        http_client: Client for the token, discovery, and JWKS endpoints.
        listener_factory: Builds the loopback callback listener.
        id_token_verifier: Verifies ID tokens. Defaults to one using
            *http_client*.
        refresh_buffer: Refresh the access token when it expires within this
            window. Defaults to ``config.refresh_buffer_minutes``.
        clock: Returns the current UTC time.

    Example::

        client = create_identity_client()
        token = client.get_access_token()
        headers = {"Authorization": f"Bearer {token}"}
    """

    def __init__(
        self,
        config: CloudConfig,
        credential_store: CredentialStore,
        browser: BrowserLauncher,
        http_client: Optional[OAuthHttpClient] = None,
        listener_factory: ListenerFactory = CallbackServer,
        id_token_verifier: Optional[IdTokenVerifier] = None,
        refresh_buffer: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._http = http_client or OAuthHttpClient(timeout=config.http_timeout_seconds)
        self._token_manager = TokenManager(credential_store)
        self._flow = OAuthFlow(self._http, browser, listener_factory)
        self._verifier = id_token_verifier or IdTokenVerifier(self._http)
        if refresh_buffer is None:
            refresh_buffer = timedelta(minutes=config.refresh_buffer_minutes)
        self._refresh_buffer = refresh_buffer
        self._clock = clock

        self._session: Optional[AuthenticationSession] = None
        self._loaded = False

    @property
    def config(self) -> CloudConfig:
        return self._config

    @property
    def token_manager(self) -> TokenManager:
        return self._token_manager

    @property
    def flow(self) -> OAuthFlow:
        return self._flow

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def login(self, on_status: Optional[StatusCallback] = None) -> AuthenticationSession:
        """Run the browser login flow and persist the resulting session.

        Args:
            on_status: Optional progress callback forwarded to the flow.

        Returns:
            The newly created session.

        Raises:
            AuthenticationError: ``ALREADY_AUTHENTICATED`` if a valid session
                exists or a login is already running; ``BROWSER_FAILED`` with
                the URL to open manually; ``NETWORK_ERROR`` or
                ``INVALID_RESPONSE`` if the flow or ID token verification fails.
        """
        started = time.perf_counter()

        existing = self.get_status()
        if existing is not None and not existing.is_expired(now=self._clock()):
            raise AuthenticationError(
                AuthErrorCode.ALREADY_AUTHENTICATED,
                "Already logged in. Use `uxlint auth logout` first to re-authenticate.",
            )

        result = self._flow.authorize(
            client_id=self._config.client_id,
            base_url=self._config.base_url,
            authorize_path=self._config.authorize_path,
            token_path=self._config.token_path,
            redirect_uri=self._config.redirect_uri,
            scopes=self._config.scopes,
            timeout=self._config.flow_timeout_seconds,
            on_status=on_status,
        )
        tokens = result.tokens

        user, session_id = self._derive_profile(tokens)
        session = AuthenticationSession.create(
            user=user,
            tokens=tokens,
            now=self._clock(),
            scopes=self._config.scopes,
            session_id=session_id,
        )

        try:
            self._token_manager.save_session(session)
        except CredentialStoreError as exc:
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR,
                f"Logged in, but the session could not be stored: {exc}",
            ) from exc
        self._session = session
        self._loaded = True

        logger.info(
            "Login flow completed for user %s in %.2fs",
            user.id,
            time.perf_counter() - started,
        )
        return session

    def logout(self) -> None:
        """Delete the stored session and clear the cache. Never fails."""
        try:
            self._token_manager.delete_session()
        except CredentialStoreError as exc:
            logger.warning("Could not delete stored session: %s", exc)
        self._session = None
        self._loaded = True
        logger.info("Logged out")

    def get_status(self) -> Optional[AuthenticationSession]:
        """Return the current session, loading it from the store on first use.

        The store is read at most once per client; afterwards only
        :meth:`login`, :meth:`refresh_token`, and :meth:`logout` change the
        cached value.
        """
        if self._loaded:
            return self._session

        started = time.perf_counter()
        try:
            self._session = self._token_manager.load_session()
        except CredentialStoreError as exc:
            logger.warning("Could not read stored session: %s", exc)
            return None
        self._loaded = True
        logger.debug(
            "Status check completed (authenticated=%s) in %.0fms",
            self._session is not None,
            (time.perf_counter() - started) * 1000,
        )
        return self._session

    def is_authenticated(self) -> bool:
        """True if a session exists and has not expired."""
        session = self.get_status()
        return session is not None and not session.is_expired(now=self._clock())

    def get_user_profile(self) -> UserProfile:
        """Return the logged-in user's profile.

        Raises:
            AuthenticationError: ``NOT_AUTHENTICATED`` if there is no session.
        """
        return self._require_session().user

    def get_access_token(self) -> str:
        """Return a usable access token, refreshing it first if it expires soon.

        Raises:
            AuthenticationError: ``NOT_AUTHENTICATED`` if there is no session;
                ``REFRESH_FAILED`` if a needed refresh fails (the session is
                wiped).
        """
        session = self._require_session()
        if session.is_expired(buffer=self._refresh_buffer, now=self._clock()):
            logger.info(
                "Access token for user %s expires at %s; refreshing",
                session.user.id,
                session.metadata.expires_at.isoformat(),
            )
            session = self.refresh_token()
        return session.tokens.access_token

    def refresh_token(self) -> AuthenticationSession:
        """Refresh the access token and persist the updated session.

        Returns:
            The updated session.

        Raises:
            AuthenticationError: ``NOT_AUTHENTICATED`` if there is no session;
                ``REFRESH_FAILED`` on any failure, after wiping the session.
        """
        session = self._require_session()
        logger.info("Token refresh initiated for user %s", session.user.id)

        try:
            updated = self._refreshed(session)
            self._token_manager.save_session(updated)
        except (AuthenticationError, CredentialStoreError) as exc:
            logger.error("Token refresh failed for user %s: %s", session.user.id, exc)
            self.logout()
            raise AuthenticationError(
                AuthErrorCode.REFRESH_FAILED,
                "Token refresh failed. Please log in again.",
            ) from exc

        self._session = updated
        logger.info(
            "Token refresh successful for user %s; new expiry %s",
            session.user.id,
            updated.metadata.expires_at.isoformat(),
        )
        return updated

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _require_session(self) -> AuthenticationSession:
        session = self.get_status()
        if session is None:
            raise AuthenticationError(AuthErrorCode.NOT_AUTHENTICATED, NOT_AUTHENTICATED_MESSAGE)
        return session

    def _refreshed(self, session: AuthenticationSession) -> AuthenticationSession:
        refresh_token = session.tokens.refresh_token
        if not refresh_token:
            raise AuthenticationError(
                AuthErrorCode.REFRESH_FAILED, "The stored session has no refresh token"
            )

        tokens = self._flow.refresh(
            refresh_token=refresh_token,
            client_id=self._config.client_id,
            base_url=self._config.base_url,
            token_path=self._config.token_path,
        )
        if tokens.refresh_token is None:
            # Providers that do not rotate refresh tokens omit them on refresh.
            tokens = tokens.model_copy(update={"refresh_token": refresh_token})

        user: Optional[UserProfile] = None
        session_id: Optional[str] = None
        if tokens.id_token:
            user, session_id = self._derive_profile(tokens)
        return session.with_tokens(
            tokens, now=self._clock(), user=user, session_id=session_id
        )

    def _derive_profile(self, tokens: TokenSet) -> tuple[UserProfile, Optional[str]]:
        """Return the user profile and provider session id for *tokens*."""
        if not tokens.id_token:
            logger.warning("No ID token provided, using minimal profile")
            return fallback_profile(), None

        discovery = self._http.get_openid_configuration(
            self._config.base_url, self._config.openid_configuration_path
        )
        claims = self._verifier.verify(tokens.id_token, discovery, self._config.client_id)
        sid = claims.get("sid")
        return profile_from_claims(claims), sid if isinstance(sid, str) else None
