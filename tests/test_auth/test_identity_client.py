"""Tests for the IdentityClient facade."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from http.client import HTTPConnection
from typing import Optional
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlencode, urlparse

import pytest

from uxlint.auth.browser import BrowserLauncher
from uxlint.auth.client import IdentityClient
from uxlint.auth.credential_store import MemoryCredentialStore
from uxlint.auth.http_client import OAuthHttpClient
from uxlint.auth.id_token import IdTokenVerifier
from uxlint.auth.token_manager import ACCOUNT_NAME, SERVICE_NAME, TokenManager
from uxlint.exceptions import AuthErrorCode, AuthenticationError, CredentialStoreError
from uxlint.models import CallbackResult, OIDCConfiguration, TokenSet

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

DISCOVERY = OIDCConfiguration(
    issuer="https://auth.example.com",
    authorization_endpoint="https://auth.example.com/auth/v1/oauth/authorize",
    token_endpoint="https://auth.example.com/auth/v1/oauth/token",
    jwks_uri="https://auth.example.com/.well-known/jwks.json",
)

CLAIMS = {
    "sub": "user-42",
    "email": "grace@example.com",
    "name": "Grace Hopper",
    "org": "Navy",
    "email_verified": True,
    "sid": "sess-1",
}


class FakeListener:
    """Resolves immediately with the expected state."""

    def __init__(self, redirect_uri: str) -> None:
        self.redirect_uri = redirect_uri

    def start(self, expected_state: Optional[str] = None) -> None:
        pass

    def wait_for_callback(self, expected_state: str, timeout: float) -> CallbackResult:
        return CallbackResult(code="auth-code", state=expected_state)

    def stop(self) -> None:
        pass


@pytest.fixture
def http_client() -> MagicMock:
    client = MagicMock(spec=OAuthHttpClient)
    client.exchange_code_for_tokens.return_value = TokenSet(
        access_token="login-access",
        expires_in=3600,
        refresh_token="login-refresh",
        id_token="header.payload.sig",
        scope="openid profile",
    )
    client.refresh_access_token.return_value = TokenSet(
        access_token="refreshed-access", expires_in=1800
    )
    client.get_openid_configuration.return_value = DISCOVERY
    return client


@pytest.fixture
def verifier() -> MagicMock:
    verifier = MagicMock(spec=IdTokenVerifier)
    verifier.verify.return_value = dict(CLAIMS)
    return verifier


@pytest.fixture
def browser() -> MagicMock:
    return MagicMock(spec=BrowserLauncher)


@pytest.fixture
def make_client(cloud_config, memory_store, http_client, verifier, browser):
    def _make(**overrides) -> IdentityClient:
        params = dict(
            config=cloud_config,
            credential_store=memory_store,
            browser=browser,
            http_client=http_client,
            listener_factory=FakeListener,
            id_token_verifier=verifier,
        )
        params.update(overrides)
        return IdentityClient(**params)

    return _make


def _store_session(store: MemoryCredentialStore, session) -> None:
    TokenManager(store).save_session(session)


def _stored(store: MemoryCredentialStore):
    return TokenManager(store).load_session()


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_already_authenticated_makes_no_http_calls(
        self, make_client, memory_store, make_session, http_client, browser
    ) -> None:
        _store_session(memory_store, make_session(expires_in=3600))
        factory = MagicMock()
        client = make_client(listener_factory=factory)

        with pytest.raises(AuthenticationError) as exc_info:
            client.login()

        assert exc_info.value.code is AuthErrorCode.ALREADY_AUTHENTICATED
        assert http_client.method_calls == []
        factory.assert_not_called()
        browser.open_url.assert_not_called()

    def test_creates_and_persists_session(
        self, make_client, memory_store, http_client, verifier, cloud_config
    ) -> None:
        client = make_client(clock=lambda: FIXED_NOW)

        session = client.login()

        assert session.user.id == "user-42"
        assert session.user.organization == "Navy"
        assert session.tokens.access_token == "login-access"
        assert session.metadata.created_at == FIXED_NOW
        assert session.metadata.expires_at == FIXED_NOW + timedelta(seconds=3600)
        assert session.metadata.scopes == ["openid", "profile"]
        assert session.metadata.session_id == "sess-1"
        assert _stored(memory_store) == session
        assert client.get_status() is session

        http_client.get_openid_configuration.assert_called_once_with(
            cloud_config.base_url, cloud_config.openid_configuration_path
        )
        verifier.verify.assert_called_once_with("header.payload.sig", DISCOVERY, "test-client")

    def test_expired_session_allows_new_login(
        self, make_client, memory_store, make_session, expired_now
    ) -> None:
        _store_session(memory_store, make_session(expires_in=60, now=expired_now))
        session = make_client().login()
        assert session.tokens.access_token == "login-access"

    def test_without_id_token_uses_fallback_profile(
        self, make_client, http_client, verifier, caplog
    ) -> None:
        http_client.exchange_code_for_tokens.return_value = TokenSet(
            access_token="at", expires_in=600
        )
        with caplog.at_level("WARNING", logger="uxlint"):
            session = make_client().login()

        assert session.user.id == "unknown"
        assert session.user.email_verified is False
        verifier.verify.assert_not_called()
        http_client.get_openid_configuration.assert_not_called()
        assert "No ID token" in caplog.text

    def test_scopes_fall_back_to_configured(self, make_client, http_client) -> None:
        http_client.exchange_code_for_tokens.return_value = TokenSet(
            access_token="at", expires_in=600
        )
        session = make_client().login()
        assert session.metadata.scopes == ["openid", "profile"]

    def test_verification_failure_stores_nothing(
        self, make_client, memory_store, verifier
    ) -> None:
        verifier.verify.side_effect = AuthenticationError(
            AuthErrorCode.INVALID_RESPONSE, "ID token has expired"
        )
        client = make_client()
        with pytest.raises(AuthenticationError) as exc_info:
            client.login()
        assert exc_info.value.code is AuthErrorCode.INVALID_RESPONSE
        assert _stored(memory_store) is None
        assert client.get_status() is None

    def test_browser_failure_surfaces_url(self, make_client, browser) -> None:
        browser.open_url.side_effect = AuthenticationError(
            AuthErrorCode.BROWSER_FAILED, "no browser"
        )
        with pytest.raises(AuthenticationError) as exc_info:
            make_client().login()
        assert exc_info.value.code is AuthErrorCode.BROWSER_FAILED
        assert exc_info.value.url.startswith("https://auth.example.com/auth/v1/oauth/authorize?")

    def test_store_failure_is_network_error(self, make_client, memory_store) -> None:
        with patch.object(
            memory_store, "set_password", side_effect=CredentialStoreError("keyring locked")
        ):
            with pytest.raises(AuthenticationError) as exc_info:
                make_client().login()
        assert exc_info.value.code is AuthErrorCode.NETWORK_ERROR
        assert isinstance(exc_info.value.__cause__, CredentialStoreError)

    def test_logs_completion(self, make_client, caplog) -> None:
        with caplog.at_level("INFO", logger="uxlint"):
            make_client().login()
        assert "Login flow completed for user user-42" in caplog.text
        assert "login-access" not in caplog.text

    def test_end_to_end_with_real_listener(self, make_client, http_client) -> None:
        """The browser "visits" the authorization URL and the provider redirects back."""
        from uxlint.auth.callback_server import CallbackServer

        class RedirectingBrowser(BrowserLauncher):
            def open_url(self, url: str) -> None:
                query = parse_qs(urlparse(url).query)
                redirect = urlparse(query["redirect_uri"][0])
                params = urlencode({"code": "real-code", "state": query["state"][0]})

                def _redirect() -> None:
                    conn = HTTPConnection("127.0.0.1", redirect.port, timeout=5)
                    conn.request("GET", f"{redirect.path}?{params}")
                    conn.getresponse().read()
                    conn.close()

                threading.Thread(target=_redirect, daemon=True).start()

        client = make_client(browser=RedirectingBrowser(), listener_factory=CallbackServer)
        session = client.login()

        assert session.user.id == "user-42"
        kwargs = http_client.exchange_code_for_tokens.call_args.kwargs
        assert kwargs["code"] == "real-code"
        assert kwargs["redirect_uri"].startswith("http://localhost:")
        assert not kwargs["redirect_uri"].startswith("http://localhost:0/")


# ---------------------------------------------------------------------------
# logout / status
# ---------------------------------------------------------------------------


class TestLogoutAndStatus:
    def test_logout_without_session(self, make_client) -> None:
        client = make_client()
        client.logout()
        assert client.get_status() is None

    def test_logout_wipes_store_and_cache(self, make_client, memory_store, make_session) -> None:
        _store_session(memory_store, make_session())
        client = make_client()
        assert client.get_status() is not None

        client.logout()

        assert client.get_status() is None
        assert memory_store.get_password(SERVICE_NAME, ACCOUNT_NAME) is None

    def test_logout_swallows_store_failure(self, make_client, memory_store, make_session) -> None:
        _store_session(memory_store, make_session())
        client = make_client()
        with patch.object(
            memory_store, "delete_password", side_effect=CredentialStoreError("locked")
        ):
            client.logout()
        assert client.get_status() is None

    def test_status_reads_store_once(self, make_client, memory_store, make_session) -> None:
        _store_session(memory_store, make_session())
        client = make_client()
        with patch.object(
            memory_store, "get_password", wraps=memory_store.get_password
        ) as spy:
            first = client.get_status()
            second = client.get_status()
            client.is_authenticated()
        assert first is second
        assert spy.call_count == 1

    def test_status_does_not_reread_after_external_change(
        self, make_client, memory_store, make_session
    ) -> None:
        client = make_client()
        assert client.get_status() is None
        _store_session(memory_store, make_session())
        assert client.get_status() is None

    def test_status_treats_store_failure_as_absent(self, make_client, memory_store) -> None:
        with patch.object(
            memory_store, "get_password", side_effect=CredentialStoreError("no dbus")
        ):
            assert make_client().get_status() is None

    def test_is_authenticated(self, make_client, memory_store, make_session, expired_now) -> None:
        assert make_client().is_authenticated() is False

        _store_session(memory_store, make_session(expires_in=120))
        assert make_client().is_authenticated() is True

        _store_session(memory_store, make_session(expires_in=60, now=expired_now))
        assert make_client().is_authenticated() is False

    def test_get_user_profile(self, make_client, memory_store, make_session, user_profile) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            make_client().get_user_profile()
        assert exc_info.value.code is AuthErrorCode.NOT_AUTHENTICATED

        _store_session(memory_store, make_session())
        assert make_client().get_user_profile() == user_profile


# ---------------------------------------------------------------------------
# access token / refresh
# ---------------------------------------------------------------------------


class TestAccessToken:
    def test_not_authenticated(self, make_client) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            make_client().get_access_token()
        assert exc_info.value.code is AuthErrorCode.NOT_AUTHENTICATED

    def test_fresh_token_returned_without_refresh(
        self, make_client, memory_store, make_session, http_client
    ) -> None:
        _store_session(memory_store, make_session(expires_in=3600))
        assert make_client().get_access_token() == "access-1"
        http_client.refresh_access_token.assert_not_called()

    def test_expiring_within_buffer_refreshes_once(
        self, make_client, memory_store, make_session, http_client
    ) -> None:
        _store_session(memory_store, make_session(expires_in=120))
        client = make_client()

        token = client.get_access_token()

        assert token == "refreshed-access"
        assert http_client.refresh_access_token.call_count == 1
        assert http_client.refresh_access_token.call_args.kwargs["refresh_token"] == "refresh-1"
        # The refreshed session is cached, so a second call does not refresh again.
        assert client.get_access_token() == "refreshed-access"
        assert http_client.refresh_access_token.call_count == 1

    def test_custom_refresh_buffer(
        self, make_client, memory_store, make_session, http_client
    ) -> None:
        _store_session(memory_store, make_session(expires_in=120))
        client = make_client(refresh_buffer=timedelta(seconds=30))
        assert client.get_access_token() == "access-1"
        http_client.refresh_access_token.assert_not_called()

    def test_refresh_failure_wipes_session(
        self, make_client, memory_store, make_session, http_client
    ) -> None:
        _store_session(memory_store, make_session(expires_in=120))
        http_client.refresh_access_token.side_effect = AuthenticationError(
            AuthErrorCode.REFRESH_FAILED, "invalid_grant"
        )
        client = make_client()

        with pytest.raises(AuthenticationError) as exc_info:
            client.get_access_token()

        assert exc_info.value.code is AuthErrorCode.REFRESH_FAILED
        assert memory_store.get_password(SERVICE_NAME, ACCOUNT_NAME) is None
        assert client.get_status() is None


class TestRefreshToken:
    def test_not_authenticated(self, make_client) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            make_client().refresh_token()
        assert exc_info.value.code is AuthErrorCode.NOT_AUTHENTICATED

    def test_updates_tokens_and_metadata(
        self, make_client, memory_store, make_session, http_client
    ) -> None:
        original = make_session(now=FIXED_NOW - timedelta(hours=1))
        _store_session(memory_store, original)
        client = make_client(clock=lambda: FIXED_NOW)

        updated = client.refresh_token()

        assert updated.tokens.access_token == "refreshed-access"
        # The provider did not rotate the refresh token; the old one is kept.
        assert updated.tokens.refresh_token == "refresh-1"
        assert updated.metadata.last_refreshed_at == FIXED_NOW
        assert updated.metadata.expires_at == FIXED_NOW + timedelta(seconds=1800)
        assert updated.metadata.created_at == original.metadata.created_at
        assert updated.user == original.user
        assert _stored(memory_store) == updated

    def test_rotated_refresh_token_is_stored(
        self, make_client, memory_store, make_session, http_client
    ) -> None:
        _store_session(memory_store, make_session())
        http_client.refresh_access_token.return_value = TokenSet(
            access_token="a2", expires_in=600, refresh_token="refresh-2"
        )
        assert make_client().refresh_token().tokens.refresh_token == "refresh-2"

    def test_new_id_token_replaces_profile(
        self, make_client, memory_store, make_session, http_client, verifier
    ) -> None:
        _store_session(memory_store, make_session())
        http_client.refresh_access_token.return_value = TokenSet(
            access_token="a2", expires_in=600, id_token="new.id.token"
        )
        updated = make_client().refresh_token()
        verifier.verify.assert_called_once_with("new.id.token", DISCOVERY, "test-client")
        assert updated.user.id == "user-42"
        assert updated.metadata.session_id == "sess-1"
        assert _stored(memory_store).metadata.session_id == "sess-1"

    def test_refresh_without_id_token_keeps_session_id(
        self, make_client, memory_store, make_session
    ) -> None:
        original = make_session()
        original = original.model_copy(
            update={"metadata": original.metadata.model_copy(update={"session_id": "sess-0"})}
        )
        _store_session(memory_store, original)

        updated = make_client().refresh_token()

        assert updated.metadata.session_id == "sess-0"

    def test_no_refresh_token_fails_and_wipes(
        self, make_client, memory_store, make_session, http_client
    ) -> None:
        _store_session(memory_store, make_session(refresh_token=None))
        client = make_client()

        with pytest.raises(AuthenticationError) as exc_info:
            client.refresh_token()

        assert exc_info.value.code is AuthErrorCode.REFRESH_FAILED
        http_client.refresh_access_token.assert_not_called()
        assert memory_store.get_password(SERVICE_NAME, ACCOUNT_NAME) is None

    def test_network_error_is_refresh_failed(
        self, make_client, memory_store, make_session, http_client
    ) -> None:
        _store_session(memory_store, make_session())
        cause = AuthenticationError(AuthErrorCode.NETWORK_ERROR, "connection refused")
        http_client.refresh_access_token.side_effect = cause

        with pytest.raises(AuthenticationError) as exc_info:
            make_client().refresh_token()

        assert exc_info.value.code is AuthErrorCode.REFRESH_FAILED
        assert exc_info.value.__cause__ is cause
        assert memory_store.get_password(SERVICE_NAME, ACCOUNT_NAME) is None

    def test_save_failure_is_refresh_failed(
        self, make_client, memory_store, make_session
    ) -> None:
        _store_session(memory_store, make_session())
        client = make_client()
        with patch.object(
            memory_store, "set_password", side_effect=CredentialStoreError("locked")
        ):
            with pytest.raises(AuthenticationError) as exc_info:
                client.refresh_token()
        assert exc_info.value.code is AuthErrorCode.REFRESH_FAILED
        assert client.get_status() is None

    def test_logs_refresh_lifecycle(self, make_client, memory_store, make_session, caplog) -> None:
        _store_session(memory_store, make_session())
        with caplog.at_level("INFO", logger="uxlint"):
            make_client().refresh_token()
        assert "Token refresh initiated for user user-123" in caplog.text
        assert "Token refresh successful" in caplog.text
        assert "refreshed-access" not in caplog.text
