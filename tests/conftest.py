"""Shared test fixtures for uxlint.

Provides isolated config directories, an in-memory credential store,
ready-made sessions and cloud settings, fake ``httpx`` responses, and
output/logging reset between tests. These fixtures are automatically
discovered by pytest and available to all test modules without explicit
imports.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional
from unittest.mock import MagicMock

import httpx
import pytest

from uxlint.auth.credential_store import MemoryCredentialStore
from uxlint.logging_setup import reset_logging
from uxlint.models import AuthenticationSession, CloudConfig, TokenSet, UserProfile
from uxlint.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_globals_between_tests() -> None:
    """Reset the global OutputManager and file logging after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    The CLI callback also installs a file handler that stops ``uxlint``
    records from propagating, which would hide them from ``caplog``.
    """
    yield
    reset_output()
    reset_logging()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and data to a temporary directory.

    Points HOME and the XDG base directories at subdirectories of
    tmp_path so that tests never touch real user config or the real
    keychain-adjacent files. Clears all UXLINT_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "UXLINT_CLOUD_CLIENT_ID",
        "UXLINT_CLOUD_API_BASE_URL",
        "UXLINT_CLOUD_REDIRECT_URI",
        "UXLINT_CREDENTIAL_BACKEND",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def cloud_config() -> CloudConfig:
    """Cloud settings pointing at a fake provider with an ephemeral callback port."""
    return CloudConfig(
        client_id="test-client",
        base_url="https://auth.example.com",
        redirect_uri="http://localhost:0/callback",
        scopes=["openid", "profile"],
        flow_timeout_seconds=5,
    )


@pytest.fixture
def user_profile() -> UserProfile:
    return UserProfile(
        id="user-123",
        email="ada@example.com",
        name="Ada Lovelace",
        organization="Analytical Engines",
        email_verified=True,
    )


@pytest.fixture
def make_session(user_profile: UserProfile) -> Callable[..., AuthenticationSession]:
    """Factory for sessions expiring *expires_in* seconds from now."""

    def _make(
        expires_in: int = 3600,
        access_token: str = "access-1",
        refresh_token: Optional[str] = "refresh-1",
        now: Optional[datetime] = None,
    ) -> AuthenticationSession:
        tokens = TokenSet(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=refresh_token,
            scope="openid profile",
        )
        return AuthenticationSession.create(
            user=user_profile,
            tokens=tokens,
            now=now or datetime.now(timezone.utc),
        )

    return _make


@pytest.fixture
def expired_now() -> datetime:
    """A timestamp one hour in the past."""
    return datetime.now(timezone.utc) - timedelta(hours=1)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def http_response() -> Callable[..., MagicMock]:
    """Factory for mocked ``httpx.Response`` objects.

    Usage::

        response = http_response({"access_token": "t"}, status_code=200)
        with patch("uxlint.auth.http_client.httpx.post", return_value=response):
            ...
    """

    def _make(body: Any = None, status_code: int = 200, json_error: bool = False) -> MagicMock:
        response = MagicMock(spec=httpx.Response)
        response.status_code = status_code
        if json_error:
            response.json.side_effect = ValueError("Expecting value")
        else:
            response.json.return_value = body if body is not None else {}
        if status_code >= 400:
            response.raise_for_status.side_effect = httpx.HTTPStatusError(
                message=f"HTTP {status_code}",
                request=MagicMock(),
                response=response,
            )
        else:
            response.raise_for_status.return_value = None
        return response

    return _make


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
