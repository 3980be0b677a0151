"""Canonical Pydantic models shared across all uxlint modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CloudConfig` and :class:`GlobalConfig`.

**Authentication models** -- produced and consumed by :mod:`uxlint.auth`:
    :class:`PKCEParameters`, :class:`TokenSet`, :class:`UserProfile`,
    :class:`SessionMetadata`, :class:`AuthenticationSession`,
    :class:`OIDCConfiguration`, :class:`CallbackResult`, and
    :class:`AuthorizationResult`.

All models use Pydantic v2. :class:`PKCEParameters` and :class:`TokenSet` are
frozen: they are never mutated, only replaced wholesale.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Configuration ---


DEFAULT_SCOPES = ["openid", "profile", "email", "uxlint:api"]


class CloudConfig(BaseModel):
    """UXLint Cloud OAuth client settings stored in :class:`GlobalConfig`.

    Environment variables override these values at resolution time; see
    :func:`~uxlint.config.resolve_cloud_config`.
    """

    client_id: str = Field(default="", description="Registered OAuth client id")
    base_url: str = Field(
        default="https://app.uxlint.org", description="Identity provider base URL"
    )
    authorize_path: str = "/auth/v1/oauth/authorize"
    token_path: str = "/auth/v1/oauth/token"
    openid_configuration_path: str = "/auth/v1/oauth/.well-known/openid-configuration"
    redirect_uri: str = Field(
        default="http://localhost:8080/callback",
        description="Loopback redirect URI registered with the provider",
    )
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    flow_timeout_seconds: int = Field(
        default=300, description="Maximum time to wait for the browser callback"
    )
    http_timeout_seconds: int = Field(default=30, description="HTTP request timeout")
    refresh_buffer_minutes: int = Field(
        default=5, description="Refresh the access token this long before it expires"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/uxlint/config.json``.

    Loaded and saved by :func:`~uxlint.config.load_global_config` and
    :func:`~uxlint.config.save_global_config`.
    """

    cloud: CloudConfig = Field(default_factory=CloudConfig)
    credential_backend: Literal["keyring", "file", "memory"] = Field(
        default="keyring", description="Where the session is persisted"
    )
    log_level: str = Field(default="INFO", description="File log level")


# --- Authentication ---


class PKCEParameters(BaseModel):
    """Proof Key for Code Exchange parameters for a single authorization attempt.

    Generated by :func:`~uxlint.auth.pkce.generate_pkce_parameters`. Never
    persisted beyond the flow that created them.
    """

    model_config = ConfigDict(frozen=True)

    code_verifier: str = Field(min_length=43, max_length=128)
    code_challenge: str
    code_challenge_method: Literal["S256"] = "S256"
    state: str


class TokenSet(BaseModel):
    """Tokens returned by the identity provider's token endpoint."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1)
    token_type: str = "Bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    scope: str = ""


class UserProfile(BaseModel):
    """Identity of the logged-in user, derived from the ID token."""

    id: str = Field(min_length=1)
    email: str = Field(min_length=1)
    name: str = Field(min_length=1)
    organization: Optional[str] = None
    picture: Optional[str] = None
    email_verified: bool = False


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SessionMetadata(BaseModel):
    """Bookkeeping for an :class:`AuthenticationSession`.

    ``expires_at`` is absolute and always recomputed from
    ``tokens.expires_in`` when the session is created or refreshed.
    """

    created_at: datetime
    last_refreshed_at: datetime
    expires_at: datetime
    scopes: list[str] = Field(default_factory=list)
    session_id: Optional[str] = None

    @field_validator("created_at", "last_refreshed_at", "expires_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return _utc(value)


class AuthenticationSession(BaseModel):
    """The single unit of persisted authentication state.

    Created by a successful login, replaced wholesale on refresh, and
    deleted on logout or on any failed refresh.
    """

    version: Literal[1] = 1
    user: UserProfile
    tokens: TokenSet
    metadata: SessionMetadata

    @classmethod
    def create(
        cls,
        user: UserProfile,
        tokens: TokenSet,
        now: datetime,
        scopes: Optional[list[str]] = None,
        session_id: Optional[str] = None,
    ) -> AuthenticationSession:
        """Build a fresh session whose expiry is derived from *tokens*.

        Args:
            user: Profile of the authenticated user.
            tokens: Token set returned by the code exchange.
            now: Current time; ``expires_at = now + tokens.expires_in``.
            scopes: Fallback scopes when ``tokens.scope`` is empty.
            session_id: Provider session id (the ID token's ``sid``).
        """
        now = _utc(now)
        granted = tokens.scope.split() or list(scopes or [])
        return cls(
            user=user,
            tokens=tokens,
            metadata=SessionMetadata(
                created_at=now,
                last_refreshed_at=now,
                expires_at=now + timedelta(seconds=tokens.expires_in),
                scopes=granted,
                session_id=session_id,
            ),
        )

    def with_tokens(
        self,
        tokens: TokenSet,
        now: datetime,
        user: Optional[UserProfile] = None,
        session_id: Optional[str] = None,
    ) -> AuthenticationSession:
        """Return a copy carrying *tokens*, with expiry recomputed from them.

        *user* and *session_id* replace the stored values when given, i.e.
        when the refresh response carried a new ID token.
        """
        now = _utc(now)
        update = {
            "last_refreshed_at": now,
            "expires_at": now + timedelta(seconds=tokens.expires_in),
            "scopes": tokens.scope.split() or list(self.metadata.scopes),
        }
        if session_id is not None:
            update["session_id"] = session_id
        metadata = self.metadata.model_copy(update=update)
        return self.model_copy(
            update={
                "tokens": tokens,
                "metadata": metadata,
                "user": user if user is not None else self.user,
            }
        )

    def is_expired(
        self,
        buffer: timedelta = timedelta(0),
        now: Optional[datetime] = None,
    ) -> bool:
        """Return True if the session has expired or will within *buffer*."""
        current = _utc(now) if now is not None else datetime.now(timezone.utc)
        return self.metadata.expires_at <= current + buffer


class OIDCConfiguration(BaseModel):
    """Subset of the OpenID Provider discovery document that uxlint uses."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    userinfo_endpoint: Optional[str] = None
    response_types_supported: list[str] = Field(default_factory=list)
    grant_types_supported: list[str] = Field(default_factory=list)
    scopes_supported: list[str] = Field(default_factory=list)
    code_challenge_methods_supported: list[str] = Field(default_factory=list)


class CallbackResult(BaseModel):
    """Authorization code and state delivered to the loopback redirect."""

    code: str
    state: str


class AuthorizationResult(BaseModel):
    """Outcome of a completed authorization code flow."""

    tokens: TokenSet
    authorization_url: str
