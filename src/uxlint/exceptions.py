"""Exception hierarchy for uxlint.

All exceptions inherit from :class:`UxlintError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`uxlint.exit_codes`.
The top-level error handler in :func:`uxlint.app.main` catches
``UxlintError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    UxlintError (exit 1)
    +-- AuthenticationError   (exit 3, or 6 for NETWORK_ERROR)
    +-- ConfigError           (exit 1)
    +-- CredentialStoreError  (exit 1)

:class:`AuthenticationError` is the only error type that crosses the
:class:`~uxlint.auth.client.IdentityClient` boundary. Its
:class:`AuthErrorCode` is a closed set; every transport, protocol, and
storage failure is re-classified into one of its six members.
"""

from __future__ import annotations

import enum
from typing import Optional

from uxlint.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
)


class UxlintError(Exception):
    """Base exception for all uxlint errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`uxlint.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code


class AuthErrorCode(str, enum.Enum):
    """Closed set of authentication failure categories.

    Each code implies a different corrective action for the user:

    * ``ALREADY_AUTHENTICATED`` -- log out first.
    * ``NOT_AUTHENTICATED`` -- log in first.
    * ``BROWSER_FAILED`` -- open the carried URL manually.
    * ``NETWORK_ERROR`` -- check connectivity and retry.
    * ``INVALID_RESPONSE`` -- the provider or callback misbehaved.
    * ``REFRESH_FAILED`` -- the session was wiped; log in again.
    """

    ALREADY_AUTHENTICATED = "ALREADY_AUTHENTICATED"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    BROWSER_FAILED = "BROWSER_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    REFRESH_FAILED = "REFRESH_FAILED"


class AuthenticationError(UxlintError):
    """Raised for every failure of the authentication subsystem.

    Args:
        code: The :class:`AuthErrorCode` classifying the failure.
        message: Human-readable description.
        url: The authorization URL, set for ``BROWSER_FAILED`` so the caller
            can present it for manual navigation.

    Example::

        try:
            client.login()
        except AuthenticationError as exc:
            if exc.code is AuthErrorCode.BROWSER_FAILED:
                print(f"Open this URL: {exc.url}")
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(
        self,
        code: AuthErrorCode,
        message: str,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.url = url
        if code is AuthErrorCode.NETWORK_ERROR:
            self.exit_code = EXIT_CONNECTION_ERROR

    def __repr__(self) -> str:
        return f"AuthenticationError({self.code.value}, {self.message!r})"


class ConfigError(UxlintError):
    """Raised for configuration problems (missing client id, invalid JSON)."""

    exit_code = EXIT_GENERIC_FAILURE


class CredentialStoreError(UxlintError):
    """Raised by credential store adapters when the backing secret store fails."""

    exit_code = EXIT_GENERIC_FAILURE
