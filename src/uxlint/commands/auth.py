"""Auth commands -- sign in to UXLint Cloud and manage the stored session.

Provides the ``uxlint auth`` sub-command group. All commands go through
:class:`~uxlint.auth.client.IdentityClient`; none of them touch the
credential store directly.

Typical workflow::

    uxlint auth login          # sign in through the browser
    uxlint auth status         # inspect the stored session
    uxlint auth token          # print a valid access token to stdout
    uxlint auth logout         # wipe the stored session
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn, Optional

import typer

from uxlint.exceptions import AuthErrorCode, AuthenticationError, UxlintError
from uxlint.exit_codes import EXIT_AUTH_FAILURE
from uxlint.output import (
    OutputFormat,
    error,
    format_response,
    get_output,
    info,
    print_data,
    progress,
    success,
    suggest,
)

if TYPE_CHECKING:
    from uxlint.auth.browser import BrowserLauncher
    from uxlint.auth.client import IdentityClient


auth_app = typer.Typer(no_args_is_help=True)

_STATUS_MESSAGES = {
    "opening-browser": "Opening browser for authentication...",
    "waiting-for-authentication": "Waiting for you to finish signing in (Ctrl-C to cancel)...",
    "exchanging-tokens": "Exchanging authorization code for tokens...",
}


@auth_app.command("login")
def auth_login(
    no_browser: bool = typer.Option(
        False,
        "--no-browser",
        help="Print the authorization URL instead of opening a browser.",
    ),
) -> None:
    """Sign in to UXLint Cloud through the browser.

    Starts a loopback listener, opens the authorization page, and waits
    for the redirect. The resulting session is stored in the configured
    credential backend.

    Args:
        no_browser: Print the authorization URL for manual navigation
            instead of launching the system browser.

    Raises:
        typer.Exit: With code 3 if already logged in or the login fails,
            code 6 on network errors.

    Example::

        uxlint auth login
        uxlint auth login --no-browser
    """
    from uxlint.auth.browser import ManualBrowserLauncher

    browser = None
    if no_browser:
        browser = ManualBrowserLauncher(
            lambda url: info(f"Open this URL in your browser to sign in:\n\n  {url}\n")
        )
    client = _client(browser=browser)

    try:
        session = client.login(on_status=_show_status)
    except AuthenticationError as exc:
        _fail(exc)

    success(f"Logged in as {session.user.name} ({session.user.email})")


@auth_app.command("logout")
def auth_logout() -> None:
    """Sign out and delete the stored session.

    Succeeds even when no session is stored.

    Example::

        uxlint auth logout
    """
    client = _client(require_client=False)
    was_logged_in = client.get_status() is not None
    client.logout()
    if was_logged_in:
        success("Logged out.")
    else:
        info("Not logged in.")


@auth_app.command("status")
def auth_status() -> None:
    """Show the stored session.

    Prints the user, expiry, and granted scopes. Tokens are never shown.

    Raises:
        typer.Exit: With code 3 when no session is stored.

    Example::

        uxlint auth status
        uxlint --json auth status
    """
    client = _client(require_client=False)
    session = client.get_status()
    if session is None:
        if get_output().format == OutputFormat.JSON:
            format_response({"authenticated": False})
        else:
            info("Not logged in.")
            suggest("Sign in: uxlint auth login")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)

    expired = session.is_expired()
    meta = session.metadata
    if get_output().format == OutputFormat.JSON:
        format_response(
            {
                "authenticated": not expired,
                "user": session.user.model_dump(mode="json"),
                "expires_at": meta.expires_at.isoformat(),
                "last_refreshed_at": meta.last_refreshed_at.isoformat(),
                "created_at": meta.created_at.isoformat(),
                "scopes": meta.scopes,
                "expired": expired,
            }
        )
        return

    rows = [
        ["User", session.user.name],
        ["Email", session.user.email],
        ["Organization", session.user.organization or "-"],
        ["Expires At", meta.expires_at.isoformat()],
        ["Last Refreshed", meta.last_refreshed_at.isoformat()],
        ["Scopes", " ".join(meta.scopes) or "-"],
        ["Expired", str(expired)],
    ]
    get_output().print_table(["Field", "Value"], rows, title="UXLint Cloud Session")
    if expired:
        suggest("Refresh it: uxlint auth refresh")


@auth_app.command("whoami")
def auth_whoami() -> None:
    """Print the logged-in user's profile.

    Example::

        uxlint auth whoami
    """
    client = _client(require_client=False)
    try:
        profile = client.get_user_profile()
    except AuthenticationError as exc:
        _fail(exc)
    format_response(profile.model_dump(mode="json"))


@auth_app.command("token")
def auth_token() -> None:
    """Print a valid access token to stdout.

    Refreshes the token first when it expires within the configured
    buffer. Only the bare token goes to stdout so it can be captured::

        TOKEN=$(uxlint auth token)
    """
    client = _client()
    try:
        token = client.get_access_token()
    except AuthenticationError as exc:
        _fail(exc)
    print_data(token)


@auth_app.command("refresh")
def auth_refresh() -> None:
    """Refresh the access token now.

    A failed refresh deletes the stored session; sign in again afterwards.

    Example::

        uxlint auth refresh
    """
    client = _client()
    try:
        session = client.refresh_token()
    except AuthenticationError as exc:
        _fail(exc)
    success(f"Token refreshed; expires at {session.metadata.expires_at.isoformat()}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _client(
    browser: Optional[BrowserLauncher] = None, require_client: bool = True
) -> IdentityClient:
    """Build the identity client, exiting with the error's code on bad configuration."""
    from uxlint.auth.factory import create_identity_client

    try:
        return create_identity_client(browser=browser, require_client=require_client)
    except UxlintError as exc:
        error(exc.message)
        raise typer.Exit(code=exc.exit_code) from None


def _show_status(status: str) -> None:
    progress(_STATUS_MESSAGES.get(status, status))


def _fail(exc: AuthenticationError) -> NoReturn:
    """Report *exc* with the corrective action its code implies, then exit."""
    url = exc.url
    if exc.code is AuthErrorCode.ALREADY_AUTHENTICATED:
        error(exc.message)
        suggest("Sign out first: uxlint auth logout")
    elif exc.code is AuthErrorCode.BROWSER_FAILED:
        error("Could not open a browser.")
        if url:
            info(f"Open this URL in your browser to continue:\n\n  {url}\n")
        suggest("Or run: uxlint auth login --no-browser")
    elif exc.code in (AuthErrorCode.NOT_AUTHENTICATED, AuthErrorCode.REFRESH_FAILED):
        error(exc.message)
        suggest("Sign in: uxlint auth login")
    else:
        error(f"Authentication failed: {exc.message}")
    raise typer.Exit(code=exc.exit_code)
