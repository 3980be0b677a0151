"""uxlint -- UXLint Cloud authentication for the uxlint CLI.

This package obtains, persists, refreshes, and validates a user's UXLint
Cloud identity using the OAuth2 Authorization Code grant with PKCE
(:rfc:`7636`) plus OpenID Connect discovery and JWKS verification.

Typical workflow::

    uxlint auth login    # open the browser and sign in
    uxlint auth status   # show the stored session
    uxlint auth token    # print a valid access token (refreshing if needed)
    uxlint auth logout   # wipe the stored session

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    logging_setup: Rotating file logging.
    output: stdout/stderr formatting system with Rich support.
    auth: The authentication subsystem and its collaborators.
"""

__version__ = "0.3.0"
