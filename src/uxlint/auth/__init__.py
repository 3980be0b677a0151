"""UXLint Cloud authentication subsystem.

Other code only needs the facade:

- :class:`IdentityClient` -- login, logout, status, silent refresh, and
  access-token retrieval.
- :func:`create_identity_client` -- factory that wires the client with the
  configured credential store, the system browser, and the loopback
  callback listener.

The collaborators (:class:`OAuthFlow`, :class:`OAuthHttpClient`,
:class:`CallbackServer`, :class:`TokenManager`, the credential stores, and
the browser launchers) are exported for tests and alternative wiring.

Typical usage::

    from uxlint.auth import create_identity_client

    client = create_identity_client()
    token = client.get_access_token()
"""

from uxlint.auth.browser import BrowserLauncher, ManualBrowserLauncher, WebBrowserLauncher
from uxlint.auth.callback_server import CallbackServer
from uxlint.auth.client import IdentityClient
from uxlint.auth.credential_store import (
    CredentialStore,
    FileCredentialStore,
    KeyringCredentialStore,
    MemoryCredentialStore,
    create_credential_store,
)
from uxlint.auth.factory import create_identity_client
from uxlint.auth.flow import FlowState, OAuthFlow
from uxlint.auth.http_client import OAuthHttpClient
from uxlint.auth.id_token import IdTokenVerifier
from uxlint.auth.token_manager import TokenManager

__all__ = [
    "BrowserLauncher",
    "CallbackServer",
    "CredentialStore",
    "FileCredentialStore",
    "FlowState",
    "IdTokenVerifier",
    "IdentityClient",
    "KeyringCredentialStore",
    "ManualBrowserLauncher",
    "MemoryCredentialStore",
    "OAuthFlow",
    "OAuthHttpClient",
    "TokenManager",
    "WebBrowserLauncher",
    "create_credential_store",
    "create_identity_client",
]
