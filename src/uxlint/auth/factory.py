"""Composition root for the identity client."""

from __future__ import annotations

import logging
from typing import Optional

from uxlint.auth.browser import BrowserLauncher, WebBrowserLauncher
from uxlint.auth.callback_server import CallbackServer
from uxlint.auth.client import IdentityClient
from uxlint.auth.credential_store import create_credential_store
from uxlint.auth.http_client import OAuthHttpClient
from uxlint.auth.id_token import IdTokenVerifier
from uxlint.config import (
    load_global_config,
    require_client_id,
    resolve_cloud_config,
    resolve_credential_backend,
)
from uxlint.models import CloudConfig

logger = logging.getLogger(__name__)


def create_identity_client(
    config: Optional[CloudConfig] = None,
    backend: Optional[str] = None,
    browser: Optional[BrowserLauncher] = None,
    require_client: bool = True,
) -> IdentityClient:
    """Build an :class:`IdentityClient` wired with production collaborators.

    Args:
        config: Cloud settings. Resolved from env and the global config when
            omitted.
        backend: Credential backend name (``keyring``, ``file``, ``memory``).
            Resolved from env and the global config when omitted.
        browser: Browser launcher. Defaults to :class:`WebBrowserLauncher`.
        require_client: Fail early when no OAuth client id is configured.
            Commands that only read or delete the stored session pass False.

    Raises:
        ConfigError: On invalid configuration or a missing client id.
    """
    global_config = None
    if config is None or backend is None:
        global_config = load_global_config()
    if config is None:
        config = resolve_cloud_config(global_config)
    if backend is None:
        backend = resolve_credential_backend(global_config)
    if require_client:
        require_client_id(config)

    http = OAuthHttpClient(timeout=config.http_timeout_seconds)
    logger.debug("Creating identity client (base_url=%s, backend=%s)", config.base_url, backend)
    return IdentityClient(
        config=config,
        credential_store=create_credential_store(backend),
        browser=browser or WebBrowserLauncher(),
        http_client=http,
        listener_factory=CallbackServer,
        id_token_verifier=IdTokenVerifier(http),
    )
