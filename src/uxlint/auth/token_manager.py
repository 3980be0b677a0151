"""Persistence of the authentication session.

:class:`TokenManager` serialises an
:class:`~uxlint.models.AuthenticationSession` to JSON and stores it in a
:class:`~uxlint.auth.credential_store.CredentialStore` under a fixed
service/account key. Exactly one identity is stored at a time.

Loading is self-healing: a blob that is not JSON, or that fails structural
validation, is deleted from the store and reported as "no session".
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import ValidationError

from uxlint.auth.credential_store import CredentialStore
from uxlint.exceptions import CredentialStoreError
from uxlint.models import AuthenticationSession

logger = logging.getLogger(__name__)

SERVICE_NAME = "uxlint-cli"
ACCOUNT_NAME = "default"


class TokenManager:
    """Load, save, and delete the stored session.

    Args:
        store: Backing credential store.
        service: Service name used as the store key.
        account: Account name used as the store key.
    """

    def __init__(
        self,
        store: CredentialStore,
        service: str = SERVICE_NAME,
        account: str = ACCOUNT_NAME,
    ) -> None:
        self._store = store
        self._service = service
        self._account = account

    @property
    def store(self) -> CredentialStore:
        return self._store

    def load_session(self) -> Optional[AuthenticationSession]:
        """Return the stored session, or ``None`` if absent or corrupted.

        Corrupted entries are purged so the next load starts clean.

        Raises:
            CredentialStoreError: If the backing store itself fails.
        """
        blob = self._store.get_password(self._service, self._account)
        if not blob:
            return None

        try:
            data = json.loads(blob)
            return AuthenticationSession.model_validate(data)
        except json.JSONDecodeError:
            logger.warning("Stored session is not valid JSON; deleting it")
        except ValidationError as exc:
            logger.warning(
                "Stored session failed validation (%d error(s)); deleting it",
                exc.error_count(),
            )
        self.delete_session()
        return None

    def save_session(self, session: AuthenticationSession) -> None:
        """Serialise *session* and write it to the store, replacing any previous one."""
        blob = session.model_dump_json()
        self._store.set_password(self._service, self._account, blob)
        logger.debug("Session saved for user %s", session.user.id)

    def delete_session(self) -> None:
        """Delete the stored session. A no-op if none is stored."""
        deleted = self._store.delete_password(self._service, self._account)
        logger.debug("Session delete requested (deleted=%s)", deleted)

    def is_store_available(self) -> bool:
        """Report whether the backing credential store is usable."""
        try:
            return self._store.is_available()
        except CredentialStoreError:
            return False
