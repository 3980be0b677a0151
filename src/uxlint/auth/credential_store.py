"""Opaque secret storage keyed by service and account name.

The session layer treats the credential store as a string blob store; it
owns serialisation itself. Three backends are provided:

* :class:`KeyringCredentialStore` -- the OS keychain via :mod:`keyring`
  (macOS Keychain, Windows Credential Locker, Secret Service on Linux).
* :class:`FileCredentialStore` -- one ``0o600`` file per account under
  ``<data_dir>/credentials/<service>/``, written atomically. Useful on
  headless machines without a secret service.
* :class:`MemoryCredentialStore` -- process-local storage for tests and
  ephemeral sessions.

Backend failures surface as :class:`~uxlint.exceptions.CredentialStoreError`.

See Also:
    :class:`~uxlint.auth.token_manager.TokenManager` -- the only consumer.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from uxlint.config import atomic_write, get_data_dir
from uxlint.exceptions import ConfigError, CredentialStoreError

logger = logging.getLogger(__name__)


class CredentialStore(ABC):
    """Abstract key/value secret store."""

    @abstractmethod
    def get_password(self, service: str, account: str) -> Optional[str]:
        """Return the stored blob, or ``None`` if nothing is stored."""
        ...

    @abstractmethod
    def set_password(self, service: str, account: str, password: str) -> None:
        """Store *password*, replacing any existing value."""
        ...

    @abstractmethod
    def delete_password(self, service: str, account: str) -> bool:
        """Delete the stored blob.

        Returns:
            ``True`` if something was deleted, ``False`` if nothing was stored.
        """
        ...

    def is_available(self) -> bool:
        """Return True if the backend is usable on this machine."""
        return True


class KeyringCredentialStore(CredentialStore):
    """OS-native credential storage through the :mod:`keyring` package."""

    def get_password(self, service: str, account: str) -> Optional[str]:
        logger.debug("Reading %s/%s from keyring", service, account)
        try:
            return keyring.get_password(service, account)
        except KeyringError as exc:
            logger.error("Keyring read failed for %s/%s: %s", service, account, exc)
            raise CredentialStoreError(f"Failed to read from the system keyring: {exc}") from exc

    def set_password(self, service: str, account: str, password: str) -> None:
        try:
            keyring.set_password(service, account, password)
        except KeyringError as exc:
            logger.error("Keyring write failed for %s/%s: %s", service, account, exc)
            raise CredentialStoreError(f"Failed to write to the system keyring: {exc}") from exc
        logger.info("Stored credential %s/%s in keyring", service, account)

    def delete_password(self, service: str, account: str) -> bool:
        try:
            keyring.delete_password(service, account)
        except PasswordDeleteError:
            return False
        except KeyringError as exc:
            logger.error("Keyring delete failed for %s/%s: %s", service, account, exc)
            raise CredentialStoreError(f"Failed to delete from the system keyring: {exc}") from exc
        logger.info("Deleted credential %s/%s from keyring", service, account)
        return True

    def is_available(self) -> bool:
        from keyring.backends import fail

        return not isinstance(keyring.get_keyring(), fail.Keyring)


_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]")


class FileCredentialStore(CredentialStore):
    """Credential files with ``0o600`` permissions, written atomically.

    Args:
        root: Base directory. Defaults to ``<data_dir>/credentials``.
    """

    def __init__(self, root: Optional[Path] = None) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        if self._root is None:
            self._root = get_data_dir() / "credentials"
        return self._root

    def path_for(self, service: str, account: str) -> Path:
        """Return the file that holds *service*/*account*."""
        return self.root / _SAFE_NAME.sub("_", service) / f"{_SAFE_NAME.sub('_', account)}.json"

    def get_password(self, service: str, account: str) -> Optional[str]:
        path = self.path_for(service, account)
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CredentialStoreError(f"Cannot read credential file {path}: {exc}") from exc

    def set_password(self, service: str, account: str, password: str) -> None:
        path = self.path_for(service, account)
        try:
            atomic_write(path, password, mode=0o600)
        except OSError as exc:
            raise CredentialStoreError(f"Cannot write credential file {path}: {exc}") from exc
        logger.info("Stored credential %s/%s in %s", service, account, path)

    def delete_password(self, service: str, account: str) -> bool:
        path = self.path_for(service, account)
        if not path.is_file():
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise CredentialStoreError(f"Cannot delete credential file {path}: {exc}") from exc
        logger.info("Deleted credential file %s", path)
        return True


class MemoryCredentialStore(CredentialStore):
    """In-process credential storage. Nothing survives the process."""

    def __init__(self) -> None:
        self._items: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, account: str) -> Optional[str]:
        return self._items.get((service, account))

    def set_password(self, service: str, account: str, password: str) -> None:
        self._items[(service, account)] = password

    def delete_password(self, service: str, account: str) -> bool:
        return self._items.pop((service, account), None) is not None


def create_credential_store(backend: str) -> CredentialStore:
    """Build a credential store by backend name (``keyring``, ``file``, ``memory``).

    Raises:
        ConfigError: If *backend* is not a known name.
    """
    if backend == "keyring":
        return KeyringCredentialStore()
    if backend == "file":
        return FileCredentialStore()
    if backend == "memory":
        return MemoryCredentialStore()
    raise ConfigError(
        f"Unknown credential backend '{backend}'. Choose one of: keyring, file, memory"
    )
