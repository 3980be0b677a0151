"""Browser launcher collaborator.

The authorization flow hands the authorization URL to a
:class:`BrowserLauncher`. Launch failures are reported as
:class:`~uxlint.exceptions.AuthenticationError` with code
``BROWSER_FAILED`` carrying the URL, so the caller can ask the user to open
it manually.
"""

from __future__ import annotations

import logging
import webbrowser
from abc import ABC, abstractmethod
from typing import Callable

from uxlint.exceptions import AuthErrorCode, AuthenticationError

logger = logging.getLogger(__name__)


class BrowserLauncher(ABC):
    """Opens URLs in the user's browser."""

    @abstractmethod
    def open_url(self, url: str) -> None:
        """Open *url* in the user's default browser.

        Raises:
            AuthenticationError: ``BROWSER_FAILED`` (with ``url`` set) if the
                browser could not be launched.
        """
        ...

    def is_available(self) -> bool:
        """Return True if a browser is likely to be launchable."""
        return True


class WebBrowserLauncher(BrowserLauncher):
    """Launch the platform browser through the :mod:`webbrowser` module."""

    def open_url(self, url: str) -> None:
        try:
            opened = webbrowser.open(url)
        except webbrowser.Error as exc:
            logger.warning("Browser launch raised: %s", exc)
            raise AuthenticationError(
                AuthErrorCode.BROWSER_FAILED,
                "Failed to open browser. Please open the authorization URL manually.",
                url=url,
            ) from exc
        if not opened:
            logger.warning("No runnable browser found")
            raise AuthenticationError(
                AuthErrorCode.BROWSER_FAILED,
                "Failed to open browser. Please open the authorization URL manually.",
                url=url,
            )

    def is_available(self) -> bool:
        try:
            webbrowser.get()
        except webbrowser.Error:
            return False
        return True


class ManualBrowserLauncher(BrowserLauncher):
    """Hand the URL to *show* instead of launching anything.

    Used by ``uxlint auth login --no-browser`` on machines without a
    desktop browser; the callback listener still waits for the redirect.
    """

    def __init__(self, show: Callable[[str], None]) -> None:
        self._show = show

    def open_url(self, url: str) -> None:
        self._show(url)
