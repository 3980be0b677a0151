"""Loopback HTTP listener that receives the OAuth redirect.

:class:`CallbackServer` binds the host and port named by the registered
``redirect_uri``, serves requests on a daemon thread, and resolves exactly
once: with the first request to the callback path. The caller blocks in
:meth:`CallbackServer.wait_for_callback`, which races the completion signal
against a timeout; whichever wins, :meth:`CallbackServer.stop` tears the
socket down and is safe to call any number of times.

The received ``state`` is compared against the expected nonce in constant
time. A mismatch fails the flow rather than being ignored.
"""

from __future__ import annotations

import html
import logging
import secrets
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlparse, urlunparse

from uxlint.exceptions import AuthErrorCode, AuthenticationError
from uxlint.models import CallbackResult

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_TIMEOUT = 300.0
MAX_AUTH_CODE_LENGTH = 2048
MAX_STATE_LENGTH = 2048
CONNECTION_TIMEOUT = 5.0

_LOOPBACK_HOSTS = {"localhost": "127.0.0.1", "127.0.0.1": "127.0.0.1"}

_PAGE = (
    "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>uxlint</title></head>"
    "<body style=\"font-family: sans-serif; text-align: center; margin-top: 4em\">"
    "<h2>{title}</h2><p>{detail}</p></body></html>"
)


def _same_state(received: str, expected: str) -> bool:
    return secrets.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


class _CallbackHTTPServer(ThreadingHTTPServer):
    """Threading HTTP server carrying a back-reference to its :class:`CallbackServer`.

    Each connection gets its own thread, so an idle browser preconnect cannot
    hold up the real redirect.
    """

    # No other socket may share the callback port.
    allow_reuse_port = False
    daemon_threads = True

    listener: CallbackServer


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackHTTPServer
    # Seconds an idle connection may hold its handler thread.
    timeout = CONNECTION_TIMEOUT

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        listener = self.server.listener
        if parsed.path != listener.callback_path:
            self._respond(404, "Not found", "This address only accepts the login callback.")
            return

        status, title, detail = listener._accept(parse_qs(parsed.query))
        self._respond(status, title, detail)

    def _respond(self, status: int, title: str, detail: str) -> None:
        body = _PAGE.format(title=html.escape(title), detail=html.escape(detail))
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("callback server: " + format, *args)


class CallbackServer:
    """Short-lived local HTTP endpoint for a single authorization flow.

    Args:
        redirect_uri: The loopback redirect URI registered with the provider,
            e.g. ``http://localhost:8080/callback``. Port ``0`` binds an
            ephemeral port; :attr:`redirect_uri` then reports the real one.

    Example::

        server = CallbackServer("http://localhost:8080/callback")
        server.start(expected_state=pkce.state)
        try:
            webbrowser.open(url)
            result = server.wait_for_callback(pkce.state, timeout=300)
        finally:
            server.stop()
    """

    def __init__(self, redirect_uri: str) -> None:
        parsed = urlparse(redirect_uri)
        self._parsed = parsed
        self._host = parsed.hostname or ""
        self._port = parsed.port or 80
        self.callback_path = parsed.path or "/"

        self._server: Optional[_CallbackHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._expected_state: Optional[str] = None
        self._result: Optional[CallbackResult] = None
        self._error: Optional[AuthenticationError] = None
        self._stopped = False

    @property
    def port(self) -> int:
        """The bound port (the configured one until :meth:`start` runs)."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._port

    @property
    def redirect_uri(self) -> str:
        """The redirect URI with the actually bound port."""
        netloc = f"{self._parsed.hostname}:{self.port}"
        return urlunparse(self._parsed._replace(netloc=netloc))

    @property
    def is_running(self) -> bool:
        return self._server is not None and not self._stopped

    def start(self, expected_state: Optional[str] = None) -> None:
        """Bind the socket and begin serving on a daemon thread.

        Args:
            expected_state: When given, mismatching callbacks are reported to
                the browser as failures immediately.

        Raises:
            AuthenticationError: ``NETWORK_ERROR`` if the redirect URI is not a
                loopback ``http`` address or the port cannot be bound.
        """
        if self._stopped:
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR, "Callback server has already been stopped"
            )
        if self._server is not None:
            return
        if self._parsed.scheme != "http" or self._host not in _LOOPBACK_HOSTS:
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR,
                f"Redirect URI must be a loopback http address, got {self._parsed.geturl()}",
            )

        self._expected_state = expected_state
        try:
            server = _CallbackHTTPServer((_LOOPBACK_HOSTS[self._host], self._port), _CallbackHandler)
        except OSError as exc:
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR,
                f"Callback server could not listen on port {self._port}: {exc}",
            ) from exc
        server.listener = self
        self._server = server

        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name="uxlint-oauth-callback",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Callback server listening on %s", self.redirect_uri)

    def wait_for_callback(
        self,
        expected_state: str,
        timeout: float = DEFAULT_CALLBACK_TIMEOUT,
    ) -> CallbackResult:
        """Block until the redirect arrives, the timeout elapses, or :meth:`stop` is called.

        Args:
            expected_state: The ``state`` nonce sent in the authorization URL.
            timeout: Seconds to wait before giving up.

        Returns:
            The received :class:`~uxlint.models.CallbackResult`.

        Raises:
            AuthenticationError: ``NETWORK_ERROR`` on timeout or cancellation,
                ``INVALID_RESPONSE`` on a state mismatch, a provider error, or
                a malformed callback.
        """
        if self._expected_state is None:
            self._expected_state = expected_state
        if not self._stopped:
            self.start(expected_state)

        if not self._done.wait(timeout):
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR,
                f"Timed out after {timeout:g}s waiting for the browser callback",
            )
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR, "Callback server stopped before a callback arrived"
            )
        if not _same_state(self._result.state, expected_state):
            logger.warning("Callback state mismatch; rejecting authorization response")
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE,
                "State mismatch in authorization callback (possible CSRF attempt)",
            )
        return self._result

    def stop(self) -> None:
        """Shut down the listener. Idempotent."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            server, thread = self._server, self._thread
        # Wake any waiter; a late callback can no longer be accepted.
        self._done.set()
        if server is not None:
            server.shutdown()
            server.server_close()
        if thread is not None:
            thread.join(timeout=5)
        logger.debug("Callback server stopped")

    # ------------------------------------------------------------------ #
    # Request handling (runs on the server thread)
    # ------------------------------------------------------------------ #

    def _accept(self, params: dict[str, list[str]]) -> tuple[int, str, str]:
        """Record the first callback and return ``(status, title, detail)`` for the browser."""
        with self._lock:
            if self._done.is_set():
                return 409, "Already completed", "This login attempt has already finished."
            accepted, detail = self._classify(params)
            self._done.set()

        if not accepted:
            return 400, "Authorization failed", detail
        return 200, "Authorization successful", detail

    def _classify(self, params: dict[str, list[str]]) -> tuple[bool, str]:
        def first(name: str) -> Optional[str]:
            values = params.get(name)
            return values[0] if values else None

        error = first("error")
        if error:
            description = first("error_description")
            message = f"OAuth error: {error}" + (f": {description}" if description else "")
            if error == "access_denied":
                message = "Authorization was denied in the browser" + (
                    f": {description}" if description else ""
                )
            self._error = AuthenticationError(AuthErrorCode.INVALID_RESPONSE, message)
            logger.info("Callback carried provider error %s", error)
            return False, message

        code, state = first("code"), first("state")
        if not code or state is None:
            self._error = AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE, "Callback is missing the authorization code or state"
            )
            return False, self._error.message
        if len(code) > MAX_AUTH_CODE_LENGTH or len(state) > MAX_STATE_LENGTH:
            self._error = AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE, "Callback parameters exceed the allowed length"
            )
            return False, self._error.message

        self._result = CallbackResult(code=code, state=state)
        logger.info("Authorization callback received")
        if self._expected_state is not None and not _same_state(state, self._expected_state):
            return False, "The response did not match this login attempt. Return to the terminal."
        return True, "You can close this window and return to the terminal."


ListenerFactory = Callable[[str], CallbackServer]
"""Builds a :class:`CallbackServer` for a redirect URI; injected into the flow."""
