"""Ephemeral loopback HTTP listener for the OAuth2 redirect.

:class:`CallbackListener` binds ``127.0.0.1:<port>``, waits for the
authorization server to redirect the browser to ``/callback``, validates
the ``state`` parameter and hands the authorization code back through a
:class:`concurrent.futures.Future`.

State machine::

    IDLE -> LISTENING -> SUCCEEDED | DENIED | STATE_MISMATCH | MALFORMED
                         | TIMED_OUT | STOPPED

Exactly one of {a ``/callback`` request, the timeout, :meth:`stop`}
completes the listener; whichever comes first wins and the others are
no-ops. The socket is closed before the future completes, so the port is
free again as soon as a caller observes the result.
"""

from __future__ import annotations

import enum
import html
import logging
import threading
import time
from concurrent.futures import Future
from datetime import timedelta
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional, Union
from urllib.parse import parse_qs, urlparse

from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import AuthorizationResult

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
LOOPBACK_HOST = "127.0.0.1"

_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><title>gatecli</title></head>
<body style="font-family: system-ui, sans-serif; text-align: center; padding: 50px;">
    <h1 style="color: {color};">{heading}</h1>
    <p>{message}</p>
</body>
</html>
"""


def _render(success: bool, message: str) -> str:
    if success:
        return _PAGE.format(
            color="#22c55e",
            heading="&#10003; Authorization Successful",
            message=html.escape(message),
        )
    return _PAGE.format(
        color="#ef4444",
        heading="&#10007; Authorization Failed",
        message=html.escape(message),
    )


class ListenerState(str, enum.Enum):
    """Lifecycle of a :class:`CallbackListener`.

    Every state after ``LISTENING`` is terminal and means the port has
    been released.
    """

    IDLE = "idle"
    LISTENING = "listening"
    SUCCEEDED = "succeeded"
    DENIED = "denied"
    STATE_MISMATCH = "state_mismatch"
    MALFORMED = "malformed"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"


class _CallbackServer(HTTPServer):
    allow_reuse_address = True

    def __init__(self, address: tuple[str, int], listener: CallbackListener) -> None:
        self.listener = listener
        super().__init__(address, _CallbackHandler)


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer
    # A browser preconnect that never sends a request must not stall the loop.
    timeout = 5

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path != CALLBACK_PATH:
            self._send(404, _render(False, "Not found"))
            return
        status, page = self.server.listener._handle_callback(parse_qs(parsed.query))
        self._send(status, page)

    def _send(self, status: int, page: str) -> None:
        body = page.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=UTF-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("callback %s - %s", self.address_string(), format % args)


class CallbackListener:
    """One-shot local redirect listener.

    A listener instance serves a single authorization attempt; create a
    new one for each login.

    Args:
        poll_interval: Seconds between deadline checks while idle.

    Example::

        listener = CallbackListener()
        future = listener.start_and_wait(8080, state, timedelta(minutes=5))
        webbrowser.open(auth_url)
        result = future.result()   # AuthorizationResult or raises GateError
    """

    def __init__(self, poll_interval: float = 0.05) -> None:
        self._poll_interval = poll_interval
        self._lock = threading.Lock()
        self._state = ListenerState.IDLE
        self._outcome: Optional[
            tuple[ListenerState, Optional[AuthorizationResult], Optional[GateError]]
        ] = None
        self._future: Future[AuthorizationResult] = Future()
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._expected_state = ""
        self._deadline = 0.0
        self._timeout_seconds = 0.0

    @property
    def state(self) -> ListenerState:
        """Current lifecycle state."""
        with self._lock:
            return self._state

    @property
    def future(self) -> Future[AuthorizationResult]:
        return self._future

    def start_and_wait(
        self,
        port: int,
        expected_state: str,
        timeout: Union[float, timedelta],
    ) -> Future[AuthorizationResult]:
        """Bind the port, start serving in the background and return the future.

        The future resolves to an :class:`~gatecli.models.AuthorizationResult`
        or fails with a ``CALLBACK`` :class:`~gatecli.exceptions.GateError`
        (denied, state mismatch, missing code, timeout, bind failure, or
        :meth:`stop`).

        Args:
            port: Loopback port to bind.
            expected_state: The ``state`` sent in the authorization request.
            timeout: How long to wait for the redirect.

        Raises:
            RuntimeError: If this listener was already started.
        """
        if isinstance(timeout, timedelta):
            timeout = timeout.total_seconds()

        with self._lock:
            if self._state is not ListenerState.IDLE:
                raise RuntimeError("CallbackListener instances are single-use")
            self._state = ListenerState.LISTENING

        self._expected_state = expected_state
        self._timeout_seconds = timeout

        try:
            server = _CallbackServer((LOOPBACK_HOST, port), self)
        except OSError as exc:
            logger.error("Cannot bind callback listener on port %d: %s", port, exc)
            error = GateError(
                ErrorKind.CALLBACK, f"Failed to start callback server on port {port}"
            )
            error.__cause__ = exc
            self._complete(ListenerState.STOPPED, error=error)
            self._settle()
            return self._future

        server.timeout = self._poll_interval
        self._server = server
        self._deadline = time.monotonic() + timeout
        self._thread = threading.Thread(
            target=self._serve, name=f"gatecli-callback-{port}", daemon=True
        )
        self._thread.start()
        logger.info(
            "OAuth callback listener started on http://%s:%d%s",
            LOOPBACK_HOST,
            port,
            CALLBACK_PATH,
        )
        return self._future

    def stop(self) -> None:
        """Tear the listener down early.

        Fails a still-pending future with a ``CALLBACK`` error and blocks
        until the port is released. A no-op once the listener has completed.
        """
        self._complete(
            ListenerState.STOPPED,
            error=GateError(ErrorKind.CALLBACK, "Callback listener stopped"),
        )
        thread = self._thread
        if thread is None:
            self._settle()
        elif thread is not threading.current_thread():
            thread.join()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _complete(
        self,
        outcome: ListenerState,
        result: Optional[AuthorizationResult] = None,
        error: Optional[GateError] = None,
    ) -> bool:
        """Record the outcome if none has been recorded yet.

        Returns:
            True when this call won, False when an outcome already existed.
        """
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = (outcome, result, error)
            return True

    def _settle(self) -> None:
        """Publish the recorded outcome to the state and the future."""
        with self._lock:
            if self._outcome is None or self._future.done():
                return
            outcome, result, error = self._outcome
            self._state = outcome
        if error is not None:
            self._future.set_exception(error)
        else:
            self._future.set_result(result)  # type: ignore[arg-type]

    def _serve(self) -> None:
        server = self._server
        assert server is not None
        try:
            while self._outcome is None:
                if time.monotonic() >= self._deadline:
                    if self._complete(
                        ListenerState.TIMED_OUT,
                        error=GateError(
                            ErrorKind.CALLBACK,
                            "Timed out waiting for authorization callback "
                            f"after {int(self._timeout_seconds)} seconds",
                        ),
                    ):
                        logger.warning("Callback timeout, listener stopped")
                    break
                server.handle_request()
        finally:
            server.server_close()
            self._complete(
                ListenerState.STOPPED,
                error=GateError(ErrorKind.CALLBACK, "Callback listener stopped unexpectedly"),
            )
            self._settle()

    def _handle_callback(self, params: dict[str, list[str]]) -> tuple[int, str]:
        """Decide the outcome of a ``/callback`` request.

        Returns:
            The HTTP status and HTML page to send back to the browser.
        """
        code = params.get("code", [None])[0]
        state = params.get("state", [None])[0]
        error = params.get("error", [None])[0]

        if error is not None:
            description = params.get("error_description", [None])[0] or error
            outcome, status, page = (
                ListenerState.DENIED,
                400,
                _render(False, description),
            )
            failure: Optional[GateError] = GateError(
                ErrorKind.CALLBACK, f"Authorization denied: {description}"
            )
            result = None
        elif code is not None and state == self._expected_state:
            outcome, status, page = (
                ListenerState.SUCCEEDED,
                200,
                _render(True, "You can close this window and return to the terminal."),
            )
            failure = None
            result = AuthorizationResult(code=code, state=state)
        elif code is not None:
            outcome, status, page = (
                ListenerState.STATE_MISMATCH,
                400,
                _render(False, "Invalid state parameter"),
            )
            failure = GateError(ErrorKind.CALLBACK, "State mismatch - possible CSRF attack")
            result = None
        else:
            outcome, status, page = (
                ListenerState.MALFORMED,
                400,
                _render(False, "Missing authorization code"),
            )
            failure = GateError(ErrorKind.CALLBACK, "Missing authorization code in callback")
            result = None

        if not self._complete(outcome, result=result, error=failure):
            return 400, _render(False, "This authorization attempt is no longer active.")
        logger.debug("Callback handled with outcome %s", outcome.value)
        return status, page
