"""Browser-based OAuth2 Authorization Code + PKCE login.

:class:`LoginOrchestrator` runs the whole interactive flow:

1. discover the provider's endpoints,
2. generate a PKCE pair and a ``state`` value,
3. build the authorization URL,
4. start the loopback :class:`~gatecli.auth.callback.CallbackListener`,
5. open the system browser,
6. wait for the redirect,
7. exchange the code (plus ``code_verifier``) for a token.

The listener is always torn down before :meth:`LoginOrchestrator.login`
returns or raises. No client secret is sent: the flow is for public clients.
"""

from __future__ import annotations

import logging
import webbrowser
from datetime import datetime, timedelta
from typing import Callable, Optional
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from gatecli.auth import pkce
from gatecli.auth.callback import CALLBACK_PATH, CallbackListener
from gatecli.auth.discovery import DiscoveryClient
from gatecli.auth.tokens import request_token
from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import OIDCConfiguration, TokenResponse, utcnow

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_PORT = 8080
DEFAULT_CALLBACK_TIMEOUT = timedelta(minutes=5)
EXCHANGE_FAILED_MESSAGE = "Failed to exchange authorization code for token"


def redirect_uri_for(port: int) -> str:
    """Return the loopback redirect URI for *port*."""
    return f"http://localhost:{port}{CALLBACK_PATH}"


def parse_port(redirect_uri: str) -> int:
    """Extract the port from *redirect_uri*, falling back to 8080."""
    try:
        port = urlsplit(redirect_uri).port
    except ValueError:
        return DEFAULT_CALLBACK_PORT
    return port if port else DEFAULT_CALLBACK_PORT


def build_authorization_url(
    authorization_endpoint: str,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: str,
    scope: str,
) -> str:
    """Append the PKCE authorization request parameters to the endpoint.

    Query parameters already present on *authorization_endpoint* are kept.
    """
    parts = urlsplit(authorization_endpoint)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query += [
        ("response_type", "code"),
        ("client_id", client_id),
        ("redirect_uri", redirect_uri),
        ("code_challenge", code_challenge),
        ("code_challenge_method", "S256"),
        ("state", state),
        ("scope", scope),
    ]
    return urlunsplit(parts._replace(query=urlencode(query, quote_via=quote)))


class LoginOrchestrator:
    """Drive one interactive PKCE login.

    All collaborators are injectable so tests can run the flow without a
    real browser or identity provider.

    Args:
        discovery: Resolves the issuer's endpoints.
        listener_factory: Creates a fresh callback listener per login.
        open_browser: Opens a URL; returns False (or raises) on failure.
        callback_timeout: How long to wait for the redirect.
        clock: Receipt-time source for ``expires_at``.
        on_progress: Receives short progress lines for the terminal.
    """

    def __init__(
        self,
        discovery: Optional[DiscoveryClient] = None,
        listener_factory: Callable[[], CallbackListener] = CallbackListener,
        open_browser: Callable[[str], bool] = webbrowser.open,
        callback_timeout: timedelta = DEFAULT_CALLBACK_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._discovery = discovery or DiscoveryClient()
        self._listener_factory = listener_factory
        self._open_browser = open_browser
        self._callback_timeout = callback_timeout
        self._clock = clock
        self._on_progress = on_progress
        self.last_metadata: Optional[OIDCConfiguration] = None

    def _progress(self, message: str) -> None:
        logger.info(message)
        if self._on_progress is not None:
            self._on_progress(message)

    def login(
        self, issuer_uri: str, client_id: str, scope: str, redirect_uri: str
    ) -> TokenResponse:
        """Run the browser login and return the issued token.

        Args:
            issuer_uri: OIDC issuer used for discovery.
            client_id: Public client identifier.
            scope: Space-separated scopes to request.
            redirect_uri: Loopback redirect registered for the client.

        Returns:
            The :class:`~gatecli.models.TokenResponse` from the code exchange.

        Raises:
            GateError: ``DISCOVERY``/``CONNECTION`` from discovery,
                ``BROWSER`` if the browser cannot be opened, ``CALLBACK``
                (prefixed "Authorization failed:") if the redirect is
                denied, forged, malformed or never arrives, and the token
                endpoint kinds for the exchange.
        """
        self._progress("Discovering OIDC configuration...")
        metadata = self._discovery.discover(issuer_uri)
        assert metadata.authorization_endpoint and metadata.token_endpoint
        self.last_metadata = metadata

        pair = pkce.generate()
        state = pkce.generate_state()
        auth_url = build_authorization_url(
            metadata.authorization_endpoint,
            client_id,
            redirect_uri,
            pair.challenge,
            state,
            scope,
        )
        logger.debug("Authorization URL: %s", auth_url)

        listener = self._listener_factory()
        future = listener.start_and_wait(
            parse_port(redirect_uri), state, self._callback_timeout
        )
        try:
            if not future.done():
                self._progress("Opening browser for authorization...")
                self._launch_browser(auth_url)
                minutes = int(self._callback_timeout.total_seconds() // 60)
                self._progress(
                    f"Waiting for authorization (timeout: {minutes} minutes)..."
                )
            try:
                result = future.result()
            except GateError as exc:
                raise exc.with_context("Authorization failed") from exc
        finally:
            listener.stop()

        self._progress("Exchanging authorization code for token...")
        return request_token(
            metadata.token_endpoint,
            {
                "grant_type": "authorization_code",
                "client_id": client_id,
                "code": result.code,
                "redirect_uri": redirect_uri,
                "code_verifier": pair.verifier,
            },
            rejected_message=EXCHANGE_FAILED_MESSAGE,
            clock=self._clock,
        )

    def _launch_browser(self, url: str) -> None:
        try:
            opened = self._open_browser(url)
        except (webbrowser.Error, OSError) as exc:
            logger.debug("Browser launch raised: %s", exc)
            opened = False
        if not opened:
            logger.error("Could not open browser automatically")
            raise GateError(
                ErrorKind.BROWSER,
                f"Could not open browser. Please open this URL manually:\n{url}",
            )
