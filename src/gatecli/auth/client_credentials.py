"""OAuth2 Client Credentials grant (RFC 6749 section 4.4).

Non-interactive: the client ID and secret are sent as an HTTP Basic
``Authorization`` header (RFC 6749 section 2.3.1) and the form body carries
only ``grant_type=client_credentials``. Nothing is cached; every call hits
the token endpoint.
"""

from __future__ import annotations

import base64
import logging
from datetime import datetime
from typing import Callable

from gatecli.auth.tokens import is_valid_url, request_token
from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import TokenResponse, utcnow

logger = logging.getLogger(__name__)


def basic_auth_header(client_id: str, client_secret: str) -> str:
    """Return ``Basic base64(client_id:client_secret)``."""
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    return f"Basic {base64.b64encode(raw).decode('ascii')}"


class TokenService:
    """Fetch access tokens with the client-credentials grant.

    Args:
        clock: Source of the receipt time for ``expires_at``. Tests inject
            a fixed clock.

    Example::

        token = TokenService().get_access_token(
            "my-client", "s3cret", "https://auth.example.com/oauth2/token"
        )
        print(token.expires_at)
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    def get_access_token(
        self, client_id: str, client_secret: str, token_url: str
    ) -> TokenResponse:
        """Request a token from *token_url*.

        Args:
            client_id: OAuth2 client identifier.
            client_secret: OAuth2 client secret. Never logged.
            token_url: Token endpoint. ``http://`` is accepted with a warning.

        Returns:
            The issued :class:`~gatecli.models.TokenResponse`.

        Raises:
            GateError: ``CONFIGURATION`` for a malformed URL, otherwise as
                classified by :func:`~gatecli.auth.tokens.request_token`.
        """
        if not is_valid_url(token_url):
            raise GateError(
                ErrorKind.CONFIGURATION, f"Invalid token URL: {token_url!r}"
            )
        if token_url.startswith("http://"):
            logger.warning("Using HTTP for token URL. Consider using HTTPS for security.")

        return request_token(
            token_url,
            {"grant_type": "client_credentials"},
            {"Authorization": basic_auth_header(client_id, client_secret)},
            clock=self._clock,
        )
