"""OpenID Connect discovery (OpenID Connect Discovery 1.0, section 4).

Fetches ``{issuer}/.well-known/openid-configuration`` and returns the
endpoints the login flow needs. Results are not cached; each login
discovers afresh.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import OIDCConfiguration

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = ".well-known/openid-configuration"


def discovery_url(issuer_uri: str) -> str:
    """Return the discovery document URL for *issuer_uri*.

    A trailing slash on the issuer is tolerated:
    ``https://idp/`` and ``https://idp`` both give
    ``https://idp/.well-known/openid-configuration``.
    """
    if issuer_uri.endswith("/"):
        return issuer_uri + WELL_KNOWN_PATH
    return f"{issuer_uri}/{WELL_KNOWN_PATH}"


class DiscoveryClient:
    """Fetch OIDC provider metadata over HTTP.

    Args:
        timeout: Request timeout in seconds.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout

    def discover(self, issuer_uri: str) -> OIDCConfiguration:
        """Fetch and validate the provider's discovery document.

        Args:
            issuer_uri: The OIDC issuer, e.g. ``https://auth.example.com``.

        Returns:
            The parsed :class:`~gatecli.models.OIDCConfiguration`, with both
            ``authorization_endpoint`` and ``token_endpoint`` present.

        Raises:
            GateError: ``CONNECTION`` when the issuer is unreachable,
                ``DISCOVERY`` for an error status, a non-JSON body, or
                missing endpoints.
        """
        url = discovery_url(issuer_uri)
        logger.debug("Fetching OIDC configuration from: %s", url)

        try:
            response = httpx.get(
                url,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            document = response.json()
        except httpx.HTTPStatusError as exc:
            raise GateError(
                ErrorKind.DISCOVERY,
                f"Failed to fetch OIDC configuration from: {url} "
                f"(HTTP {exc.response.status_code})",
            ) from exc
        except httpx.HTTPError as exc:
            raise GateError(
                ErrorKind.CONNECTION,
                f"Failed to connect to OIDC issuer: {url}",
            ) from exc
        except ValueError as exc:
            raise GateError(
                ErrorKind.DISCOVERY,
                f"Failed to fetch OIDC configuration from: {url} (body is not JSON)",
            ) from exc

        if not isinstance(document, dict):
            raise GateError(ErrorKind.DISCOVERY, "OIDC discovery returned empty configuration")
        try:
            config = OIDCConfiguration.model_validate(document)
        except ValidationError as exc:
            raise GateError(
                ErrorKind.DISCOVERY, f"Invalid OIDC configuration from: {url}"
            ) from exc

        if not config.authorization_endpoint or not config.token_endpoint:
            raise GateError(
                ErrorKind.DISCOVERY, "OIDC configuration missing required endpoints"
            )

        logger.debug("Discovered authorization_endpoint: %s", config.authorization_endpoint)
        logger.debug("Discovered token_endpoint: %s", config.token_endpoint)
        return config
