"""Token endpoint requests and token expiry helpers.

:func:`request_token` is shared by the client-credentials grant and the
PKCE code exchange. It posts a form body and classifies the outcome:

=====================================  =========================
Outcome                                Error kind
=====================================  =========================
HTTP 4xx                               ``AUTHENTICATION``
HTTP 5xx                               ``SERVER``
transport failure (DNS, refused, TLS)  ``CONNECTION``
2xx that is not JSON / no token        ``INVALID_RESPONSE``
=====================================  =========================

The remaining helpers operate on ``expires_at`` values. ``None`` always
means "unknown expiry", never "does not expire".
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import httpx

from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import TokenResponse, utcnow

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0
AUTH_REJECTED_MESSAGE = "Client authentication failed. Check client ID and secret."
SERVER_ERROR_MESSAGE = "OAuth2 server error. Please try again later."


def token_preview(token: str) -> str:
    """Return the first 10 characters of *token* for logging, or ``***``."""
    return f"{token[:10]}..." if len(token) > 10 else "***"


def _error_detail(response: httpx.Response) -> str:
    """Pull ``error`` / ``error_description`` out of an RFC 6749 error body."""
    try:
        body = response.json()
    except ValueError:
        return ""
    if not isinstance(body, dict):
        return ""
    return str(body.get("error_description") or body.get("error") or "")


def request_token(
    token_url: str,
    data: dict[str, str],
    headers: Optional[dict[str, str]] = None,
    *,
    rejected_message: str = AUTH_REJECTED_MESSAGE,
    clock: Callable[[], datetime] = utcnow,
) -> TokenResponse:
    """POST a form-encoded token request and parse the response.

    Args:
        token_url: The token endpoint.
        data: Form fields (``grant_type`` and grant-specific values).
        headers: Extra request headers, e.g. ``Authorization: Basic ...``.
        rejected_message: Message used when the endpoint answers 4xx.
        clock: Source of the receipt time used to compute ``expires_at``.

    Returns:
        The parsed :class:`~gatecli.models.TokenResponse`.

    Raises:
        GateError: Classified as in the module table.
    """
    request_headers = {"Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    logger.debug("Requesting OAuth2 token from %s (grant_type=%s)", token_url, data.get("grant_type"))
    try:
        response = httpx.post(
            token_url,
            data=data,
            headers=request_headers,
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        detail = _error_detail(exc.response)
        if 400 <= status < 500:
            logger.error("Token request rejected (HTTP %s): %s", status, detail or "no detail")
            message = f"{rejected_message} (HTTP {status}{': ' + detail if detail else ''})"
            raise GateError(ErrorKind.AUTHENTICATION, message) from exc
        if status >= 500:
            logger.error("Token endpoint server error (HTTP %s)", status)
            raise GateError(ErrorKind.SERVER, SERVER_ERROR_MESSAGE) from exc
        raise GateError(
            ErrorKind.INVALID_RESPONSE,
            f"Invalid token response: unexpected HTTP {status}",
        ) from exc
    except httpx.HTTPError as exc:
        logger.debug("Token request transport failure: %s", exc)
        raise GateError(
            ErrorKind.CONNECTION, f"Failed to connect to token URL: {token_url}"
        ) from exc

    received_at = clock()
    try:
        payload: Any = response.json()
    except ValueError as exc:
        raise GateError(
            ErrorKind.INVALID_RESPONSE, "Invalid token response: body is not JSON"
        ) from exc

    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise GateError(
            ErrorKind.INVALID_RESPONSE,
            "Invalid token response: No access token in response",
        )

    try:
        token = TokenResponse.from_payload(payload, received_at)
    except (TypeError, ValueError, OverflowError) as exc:
        raise GateError(
            ErrorKind.INVALID_RESPONSE, f"Invalid token response: {exc}"
        ) from exc

    logger.info("Obtained OAuth2 token: %s", token_preview(token.access_token))
    logger.debug("Token expires at: %s", token.expires_at or "unknown")
    return token


# --- Expiry helpers ---


def is_valid_url(url: Optional[str]) -> bool:
    """Return True for non-empty ``http://`` or ``https://`` URLs."""
    if not url:
        return False
    return url.startswith(("http://", "https://"))


def time_until_expiration(
    expires_at: Optional[datetime], now: Optional[datetime] = None
) -> Optional[timedelta]:
    """Time remaining until *expires_at*.

    Args:
        expires_at: Expiry instant, or ``None`` when unknown.
        now: Reference time; defaults to the current UTC time.

    Returns:
        The remaining duration, or ``None`` when the expiry is unknown or
        already in the past.
    """
    if expires_at is None:
        return None
    now = now or utcnow()
    if expires_at < now:
        return None
    return expires_at - now


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True only when *expires_at* is known and in the past."""
    if expires_at is None:
        return False
    return expires_at < (now or utcnow())


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_duration(duration: Optional[timedelta]) -> str:
    """Render a remaining duration for humans.

    Uses the largest whole unit: ``45 seconds``, ``1 minute``, ``3 hours``,
    ``2 days``. ``None`` renders as ``expired``.
    """
    if duration is None:
        return "expired"
    seconds = int(duration.total_seconds())
    if seconds < 60:
        return _plural(seconds, "second")
    minutes = seconds // 60
    if minutes < 60:
        return _plural(minutes, "minute")
    hours = minutes // 60
    if hours < 24:
        return _plural(hours, "hour")
    return _plural(hours // 24, "day")
