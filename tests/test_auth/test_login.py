"""Tests for the PKCE login orchestrator.

The discovery client, callback listener and browser are replaced with
fakes; only the code exchange goes through a mocked ``httpx.post``.
"""

from __future__ import annotations

import webbrowser
from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from gatecli.auth import pkce
from gatecli.auth.login import (
    LoginOrchestrator,
    build_authorization_url,
    parse_port,
    redirect_uri_for,
)
from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import AuthorizationResult, OIDCConfiguration

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
ISSUER = "https://auth.example.com"
METADATA = OIDCConfiguration(
    issuer=ISSUER,
    authorization_endpoint=f"{ISSUER}/authorize",
    token_endpoint=f"{ISSUER}/token",
)
REDIRECT = "http://localhost:8765/callback"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeDiscovery:
    def __init__(self, metadata: OIDCConfiguration = METADATA, error: Optional[GateError] = None):
        self.metadata = metadata
        self.error = error
        self.calls: list[str] = []

    def discover(self, issuer_uri: str) -> OIDCConfiguration:
        self.calls.append(issuer_uri)
        if self.error is not None:
            raise self.error
        return self.metadata


class FakeListener:
    """Completes the future as soon as the browser is 'opened'."""

    def __init__(self) -> None:
        self.future: Future[AuthorizationResult] = Future()
        self.started_with: Optional[tuple[int, str, object]] = None
        self.stopped = False

    def start_and_wait(self, port: int, expected_state: str, timeout: object) -> Future:
        self.started_with = (port, expected_state, timeout)
        return self.future

    def stop(self) -> None:
        self.stopped = True
        if not self.future.done():
            self.future.set_exception(GateError(ErrorKind.CALLBACK, "Callback listener stopped"))


class FakeBrowser:
    """Simulates the user approving (or denying) in the browser."""

    def __init__(self, listener: FakeListener, query: Optional[dict[str, str]] = None,
                 opened: bool = True, raises: Optional[Exception] = None) -> None:
        self.listener = listener
        self.query = query
        self.opened = opened
        self.raises = raises
        self.urls: list[str] = []

    def __call__(self, url: str) -> bool:
        self.urls.append(url)
        if self.raises is not None:
            raise self.raises
        if not self.opened:
            return False
        params = {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}
        query = self.query or {"code": "auth-code", "state": params["state"]}
        if "error" in query:
            self.listener.future.set_exception(
                GateError(ErrorKind.CALLBACK, f"Authorization denied: {query['error']}")
            )
        elif query.get("state") != params["state"]:
            self.listener.future.set_exception(
                GateError(ErrorKind.CALLBACK, "State mismatch - possible CSRF attack")
            )
        else:
            self.listener.future.set_result(
                AuthorizationResult(code=query["code"], state=query["state"])
            )
        return True


def _mock_httpx_post(token_response: Optional[dict] = None, status_code: int = 200) -> MagicMock:
    mock_response = MagicMock(spec=httpx.Response)
    mock_response.status_code = status_code
    mock_response.json.return_value = token_response or {
        "access_token": "user-token",
        "token_type": "Bearer",
        "expires_in": 900,
    }
    if status_code >= 400:
        mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
            message=f"HTTP {status_code}", request=MagicMock(), response=mock_response
        )
    else:
        mock_response.raise_for_status.return_value = None
    return mock_response


def _orchestrator(listener: FakeListener, browser, discovery=None, progress=None):
    return LoginOrchestrator(
        discovery=discovery or FakeDiscovery(),
        listener_factory=lambda: listener,
        open_browser=browser,
        callback_timeout=timedelta(minutes=5),
        clock=lambda: NOW,
        on_progress=progress,
    )


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


class TestUrlHelpers:
    def test_redirect_uri_for(self) -> None:
        assert redirect_uri_for(8080) == "http://localhost:8080/callback"

    @pytest.mark.parametrize(
        ("uri", "port"),
        [
            ("http://localhost:9999/callback", 9999),
            ("http://localhost/callback", 8080),
            ("not a uri", 8080),
            ("http://localhost:notaport/callback", 8080),
        ],
    )
    def test_parse_port(self, uri: str, port: int) -> None:
        assert parse_port(uri) == port

    def test_authorization_url_parameters(self) -> None:
        url = build_authorization_url(
            f"{ISSUER}/authorize", "cli", REDIRECT, "chal", "st", "openid profile"
        )
        parts = urlsplit(url)
        params = parse_qs(parts.query)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == f"{ISSUER}/authorize"
        assert params == {
            "response_type": ["code"],
            "client_id": ["cli"],
            "redirect_uri": [REDIRECT],
            "code_challenge": ["chal"],
            "code_challenge_method": ["S256"],
            "state": ["st"],
            "scope": ["openid profile"],
        }
        assert "openid%20profile" in url

    def test_existing_query_kept(self) -> None:
        url = build_authorization_url(
            f"{ISSUER}/authorize?tenant=acme", "cli", REDIRECT, "c", "s", "openid"
        )
        params = parse_qs(urlsplit(url).query)
        assert params["tenant"] == ["acme"]
        assert params["client_id"] == ["cli"]


# ---------------------------------------------------------------------------
# LoginOrchestrator
# ---------------------------------------------------------------------------


class TestLogin:
    def test_success_exchanges_code_with_verifier(self) -> None:
        listener = FakeListener()
        browser = FakeBrowser(listener)
        progress: list[str] = []
        orchestrator = _orchestrator(listener, browser, progress=progress.append)

        with patch("gatecli.auth.tokens.httpx.post", return_value=_mock_httpx_post()) as mock_post:
            token = orchestrator.login(ISSUER, "cli", "openid", REDIRECT)

        assert token.access_token == "user-token"
        assert token.expires_at == NOW + timedelta(seconds=900)
        assert orchestrator.last_metadata == METADATA
        assert listener.stopped

        auth_params = parse_qs(urlsplit(browser.urls[0]).query)
        args, kwargs = mock_post.call_args
        assert args[0] == f"{ISSUER}/token"
        form = kwargs["data"]
        assert form["grant_type"] == "authorization_code"
        assert form["client_id"] == "cli"
        assert form["code"] == "auth-code"
        assert form["redirect_uri"] == REDIRECT
        assert "client_secret" not in form
        assert pkce.compute_challenge(form["code_verifier"]) == auth_params["code_challenge"][0]
        assert "Exchanging authorization code for token..." in progress

    def test_listener_started_on_redirect_port_with_state(self) -> None:
        listener = FakeListener()
        browser = FakeBrowser(listener)
        with patch("gatecli.auth.tokens.httpx.post", return_value=_mock_httpx_post()):
            _orchestrator(listener, browser).login(ISSUER, "cli", "openid", REDIRECT)

        port, state, timeout = listener.started_with
        assert port == 8765
        assert parse_qs(urlsplit(browser.urls[0]).query)["state"] == [state]
        assert timeout == timedelta(minutes=5)

    def test_denied(self) -> None:
        listener = FakeListener()
        browser = FakeBrowser(listener, query={"error": "access_denied"})
        with patch("gatecli.auth.tokens.httpx.post") as mock_post:
            with pytest.raises(GateError) as exc_info:
                _orchestrator(listener, browser).login(ISSUER, "cli", "openid", REDIRECT)
        assert exc_info.value.kind is ErrorKind.CALLBACK
        assert exc_info.value.message == "Authorization failed: Authorization denied: access_denied"
        mock_post.assert_not_called()
        assert listener.stopped

    def test_state_mismatch_prevents_exchange(self) -> None:
        listener = FakeListener()
        browser = FakeBrowser(listener, query={"code": "stolen", "state": "forged"})
        with patch("gatecli.auth.tokens.httpx.post") as mock_post:
            with pytest.raises(GateError, match="State mismatch"):
                _orchestrator(listener, browser).login(ISSUER, "cli", "openid", REDIRECT)
        mock_post.assert_not_called()

    def test_browser_returns_false(self) -> None:
        listener = FakeListener()
        browser = FakeBrowser(listener, opened=False)
        with pytest.raises(GateError) as exc_info:
            _orchestrator(listener, browser).login(ISSUER, "cli", "openid", REDIRECT)
        assert exc_info.value.kind is ErrorKind.BROWSER
        assert browser.urls[0] in exc_info.value.message
        assert listener.stopped

    def test_browser_raises(self) -> None:
        listener = FakeListener()
        browser = FakeBrowser(listener, raises=webbrowser.Error("no runnable browser"))
        with pytest.raises(GateError) as exc_info:
            _orchestrator(listener, browser).login(ISSUER, "cli", "openid", REDIRECT)
        assert exc_info.value.kind is ErrorKind.BROWSER
        assert listener.stopped

    def test_bind_failure_skips_browser(self) -> None:
        listener = FakeListener()
        listener.future.set_exception(
            GateError(ErrorKind.CALLBACK, "Failed to start callback server on port 8765")
        )
        browser = FakeBrowser(listener)
        with pytest.raises(GateError, match="Failed to start callback server"):
            _orchestrator(listener, browser).login(ISSUER, "cli", "openid", REDIRECT)
        assert browser.urls == []

    def test_discovery_failure_starts_nothing(self) -> None:
        listener = FakeListener()
        browser = FakeBrowser(listener)
        discovery = FakeDiscovery(error=GateError(ErrorKind.DISCOVERY, "missing endpoints"))
        with pytest.raises(GateError) as exc_info:
            _orchestrator(listener, browser, discovery=discovery).login(
                ISSUER, "cli", "openid", REDIRECT
            )
        assert exc_info.value.kind is ErrorKind.DISCOVERY
        assert listener.started_with is None
        assert browser.urls == []

    def test_exchange_rejected(self) -> None:
        listener = FakeListener()
        browser = FakeBrowser(listener)
        mock = _mock_httpx_post({"error": "invalid_grant"}, status_code=400)
        with patch("gatecli.auth.tokens.httpx.post", return_value=mock):
            with pytest.raises(GateError) as exc_info:
                _orchestrator(listener, browser).login(ISSUER, "cli", "openid", REDIRECT)
        assert exc_info.value.kind is ErrorKind.AUTHENTICATION
        assert "Failed to exchange authorization code for token" in exc_info.value.message
        assert "invalid_grant" in exc_info.value.message
