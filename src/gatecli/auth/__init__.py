"""OAuth2 flows: PKCE login with a loopback callback, and client credentials.

Submodules:

* :mod:`~gatecli.auth.pkce` -- verifier/challenge and CSRF state generation.
* :mod:`~gatecli.auth.tokens` -- token endpoint request and response
  classification shared by both grants, plus expiry helpers.
* :mod:`~gatecli.auth.client_credentials` -- :class:`TokenService`.
* :mod:`~gatecli.auth.callback` -- :class:`CallbackListener`.
* :mod:`~gatecli.auth.discovery` -- OIDC provider metadata.
* :mod:`~gatecli.auth.login` -- :class:`LoginOrchestrator`.
"""

from gatecli.auth.callback import CallbackListener, ListenerState
from gatecli.auth.client_credentials import TokenService
from gatecli.auth.discovery import DiscoveryClient
from gatecli.auth.login import LoginOrchestrator

__all__ = [
    "CallbackListener",
    "DiscoveryClient",
    "ListenerState",
    "LoginOrchestrator",
    "TokenService",
]
