"""Authenticated session layer for trainerlink.

The main entry points are:

- :class:`SessionManager` -- owns the session state machine, login/logout,
  profile caching, and token renewal.
- :func:`create_session_manager` -- factory returning a manager wired to the
  configured API and the on-disk store.
- :class:`CredentialStore` -- typed, batch-atomic persistence of tokens,
  profile, and remembered emails.
- :class:`AuthService` -- typed wrappers around the remote auth endpoints.

Typical usage::

    from trainerlink.auth import create_session_manager

    manager = create_session_manager(navigate_to_login=show_login)
    await manager.hydrate()
    unsubscribe = manager.on_auth_state_change(render)
"""

from trainerlink.auth.credential_store import CredentialStore
from trainerlink.auth.manager import (
    ProfileResult,
    ProfileSource,
    SessionManager,
    create_session_manager,
)
from trainerlink.auth.service import AuthService
from trainerlink.auth.state import AuthStateNotifier, AuthStatus

__all__ = [
    "AuthService",
    "AuthStateNotifier",
    "AuthStatus",
    "CredentialStore",
    "ProfileResult",
    "ProfileSource",
    "SessionManager",
    "create_session_manager",
]
