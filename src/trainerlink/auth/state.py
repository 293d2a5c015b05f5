"""Observable authentication state.

:class:`AuthStateNotifier` holds the current immutable
:class:`~trainerlink.models.Session` snapshot and notifies subscribers each
time the session manager replaces it. Subscribers are plain callables; a
subscriber that raises is logged and skipped so that one broken observer
cannot block state transitions for the others.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable

from trainerlink.models import Session

logger = logging.getLogger(__name__)

Listener = Callable[[Session], None]


class AuthStatus(str, enum.Enum):
    """Coarse state of the session state machine."""

    UNKNOWN = "unknown"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"

    @classmethod
    def of(cls, session: Session) -> AuthStatus:
        if session.authenticated is None:
            return cls.UNKNOWN
        if session.authenticated:
            return cls.AUTHENTICATED
        return cls.UNAUTHENTICATED


class AuthStateNotifier:
    """Current session snapshot plus its subscribers."""

    def __init__(self, initial: Session | None = None) -> None:
        self._session = initial or Session.unknown()
        self._listeners: list[Listener] = []

    @property
    def session(self) -> Session:
        return self._session

    @property
    def status(self) -> AuthStatus:
        return AuthStatus.of(self._session)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* and return a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, session: Session) -> None:
        """Replace the current snapshot and notify every subscriber."""
        previous = self._session
        self._session = session
        if AuthStatus.of(previous) is not AuthStatus.of(session):
            logger.debug(
                "Auth state %s -> %s", AuthStatus.of(previous).value, AuthStatus.of(session).value
            )
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Auth state listener %r failed", listener)
