"""Session manager -- the single owner of the runtime authentication state.

The :class:`SessionManager` is the central coordinator of the auth
subsystem. It is the only component that transitions the
:class:`~trainerlink.models.Session`, so observers registered through
:meth:`SessionManager.on_auth_state_change` always see consistent, atomic
updates. The state machine is::

    UNKNOWN --hydrate()--> AUTHENTICATED | UNAUTHENTICATED
    UNAUTHENTICATED --login() / google_login()--> AUTHENTICATED
    AUTHENTICATED --renewal--> AUTHENTICATED (new access token)
    AUTHENTICATED --logout() / unrecoverable renewal--> UNAUTHENTICATED

There is no terminal state; the machine cycles for the life of the process.

The manager also assembles the
:class:`~trainerlink.client.RequestPipeline` every remote call goes
through, wiring its own in-memory access token into the bearer interceptor
and :meth:`SessionManager.renew_access_token` into the refresh-and-retry
interceptor. Renewal talks to the transport directly so it never re-enters
the pipeline.

For most use cases, call :func:`create_session_manager` to get a manager
backed by the on-disk store and the configured API.

See Also:
    :class:`~trainerlink.auth.credential_store.CredentialStore` -- durable state.
    :class:`~trainerlink.auth.service.AuthService` -- the remote endpoints.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from trainerlink import endpoints
from trainerlink.auth.credential_store import CredentialStore, normalize_email
from trainerlink.auth.service import AuthService
from trainerlink.auth.state import AuthStateNotifier, AuthStatus, Listener
from trainerlink.client.pipeline import (
    BearerTokenInterceptor,
    ContentTypeInterceptor,
    RefreshRetryInterceptor,
    RequestPipeline,
)
from trainerlink.client.response import decode_remote_error, extract_response_data
from trainerlink.client.transport import HttpTransport
from trainerlink.exceptions import (
    ProfileUnavailable,
    RemoteError,
    TrainerlinkError,
    Unauthorized,
)
from trainerlink.models import (
    ChangePasswordInput,
    ClientConfig,
    LoginResponse,
    MessageResponse,
    RegisterInput,
    RegisterResponse,
    ResetTokenResponse,
    Session,
    TrainerRegisterInput,
    UpdateProfileInput,
    UserProfile,
)
from trainerlink.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

Navigator = Callable[[], None]


class ProfileSource(str, enum.Enum):
    """Where a profile returned by :meth:`SessionManager.fetch_profile` came from."""

    REMOTE = "remote"
    CACHE = "cache"


@dataclass(frozen=True)
class ProfileResult:
    """Outcome of a profile fetch, without exceptions for the fallback path.

    Exactly one of three shapes:

    - fetched: ``profile`` set, ``source`` is ``REMOTE``, ``error`` is ``None``.
    - cache hit: ``profile`` set, ``source`` is ``CACHE``, ``error`` holds the
      remote failure.
    - failed: ``profile`` and ``source`` are ``None``, ``error`` is set.
    """

    profile: Optional[UserProfile]
    source: Optional[ProfileSource]
    error: Optional[TrainerlinkError] = None

    @classmethod
    def fetched(cls, profile: UserProfile) -> ProfileResult:
        return cls(profile, ProfileSource.REMOTE)

    @classmethod
    def cache_hit(cls, profile: UserProfile, error: TrainerlinkError) -> ProfileResult:
        return cls(profile, ProfileSource.CACHE, error)

    @classmethod
    def failed(cls, error: TrainerlinkError) -> ProfileResult:
        return cls(None, None, error)

    @property
    def ok(self) -> bool:
        return self.profile is not None


class SessionManager:
    """Orchestrates login, logout, profile refresh, and token renewal.

    Args:
        credentials: Durable session storage.
        transport: The HTTP transport shared by the pipeline and renewal.
        navigate_to_login: Called when the session is lost during token
            renewal. Exceptions it raises are logged, never propagated.
        single_flight_refresh: Share one in-flight renewal between
            concurrent ``401`` responses.

    Example::

        manager = SessionManager(credentials, transport, navigate_to_login=router.to_login)
        await manager.hydrate()
        if manager.status is AuthStatus.UNAUTHENTICATED:
            await manager.login("user@example.com", "secret", remember_me=True)
    """

    def __init__(
        self,
        credentials: CredentialStore,
        transport: HttpTransport,
        navigate_to_login: Optional[Navigator] = None,
        single_flight_refresh: bool = True,
    ) -> None:
        self._credentials = credentials
        self._transport = transport
        self._navigate_to_login = navigate_to_login
        self._notifier = AuthStateNotifier()
        # Bumped whenever a session starts or ends; renewals started in an
        # older epoch must not touch the current one.
        self._epoch = 0
        self._signing_out = False

        self.pipeline = RequestPipeline(
            transport,
            [
                BearerTokenInterceptor(self.get_access_token),
                ContentTypeInterceptor(),
                RefreshRetryInterceptor(
                    transport, self.renew_access_token, single_flight=single_flight_refresh
                ),
            ],
        )
        self.service = AuthService(self.pipeline)

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> Session:
        """The current session snapshot."""
        return self._notifier.session

    @property
    def status(self) -> AuthStatus:
        return self._notifier.status

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def get_access_token(self) -> Optional[str]:
        """Return the in-memory access token without touching storage."""
        return self._notifier.session.access_token

    def on_auth_state_change(self, listener: Listener) -> Callable[[], None]:
        """Subscribe *listener* to every new session snapshot.

        Returns:
            A callable that unsubscribes *listener*.
        """
        return self._notifier.subscribe(listener)

    async def hydrate(self) -> Session:
        """Load the persisted session, leaving the ``UNKNOWN`` state.

        Only the first hydration of a process changes the state; if a login
        finished before the stored session was read, the login wins.
        """
        session = await self._credentials.load_session()
        if self.status is AuthStatus.UNKNOWN:
            self._notifier.publish(session)
        return self.state

    # ------------------------------------------------------------------ #
    # Sign-in and sign-out
    # ------------------------------------------------------------------ #

    async def login(self, email: str, password: str, remember_me: bool = False) -> LoginResponse:
        """Sign in with email and password.

        The email is trimmed and lower-cased before it is sent. On success the
        token pair and profile are persisted in one batch and, with
        *remember_me*, the email moves to the front of the remembered list.

        Raises:
            InvalidCredentials: If the server rejects the credentials.
            NetworkFailure: On transport errors.
            StorageFailure: If the session could not be persisted.
        """
        data = await self.service.login(email, password)
        remember = normalize_email(email) if remember_me else None
        await self._start_session(data, remember)
        logger.info("Signed in as %s", data.user.email or data.user.id)
        return data

    async def google_login(self, id_token: str) -> LoginResponse:
        """Sign in with a Google ID token. The account email is always remembered."""
        data = await self.service.google_login(id_token)
        remember = normalize_email(data.user.email) if data.user.email else None
        await self._start_session(data, remember)
        logger.info("Signed in with Google as %s", data.user.email or data.user.id)
        return data

    async def logout(self) -> None:
        """Sign out.

        The remote invalidation is best effort: its failure is logged and the
        local session is cleared regardless. If the access token has expired
        and renewing it fails, the session is dropped without calling the
        login navigation callback.

        Raises:
            StorageFailure: If the persisted session could not be erased.
                The in-memory session is cleared even then.
        """
        self._signing_out = True
        try:
            await self._remote_logout()
        finally:
            self._signing_out = False
            await self._clear_session()

    # ------------------------------------------------------------------ #
    # Token renewal
    # ------------------------------------------------------------------ #

    async def renew_access_token(self) -> str:
        """Exchange the stored refresh token for a new access token.

        Sends straight through the transport, bypassing the pipeline. Only
        an authenticated session is renewed; the persisted session is loaded
        first if :meth:`hydrate` has not run yet. On any failure the session
        is lost: persisted credentials are erased, the state becomes
        ``UNAUTHENTICATED``, and the login navigation callback runs.

        If the session ends or is replaced while the renewal is in flight
        (by :meth:`logout` or a new login), the new token is discarded:
        nothing is stored and the state is left as it is.

        Returns:
            The new access token.

        Raises:
            Unauthorized: If there is no authenticated session, no refresh
                token is stored, or the session ended during the renewal.
            RemoteError: If the renewal endpoint rejects the token or answers
                without an access token.
            NetworkFailure: On transport errors, timeouts included.
            StorageFailure: If the new token could not be persisted.
        """
        if self.status is AuthStatus.UNKNOWN:
            await self.hydrate()
        if not self.state.authenticated:
            await self._lose_session("no active session to renew")
            raise Unauthorized("No active session", status_code=401)

        epoch = self._epoch
        refresh_token = await self._credentials.get_refresh_token()
        if not refresh_token:
            await self._lose_session("no refresh token stored")
            raise Unauthorized("No refresh token available", status_code=401)

        try:
            response = await self._transport.send(
                "POST", endpoints.TOKEN_REFRESH, json_body={"refresh": refresh_token}
            )
            access, rotated = _read_renewal(response)
        except TrainerlinkError as exc:
            if epoch == self._epoch:
                await self._lose_session(f"token renewal failed: {exc}")
            raise

        if epoch != self._epoch:
            logger.info("Session ended during token renewal, discarding the new token")
            raise Unauthorized("Session ended during token renewal", status_code=401)

        try:
            await self._credentials.update_tokens(access, rotated)
        except TrainerlinkError as exc:
            await self._lose_session(f"renewed token could not be stored: {exc}")
            raise

        self._notifier.publish(self.state.model_copy(update={"access_token": access}))
        logger.debug("Access token renewed")
        return access

    # ------------------------------------------------------------------ #
    # Profile
    # ------------------------------------------------------------------ #

    async def fetch_profile(self) -> ProfileResult:
        """Fetch the remote profile, falling back to the cached copy.

        A successful fetch refreshes both the in-memory session and the
        durable cache.

        Raises:
            StorageFailure: If a fetched profile could not be cached.
        """
        try:
            profile = await self.service.get_profile()
        except TrainerlinkError as exc:
            cached = await self._credentials.get_cached_profile() or self.state.user
            if cached is not None:
                logger.info("Using cached profile: %s", exc)
                return ProfileResult.cache_hit(cached, exc)
            return ProfileResult.failed(exc)

        await self._store_profile(profile)
        return ProfileResult.fetched(profile)

    async def get_profile(self) -> UserProfile:
        """Return the remote profile, or the cached one if the fetch fails.

        Raises:
            ProfileUnavailable: If the fetch failed and nothing is cached.
        """
        result = await self.fetch_profile()
        if result.profile is None:
            raise ProfileUnavailable(
                "Failed to fetch profile and no cached data available"
            ) from result.error
        return result.profile

    async def update_profile(self, patch: UpdateProfileInput) -> UserProfile:
        """Apply a partial profile update and cache the server's result.

        Validation errors from the server propagate as
        :class:`~trainerlink.exceptions.RemoteError` and are not retried.
        """
        profile = await self.service.update_profile(patch)
        await self._store_profile(profile)
        return profile

    # ------------------------------------------------------------------ #
    # Remembered emails
    # ------------------------------------------------------------------ #

    async def remembered_emails(self) -> list[str]:
        return await self._credentials.remembered_emails()

    async def forget_email(self, email: str) -> None:
        await self._credentials.forget_email(email)

    # ------------------------------------------------------------------ #
    # Stateless pass-throughs
    # ------------------------------------------------------------------ #

    async def register(self, form: RegisterInput) -> RegisterResponse:
        return await self.service.register(form)

    async def register_trainer(self, form: TrainerRegisterInput) -> dict[str, Any]:
        return await self.service.register_trainer(form)

    async def check_email_exists(self, email: str) -> bool:
        return await self.service.check_email_exists(email)

    async def forgot_password(self, email: str) -> MessageResponse:
        return await self.service.forgot_password(email)

    async def resend_forgot_password_code(self, email: str) -> MessageResponse:
        return await self.service.forgot_password(email)

    async def verify_email(self, email: str, code: str) -> MessageResponse:
        return await self.service.verify_email(email, code)

    async def verify_forgot_password(self, email: str, code: str) -> ResetTokenResponse:
        return await self.service.verify_forgot_password(email, code)

    async def resend_otp(self, email: str) -> MessageResponse:
        return await self.service.resend_otp(email)

    async def change_password(self, form: ChangePasswordInput) -> MessageResponse:
        return await self.service.change_password(form)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def aclose(self) -> None:
        """Close the transport and the persistent store."""
        await self._transport.aclose()
        self._credentials.backend.close()

    async def __aenter__(self) -> SessionManager:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _start_session(self, data: LoginResponse, remember_email: Optional[str]) -> None:
        await self._credentials.save_session(data.tokens, data.user, remember_email=remember_email)
        self._epoch += 1
        self._notifier.publish(
            Session(access_token=data.tokens.access, authenticated=True, user=data.user)
        )

    async def _store_profile(self, profile: UserProfile) -> None:
        await self._credentials.save_profile(profile)
        self._notifier.publish(self.state.model_copy(update={"user": profile}))

    async def _remote_logout(self) -> None:
        try:
            if self.get_access_token() or await self._credentials.get_access_token():
                await self.service.logout()
        except TrainerlinkError as exc:
            logger.info("Remote logout failed, clearing local session anyway: %s", exc)

    async def _clear_session(self) -> None:
        self._epoch += 1
        try:
            await self._credentials.clear_session()
        finally:
            self._notifier.publish(Session.logged_out())

    async def _lose_session(self, reason: str) -> None:
        logger.warning("Session lost: %s", reason)
        try:
            await self._clear_session()
        finally:
            self._navigate()

    def _navigate(self) -> None:
        if self._navigate_to_login is None:
            return
        if self._signing_out:
            logger.debug("Signing out, not navigating to the login screen")
            return
        try:
            self._navigate_to_login()
        except Exception:
            logger.exception("Navigation to the login screen failed")


def _read_renewal(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Return ``(access, rotated_refresh)`` from a renewal response."""
    if response.status_code >= 400:
        raise decode_remote_error(response)
    data = extract_response_data(response)
    access = data.get("access") if isinstance(data, dict) else None
    if not isinstance(access, str) or not access:
        raise RemoteError(
            "No access token in refresh response",
            status_code=response.status_code,
            reason=response.reason_phrase or "",
            payload=data,
        )
    refresh = data.get("refresh")
    return access, refresh if isinstance(refresh, str) and refresh else None


def create_session_manager(
    config: Optional[ClientConfig] = None,
    navigate_to_login: Optional[Navigator] = None,
    store: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SessionManager:
    """Create a :class:`SessionManager` wired to the configured API and store.

    Args:
        config: Client configuration; resolved with
            :func:`~trainerlink.config.resolve_config` when omitted.
        navigate_to_login: Session-loss navigation callback.
        store: Key-value backend; defaults to a
            :class:`~trainerlink.storage.DiskKeyValueStore` under
            :func:`~trainerlink.config.get_store_dir`.
        transport: Optional :mod:`httpx` transport (e.g. a mock in tests).

    Returns:
        A fully wired, not yet hydrated :class:`SessionManager`.
    """
    from trainerlink.config import get_store_dir, resolve_config
    from trainerlink.storage.disk import DiskKeyValueStore

    if config is None:
        config = resolve_config()
    if store is None:
        store = DiskKeyValueStore(get_store_dir(config))

    return SessionManager(
        CredentialStore(store),
        HttpTransport(config, transport=transport),
        navigate_to_login=navigate_to_login,
        single_flight_refresh=config.single_flight_refresh,
    )
