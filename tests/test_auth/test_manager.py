"""Tests for the session manager: login, logout, hydration, profile, renewal."""

from __future__ import annotations

import asyncio
import json
import logging

import httpx
import pytest

from trainerlink import endpoints
from trainerlink.auth.credential_store import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    USER_KEY,
    CredentialStore,
)
from trainerlink.auth.manager import ProfileSource, SessionManager, create_session_manager
from trainerlink.auth.state import AuthStatus
from trainerlink.client.transport import HttpTransport
from trainerlink.exceptions import (
    InvalidCredentials,
    ProfileUnavailable,
    RemoteError,
    StorageFailure,
    Unauthorized,
)
from trainerlink.models import (
    ClientConfig,
    Session,
    TokenPair,
    UpdateProfileInput,
    UserProfile,
)
from trainerlink.storage.disk import DiskKeyValueStore

USER = {"id": 7, "email": "user@example.com", "username": "Sam", "role": "client"}


def _login_ok(access: str = "a1", refresh: str = "r1", user: dict | None = None) -> httpx.Response:
    return httpx.Response(
        200, json={"tokens": {"access": access, "refresh": refresh}, "user": user or USER}
    )


def _accepts(token: str, body: dict):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") == f"Bearer {token}":
            return httpx.Response(200, json=body)
        return httpx.Response(401, json={"detail": "Given token not valid for any token type"})

    return handler


async def _signed_in(
    manager: SessionManager,
    credentials: CredentialStore,
    tokens: TokenPair,
    profile: UserProfile,
) -> None:
    await credentials.save_session(tokens, profile)
    await manager.hydrate()


# ---------------------------------------------------------------------------
# Hydration
# ---------------------------------------------------------------------------


class TestHydrate:
    @pytest.mark.asyncio
    async def test_starts_unknown(self, manager: SessionManager) -> None:
        assert manager.status is AuthStatus.UNKNOWN
        assert manager.state.authenticated is None

    @pytest.mark.asyncio
    async def test_empty_store_is_unauthenticated(self, manager: SessionManager) -> None:
        session = await manager.hydrate()
        assert session.authenticated is False
        assert manager.status is AuthStatus.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_persisted_session_is_restored(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        await _signed_in(manager, credentials, tokens, profile)
        assert manager.status is AuthStatus.AUTHENTICATED
        assert manager.get_access_token() == "a1"
        assert manager.state.user == profile

    @pytest.mark.asyncio
    async def test_partial_persisted_session_is_unauthenticated(
        self, manager: SessionManager, store: DiskKeyValueStore
    ) -> None:
        await store.set(ACCESS_TOKEN_KEY, "a1")
        await manager.hydrate()
        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert manager.get_access_token() is None

    @pytest.mark.asyncio
    async def test_login_before_hydration_is_kept(
        self, manager: SessionManager, api
    ) -> None:
        api.add("POST", endpoints.LOGIN, _login_ok())
        await manager.login("user@example.com", "pw")
        await manager.hydrate()
        assert manager.status is AuthStatus.AUTHENTICATED


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_normalizes_email_and_persists_session(
        self, manager: SessionManager, credentials: CredentialStore, api
    ) -> None:
        api.add("POST", endpoints.LOGIN, _login_ok())
        await manager.hydrate()

        await manager.login("  USER@Example.com ", " secret ", remember_me=True)

        sent = json.loads(api.calls("POST", endpoints.LOGIN)[0].content)
        assert sent == {"email": "user@example.com", "password": "secret"}
        assert "Authorization" not in api.requests[0].headers

        assert manager.status is AuthStatus.AUTHENTICATED
        assert manager.state.access_token == "a1"
        assert manager.state.user is not None and manager.state.user.id == 7

        assert await credentials.get_access_token() == "a1"
        assert await credentials.get_refresh_token() == "r1"
        assert await credentials.get_cached_profile() == UserProfile(**USER)
        assert await manager.remembered_emails() == ["user@example.com"]

    @pytest.mark.asyncio
    async def test_without_remember_the_list_is_untouched(
        self, manager: SessionManager, api
    ) -> None:
        api.add("POST", endpoints.LOGIN, _login_ok())
        await manager.login("user@example.com", "pw")
        assert await manager.remembered_emails() == []

    @pytest.mark.asyncio
    async def test_remembered_emails_keep_the_ten_most_recent(
        self, manager: SessionManager, api
    ) -> None:
        api.add("POST", endpoints.LOGIN, _login_ok())

        for i in range(11):
            await manager.login(f"User{i}@Example.com", "pw", remember_me=True)

        emails = await manager.remembered_emails()
        assert len(emails) == 10
        assert emails[0] == "user10@example.com"
        assert "user0@example.com" not in emails

        await manager.login(" user3@example.com ", "pw", remember_me=True)

        emails = await manager.remembered_emails()
        assert len(emails) == 10
        assert emails[:2] == ["user3@example.com", "user10@example.com"]
        assert emails.count("user3@example.com") == 1

    @pytest.mark.asyncio
    async def test_rejected_credentials(
        self, manager: SessionManager, credentials: CredentialStore, api
    ) -> None:
        api.add("POST", endpoints.LOGIN, httpx.Response(400, json={"detail": "Invalid credentials"}))
        api.add("POST", endpoints.TOKEN_REFRESH, httpx.Response(200, json={"access": "x"}))
        await manager.hydrate()

        with pytest.raises(InvalidCredentials) as exc_info:
            await manager.login("user@example.com", "wrong")

        assert exc_info.value.detail == "Invalid credentials"
        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert await credentials.get_access_token() is None
        assert api.calls("POST", endpoints.TOKEN_REFRESH) == []

    @pytest.mark.asyncio
    async def test_login_401_does_not_trigger_renewal(
        self, manager: SessionManager, api, navigations: list[str]
    ) -> None:
        api.add("POST", endpoints.LOGIN, httpx.Response(401, json={"detail": "No active account"}))
        with pytest.raises(InvalidCredentials):
            await manager.login("user@example.com", "pw")
        assert api.calls("POST", endpoints.TOKEN_REFRESH) == []
        assert navigations == []

    @pytest.mark.asyncio
    async def test_server_error_is_not_invalid_credentials(
        self, manager: SessionManager, api
    ) -> None:
        api.add("POST", endpoints.LOGIN, httpx.Response(500, text="oops"))
        with pytest.raises(RemoteError) as exc_info:
            await manager.login("user@example.com", "pw")
        assert not isinstance(exc_info.value, InvalidCredentials)

    @pytest.mark.asyncio
    async def test_google_login_always_remembers_email(
        self, manager: SessionManager, api
    ) -> None:
        api.add(
            "POST",
            endpoints.GOOGLE_LOGIN,
            _login_ok(user={**USER, "email": "Coach@Gmail.com"}),
        )
        await manager.google_login("google-id-token")

        sent = json.loads(api.calls("POST", endpoints.GOOGLE_LOGIN)[0].content)
        assert sent == {"id_token": "google-id-token"}
        assert manager.status is AuthStatus.AUTHENTICATED
        assert await manager.remembered_emails() == ["coach@gmail.com"]


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_clears_session(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        api.add("GET", endpoints.LOGOUT, httpx.Response(200, json={}))
        await _signed_in(manager, credentials, tokens, profile)

        await manager.logout()

        assert api.calls("GET", endpoints.LOGOUT)[0].headers["Authorization"] == "Bearer a1"
        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert manager.get_access_token() is None
        assert await credentials.get_access_token() is None
        assert await credentials.get_refresh_token() is None
        assert await credentials.get_cached_profile() is None

    @pytest.mark.asyncio
    async def test_remote_failure_still_clears(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        api.add("GET", endpoints.LOGOUT, httpx.Response(500, json={"detail": "Server error"}))
        await _signed_in(manager, credentials, tokens, profile)

        await manager.logout()

        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert await credentials.get_access_token() is None

    @pytest.mark.asyncio
    async def test_network_failure_still_clears(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        def unreachable(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        api.add("GET", endpoints.LOGOUT, unreachable)
        await _signed_in(manager, credentials, tokens, profile)

        await manager.logout()

        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert await credentials.get_refresh_token() is None

    @pytest.mark.asyncio
    async def test_expired_token_does_not_navigate(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
        navigations: list[str],
    ) -> None:
        api.add("GET", endpoints.LOGOUT, httpx.Response(401, json={"detail": "Token expired"}))
        api.add(
            "POST",
            endpoints.TOKEN_REFRESH,
            httpx.Response(401, json={"detail": "Token is blacklisted"}),
        )
        await _signed_in(manager, credentials, tokens, profile)

        await manager.logout()

        assert len(api.calls("POST", endpoints.TOKEN_REFRESH)) == 1
        assert navigations == []
        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert await credentials.get_refresh_token() is None

    @pytest.mark.asyncio
    async def test_navigation_resumes_after_logout(
        self,
        manager: SessionManager,
        api,
        navigations: list[str],
    ) -> None:
        api.add("POST", endpoints.LOGIN, _login_ok())
        api.add("GET", endpoints.LOGOUT, httpx.Response(200, json={}))
        await manager.login("user@example.com", "pw")
        await manager.logout()

        with pytest.raises(Unauthorized):
            await manager.renew_access_token()

        assert navigations == ["login"]

    @pytest.mark.asyncio
    async def test_no_remote_call_without_token(self, manager: SessionManager, api) -> None:
        await manager.hydrate()
        await manager.logout()
        assert api.requests == []
        assert manager.status is AuthStatus.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_remembered_emails_survive_logout(
        self, manager: SessionManager, api
    ) -> None:
        api.add("POST", endpoints.LOGIN, _login_ok())
        api.add("GET", endpoints.LOGOUT, httpx.Response(200, json={}))
        await manager.login("user@example.com", "pw", remember_me=True)

        await manager.logout()

        assert await manager.remembered_emails() == ["user@example.com"]

    @pytest.mark.asyncio
    async def test_storage_failure_propagates_but_memory_is_cleared(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        store: DiskKeyValueStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        api.add("GET", endpoints.LOGOUT, httpx.Response(200, json={}))
        await _signed_in(manager, credentials, tokens, profile)

        async def broken_remove(keys):
            raise StorageFailure("read-only filesystem")

        monkeypatch.setattr(store, "multi_remove", broken_remove)

        with pytest.raises(StorageFailure):
            await manager.logout()
        assert manager.status is AuthStatus.UNAUTHENTICATED


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class TestProfile:
    @pytest.mark.asyncio
    async def test_remote_profile_updates_cache_and_state(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        fresh = {**USER, "username": "Samantha"}
        api.add("GET", endpoints.WHOAMI, httpx.Response(200, json={"user": fresh}))
        await _signed_in(manager, credentials, tokens, profile)

        result = await manager.fetch_profile()

        assert result.source is ProfileSource.REMOTE
        assert result.error is None
        assert result.profile is not None and result.profile.username == "Samantha"
        assert manager.state.user == result.profile
        cached = await credentials.get_cached_profile()
        assert cached is not None and cached.username == "Samantha"

    @pytest.mark.asyncio
    async def test_data_envelope_is_unwrapped(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        api.add("GET", endpoints.WHOAMI, httpx.Response(200, json={"data": USER}))
        await _signed_in(manager, credentials, tokens, profile)
        assert (await manager.get_profile()).id == 7

    @pytest.mark.asyncio
    async def test_falls_back_to_cached_profile(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        api.add("GET", endpoints.WHOAMI, httpx.Response(503, text="Service Unavailable"))
        await _signed_in(manager, credentials, tokens, profile)

        result = await manager.fetch_profile()

        assert result.source is ProfileSource.CACHE
        assert result.profile == profile
        assert isinstance(result.error, RemoteError)
        assert await manager.get_profile() == profile

    @pytest.mark.asyncio
    async def test_no_cache_raises_profile_unavailable(
        self, manager: SessionManager, api
    ) -> None:
        api.add("GET", endpoints.WHOAMI, httpx.Response(503, text="Service Unavailable"))
        await manager.hydrate()

        result = await manager.fetch_profile()
        assert not result.ok
        assert result.source is None

        with pytest.raises(ProfileUnavailable) as exc_info:
            await manager.get_profile()
        assert isinstance(exc_info.value.__cause__, RemoteError)

    @pytest.mark.asyncio
    async def test_update_profile_sends_trimmed_partial_body(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        api.add(
            "PUT",
            endpoints.UPDATE_PROFILE,
            httpx.Response(200, json={**USER, "business_name": "Iron Gym"}),
        )
        await _signed_in(manager, credentials, tokens, profile)

        updated = await manager.update_profile(UpdateProfileInput(business_name="  Iron Gym "))

        sent = json.loads(api.calls("PUT", endpoints.UPDATE_PROFILE)[0].content)
        assert sent == {"business_name": "Iron Gym"}
        assert updated.business_name == "Iron Gym"
        assert manager.state.user == updated
        assert await credentials.get_cached_profile() == updated


# ---------------------------------------------------------------------------
# Token renewal
# ---------------------------------------------------------------------------


class TestRenewal:
    @pytest.mark.asyncio
    async def test_expired_token_is_renewed_and_request_replayed(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
        navigations: list[str],
    ) -> None:
        api.add("GET", endpoints.WHOAMI, _accepts("a2", {"user": USER}))
        api.add("POST", endpoints.TOKEN_REFRESH, httpx.Response(200, json={"access": "a2"}))
        await _signed_in(manager, credentials, tokens, profile)

        fetched = await manager.get_profile()

        assert fetched.id == 7
        refresh_calls = api.calls("POST", endpoints.TOKEN_REFRESH)
        assert len(refresh_calls) == 1
        assert json.loads(refresh_calls[0].content) == {"refresh": "r1"}
        assert "Authorization" not in refresh_calls[0].headers
        sent = [r.headers["Authorization"] for r in api.calls("GET", endpoints.WHOAMI)]
        assert sent == ["Bearer a1", "Bearer a2"]

        assert manager.get_access_token() == "a2"
        assert manager.status is AuthStatus.AUTHENTICATED
        assert await credentials.get_access_token() == "a2"
        assert await credentials.get_refresh_token() == "r1"
        assert navigations == []

    @pytest.mark.asyncio
    async def test_rotated_refresh_token_is_stored(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        api.add(
            "POST",
            endpoints.TOKEN_REFRESH,
            httpx.Response(200, json={"access": "a2", "refresh": "r2"}),
        )
        await _signed_in(manager, credentials, tokens, profile)

        assert await manager.renew_access_token() == "a2"
        assert await credentials.get_refresh_token() == "r2"

    @pytest.mark.asyncio
    async def test_rejected_refresh_loses_session(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
        navigations: list[str],
    ) -> None:
        api.add("GET", endpoints.WHOAMI, httpx.Response(401, json={"detail": "Token expired"}))
        api.add(
            "POST",
            endpoints.TOKEN_REFRESH,
            httpx.Response(401, json={"detail": "Token is blacklisted"}),
        )
        await _signed_in(manager, credentials, tokens, profile)

        with pytest.raises(Unauthorized) as exc_info:
            await manager.pipeline.get(endpoints.WHOAMI)

        assert exc_info.value.detail == "Token expired"
        assert navigations == ["login"]
        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert await credentials.get_access_token() is None
        assert await credentials.get_refresh_token() is None
        assert len(api.calls("GET", endpoints.WHOAMI)) == 1

    @pytest.mark.asyncio
    async def test_refresh_without_access_in_body_loses_session(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
        navigations: list[str],
    ) -> None:
        api.add("POST", endpoints.TOKEN_REFRESH, httpx.Response(200, json={"detail": "ok"}))
        await _signed_in(manager, credentials, tokens, profile)

        with pytest.raises(RemoteError, match="No access token"):
            await manager.renew_access_token()

        assert navigations == ["login"]
        assert manager.status is AuthStatus.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_refresh_timeout_loses_session(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
        navigations: list[str],
    ) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        api.add("GET", endpoints.WHOAMI, httpx.Response(401, json={"detail": "Token expired"}))
        api.add("POST", endpoints.TOKEN_REFRESH, slow)
        await _signed_in(manager, credentials, tokens, profile)

        with pytest.raises(Unauthorized):
            await manager.pipeline.get(endpoints.WHOAMI)

        assert len(api.calls("POST", endpoints.TOKEN_REFRESH)) == 1
        assert navigations == ["login"]
        assert await credentials.get_refresh_token() is None

    @pytest.mark.asyncio
    async def test_missing_refresh_token_loses_session_without_network(
        self,
        manager: SessionManager,
        store: DiskKeyValueStore,
        api,
        profile: UserProfile,
        navigations: list[str],
    ) -> None:
        api.add("GET", endpoints.WHOAMI, httpx.Response(401, json={"detail": "Token expired"}))
        await store.multi_set({ACCESS_TOKEN_KEY: "a1", USER_KEY: profile.model_dump_json()})
        await manager.hydrate()

        with pytest.raises(Unauthorized):
            await manager.pipeline.get(endpoints.WHOAMI)

        assert api.calls("POST", endpoints.TOKEN_REFRESH) == []
        assert navigations == ["login"]
        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert await store.get(ACCESS_TOKEN_KEY) is None

    @pytest.mark.asyncio
    async def test_navigation_errors_are_logged_not_raised(
        self,
        credentials: CredentialStore,
        api,
        client_config: ClientConfig,
        tokens: TokenPair,
        profile: UserProfile,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        def broken_router() -> None:
            raise RuntimeError("no navigator mounted")

        manager = SessionManager(
            credentials,
            HttpTransport(client_config, transport=api.transport),
            navigate_to_login=broken_router,
        )
        api.add("GET", endpoints.WHOAMI, httpx.Response(401, json={"detail": "Token expired"}))
        api.add("POST", endpoints.TOKEN_REFRESH, httpx.Response(401, json={}))
        await _signed_in(manager, credentials, tokens, profile)

        with caplog.at_level(logging.ERROR, logger="trainerlink.auth.manager"):
            with pytest.raises(Unauthorized):
                await manager.pipeline.get(endpoints.WHOAMI)

        assert "Navigation to the login screen failed" in caplog.text
        assert manager.status is AuthStatus.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_concurrent_401s_share_one_renewal(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        async def slow_refresh(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"access": "a2"})

        api.add("GET", endpoints.WHOAMI, _accepts("a2", {"user": USER}))
        api.add("POST", endpoints.TOKEN_REFRESH, slow_refresh)
        await _signed_in(manager, credentials, tokens, profile)

        responses = await asyncio.gather(
            *(manager.pipeline.get(endpoints.WHOAMI) for _ in range(4))
        )

        assert all(r.status_code == 200 for r in responses)
        assert len(api.calls("POST", endpoints.TOKEN_REFRESH)) == 1

    @pytest.mark.asyncio
    async def test_logout_during_renewal_discards_the_new_token(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
        navigations: list[str],
    ) -> None:
        refresh_started = asyncio.Event()
        release_refresh = asyncio.Event()

        async def slow_refresh(request: httpx.Request) -> httpx.Response:
            refresh_started.set()
            await release_refresh.wait()
            return httpx.Response(200, json={"access": "a2"})

        api.add("GET", endpoints.WHOAMI, _accepts("a2", {"user": USER}))
        api.add("POST", endpoints.TOKEN_REFRESH, slow_refresh)
        api.add("GET", endpoints.LOGOUT, httpx.Response(200, json={}))
        await _signed_in(manager, credentials, tokens, profile)

        pending = asyncio.ensure_future(manager.pipeline.get(endpoints.WHOAMI))
        await refresh_started.wait()
        await manager.logout()
        release_refresh.set()

        with pytest.raises(Unauthorized):
            await pending

        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert manager.get_access_token() is None
        assert await credentials.get_access_token() is None
        assert await credentials.get_refresh_token() is None
        assert await credentials.get_cached_profile() is None
        assert len(api.calls("GET", endpoints.WHOAMI)) == 1
        assert navigations == []

    @pytest.mark.asyncio
    async def test_login_during_renewal_keeps_the_new_session(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        refresh_started = asyncio.Event()
        release_refresh = asyncio.Event()

        async def slow_refresh(request: httpx.Request) -> httpx.Response:
            refresh_started.set()
            await release_refresh.wait()
            return httpx.Response(200, json={"access": "stale"})

        api.add("GET", endpoints.WHOAMI, httpx.Response(401, json={"detail": "Token expired"}))
        api.add("POST", endpoints.TOKEN_REFRESH, slow_refresh)
        api.add("POST", endpoints.LOGIN, _login_ok(access="b1", refresh="s1"))
        await _signed_in(manager, credentials, tokens, profile)

        pending = asyncio.ensure_future(manager.pipeline.get(endpoints.WHOAMI))
        await refresh_started.wait()
        await manager.login("user@example.com", "pw")
        release_refresh.set()

        with pytest.raises(Unauthorized):
            await pending

        assert manager.get_access_token() == "b1"
        assert await credentials.get_access_token() == "b1"
        assert await credentials.get_refresh_token() == "s1"

    @pytest.mark.asyncio
    async def test_renewal_without_session_never_reaches_the_network(
        self, manager: SessionManager, api, navigations: list[str]
    ) -> None:
        await manager.hydrate()

        with pytest.raises(Unauthorized):
            await manager.renew_access_token()

        assert api.requests == []
        assert manager.status is AuthStatus.UNAUTHENTICATED
        assert navigations == ["login"]

    @pytest.mark.asyncio
    async def test_renewal_hydrates_first(
        self,
        manager: SessionManager,
        credentials: CredentialStore,
        api,
        tokens: TokenPair,
        profile: UserProfile,
    ) -> None:
        api.add("POST", endpoints.TOKEN_REFRESH, httpx.Response(200, json={"access": "a2"}))
        await credentials.save_session(tokens, profile)

        assert await manager.renew_access_token() == "a2"

        assert manager.status is AuthStatus.AUTHENTICATED
        assert manager.state.user == profile
        assert manager.get_access_token() == "a2"


# ---------------------------------------------------------------------------
# Observers and lifecycle
# ---------------------------------------------------------------------------


class TestObservers:
    @pytest.mark.asyncio
    async def test_listener_sees_every_transition(
        self, manager: SessionManager, api
    ) -> None:
        api.add("POST", endpoints.LOGIN, _login_ok())
        api.add("GET", endpoints.LOGOUT, httpx.Response(200, json={}))
        seen: list[Session] = []
        unsubscribe = manager.on_auth_state_change(seen.append)

        await manager.hydrate()
        await manager.login("user@example.com", "pw")
        await manager.logout()
        unsubscribe()
        await manager.login("user@example.com", "pw")

        assert [AuthStatus.of(s) for s in seen] == [
            AuthStatus.UNAUTHENTICATED,
            AuthStatus.AUTHENTICATED,
            AuthStatus.UNAUTHENTICATED,
        ]
        assert all(not s.authenticated or s.access_token for s in seen)


class TestPassThroughs:
    @pytest.mark.asyncio
    async def test_password_reset_flow(self, manager: SessionManager, api) -> None:
        api.add("POST", endpoints.FORGOT_PASSWORD, httpx.Response(200, json={"message": "sent"}))
        api.add(
            "POST",
            endpoints.VERIFY_FORGOT_PASSWORD,
            httpx.Response(200, json={"reset_token": "rt-1"}),
        )

        assert (await manager.forgot_password(" A@B.io ")).message == "sent"
        await manager.resend_forgot_password_code("a@b.io")
        reset = await manager.verify_forgot_password("a@b.io", " 123456 ")

        assert reset.reset_token == "rt-1"
        bodies = [json.loads(r.content) for r in api.requests]
        assert bodies[0] == {"email": "a@b.io"}
        assert bodies[2] == {"email": "a@b.io", "verification_code": "123456"}
        assert all("Authorization" not in r.headers for r in api.requests)

    @pytest.mark.asyncio
    async def test_check_email_exists(self, manager: SessionManager, api) -> None:
        api.add("POST", endpoints.CHECK_EMAIL, httpx.Response(200, json={"exists": True}))
        assert await manager.check_email_exists("a@b.io") is True


class TestFactory:
    @pytest.mark.asyncio
    async def test_create_session_manager_uses_given_store(
        self, store: DiskKeyValueStore, client_config: ClientConfig, api
    ) -> None:
        api.add("POST", endpoints.LOGIN, _login_ok())
        manager = create_session_manager(client_config, store=store, transport=api.transport)

        await manager.login("user@example.com", "pw")

        assert await store.get(REFRESH_TOKEN_KEY) == "r1"
        assert str(api.requests[0].url).startswith("https://api.test/")
