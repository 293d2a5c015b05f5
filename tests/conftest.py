"""Shared test fixtures for trainerlink.

Provides an in-process fake of the remote API (served through
:class:`httpx.MockTransport`), real :mod:`diskcache` stores under
``tmp_path``, isolated config directories, and a session manager wired to
all of them.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, Union

import httpx
import pytest

from trainerlink.auth.credential_store import CredentialStore
from trainerlink.auth.manager import SessionManager
from trainerlink.client.transport import HttpTransport
from trainerlink.models import ClientConfig, TokenPair, UserProfile
from trainerlink.output import reset_output
from trainerlink.storage.disk import DiskKeyValueStore

BASE_URL = "https://api.test"

Handler = Callable[[httpx.Request], Any]
Route = Union[httpx.Response, Handler]


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The manager holds on to the stdout/stderr objects it was created with;
    CliRunner swaps those per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fake remote API
# ---------------------------------------------------------------------------


class FakeApi:
    """Routes requests by ``(method, path)`` and records every request.

    Each route holds a queue of responses (or handlers returning one,
    possibly as a coroutine). The last entry of a queue is reused once the
    others are consumed. Unknown routes answer ``404``.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Route]] = {}

    def add(self, method: str, path: str, *responses: Route) -> None:
        self._routes[(method.upper(), path)] = list(responses)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method.upper() and r.url.path == path
        ]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"detail": "Not found."})
        route = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(route, httpx.Response):
            return httpx.Response(route.status_code, headers=route.headers, content=route.content)
        return route(request)


# ---------------------------------------------------------------------------
# Isolated config
# ---------------------------------------------------------------------------


@pytest.fixture()
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every XDG directory at ``tmp_path`` and clear trainerlink env vars.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("trainerlink.config._is_xdg_platform", lambda: True)
    for var in ["TRAINERLINK_API_URL", "TRAINERLINK_TIMEOUT"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Session fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store(tmp_path: Path) -> DiskKeyValueStore:
    kv = DiskKeyValueStore(tmp_path / "store")
    yield kv
    kv.close()


@pytest.fixture()
def credentials(store: DiskKeyValueStore) -> CredentialStore:
    return CredentialStore(store)


@pytest.fixture()
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture()
def client_config() -> ClientConfig:
    return ClientConfig(base_url=BASE_URL, timeout=5)


@pytest.fixture()
def navigations() -> list[str]:
    """Records each call of the login navigation callback."""
    return []


@pytest.fixture()
def manager(
    credentials: CredentialStore,
    api: FakeApi,
    client_config: ClientConfig,
    navigations: list[str],
) -> SessionManager:
    return SessionManager(
        credentials,
        HttpTransport(client_config, transport=api.transport),
        navigate_to_login=lambda: navigations.append("login"),
    )


@pytest.fixture()
def profile() -> UserProfile:
    return UserProfile(id=7, email="user@example.com", username="Sam", role="client")


@pytest.fixture()
def tokens() -> TokenPair:
    return TokenPair(access="a1", refresh="r1")
