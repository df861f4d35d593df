"""Tests for the auth endpoints and the session context."""

from __future__ import annotations

import asyncio

import pytest
import requests

from core.dinodia.auth import BAD_CREDENTIALS, LOGIN_FAILED, PASSWORD_CHANGE_FAILED, AuthService
from core.dinodia.connections import ConnectionResolver
from core.dinodia.exceptions import AuthError, ConnectionMissingError, InvalidInputError
from core.dinodia.models import HaMode, Role
from core.dinodia.session import SESSION_EXPIRED, InMemorySessionStorage, SessionContext, SessionRegistry
from tests.fakes import CLOUD_URL, HUB_URL, FakeResponse, FakeSession, FakeStore, home_tables, not_json

AUTH_URL = "https://project.supabase.co/functions/v1"


def _auth(session: FakeSession) -> AuthService:
    return AuthService(AUTH_URL + "/", "anon", session=session)


def _login_route(session: FakeSession, user_id: int = 1, role: str = "ADMIN") -> None:
    session.route(
        "POST",
        "/functions/v1/auth-login",
        FakeResponse(200, {"ok": True, "user": {"id": user_id, "username": "owner", "role": role}}),
    )


class RecordingCache:
    def __init__(self) -> None:
        self.cleared: list[int] = []

    def clear_all(self, user_id: int) -> None:
        self.cleared.append(user_id)


def test_login_returns_user() -> None:
    session = FakeSession()
    _login_route(session, 2, "TENANT")

    async def _run() -> None:
        user = await _auth(session).login(" guest ", "pw")
        assert user.id == 2
        assert user.role == Role.TENANT

    asyncio.run(_run())
    assert session.requests[0].json == {"username": "guest", "password": "pw"}


@pytest.mark.parametrize("username, password", [("", "pw"), ("  ", "pw"), ("owner", "")])
def test_login_requires_both_fields(username: str, password: str) -> None:
    session = FakeSession()

    async def _run() -> None:
        with pytest.raises(InvalidInputError, match="Enter both username and password"):
            await _auth(session).login(username, password)

    asyncio.run(_run())
    assert session.requests == []


@pytest.mark.parametrize(
    "response, message",
    [
        (FakeResponse(401, {"error": "nope"}), BAD_CREDENTIALS),
        (FakeResponse(400, {"error": "Invalid credentials"}), BAD_CREDENTIALS),
        (FakeResponse(423, {"error": "Account locked."}), "Account locked."),
        (FakeResponse(500, {}), LOGIN_FAILED),
        (not_json(502), LOGIN_FAILED),
        (FakeResponse(200, ["unexpected"]), LOGIN_FAILED),
        (requests.exceptions.ConnectionError("down"), LOGIN_FAILED),
    ],
)
def test_login_failures(response, message: str) -> None:
    session = FakeSession()
    session.route("POST", "/functions/v1/auth-login", response)

    async def _run() -> None:
        with pytest.raises(AuthError) as excinfo:
            await _auth(session).login("owner", "pw")
        assert str(excinfo.value) == message

    asyncio.run(_run())


@pytest.mark.parametrize(
    "role, path", [(Role.ADMIN, "auth/admin/change-password"), (Role.TENANT, "auth/tenant/change-password")]
)
def test_change_password_endpoint_per_role(role: Role, path: str) -> None:
    session = FakeSession()
    session.route("POST", f"/functions/v1/{path}", FakeResponse(200, {"ok": True}))

    async def _run() -> None:
        await _auth(session).change_password(role, "old", "new", "new")

    asyncio.run(_run())
    assert session.requests[0].json == {"currentPassword": "old", "newPassword": "new", "confirmNewPassword": "new"}


def test_change_password_failure() -> None:
    session = FakeSession()
    session.route("POST", "/functions/v1/auth/admin/change-password", FakeResponse(400, {"error": "weak"}))

    async def _run() -> None:
        with pytest.raises(AuthError, match=PASSWORD_CHANGE_FAILED):
            await _auth(session).change_password("ADMIN", "old", "new", "other")

    asyncio.run(_run())


def test_remote_logout_swallows_transport_errors() -> None:
    session = FakeSession()

    async def _run() -> None:
        await _auth(session).logout_remote()

    asyncio.run(_run())
    assert session.requests[0].path == "/functions/v1/auth/logout"


def _context(session: FakeSession, tables=None, storage=None) -> tuple[SessionContext, RecordingCache]:
    store = FakeStore(tables or home_tables())
    cache = RecordingCache()
    return SessionContext(_auth(session), ConnectionResolver(store), cache, storage=storage), cache


def test_login_resolves_connection_and_resets_cache() -> None:
    session = FakeSession()
    _login_route(session, 1)
    context, cache = _context(session)

    async def _run() -> None:
        context.mode = HaMode.CLOUD
        user = await context.login("owner", "pw")
        assert user.id == 1

    asyncio.run(_run())
    assert context.mode == HaMode.HOME
    assert context.connection.id == 10
    assert cache.cleared == [1]
    assert context.connection_for().base_url == HUB_URL
    assert context.connection_for(HaMode.CLOUD).base_url == CLOUD_URL


def test_switching_user_clears_previous_user_cache() -> None:
    session = FakeSession()
    _login_route(session, 1)
    context, cache = _context(session)

    async def _run() -> None:
        await context.login("owner", "pw")
        _login_route(session, 2, "TENANT")
        await context.login("guest", "pw")

    asyncio.run(_run())
    assert cache.cleared == [1, 1, 2]
    assert context.user.id == 2


def test_session_persists_in_storage() -> None:
    session = FakeSession()
    _login_route(session, 1)
    storage = InMemorySessionStorage()
    context, _ = _context(session, storage=storage)

    asyncio.run(context.login("owner", "pw"))
    context.set_mode(HaMode.CLOUD)

    restored, _ = _context(session, storage=storage)
    assert restored.user.id == 1
    assert restored.mode == HaMode.CLOUD
    assert restored.connection.id == 10


def test_mode_switch_clears_cache() -> None:
    session = FakeSession()
    _login_route(session, 1)
    context, cache = _context(session)

    asyncio.run(context.login("owner", "pw"))
    context.set_mode("cloud")

    assert context.mode == HaMode.CLOUD
    assert cache.cleared == [1, 1]


def test_logout_clears_everything_and_notifies_remote() -> None:
    session = FakeSession()
    _login_route(session, 1)
    session.route("POST", "/functions/v1/auth/logout", FakeResponse(200, {"ok": True}))
    storage = InMemorySessionStorage()
    context, cache = _context(session, storage=storage)

    async def _run() -> None:
        await context.login("owner", "pw")
        await context.logout()
        await asyncio.gather(*list(context._pending))

    asyncio.run(_run())
    assert context.user is None
    assert context.connection is None
    assert storage.load() is None
    assert cache.cleared == [1, 1]
    assert session.calls("POST", "/functions/v1/auth/logout")


def test_missing_cloud_url_has_no_credentials() -> None:
    session = FakeSession()
    _login_route(session, 1)
    context, _ = _context(session, tables=home_tables(cloud_url=None))

    asyncio.run(context.login("owner", "pw"))

    assert context.connection_for(HaMode.CLOUD) is None
    with pytest.raises(ConnectionMissingError, match="Dinodia Cloud is not ready yet"):
        context.credentials_or_raise(HaMode.CLOUD)
    assert context.credentials_or_raise().base_url == HUB_URL


def test_registry_issues_token_per_login() -> None:
    session = FakeSession()
    _login_route(session, 1)
    session.route("POST", "/functions/v1/auth/logout", FakeResponse(200, {"ok": True}))
    registry = SessionRegistry(lambda: _context(session)[0])

    async def _run() -> None:
        first, context = await registry.login("owner", "pw")
        second, _ = await registry.login("owner", "pw")
        assert first != second
        assert registry.get(first) is context
        assert context.user.id == 1

        await registry.logout(first)
        with pytest.raises(AuthError, match=SESSION_EXPIRED):
            registry.get(first)
        assert registry.get(second).user.id == 1

    asyncio.run(_run())


@pytest.mark.parametrize("token", [None, "", "unknown"])
def test_registry_rejects_missing_or_unknown_token(token) -> None:
    registry = SessionRegistry(lambda: _context(FakeSession())[0])

    with pytest.raises(AuthError, match=SESSION_EXPIRED):
        registry.get(token)


def test_registry_finds_sessions_by_user() -> None:
    session = FakeSession()
    registry = SessionRegistry(lambda: _context(session)[0])

    async def _run() -> None:
        _login_route(session, 1)
        await registry.login("owner", "pw")
        _login_route(session, 2, "TENANT")
        await registry.login("guest", "pw")

    asyncio.run(_run())
    assert [s.user.id for s in registry.for_users({2})] == [2]
    assert registry.for_users({3}) == []
