"""Tests for the PostgREST store client."""

from __future__ import annotations

import asyncio

import pytest
import requests

from core.dinodia.exceptions import StoreError
from core.dinodia.store import RestStore
from tests.fakes import FakeResponse, FakeSession, not_json

SUPABASE_URL = "https://project.supabase.co"


def _store(session: FakeSession) -> RestStore:
    return RestStore(SUPABASE_URL + "/", "anon-key", timeout=3.0, session=session)


def test_store_sets_api_headers() -> None:
    session = FakeSession()
    store = _store(session)

    assert store.base_url == "https://project.supabase.co/rest/v1"
    assert session.headers["apikey"] == "anon-key"
    assert session.headers["Authorization"] == "Bearer anon-key"


def test_select_encodes_filters() -> None:
    session = FakeSession()
    session.route("GET", "/rest/v1/MonitoringReading", FakeResponse(200, [{"id": 1}]))

    async def _run() -> None:
        rows = await _store(session).select(
            "MonitoringReading",
            {"entityId": "sensor.power", "active": True},
            gte={"capturedAt": "2024-01-01T00:00:00+00:00"},
            columns="id",
            order="capturedAt",
            limit=5,
        )
        assert rows == [{"id": 1}]

    asyncio.run(_run())
    [call] = session.requests
    assert call.params == [
        ("entityId", "eq.sensor.power"),
        ("active", "eq.true"),
        ("capturedAt", "gte.2024-01-01T00:00:00+00:00"),
        ("select", "id"),
        ("order", "capturedAt"),
        ("limit", "5"),
    ]
    assert call.headers is None
    assert call.timeout == 3.0


def test_update_asks_for_representation() -> None:
    session = FakeSession()
    session.route("PATCH", "/rest/v1/User", FakeResponse(200, [{"id": 2, "haConnectionId": 10}]))

    async def _run() -> None:
        row = await _store(session).update("User", {"id": 2}, {"haConnectionId": 10})
        assert row == {"id": 2, "haConnectionId": 10}

    asyncio.run(_run())
    [call] = session.requests
    assert call.params == [("id", "eq.2"), ("select", "*")]
    assert call.json == {"haConnectionId": 10}
    assert call.headers == {"Prefer": "return=representation"}


def test_insert_returns_first_row() -> None:
    session = FakeSession()
    session.route("POST", "/rest/v1/Device", FakeResponse(201, [{"entityId": "light.a"}]))

    async def _run() -> None:
        assert await _store(session).insert("Device", {"entityId": "light.a"}) == {"entityId": "light.a"}

    asyncio.run(_run())


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(503, text="unavailable"),
        not_json(),
        FakeResponse(200, {"not": "a list"}),
        requests.exceptions.ConnectTimeout("timed out"),
    ],
)
def test_select_failures_raise_store_error(response) -> None:
    session = FakeSession()
    session.route("GET", "/rest/v1/User", response)

    async def _run() -> None:
        with pytest.raises(StoreError, match="We could not reach Dinodia right now"):
            await _store(session).select("User", {"id": 1})

    asyncio.run(_run())


def test_update_with_no_rows_written_is_error() -> None:
    session = FakeSession()
    session.route("PATCH", "/rest/v1/User", FakeResponse(200, []))

    async def _run() -> None:
        with pytest.raises(StoreError):
            await _store(session).update("User", {"id": 99}, {"haConnectionId": 10})

    asyncio.run(_run())
