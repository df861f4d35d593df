"""
Relational Store Client

Minimal PostgREST client for the Dinodia tables (User, AccessRule,
HaConnection, Device, MonitoringReading).
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import requests

from .exceptions import StoreError

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RestStore:
    """Filtered select, insert and patch against `{supabase_url}/rest/v1`."""

    def __init__(
        self,
        supabase_url: str,
        anon_key: str,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ):
        self.base_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": anon_key,
                "Authorization": f"Bearer {anon_key}",
                "Content-Type": "application/json",
            }
        )
        self.timeout = timeout

    def _send(
        self,
        method: str,
        table: str,
        params: list[tuple[str, str]],
        payload: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self.base_url}/{table}"
        headers = {"Prefer": prefer} if prefer else None
        logger.debug(f"{method} {table} {params}")
        try:
            response = self.session.request(
                method, url, params=params, json=payload, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Store request to {table} failed: {e}")
            raise StoreError() from e

        if not 200 <= response.status_code < 300:
            logger.warning(f"Store request to {table} returned {response.status_code}")
            raise StoreError(status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(status_code=response.status_code) from e

    def _select(
        self,
        table: str,
        filters: Mapping[str, Any] | None,
        gte: Mapping[str, Any] | None,
        columns: str,
        limit: int | None,
        order: str | None,
    ) -> list[dict]:
        params = [(key, f"eq.{_encode(value)}") for key, value in (filters or {}).items()]
        params += [(key, f"gte.{_encode(value)}") for key, value in (gte or {}).items()]
        params.append(("select", columns))
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(limit)))
        rows = self._send("GET", table, params)
        if not isinstance(rows, list):
            raise StoreError()
        return rows

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        gte: Mapping[str, Any] | None = None,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict]:
        """Rows matching equality (and optional `gte`) filters.

        Raises:
            StoreError: If the request fails or returns a non-2xx status
        """
        return await asyncio.to_thread(self._select, table, filters, gte, columns, limit, order)

    def _write(self, method: str, table: str, params: list[tuple[str, str]], payload: Any) -> dict:
        rows = self._send(method, table, params, payload=payload, prefer="return=representation")
        if not isinstance(rows, list) or not rows:
            raise StoreError()
        return rows[0]

    async def insert(self, table: str, payload: Mapping[str, Any]) -> dict:
        """Insert one row and return it as written."""
        return await asyncio.to_thread(self._write, "POST", table, [], dict(payload))

    async def update(self, table: str, filters: Mapping[str, Any], payload: Mapping[str, Any]) -> dict:
        """Patch rows matching `filters` and return the first written row."""
        params = [(key, f"eq.{_encode(value)}") for key, value in filters.items()]
        params.append(("select", "*"))
        return await asyncio.to_thread(self._write, "PATCH", table, params, dict(payload))
