"""
Session Context

The signed-in user, the selected mode and the resolved hub connection. One
context is owned by whoever handles the user's requests and is passed
explicitly; every identity or mode change invalidates the device cache.
"""

import asyncio
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from .auth import AuthService
from .cache import SyncCache
from .connections import ConnectionResolver
from .devices import unreachable_message
from .exceptions import AuthError, ConnectionMissingError
from .models import AuthUser, HaConnection, HaMode, HubCredentials

logger = logging.getLogger(__name__)

SESSION_EXPIRED = "Your session has ended. Please log in again."


@dataclass
class SessionPayload:
    user: AuthUser
    mode: HaMode
    connection: Optional[HaConnection] = None


class InMemorySessionStorage:
    """Keeps the session payload for the lifetime of the process."""

    def __init__(self):
        self._payload: SessionPayload | None = None

    def load(self) -> SessionPayload | None:
        return self._payload

    def save(self, payload: SessionPayload) -> None:
        self._payload = payload

    def clear(self) -> None:
        self._payload = None


class SessionContext:
    def __init__(
        self,
        auth: AuthService,
        resolver: ConnectionResolver,
        cache: SyncCache,
        storage: InMemorySessionStorage | None = None,
    ):
        self.auth = auth
        self.resolver = resolver
        self.cache = cache
        self.storage = storage or InMemorySessionStorage()
        self._pending: set[asyncio.Task] = set()

        self.user: AuthUser | None = None
        self.mode = HaMode.HOME
        self.connection: HaConnection | None = None

        payload = self.storage.load()
        if payload is not None:
            self.user = payload.user
            self.mode = payload.mode
            self.connection = payload.connection

    def _save(self) -> None:
        if self.user is None:
            self.storage.clear()
            return
        self.storage.save(SessionPayload(self.user, self.mode, self.connection))

    async def login(self, username: str, password: str) -> AuthUser:
        """Sign in, resolve the hub connection and reset cached device lists."""
        user = await self.auth.login(username, password)
        _, connection = await self.resolver.resolve(user.id)

        if self.user is not None and self.user.id != user.id:
            self.cache.clear_all(self.user.id)
        self.cache.clear_all(user.id)

        self.user = user
        self.connection = connection
        self.mode = HaMode.HOME
        self._save()
        return user

    async def logout(self) -> None:
        user = self.user
        self.user = None
        self.connection = None
        self.mode = HaMode.HOME
        self.storage.clear()
        if user is not None:
            self.cache.clear_all(user.id)
            logger.info(f"User {user.id} logged out")

        task = asyncio.create_task(self.auth.logout_remote())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def set_mode(self, mode: HaMode) -> None:
        mode = HaMode(mode)
        if self.user is not None:
            self.cache.clear_all(self.user.id)
        self.mode = mode
        self._save()

    def update_connection(self, connection: HaConnection) -> None:
        self.connection = connection
        self._save()

    def connection_for(self, mode: HaMode | None = None) -> HubCredentials | None:
        """Hub credentials for a mode, or None when no URL is configured."""
        if self.connection is None:
            return None
        base_url = self.connection.url_for(HaMode(mode or self.mode))
        if not base_url:
            return None
        return HubCredentials(base_url, self.connection.long_lived_token)

    def credentials_or_raise(self, mode: HaMode | None = None) -> HubCredentials:
        mode = HaMode(mode or self.mode)
        credentials = self.connection_for(mode)
        if credentials is None:
            raise ConnectionMissingError(unreachable_message(mode))
        return credentials


class SessionRegistry:
    """Signed-in sessions by bearer token. Each login gets its own SessionContext."""

    def __init__(self, factory: Callable[[], SessionContext]):
        self._factory = factory
        self._sessions: dict[str, SessionContext] = {}

    async def login(self, username: str, password: str) -> tuple[str, SessionContext]:
        session = self._factory()
        await session.login(username, password)
        token = secrets.token_urlsafe(32)
        self._sessions[token] = session
        return token, session

    def get(self, token: str | None) -> SessionContext:
        """Session for a token.

        Raises:
            AuthError: If the token is unknown or its session was logged out
        """
        session = self._sessions.get(token or "")
        if session is None or session.user is None:
            raise AuthError(SESSION_EXPIRED)
        return session

    async def logout(self, token: str) -> None:
        session = self._sessions.pop(token, None)
        if session is not None:
            await session.logout()

    def for_users(self, user_ids) -> list[SessionContext]:
        wanted = set(user_ids)
        return [s for s in self._sessions.values() if s.user is not None and s.user.id in wanted]
