"""
Dinodia Client

Wires the store, resolver, synchronizer, cache, history and auth together
from one settings object and exposes the operations the UI layer calls.
"""

import logging
from collections.abc import Callable

from .auth import AuthService
from .cache import SyncCache
from .commands import CommandDispatcher, DeviceCommand
from .connections import ConnectionResolver, UpdateHaSettings
from .devices import DeviceSynchronizer, unreachable_message
from .exceptions import ConnectionMissingError
from .ha_client import HAClient
from .history import HistoryAggregator
from .models import (
    HaConnection,
    HaMode,
    HistoryBucket,
    HistoryResult,
    HubCredentials,
    UIDevice,
    UserWithRelations,
)
from .session import InMemorySessionStorage, SessionContext, SessionRegistry
from .settings import DinodiaSettings
from .store import RestStore

logger = logging.getLogger(__name__)


class DinodiaClient:
    def __init__(
        self,
        settings: DinodiaSettings,
        store: RestStore | None = None,
        client_factory: Callable[[HubCredentials], HAClient] | None = None,
        auth: AuthService | None = None,
        history: HistoryAggregator | None = None,
    ):
        self.settings = settings
        self.store = store or RestStore(
            settings.supabase_url, settings.supabase_anon_key, timeout=settings.request_timeout
        )
        self.client_factory = client_factory or self._default_client
        self.resolver = ConnectionResolver(self.store)
        self.synchronizer = DeviceSynchronizer(
            self.store,
            self.resolver,
            client_factory=self.client_factory,
            home_probe_timeout=settings.home_probe_timeout,
            cloud_probe_timeout=settings.cloud_probe_timeout,
        )
        self.cache = SyncCache(self.synchronizer, max_age=settings.cache_max_age)
        self.history = history or HistoryAggregator(
            self.store,
            self.resolver,
            platform_api_url=settings.platform_api_url,
            timeout=settings.request_timeout,
        )
        self.auth = auth or AuthService(
            settings.auth_base_url, settings.supabase_anon_key, timeout=settings.request_timeout
        )
        self.sessions = SessionRegistry(self.new_session)

    def _default_client(self, credentials: HubCredentials) -> HAClient:
        return HAClient.from_credentials(credentials, timeout=self.settings.request_timeout)

    def new_session(self, storage: InMemorySessionStorage | None = None) -> SessionContext:
        return SessionContext(self.auth, self.resolver, self.cache, storage=storage)

    async def resolve_connection(self, user_id: int) -> tuple[UserWithRelations, HaConnection]:
        return await self.resolver.resolve(user_id)

    async def list_devices(self, user_id: int, mode: HaMode) -> list[UIDevice]:
        return await self.cache.list_devices(user_id, mode)

    async def refresh(self, user_id: int, mode: HaMode, background: bool = False) -> list[UIDevice]:
        return await self.cache.refresh(user_id, mode, background=background)

    async def dispatch(
        self,
        credentials: HubCredentials,
        command: DeviceCommand | str,
        entity_id: str,
        value: float | None = None,
    ) -> None:
        with self.client_factory(credentials) as client:
            await CommandDispatcher(client).dispatch(command, entity_id, value)

    async def dispatch_for_user(
        self,
        user_id: int,
        mode: HaMode,
        command: DeviceCommand | str,
        entity_id: str,
        value: float | None = None,
    ) -> None:
        """Resolve the user's hub for a mode, then dispatch.

        Raises:
            ConnectionMissingError: If no URL is configured for the mode
        """
        mode = HaMode(mode)
        _, connection = await self.resolver.resolve(user_id)
        base_url = connection.url_for(mode)
        if not base_url:
            raise ConnectionMissingError(unreachable_message(mode))
        await self.dispatch(HubCredentials(base_url, connection.long_lived_token), command, entity_id, value)

    async def fetch_history(self, user_id: int, entity_id: str, bucket: HistoryBucket) -> HistoryResult:
        return await self.history.fetch_history(user_id, entity_id, bucket)

    async def update_settings(self, params: UpdateHaSettings) -> HaConnection:
        """Apply hub settings, then reset everyone who shares the connection."""
        connection = await self.resolver.update_settings(params)
        user_ids = {params.admin_id, *await self.resolver.linked_user_ids(connection.id)}
        # Device lists were built against the old URLs
        for user_id in sorted(user_ids):
            self.cache.clear_all(user_id)
        for session in self.sessions.for_users(user_ids):
            session.update_connection(connection)
        logger.info(f"Reset device lists for users {sorted(user_ids)} after hub settings change")
        return connection
