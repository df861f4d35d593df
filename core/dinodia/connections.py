"""
Hub Connection Resolution

Finds the hub connection that applies to a user. Tenants never own a
connection; they inherit the admin's, and the first resolution writes the
admin's connection id onto the tenant (and, if missing, onto the admin) so
later resolutions short-circuit on the linked id.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from .exceptions import AuthError, ConnectionMissingError, InvalidInputError, UserNotFoundError
from .models import AccessRule, HaConnection, Role, UserSummary, UserWithRelations
from .store import RestStore

logger = logging.getLogger(__name__)

USER_COLUMNS = "id,username,role,haConnectionId"
CONNECTION_NOT_CONFIGURED = "Dinodia Hub connection is not configured for this home."
INVALID_HUB_URL = "Dinodia Hub URL must start with http:// or https://"
ADMIN_ONLY = "Only the homeowner can change the Dinodia Hub settings."


def normalize_hub_url(value: str) -> str:
    """Validate the scheme and strip whitespace and trailing slashes.

    Raises:
        InvalidInputError: If the URL is not http(s)
    """
    trimmed = (value or "").strip()
    parsed = urlparse(trimmed)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        raise InvalidInputError(INVALID_HUB_URL)
    return trimmed.rstrip("/")


@dataclass
class UpdateHaSettings:
    admin_id: int
    ha_username: str
    ha_base_url: str
    ha_cloud_url: Optional[str] = None
    ha_password: Optional[str] = None
    ha_long_lived_token: Optional[str] = None


class ConnectionResolver:
    """Resolves users to their hub connection."""

    def __init__(self, store: RestStore):
        self.store = store

    async def fetch_user_with_relations(self, user_id: int) -> UserWithRelations:
        users = await self.store.select("User", {"id": user_id}, columns=USER_COLUMNS, limit=1)
        if not users:
            raise UserNotFoundError(user_id)
        rules = await self.store.select("AccessRule", {"userId": user_id})
        return UserWithRelations(
            summary=UserSummary.from_row(users[0]),
            access_rules=[AccessRule.from_row(row) for row in rules],
        )

    async def fetch_connection(self, connection_id: int) -> HaConnection | None:
        rows = await self.store.select("HaConnection", {"id": connection_id}, limit=1)
        return HaConnection.from_row(rows[0]) if rows else None

    async def fetch_connection_owned_by(self, user_id: int) -> HaConnection | None:
        rows = await self.store.select("HaConnection", {"ownerId": user_id}, limit=1)
        return HaConnection.from_row(rows[0]) if rows else None

    async def _connection_for(self, user: UserSummary) -> HaConnection | None:
        """Linked connection id first, then ownership."""
        connection = None
        if user.ha_connection_id is not None:
            connection = await self.fetch_connection(user.ha_connection_id)
        if connection is None:
            connection = await self.fetch_connection_owned_by(user.id)
        return connection

    async def linked_user_ids(self, connection_id: int) -> list[int]:
        rows = await self.store.select("User", {"haConnectionId": connection_id}, columns=USER_COLUMNS)
        return [int(row["id"]) for row in rows]

    async def _find_admin(self) -> UserSummary | None:
        rows = await self.store.select("User", {"role": Role.ADMIN.value}, columns=USER_COLUMNS, limit=1)
        return UserSummary.from_row(rows[0]) if rows else None

    async def _link_user(self, user_id: int, connection_id: int) -> None:
        await self.store.update("User", {"id": user_id}, {"haConnectionId": connection_id})
        logger.info(f"Linked user {user_id} to hub connection {connection_id}")

    async def _inherit_admin_connection(
        self, relations: UserWithRelations
    ) -> tuple[UserWithRelations, HaConnection | None]:
        """Resolve the admin's connection and link the tenant to it."""
        admin = await self._find_admin()
        if admin is None:
            return relations, None
        connection = await self._connection_for(admin)
        if connection is None:
            return relations, None

        if relations.summary.ha_connection_id != connection.id:
            await self._link_user(relations.summary.id, connection.id)
            relations = await self.fetch_user_with_relations(relations.summary.id)
        if admin.ha_connection_id is None:
            await self._link_user(admin.id, connection.id)
        return relations, connection

    async def resolve(self, user_id: int) -> tuple[UserWithRelations, HaConnection]:
        """Relations and hub connection for a user.

        Raises:
            UserNotFoundError: If the user row does not exist
            ConnectionMissingError: If no connection can be found
        """
        relations = await self.fetch_user_with_relations(user_id)
        summary = relations.summary
        connection = None

        if summary.ha_connection_id is not None:
            connection = await self.fetch_connection(summary.ha_connection_id)

        if connection is None and summary.role == Role.ADMIN:
            connection = await self.fetch_connection_owned_by(summary.id)

        if connection is None and summary.role == Role.TENANT:
            relations, connection = await self._inherit_admin_connection(relations)

        if connection is None:
            raise ConnectionMissingError(CONNECTION_NOT_CONFIGURED)
        return relations, connection

    async def update_settings(self, params: UpdateHaSettings) -> HaConnection:
        """Apply admin-entered hub settings and return the stored connection.

        Raises:
            InvalidInputError: If a URL is not http(s)
            AuthError: If the user is not an admin
        """
        base_url = normalize_hub_url(params.ha_base_url)
        relations, connection = await self.resolve(params.admin_id)
        if relations.summary.role != Role.ADMIN:
            raise AuthError(ADMIN_ONLY)

        update: dict = {
            "haUsername": params.ha_username.strip(),
            "baseUrl": base_url,
        }
        if params.ha_cloud_url is not None:
            cloud = params.ha_cloud_url.strip()
            update["cloudUrl"] = normalize_hub_url(cloud) if cloud else None
        if params.ha_password:
            update["haPassword"] = params.ha_password
        if params.ha_long_lived_token:
            update["longLivedToken"] = params.ha_long_lived_token

        row = await self.store.update("HaConnection", {"id": connection.id}, update)
        logger.info(f"Updated hub settings for connection {connection.id}")
        return HaConnection.from_row(row)
