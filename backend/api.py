"""
Dinodia API Endpoints
"""

import os
import sys
from dataclasses import dataclass

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request
from loguru import logger
from pydantic import BaseModel

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.dinodia.behaviors import behavior_for, primary_action, primary_action_label, secondary_text
from core.dinodia.client import DinodiaClient
from core.dinodia.connections import UpdateHaSettings
from core.dinodia.exceptions import DinodiaError
from core.dinodia.labels import group_label_of
from core.dinodia.models import HaConnection, HaMode, HistoryBucket, UIDevice
from core.dinodia.session import SessionContext

router = APIRouter()

VERSION = "0.1.0"


@dataclass
class RequestContext:
    """Signed-in session behind one request."""

    token: str
    session: SessionContext

    @property
    def user_id(self) -> int:
        return self.session.user.id

    @property
    def mode(self) -> HaMode:
        return self.session.mode


def get_client(request: Request) -> DinodiaClient:
    return request.app.state.dinodia


def bearer_token(authorization: str | None) -> str | None:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def get_context(
    authorization: str | None = Header(None),
    client: DinodiaClient = Depends(get_client),
) -> RequestContext:
    token = bearer_token(authorization)
    session = client.sessions.get(token)
    return RequestContext(token=token, session=session)


class LoginRequest(BaseModel):
    """Request body for logging in."""
    username: str
    password: str


class ModeRequest(BaseModel):
    """Request body for switching between home and cloud."""
    mode: HaMode


class CommandRequest(BaseModel):
    """Request body for a device command."""
    command: str
    value: float | None = None


class UpdateSettingsRequest(BaseModel):
    """Request body for updating hub settings."""
    ha_username: str
    ha_base_url: str
    ha_cloud_url: str | None = None
    ha_password: str | None = None
    ha_long_lived_token: str | None = None


def device_to_dict(device: UIDevice) -> dict:
    action = primary_action(device)
    return {
        "entity_id": device.entity_id,
        "device_id": device.device_id,
        "name": device.name,
        "state": device.state,
        "area": device.area,
        "label": device.label,
        "labels": device.labels,
        "label_category": device.label_category,
        "group": group_label_of(device),
        "domain": device.domain,
        "attributes": device.attributes.to_dict(),
        "secondary_text": secondary_text(device),
        "primary_action": action.value if action else None,
        "primary_action_label": primary_action_label(device),
        "detail_kind": behavior_for(device.label).detail_kind,
    }


def connection_to_dict(connection: HaConnection) -> dict:
    """Connection summary without secrets."""
    return {
        "id": connection.id,
        "ha_username": connection.ha_username,
        "base_url": connection.base_url,
        "cloud_url": connection.cloud_url,
        "owner_id": connection.owner_id,
        "has_token": bool(connection.long_lived_token),
    }


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": "Dinodia", "version": VERSION}


@router.post("/api/login")
async def login(body: LoginRequest, client: DinodiaClient = Depends(get_client)):
    """Log in, reset cached device lists and issue a session token."""
    token, session = await client.sessions.login(body.username, body.password)
    user = session.user
    logger.info(f"User {user.id} logged in")
    return {
        "token": token,
        "user": {"id": user.id, "username": user.username, "role": user.role.value},
        "mode": session.mode.value,
        "connection": connection_to_dict(session.connection),
    }


@router.post("/api/logout")
async def logout(
    ctx: RequestContext = Depends(get_context),
    client: DinodiaClient = Depends(get_client),
):
    """End the session, drop its cached device lists and notify the auth service."""
    await client.sessions.logout(ctx.token)
    return {"status": "ok"}


@router.put("/api/session/mode")
async def set_mode(body: ModeRequest, ctx: RequestContext = Depends(get_context)):
    """Switch between home and cloud. Cached device lists are dropped."""
    ctx.session.set_mode(body.mode)
    logger.info(f"User {ctx.user_id} switched to {ctx.mode.value} mode")
    return {"mode": ctx.mode.value}


@router.get("/api/devices")
async def get_devices(
    background: bool = Query(True),
    ctx: RequestContext = Depends(get_context),
    client: DinodiaClient = Depends(get_client),
):
    """Device list, served from cache while a refresh runs when background is set."""
    if background:
        devices = await client.list_devices(ctx.user_id, ctx.mode)
    else:
        devices = await client.refresh(ctx.user_id, ctx.mode, background=False)
    return {"mode": ctx.mode.value, "devices": [device_to_dict(d) for d in devices]}


@router.delete("/api/devices/cache")
async def clear_device_cache(
    ctx: RequestContext = Depends(get_context),
    client: DinodiaClient = Depends(get_client),
):
    client.cache.clear_cache(ctx.user_id, ctx.mode)
    logger.debug(f"Cleared device cache for user {ctx.user_id} ({ctx.mode.value})")
    return {"status": "ok"}


@router.post("/api/devices/{entity_id}/commands")
async def send_command(
    entity_id: str,
    body: CommandRequest,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_context),
    client: DinodiaClient = Depends(get_client),
):
    """Dispatch a command, then refresh the device list in the background."""
    logger.info(f"Command {body.command} for {entity_id} from user {ctx.user_id} ({ctx.mode.value})")
    await client.dispatch_for_user(ctx.user_id, ctx.mode, body.command, entity_id, body.value)
    background_tasks.add_task(refresh_after_command, client, ctx.user_id, ctx.mode)
    return {"status": "ok", "entity_id": entity_id, "command": body.command}


async def refresh_after_command(client: DinodiaClient, user_id: int, mode: HaMode) -> None:
    # The command already reached the hub; refresh failures are only logged
    try:
        await client.refresh(user_id, mode, background=True)
    except DinodiaError as e:
        logger.warning(f"Refresh after command failed for user {user_id} ({mode.value}): {e}")


@router.get("/api/history/{entity_id}")
async def get_history(
    entity_id: str,
    bucket: HistoryBucket = Query(HistoryBucket.DAILY),
    ctx: RequestContext = Depends(get_context),
    client: DinodiaClient = Depends(get_client),
):
    result = await client.fetch_history(ctx.user_id, entity_id, bucket)
    return {"entity_id": entity_id, "bucket": bucket.value, **result.to_dict()}


@router.get("/api/connection")
async def get_connection(
    ctx: RequestContext = Depends(get_context),
    client: DinodiaClient = Depends(get_client),
):
    relations, connection = await client.resolve_connection(ctx.user_id)
    return {
        "role": relations.summary.role.value,
        "areas": sorted(relations.allowed_areas),
        "connection": connection_to_dict(connection),
    }


@router.put("/api/connection")
async def update_connection(
    body: UpdateSettingsRequest,
    ctx: RequestContext = Depends(get_context),
    client: DinodiaClient = Depends(get_client),
):
    """Update hub settings. Admins only."""
    connection = await client.update_settings(
        UpdateHaSettings(
            admin_id=ctx.user_id,
            ha_username=body.ha_username,
            ha_base_url=body.ha_base_url,
            ha_cloud_url=body.ha_cloud_url,
            ha_password=body.ha_password,
            ha_long_lived_token=body.ha_long_lived_token,
        )
    )
    return {"connection": connection_to_dict(connection)}
