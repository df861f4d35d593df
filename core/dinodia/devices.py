"""
Device Synchronization

Builds the per-user device list: resolve the hub connection, probe it, fetch
enriched states, apply admin overrides and restrict tenants to their areas.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Optional

from .connections import ConnectionResolver
from .exceptions import ConnectionMissingError
from .ha_client import HAClient
from .labels import (
    LABEL_ORDER,
    OTHER_LABEL,
    classify,
    group_label_of,
    is_sensor_device,
    normalize_label,
    primary_label_of,
)
from .models import DeviceOverride, EnrichedDevice, HaMode, HubCredentials, Role, UIDevice
from .store import RestStore

logger = logging.getLogger(__name__)

HOME_UNREACHABLE = (
    "We cannot find your Dinodia Hub on the home Wi-Fi. It looks like you are away from home. "
    "Switch to Dinodia Cloud to control your place."
)
CLOUD_UNREACHABLE = (
    "Dinodia Cloud is not ready yet. The homeowner needs to finish setting up remote access "
    "for this property."
)


def unreachable_message(mode: HaMode) -> str:
    return CLOUD_UNREACHABLE if mode == HaMode.CLOUD else HOME_UNREACHABLE


def apply_override(device: EnrichedDevice, override: Optional[DeviceOverride]) -> UIDevice:
    """Merge admin overrides into a hub device. Override fields win when set."""
    name = override.name if override and override.name else device.name
    area = override.area if override and override.area else device.area_name

    override_label = normalize_label(override.label) if override else ""
    labels = [override_label] if override_label else list(device.labels)
    label_category = classify(labels) or device.label_category
    primary = override_label or (labels[0] if labels else "") or label_category or OTHER_LABEL

    return UIDevice(
        entity_id=device.entity_id,
        device_id=device.device_id,
        name=name,
        state=device.state,
        area=area,
        label=primary,
        labels=labels,
        label_category=label_category,
        domain=device.domain,
        attributes=device.attributes,
    )


def filter_for_tenant(devices: Sequence[UIDevice], allowed_areas: set[str]) -> list[UIDevice]:
    """Devices in an allowed area. Devices without an area are never shown."""
    return [device for device in devices if device.area and device.area in allowed_areas]


class DeviceSynchronizer:
    """Produces the authoritative device list for a user and mode."""

    def __init__(
        self,
        store: RestStore,
        resolver: ConnectionResolver | None = None,
        client_factory: Callable[[HubCredentials], HAClient] = HAClient.from_credentials,
        home_probe_timeout: float = 2.0,
        cloud_probe_timeout: float = 4.0,
    ):
        self.store = store
        self.resolver = resolver or ConnectionResolver(store)
        self.client_factory = client_factory
        self.probe_timeouts = {
            HaMode.HOME: home_probe_timeout,
            HaMode.CLOUD: cloud_probe_timeout,
        }

    async def fetch_overrides(self, connection_id: int) -> dict[str, DeviceOverride]:
        rows = await self.store.select("Device", {"haConnectionId": connection_id})
        overrides = (DeviceOverride.from_row(row) for row in rows)
        return {override.entity_id: override for override in overrides}

    async def list_devices(self, user_id: int, mode: HaMode) -> list[UIDevice]:
        """Fresh device list for a user.

        Returns an empty list when no URL is configured for the mode.

        Raises:
            ConnectionMissingError: If no connection exists or the hub is unreachable
            HubNetworkError: If fetching states fails in transit
            HubServerError: If the hub rejects the state fetch
        """
        mode = HaMode(mode)
        relations, connection = await self.resolver.resolve(user_id)

        base_url = connection.url_for(mode)
        if not base_url:
            logger.info(f"No {mode.value} URL configured for connection {connection.id}")
            return []

        with self.client_factory(HubCredentials(base_url, connection.long_lived_token)) as client:
            if not await client.probe_reachability(timeout=self.probe_timeouts[mode]):
                logger.warning(f"Dinodia Hub unreachable in {mode.value} mode at {base_url}")
                raise ConnectionMissingError(unreachable_message(mode))

            enriched = await client.fetch_devices_with_metadata()
        overrides = await self.fetch_overrides(connection.id)
        devices = [apply_override(device, overrides.get(device.entity_id)) for device in enriched]

        if relations.summary.role == Role.TENANT:
            devices = filter_for_tenant(devices, relations.allowed_areas)

        logger.debug(f"Synchronized {len(devices)} devices for user {user_id} ({mode.value})")
        return devices


def linked_sensors(device: UIDevice, devices: Sequence[UIDevice]) -> list[UIDevice]:
    """Sensors sharing the device's hub device id."""
    if not device.device_id:
        return []
    return [
        other
        for other in devices
        if other.device_id == device.device_id
        and other.entity_id != device.entity_id
        and is_sensor_device(other)
    ]


def related_devices(device: UIDevice, devices: Sequence[UIDevice]) -> list[UIDevice] | None:
    if primary_label_of(device) != "Home Security":
        return None
    return [other for other in devices if primary_label_of(other) == "Home Security"]


def area_options(devices: Sequence[UIDevice]) -> list[str]:
    return sorted({device.area.strip() for device in devices if device.area and device.area.strip()})


def visible_devices(devices: Sequence[UIDevice], area: str | None = None) -> list[UIDevice]:
    """Devices shown on the dashboard, optionally for one area."""
    visible = []
    for device in devices:
        device_area = (device.area or "").strip()
        if not device_area:
            continue
        if area and device_area != area:
            continue
        if device.labels or device.label_category:
            visible.append(device)
    return visible


def group_devices(devices: Sequence[UIDevice]) -> list[tuple[str, list[UIDevice]]]:
    """Devices bucketed by group label, sections in display order."""
    groups: dict[str, list[UIDevice]] = {}
    for device in devices:
        groups.setdefault(group_label_of(device), []).append(device)
    order = LABEL_ORDER + [OTHER_LABEL]
    return [(label, groups[label]) for label in order if label in groups]
