"""Tests for device synchronization, overrides and dashboard helpers."""

from __future__ import annotations

import asyncio

import pytest

from core.dinodia.attributes import Attributes
from core.dinodia.devices import (
    CLOUD_UNREACHABLE,
    HOME_UNREACHABLE,
    DeviceSynchronizer,
    apply_override,
    area_options,
    filter_for_tenant,
    group_devices,
    linked_sensors,
    related_devices,
    visible_devices,
)
from core.dinodia.exceptions import ConnectionMissingError
from core.dinodia.models import DeviceOverride, EnrichedDevice, HaMode, UIDevice
from tests.fakes import (
    CLOUD_URL,
    HUB_URL,
    FakeStore,
    client_factory_for,
    home_tables,
    hub_session,
    meta,
    state,
)

STATES = [
    state("light.kitchen", "on", friendly_name="Kitchen Light"),
    state("light.garage", "off", friendly_name="Garage Light"),
    state("sensor.hall_temp", "21.5", friendly_name="Hall"),
]
METADATA = [
    meta("light.kitchen", area="Kitchen", labels=["Light"], device_id="dev-k"),
    meta("light.garage", area="Garage", labels=["Light"], device_id="dev-g"),
]


def _enriched(**overrides) -> EnrichedDevice:
    values = dict(
        entity_id="light.kitchen",
        name="Kitchen Light",
        state="on",
        domain="light",
        attributes=Attributes(),
        area_name="Kitchen",
        labels=["Light"],
        label_category="Light",
    )
    values.update(overrides)
    return EnrichedDevice(**values)


def _ui(entity_id: str, label: str = "Light", area: str | None = "Kitchen", **overrides) -> UIDevice:
    values = dict(
        entity_id=entity_id,
        name=entity_id,
        state="on",
        domain=entity_id.split(".")[0],
        label=label,
        attributes=Attributes(),
        labels=[label] if label else [],
        label_category=None,
        area=area,
    )
    values.update(overrides)
    return UIDevice(**values)


def test_tenant_sees_allowed_area_with_override_name() -> None:
    tables = home_tables(areas=("Kitchen",))
    tables["Device"] = [{"entityId": "light.kitchen", "haConnectionId": 10, "name": "Pendant"}]
    store = FakeStore(tables)
    session = hub_session(STATES, METADATA)
    factory = client_factory_for(session)

    async def _run() -> None:
        devices = await DeviceSynchronizer(store, client_factory=factory).list_devices(2, HaMode.HOME)
        assert [d.entity_id for d in devices] == ["light.kitchen"]
        assert devices[0].name == "Pendant"
        assert devices[0].area == "Kitchen"
        assert devices[0].label == "Light"

    asyncio.run(_run())
    assert factory.created[0].base_url == HUB_URL
    assert factory.created[0].closed


def test_admin_sees_every_device() -> None:
    store = FakeStore(home_tables())
    session = hub_session(STATES, METADATA)

    async def _run() -> None:
        devices = await DeviceSynchronizer(store, client_factory=client_factory_for(session)).list_devices(
            1, HaMode.HOME
        )
        assert {d.entity_id for d in devices} == {"light.kitchen", "light.garage", "sensor.hall_temp"}

    asyncio.run(_run())


def test_unreachable_home_hub_fails_before_fetching_states() -> None:
    store = FakeStore(home_tables())
    session = hub_session(STATES, METADATA, reachable=False)

    async def _run() -> None:
        with pytest.raises(ConnectionMissingError) as excinfo:
            await DeviceSynchronizer(store, client_factory=client_factory_for(session)).list_devices(1, "home")
        assert str(excinfo.value) == HOME_UNREACHABLE

    asyncio.run(_run())
    assert session.calls("GET", "/api/states") == []
    assert session.calls("GET", "/api/")[0].timeout == 2.0


def test_unreachable_cloud_uses_cloud_text_and_timeout() -> None:
    store = FakeStore(home_tables())
    session = hub_session(STATES, METADATA, reachable=False)
    factory = client_factory_for(session)

    async def _run() -> None:
        with pytest.raises(ConnectionMissingError, match="Dinodia Cloud is not ready yet"):
            await DeviceSynchronizer(store, client_factory=factory).list_devices(1, HaMode.CLOUD)

    asyncio.run(_run())
    assert factory.created[0].base_url == CLOUD_URL
    assert factory.created[0].closed
    assert session.calls("GET", "/api/")[0].timeout == 4.0
    assert CLOUD_UNREACHABLE.startswith("Dinodia Cloud")


@pytest.mark.parametrize("cloud_url", [None, "", "  "])
def test_empty_cloud_url_yields_no_devices(cloud_url) -> None:
    store = FakeStore(home_tables(cloud_url=cloud_url))
    session = hub_session(STATES, METADATA)

    async def _run() -> None:
        devices = await DeviceSynchronizer(store, client_factory=client_factory_for(session)).list_devices(
            1, HaMode.CLOUD
        )
        assert devices == []

    asyncio.run(_run())
    assert session.requests == []


def test_tenant_filter_drops_devices_without_area() -> None:
    devices = [_ui("light.a", area="Kitchen"), _ui("light.b", area=None), _ui("light.c", area="Garage")]

    assert [d.entity_id for d in filter_for_tenant(devices, {"Kitchen"})] == ["light.a"]


def test_override_wins_for_every_field() -> None:
    override = DeviceOverride("light.kitchen", 10, name="Pendant", area="Dining", label="Spotify")

    device = apply_override(_enriched(), override)

    assert device.name == "Pendant"
    assert device.area == "Dining"
    assert device.label == "Spotify"
    assert device.labels == ["Spotify"]
    assert device.label_category == "Spotify"


def test_empty_override_fields_fall_back_to_hub() -> None:
    override = DeviceOverride("light.kitchen", 10, name="", area=None, label="  ")

    device = apply_override(_enriched(), override)

    assert device.name == "Kitchen Light"
    assert device.area == "Kitchen"
    assert device.label == "Light"
    assert device.labels == ["Light"]


def test_unlabelled_device_uses_category_then_other() -> None:
    assert apply_override(_enriched(labels=[], label_category="Switch"), None).label == "Switch"
    assert apply_override(_enriched(labels=[], label_category=None), None).label == "Other"


def test_override_label_unknown_keeps_hub_category() -> None:
    override = DeviceOverride("light.kitchen", 10, label="Mood")

    device = apply_override(_enriched(), override)

    assert device.label == "Mood"
    assert device.label_category == "Light"


def test_linked_sensors_share_device_id() -> None:
    lamp = _ui("light.lamp", device_id="dev1")
    power = _ui("sensor.lamp_power", label="", state="12.5", device_id="dev1")
    other = _ui("sensor.other", label="", state="3", device_id="dev2")
    switch = _ui("switch.lamp_child", label="", state="on", device_id="dev1")

    assert linked_sensors(lamp, [lamp, power, other, switch]) == [power]
    assert linked_sensors(_ui("light.free"), [power]) == []


def test_related_devices_for_home_security() -> None:
    cam1 = _ui("camera.front", label="Home Security")
    cam2 = _ui("camera.back", label="Home Security")
    lamp = _ui("light.lamp")

    assert related_devices(cam1, [cam1, cam2, lamp]) == [cam1, cam2]
    assert related_devices(lamp, [cam1, lamp]) is None


def test_area_options_and_visibility() -> None:
    devices = [
        _ui("light.a", area="Kitchen"),
        _ui("light.b", area=" Garage "),
        _ui("light.c", area=None),
        _ui("switch.d", label="", area="Kitchen"),
        _ui("switch.e", label="", area="Kitchen", label_category="Switch"),
    ]

    assert area_options(devices) == ["Garage", "Kitchen"]
    assert [d.entity_id for d in visible_devices(devices)] == ["light.a", "light.b", "switch.e"]
    assert [d.entity_id for d in visible_devices(devices, "Kitchen")] == ["light.a", "switch.e"]


def test_group_devices_in_display_order() -> None:
    devices = [
        _ui("media_player.tv", label="TV"),
        _ui("light.a", label="light"),
        _ui("vacuum.robot", label="Vacuum"),
        _ui("cover.blind", label="Blind"),
    ]

    groups = group_devices(devices)

    assert [label for label, _ in groups] == ["Light", "Blind", "TV", "Other"]
    assert groups[-1][1][0].entity_id == "vacuum.robot"
