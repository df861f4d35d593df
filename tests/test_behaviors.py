"""Tests for the attribute bag and the label behavior table."""

from __future__ import annotations

from core.dinodia.attributes import Attributes
from core.dinodia.behaviors import (
    behavior_for,
    brightness_percent,
    is_active,
    primary_action,
    primary_action_label,
    secondary_text,
    volume_percent,
)
from core.dinodia.commands import DeviceCommand
from core.dinodia.models import UIDevice


def _device(label: str, state: str, **attributes) -> UIDevice:
    return UIDevice(
        entity_id="x.y",
        name="Thing",
        state=state,
        domain="x",
        label=label,
        attributes=Attributes(attributes),
        labels=[label],
    )


def test_attribute_accessors_fail_closed() -> None:
    attrs = Attributes(
        {"name": "Lamp", "level": 3, "ratio": 0.5, "flag": True, "items": [1], "nested": {"a": 1}, "none": None}
    )

    assert attrs.string("name") == "Lamp"
    assert attrs.string("level") is None
    assert attrs.number("level") == 3.0
    assert attrs.number("ratio") == 0.5
    assert attrs.number("flag") is None
    assert attrs.number("name") is None
    assert attrs.boolean("flag") is True
    assert attrs.boolean("level") is None
    assert attrs.sequence("items") == [1]
    assert attrs.mapping("nested") == {"a": 1}
    assert attrs.mapping("items") is None
    assert attrs.string("missing") is None
    assert attrs["none"] is None
    assert len(attrs) == 7


def test_brightness_and_volume_percent() -> None:
    assert brightness_percent(_device("Light", "on", brightness_pct=42.4)) == 42
    assert brightness_percent(_device("Light", "on", brightness=255)) == 100
    assert brightness_percent(_device("Light", "off")) is None
    assert volume_percent(_device("Speaker", "on", volume_level=0.25)) == 25.0
    assert volume_percent(_device("Speaker", "on")) == 0.0


def test_light_behavior() -> None:
    device = _device("Light", "on", brightness=128)

    assert primary_action(device) == DeviceCommand.LIGHT_TOGGLE
    assert primary_action_label(device) == "Toggle light"
    assert secondary_text(device) == "50% brightness"
    assert secondary_text(_device("Light", "off")) == "Off"
    assert is_active(device)


def test_blind_action_depends_on_state() -> None:
    assert primary_action(_device("Blind", "open")) == DeviceCommand.BLIND_CLOSE
    assert primary_action_label(_device("Blind", "opening")) == "Close blinds"
    assert primary_action(_device("Blind", "closed")) == DeviceCommand.BLIND_OPEN
    assert primary_action_label(_device("Blind", "closed")) == "Open blinds"
    assert secondary_text(_device("Blind", "closed")) == "Closed"
    assert secondary_text(_device("Blind", "")) == "Idle"


def test_media_behaviors() -> None:
    spotify = _device("Spotify", "playing", media_title="Song")
    assert primary_action(spotify) == DeviceCommand.MEDIA_PLAY_PAUSE
    assert primary_action_label(spotify) == "Pause"
    assert secondary_text(spotify) == "Song"
    assert secondary_text(_device("Spotify", "paused")) == "Paused"

    tv = _device("TV", "off")
    assert primary_action(tv) == DeviceCommand.TV_TOGGLE_POWER
    assert primary_action_label(tv) == "Turn on TV"

    speaker = _device("Speaker", "playing")
    assert primary_action(speaker) == DeviceCommand.SPEAKER_TOGGLE_POWER
    assert primary_action_label(speaker) == "Turn off speaker"


def test_boiler_and_motion_text() -> None:
    assert secondary_text(_device("Boiler", "heat", temperature=21, current_temperature=19.6)) == "Target 21° • Now 19°"
    assert secondary_text(_device("Boiler", "heat", temperature=22)) == "Target 22°"
    assert secondary_text(_device("Motion Sensor", "detected")) == "Motion detected"
    assert secondary_text(_device("Motion Sensor", "off")) == "No motion"


def test_unknown_label_uses_default_behavior() -> None:
    device = _device("Vacuum", "")

    assert primary_action(device) is None
    assert primary_action_label(device) == "Action"
    assert secondary_text(device) == "Unknown"
    assert behavior_for("Vacuum").detail_kind == "generic"
    assert behavior_for("Doorbell").detail_kind == "camera"
