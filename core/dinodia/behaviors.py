"""
Label Behaviors

One table from display label to what the UI does with a device of that label:
the primary command, its button text, the detail view and the secondary text.
"""

from collections.abc import Callable
from dataclasses import dataclass

from .commands import DeviceCommand
from .labels import primary_label_of
from .models import UIDevice

OPEN_STATES = ("open", "opening", "on")
MOTION_STATES = ("on", "motion", "detected", "open")


def brightness_percent(device: UIDevice) -> int | None:
    pct = device.attributes.number("brightness_pct")
    if pct is not None:
        return round(pct)
    raw = device.attributes.number("brightness")
    if raw is not None:
        return round(raw / 255.0 * 100)
    return None


def volume_percent(device: UIDevice) -> float:
    level = device.attributes.number("volume_level")
    return level * 100 if level is not None else 0.0


def _state(device: UIDevice) -> str:
    return device.state.lower()


def _blind_command(device: UIDevice) -> DeviceCommand:
    return DeviceCommand.BLIND_CLOSE if _state(device) in OPEN_STATES else DeviceCommand.BLIND_OPEN


def _blind_action_text(device: UIDevice) -> str:
    return "Close blinds" if _state(device) in OPEN_STATES else "Open blinds"


def _speaker_action_text(device: UIDevice) -> str:
    return "Turn off speaker" if _state(device) in ("on", "playing") else "Turn on speaker"


def _light_text(device: UIDevice) -> str:
    pct = brightness_percent(device)
    if pct is not None:
        return f"{pct}% brightness"
    return "On" if device.state == "on" else "Off"


def _media_text(device: UIDevice) -> str:
    title = device.attributes.string("media_title")
    if title:
        return title
    if _state(device) == "playing":
        return "Playing"
    if _state(device) == "paused":
        return "Paused"
    return device.state


def _boiler_text(device: UIDevice) -> str:
    target = device.attributes.number("temperature")
    current = device.attributes.number("current_temperature")
    if target is not None and current is not None:
        return f"Target {int(target)}° • Now {int(current)}°"
    if target is not None:
        return f"Target {int(target)}°"
    return device.state


def _blind_text(device: UIDevice) -> str:
    return device.state.capitalize() if device.state else "Idle"


def _motion_text(device: UIDevice) -> str:
    return "Motion detected" if _state(device) in MOTION_STATES else "No motion"


def _default_text(device: UIDevice) -> str:
    return device.state or "Unknown"


@dataclass(frozen=True)
class LabelBehavior:
    """How a label is presented and controlled."""

    detail_kind: str
    command: Callable[[UIDevice], DeviceCommand | None]
    action_text: Callable[[UIDevice], str]
    secondary_text: Callable[[UIDevice], str]
    # Devices of this label count as "on" in these states
    active_states: tuple[str, ...] = ("on",)


def _fixed(command: DeviceCommand | None) -> Callable[[UIDevice], DeviceCommand | None]:
    return lambda device: command


def _text(value: str) -> Callable[[UIDevice], str]:
    return lambda device: value


DEFAULT_BEHAVIOR = LabelBehavior(
    detail_kind="generic",
    command=_fixed(None),
    action_text=_text("Action"),
    secondary_text=_default_text,
)

LABEL_BEHAVIORS: dict[str, LabelBehavior] = {
    "Light": LabelBehavior(
        detail_kind="light",
        command=_fixed(DeviceCommand.LIGHT_TOGGLE),
        action_text=_text("Toggle light"),
        secondary_text=_light_text,
    ),
    "Blind": LabelBehavior(
        detail_kind="blind",
        command=_blind_command,
        action_text=_blind_action_text,
        secondary_text=_blind_text,
        active_states=OPEN_STATES,
    ),
    "Spotify": LabelBehavior(
        detail_kind="media",
        command=_fixed(DeviceCommand.MEDIA_PLAY_PAUSE),
        action_text=lambda device: "Pause" if _state(device) == "playing" else "Play",
        secondary_text=_media_text,
        active_states=("playing",),
    ),
    "TV": LabelBehavior(
        detail_kind="media_power",
        command=_fixed(DeviceCommand.TV_TOGGLE_POWER),
        action_text=lambda device: "Turn off TV" if _state(device) == "on" else "Turn on TV",
        secondary_text=_media_text,
        active_states=("on", "playing"),
    ),
    "Speaker": LabelBehavior(
        detail_kind="media_power",
        command=_fixed(DeviceCommand.SPEAKER_TOGGLE_POWER),
        action_text=_speaker_action_text,
        secondary_text=_media_text,
        active_states=("on", "playing"),
    ),
    "Boiler": LabelBehavior(
        detail_kind="boiler",
        command=_fixed(None),
        action_text=_text("Action"),
        secondary_text=_boiler_text,
        active_states=("heat", "auto", "on"),
    ),
    "Motion Sensor": LabelBehavior(
        detail_kind="sensor",
        command=_fixed(None),
        action_text=_text("Action"),
        secondary_text=_motion_text,
        active_states=MOTION_STATES,
    ),
    "Doorbell": LabelBehavior(
        detail_kind="camera",
        command=_fixed(None),
        action_text=_text("Action"),
        secondary_text=_default_text,
    ),
    "Home Security": LabelBehavior(
        detail_kind="camera_group",
        command=_fixed(None),
        action_text=_text("Action"),
        secondary_text=_default_text,
    ),
}


def behavior_for(label: str) -> LabelBehavior:
    return LABEL_BEHAVIORS.get(label, DEFAULT_BEHAVIOR)


def primary_action(device: UIDevice) -> DeviceCommand | None:
    return behavior_for(primary_label_of(device)).command(device)


def primary_action_label(device: UIDevice) -> str:
    return behavior_for(primary_label_of(device)).action_text(device)


def secondary_text(device: UIDevice) -> str:
    return behavior_for(primary_label_of(device)).secondary_text(device)


def is_active(device: UIDevice) -> bool:
    return _state(device) in behavior_for(primary_label_of(device)).active_states
