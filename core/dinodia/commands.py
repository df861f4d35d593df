"""
Device Command Dispatch

Translates UI actions into hub service calls. Toggle-style commands read the
current entity state first; absolute-set commands clamp their value.
"""

import logging
from enum import Enum

from .exceptions import InvalidValueError, UnsupportedCommandError
from .ha_client import HAClient
from .models import domain_of

logger = logging.getLogger(__name__)

DEFAULT_BOILER_TEMPERATURE = 20.0


class DeviceCommand(str, Enum):
    LIGHT_TOGGLE = "light/toggle"
    LIGHT_SET_BRIGHTNESS = "light/set_brightness"
    BLIND_OPEN = "blind/open"
    BLIND_CLOSE = "blind/close"
    MEDIA_PLAY_PAUSE = "media/play_pause"
    MEDIA_NEXT = "media/next"
    MEDIA_PREVIOUS = "media/previous"
    MEDIA_VOLUME_UP = "media/volume_up"
    MEDIA_VOLUME_DOWN = "media/volume_down"
    MEDIA_VOLUME_SET = "media/volume_set"
    BOILER_TEMP_UP = "boiler/temp_up"
    BOILER_TEMP_DOWN = "boiler/temp_down"
    TV_TOGGLE_POWER = "tv/toggle_power"
    SPEAKER_TOGGLE_POWER = "speaker/toggle_power"


# Stateless commands: one fixed service call each
SIMPLE_SERVICES: dict[DeviceCommand, tuple[str, str]] = {
    DeviceCommand.BLIND_OPEN: ("cover", "open_cover"),
    DeviceCommand.BLIND_CLOSE: ("cover", "close_cover"),
    DeviceCommand.MEDIA_NEXT: ("media_player", "media_next_track"),
    DeviceCommand.MEDIA_PREVIOUS: ("media_player", "media_previous_track"),
    DeviceCommand.MEDIA_VOLUME_UP: ("media_player", "volume_up"),
    DeviceCommand.MEDIA_VOLUME_DOWN: ("media_player", "volume_down"),
}

VALUE_COMMANDS = frozenset({DeviceCommand.LIGHT_SET_BRIGHTNESS, DeviceCommand.MEDIA_VOLUME_SET})


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


class CommandDispatcher:
    """Issues commands against one hub."""

    def __init__(self, client: HAClient):
        self.client = client

    async def dispatch(self, command: DeviceCommand | str, entity_id: str, value: float | None = None) -> None:
        """Run a command for an entity.

        Args:
            command: Command or its string value (e.g. "light/toggle")
            entity_id: Target entity
            value: Percentage for brightness / volume commands

        Raises:
            InvalidValueError: If a value command has no value (no call made)
            UnsupportedCommandError: If the command does not fit the entity
        """
        try:
            command = DeviceCommand(command)
        except ValueError as e:
            raise UnsupportedCommandError(str(command)) from e

        if command in VALUE_COMMANDS and (value is None or isinstance(value, bool)):
            raise InvalidValueError(command.value)

        logger.debug(f"Dispatching {command.value} to {entity_id} (value={value})")

        if command in SIMPLE_SERVICES:
            domain, service = SIMPLE_SERVICES[command]
            await self.client.call_service(domain, service, {"entity_id": entity_id})
        elif command == DeviceCommand.LIGHT_TOGGLE:
            await self._toggle_light(entity_id)
        elif command == DeviceCommand.LIGHT_SET_BRIGHTNESS:
            await self._set_brightness(entity_id, value)
        elif command == DeviceCommand.MEDIA_VOLUME_SET:
            await self.client.call_service(
                "media_player",
                "volume_set",
                {"entity_id": entity_id, "volume_level": clamp_percent(value) / 100},
            )
        elif command == DeviceCommand.MEDIA_PLAY_PAUSE:
            await self._toggle_media(entity_id)
        elif command in (DeviceCommand.BOILER_TEMP_UP, DeviceCommand.BOILER_TEMP_DOWN):
            await self._adjust_boiler(entity_id, increase=command == DeviceCommand.BOILER_TEMP_UP)
        elif command in (DeviceCommand.TV_TOGGLE_POWER, DeviceCommand.SPEAKER_TOGGLE_POWER):
            await self._toggle_media_power(entity_id)
        else:
            raise UnsupportedCommandError(command.value)

    async def _toggle_light(self, entity_id: str) -> None:
        state = await self.client.fetch_state(entity_id)
        if domain_of(entity_id) == "light":
            service = "turn_off" if state.state.lower() == "on" else "turn_on"
            await self.client.call_service("light", service, {"entity_id": entity_id})
        else:
            await self.client.call_service("homeassistant", "toggle", {"entity_id": entity_id})

    async def _set_brightness(self, entity_id: str, value: float) -> None:
        if domain_of(entity_id) != "light":
            raise UnsupportedCommandError(
                DeviceCommand.LIGHT_SET_BRIGHTNESS.value, "brightness is supported only for lights"
            )
        await self.client.call_service(
            "light", "turn_on", {"entity_id": entity_id, "brightness_pct": clamp_percent(value)}
        )

    async def _toggle_media(self, entity_id: str) -> None:
        state = await self.client.fetch_state(entity_id)
        service = "media_pause" if state.state.lower() == "playing" else "media_play"
        await self.client.call_service("media_player", service, {"entity_id": entity_id})

    async def _toggle_media_power(self, entity_id: str) -> None:
        state = await self.client.fetch_state(entity_id)
        is_off = state.state.lower() in ("off", "standby")
        service = "turn_on" if is_off else "turn_off"
        await self.client.call_service("media_player", service, {"entity_id": entity_id})

    async def _adjust_boiler(self, entity_id: str, increase: bool) -> None:
        state = await self.client.fetch_state(entity_id)
        attrs = state.attributes
        current = attrs.number("temperature")
        if current is None:
            current = attrs.number("current_temperature")
        if current is None:
            current = DEFAULT_BOILER_TEMPERATURE
        target = current + 1 if increase else current - 1
        # Always an absolute target, never a delta
        await self.client.call_service(
            "climate", "set_temperature", {"entity_id": entity_id, "temperature": target}
        )
