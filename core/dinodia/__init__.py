"""Dinodia hub integration package."""

# Define public API
__all__ = [
    "DinodiaClient",
    "DinodiaSettings",
    "load_settings",
    "HAClient",
    "DeviceCommand",
    "HaMode",
    "HistoryBucket",
    "Role",
    "UIDevice",
]

# Import settings
from .settings import DinodiaSettings, load_settings

# Import models
from .models import HaMode, HistoryBucket, Role, UIDevice

# Import clients
from .ha_client import HAClient
from .commands import DeviceCommand
from .client import DinodiaClient
