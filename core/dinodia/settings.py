"""
Dinodia Configuration Settings

Settings are loaded from the add-on options.json, then the `dinodia` section of
config.yaml, then .env / environment variables.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, fields

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

OPTIONS_PATH = "/data/options.json"
CONFIG_YAML_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config.yaml")

_ENV_KEYS = {
    "supabase_url": "SUPABASE_URL",
    "supabase_anon_key": "SUPABASE_ANON_KEY",
    "auth_base_url": "DINODIA_AUTH_URL",
    "platform_api_url": "DINODIA_PLATFORM_API",
}


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


@dataclass
class DinodiaSettings:
    """Endpoints and timeouts for one client instance."""

    supabase_url: str
    supabase_anon_key: str
    auth_base_url: str = ""  # Defaults to {supabase_url}/functions/v1
    platform_api_url: str | None = None  # Fallback history aggregation endpoint
    request_timeout: float = 5.0
    home_probe_timeout: float = 2.0
    cloud_probe_timeout: float = 4.0
    cache_max_age: float = 30.0  # Seconds a cached device list counts as fresh

    def __post_init__(self):
        if not self.supabase_url or not self.supabase_anon_key:
            raise ConfigurationError("Dinodia is missing its Supabase URL or anon key.")
        self.supabase_url = self.supabase_url.rstrip("/")
        if not self.auth_base_url:
            self.auth_base_url = f"{self.supabase_url}/functions/v1"
        self.auth_base_url = self.auth_base_url.rstrip("/")
        if self.platform_api_url:
            self.platform_api_url = self.platform_api_url.rstrip("/")
        # Probes must fail before a full state fetch would
        if max(self.home_probe_timeout, self.cloud_probe_timeout) >= self.request_timeout:
            raise ConfigurationError(
                "Reachability timeouts must be shorter than the request timeout."
            )

    @classmethod
    def from_dict(cls, data: dict) -> "DinodiaSettings":
        """Create from dictionary."""
        known = {f.name for f in fields(cls)}
        converted = {_camel_to_snake(k): v for k, v in data.items()}
        return cls(**{k: v for k, v in converted.items() if k in known})


def _load_options_json() -> dict:
    if not os.path.exists(OPTIONS_PATH):
        return {}
    try:
        with open(OPTIONS_PATH) as f:
            options = json.load(f)
        logger.debug("Loaded Dinodia config from options.json")
        return options.get("dinodia", {})
    except (OSError, ValueError) as e:
        logger.warning("Failed to load options.json: %s", e)
        return {}


def _load_config_yaml(path: str) -> dict:
    if not os.path.exists(path):
        return {}
    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
        logger.debug("Loaded Dinodia config from config.yaml")
        return config.get("options", {}).get("dinodia", {})
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config.yaml: %s", e)
        return {}


def load_settings(config_path: str = CONFIG_YAML_PATH) -> DinodiaSettings:
    """Load settings from options.json, config.yaml, then .env / environment.

    Raises:
        ConfigurationError: If the Supabase URL or key cannot be found
    """
    config = _load_options_json() or _load_config_yaml(config_path)
    config = {_camel_to_snake(k): v for k, v in config.items()}

    load_dotenv()
    for key, env_name in _ENV_KEYS.items():
        if not config.get(key) and os.getenv(env_name):
            config[key] = os.getenv(env_name)

    if not config.get("supabase_url") or not config.get("supabase_anon_key"):
        logger.error("Dinodia configuration is incomplete.")

    return DinodiaSettings.from_dict(
        {
            "supabase_url": "",
            "supabase_anon_key": "",
            **config,
        }
    )
