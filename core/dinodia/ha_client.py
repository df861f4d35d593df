"""
Dinodia Hub API Client

Thin wrapper around the hub REST API: states, templated metadata, service
calls and reachability probing. Requests run in a worker thread so every
public call is awaitable.
"""

import asyncio
import logging
import time
from typing import Any
from urllib.parse import quote, urlparse

import requests

from .exceptions import HubNetworkError, HubServerError
from .labels import classify
from .models import DeviceMetadata, EnrichedDevice, HubCredentials, HubState

logger = logging.getLogger(__name__)

LOCAL_HOSTNAME_HINT = (
    "Android/iOS devices often cannot resolve .local hostnames. Update the Dinodia Hub "
    "URL to use the IP address (e.g., http://192.168.1.10:8123) in Settings."
)
CLEARTEXT_HINT = (
    "Make sure you are on the same Wi-Fi as the Dinodia Hub and that cleartext HTTP "
    "traffic is allowed."
)

METADATA_TEMPLATE = """
{% set ns = namespace(result=[]) %}
{% for s in states %}
  {% set item = {
    "entity_id": s.entity_id,
    "area_name": area_name(s.entity_id),
    "device_id": device_id(s.entity_id),
    "labels": (labels(s.entity_id) | map('label_name') | list)
  } %}
  {% set ns.result = ns.result + [item] %}
{% endfor %}
{{ ns.result | tojson }}
"""


def network_hints(base_url: str) -> list[str]:
    """Configuration hints for a base URL that could not be reached."""
    hints = []
    parsed = urlparse(base_url)
    host = (parsed.hostname or "").lower()
    if host.endswith(".local"):
        hints.append(LOCAL_HOSTNAME_HINT)
    if parsed.scheme == "http":
        hints.append(CLEARTEXT_HINT)
    return hints


def describe_network_failure(base_url: str, error: Exception) -> HubNetworkError:
    hints = network_hints(base_url)
    hint_text = " " + " ".join(hints) if hints else ""
    return HubNetworkError(
        f"Dinodia Hub network issue: {error}.{hint_text} Please try again.",
        hints=hints,
    )


class HAClient:
    """Dinodia Hub REST API client for one base URL."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ):
        """Initialize hub client.

        Args:
            base_url: Hub URL (e.g., "http://192.168.1.10:8123")
            token: Long-lived access token
            timeout: Default timeout in seconds for every call
            session: Optional session, mainly for tests
        """
        self.base_url = base_url.strip().rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        self._token = token
        # Create a session for connection pooling
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.closed = False
        self.session.headers.update(self.headers)
        self.timeout = timeout

    @classmethod
    def from_credentials(
        cls,
        credentials: HubCredentials,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> "HAClient":
        return cls(credentials.base_url, credentials.long_lived_token, timeout=timeout, session=session)

    def close(self) -> None:
        """Release pooled connections. A session passed in by the caller stays open."""
        if self._owns_session:
            self.session.close()
        self.closed = True

    def __enter__(self) -> "HAClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        timeout: float | None = None,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            return self.session.request(method, url, json=json, timeout=timeout or self.timeout)
        except requests.exceptions.RequestException as e:
            raise describe_network_failure(self.base_url, e) from e

    def _read_json(self, response: requests.Response, action: str) -> Any:
        if response.status_code != 200:
            text = response.text or ""
            raise HubServerError(
                f"Dinodia Hub could not {action} ({response.status_code}). "
                f"{text if text else 'Please try again.'}",
                status_code=response.status_code,
                body=text,
            )
        try:
            return response.json()
        except ValueError as e:
            raise HubServerError(
                f"Dinodia Hub sent a reply we could not read ({response.status_code}). Please try again.",
                status_code=response.status_code,
                body=response.text or "",
            ) from e

    def _get_json(self, path: str) -> Any:
        response = self._request("GET", path)
        return self._read_json(response, "complete that request")

    async def fetch_all_states(self) -> list[HubState]:
        """Get every entity state.

        Raises:
            HubNetworkError: If the hub cannot be reached
            HubServerError: If the hub answers with a non-200 status
        """
        data = await asyncio.to_thread(self._get_json, "/api/states")
        return [HubState.from_json(item) for item in data]

    async def fetch_state(self, entity_id: str) -> HubState:
        """Get current state of one entity (e.g., "light.kitchen")."""
        data = await asyncio.to_thread(self._get_json, f"/api/states/{entity_id}")
        return HubState.from_json(data)

    def _render_template(self, template: str) -> Any:
        response = self._request("POST", "/api/template", json={"template": template})
        return self._read_json(response, "prepare that data")

    async def render_template(self, template: str) -> Any:
        """Render a hub template that produces JSON."""
        return await asyncio.to_thread(self._render_template, template)

    async def fetch_metadata(self) -> dict[str, DeviceMetadata]:
        """Area, device id and labels per entity.

        Best-effort: any failure is logged and yields an empty mapping so a
        sync can continue with unenriched states.
        """
        try:
            data = await self.render_template(METADATA_TEMPLATE)
            entries = [DeviceMetadata.from_json(item) for item in data]
        except (HubNetworkError, HubServerError, KeyError, TypeError) as e:
            logger.warning(f"Device metadata unavailable, continuing without it: {e}")
            return {}
        return {entry.entity_id: entry for entry in entries}

    async def fetch_devices_with_metadata(self) -> list[EnrichedDevice]:
        """States merged with best-effort metadata."""
        states = await self.fetch_all_states()
        metadata = await self.fetch_metadata()

        devices = []
        for state in states:
            meta = metadata.get(state.entity_id)
            labels = [label for label in (meta.labels if meta else []) if label]
            device_id = meta.device_id if meta and meta.device_id else None
            devices.append(
                EnrichedDevice(
                    entity_id=state.entity_id,
                    name=state.attributes.string("friendly_name") or state.entity_id,
                    state=state.state,
                    domain=state.domain,
                    attributes=state.attributes,
                    area_name=meta.area_name if meta else None,
                    device_id=device_id,
                    labels=labels,
                    label_category=classify(labels) or classify([state.domain]),
                )
            )
        return devices

    def _call_service(self, domain: str, service: str, data: dict[str, Any]) -> None:
        response = self._request("POST", f"/api/services/{domain}/{service}", json=data)
        if not 200 <= response.status_code < 300:
            raise HubServerError(
                f"Dinodia Hub could not apply that action ({response.status_code}). Please try again.",
                status_code=response.status_code,
                body=response.text or "",
            )
        logger.info(f"Called {domain}.{service} for {data.get('entity_id')} - Response: {response.status_code}")

    async def call_service(self, domain: str, service: str, data: dict[str, Any]) -> None:
        """Invoke a hub service.

        Raises:
            HubNetworkError: If the hub cannot be reached
            HubServerError: If the hub answers with a non-2xx status
        """
        await asyncio.to_thread(self._call_service, domain, service, data)

    def _probe(self, timeout: float) -> bool:
        try:
            response = self.session.request("GET", f"{self.base_url}/api/", timeout=timeout)
        except requests.exceptions.RequestException as e:
            logger.debug(f"Dinodia Hub probe failed for {self.base_url}: {e}")
            return False
        return response.status_code > 0

    async def probe_reachability(self, timeout: float = 2.0) -> bool:
        """True if the hub answered at all. Never raises."""
        return await asyncio.to_thread(self._probe, timeout)

    def camera_snapshot_url(self, entity_id: str, ts: float | None = None) -> str:
        """Snapshot URL; `ts` busts image caches."""
        stamp = ts if ts is not None else time.time()
        entity = quote(entity_id, safe="")
        token = quote(self._token, safe="")
        return f"{self.base_url}/api/camera_proxy/{entity}?token={token}&ts={stamp}"
