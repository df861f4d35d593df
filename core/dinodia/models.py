"""
Dinodia Data Models

Rows read from the relational store, hub state shapes and the derived
values handed to the UI layer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .attributes import Attributes


class Role(str, Enum):
    ADMIN = "ADMIN"
    TENANT = "TENANT"


class HaMode(str, Enum):
    """Which hub URL to talk to."""

    HOME = "home"
    CLOUD = "cloud"


class HistoryBucket(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class UserSummary:
    id: int
    username: str
    role: Role
    ha_connection_id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "UserSummary":
        return cls(
            id=int(row["id"]),
            username=row.get("username") or "",
            role=Role(row["role"]),
            ha_connection_id=row.get("haConnectionId"),
        )


@dataclass(frozen=True)
class AccessRule:
    user_id: int
    area: str
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "AccessRule":
        return cls(user_id=int(row["userId"]), area=row["area"], id=row.get("id"))


@dataclass(frozen=True)
class UserWithRelations:
    summary: UserSummary
    access_rules: list[AccessRule] = field(default_factory=list)

    @property
    def allowed_areas(self) -> set[str]:
        return {rule.area for rule in self.access_rules}


@dataclass(frozen=True)
class HaConnection:
    """Hub credentials shared by an admin and every tenant of the property."""

    id: int
    ha_username: str
    base_url: str
    long_lived_token: str
    owner_id: Optional[int] = None
    cloud_url: Optional[str] = None
    ha_password: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_row(cls, row: dict) -> "HaConnection":
        return cls(
            id=int(row["id"]),
            ha_username=row.get("haUsername") or "",
            base_url=row.get("baseUrl") or "",
            long_lived_token=row.get("longLivedToken") or "",
            owner_id=row.get("ownerId"),
            cloud_url=row.get("cloudUrl"),
            ha_password=row.get("haPassword"),
        )

    def url_for(self, mode: HaMode) -> str:
        """Selected base URL with whitespace and trailing slashes removed."""
        raw = (self.cloud_url if mode == HaMode.CLOUD else self.base_url) or ""
        return raw.strip().rstrip("/")


@dataclass(frozen=True)
class HubCredentials:
    """Lightweight handle used for hub calls."""

    base_url: str
    long_lived_token: str = field(repr=False)


@dataclass(frozen=True)
class DeviceOverride:
    """Admin-authored replacement for hub display metadata."""

    entity_id: str
    ha_connection_id: int
    name: Optional[str] = None
    area: Optional[str] = None
    label: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "DeviceOverride":
        return cls(
            entity_id=row["entityId"],
            ha_connection_id=int(row["haConnectionId"]),
            name=row.get("name"),
            area=row.get("area"),
            label=row.get("label"),
        )


@dataclass(frozen=True)
class HubState:
    """Raw `/api/states` entry."""

    entity_id: str
    state: str
    attributes: Attributes

    @classmethod
    def from_json(cls, data: dict) -> "HubState":
        return cls(
            entity_id=data["entity_id"],
            state=str(data.get("state", "")),
            attributes=Attributes(data.get("attributes") or {}),
        )

    @property
    def domain(self) -> str:
        return domain_of(self.entity_id)


@dataclass(frozen=True)
class DeviceMetadata:
    entity_id: str
    area_name: Optional[str] = None
    device_id: Optional[str] = None
    labels: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict) -> "DeviceMetadata":
        return cls(
            entity_id=data["entity_id"],
            area_name=data.get("area_name"),
            device_id=data.get("device_id"),
            labels=list(data.get("labels") or []),
        )


@dataclass(frozen=True)
class EnrichedDevice:
    """Hub state merged with area, device id and labels."""

    entity_id: str
    name: str
    state: str
    domain: str
    attributes: Attributes
    area_name: Optional[str] = None
    device_id: Optional[str] = None
    labels: list[str] = field(default_factory=list)
    label_category: Optional[str] = None


@dataclass(frozen=True)
class UIDevice:
    """Reconciled device as shown to the user. Rebuilt on every sync."""

    entity_id: str
    name: str
    state: str
    domain: str
    label: str
    attributes: Attributes
    labels: list[str] = field(default_factory=list)
    label_category: Optional[str] = None
    area: Optional[str] = None
    device_id: Optional[str] = None


@dataclass(frozen=True)
class MonitoringReading:
    entity_id: str
    ha_connection_id: int
    captured_at: str
    unit: Optional[str] = None
    numeric_value: Optional[float] = None

    @classmethod
    def from_row(cls, row: dict) -> "MonitoringReading":
        return cls(
            entity_id=row["entityId"],
            ha_connection_id=int(row["haConnectionId"]),
            captured_at=row["capturedAt"],
            unit=row.get("unit"),
            numeric_value=_to_float(row.get("numericValue")),
        )


@dataclass(frozen=True)
class HistoryPoint:
    bucket_start: str  # ISO format
    label: str
    value: float
    count: int
    key: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "bucketStart": self.bucket_start,
            "label": self.label,
            "value": self.value,
            "count": self.count,
        }


@dataclass(frozen=True)
class HistoryResult:
    unit: Optional[str]
    points: list[HistoryPoint] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict) -> "HistoryResult":
        points = [
            HistoryPoint(
                bucket_start=p["bucketStart"],
                label=p["label"],
                value=float(p["value"]),
                count=int(p["count"]),
                key=p.get("key", ""),
            )
            for p in data.get("points", [])
        ]
        return cls(unit=data.get("unit"), points=points)

    def to_dict(self) -> dict[str, Any]:
        return {"unit": self.unit, "points": [p.to_dict() for p in self.points]}


@dataclass(frozen=True)
class AuthUser:
    id: int
    username: str
    role: Role

    @classmethod
    def from_json(cls, data: dict) -> "AuthUser":
        return cls(id=int(data["id"]), username=data.get("username") or "", role=Role(data["role"]))


def domain_of(entity_id: str) -> str:
    """Prefix before the first '.' of an entity id."""
    return entity_id.split(".", 1)[0] if entity_id else ""


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
