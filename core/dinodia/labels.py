"""
Device Labeling

Maps hub labels and domains onto the display taxonomy and decides whether an
entity is a controllable device, a sensor or a detail-only reading.
"""

from collections.abc import Iterable, Sequence

from .models import UIDevice

OTHER_LABEL = "Other"

# Raw tag (lowercase) -> canonical label
LABEL_MAP: dict[str, str] = {
    "light": "Light",
    "lights": "Light",
    "blind": "Blind",
    "blinds": "Blind",
    "shade": "Blind",
    "shades": "Blind",
    "tv": "TV",
    "television": "TV",
    "speaker": "Speaker",
    "speakers": "Speaker",
    "audio": "Speaker",
    "boiler": "Boiler",
    "heating": "Boiler",
    "thermostat": "Thermostat",
    "doorbell": "Security",
    "security": "Security",
    "home security": "Security",
    "spotify": "Spotify",
    "switch": "Switch",
    "switches": "Switch",
    "media": "Media",
    "media player": "Media",
    "motion": "Motion Sensor",
    "motion sensor": "Motion Sensor",
    "sensor": "Sensor",
    "vacuum": "Vacuum",
    "camera": "Camera",
}

# Display order for sorting and grouping
LABEL_ORDER: list[str] = [
    "Light",
    "Blind",
    "Motion Sensor",
    "Spotify",
    "Boiler",
    "Doorbell",
    "Home Security",
    "TV",
    "Speaker",
]

_LABEL_ORDER_LOWER = [label.lower() for label in LABEL_ORDER]

PRIMARY_CATEGORIES = frozenset(
    {
        "light",
        "blind",
        "tv",
        "speaker",
        "boiler",
        "spotify",
        "switch",
        "thermostat",
        "media",
        "vacuum",
        "camera",
        "security",
    }
)

SENSOR_CATEGORIES = frozenset({"sensor", "motion sensor"})


def normalize_label(value: str | None) -> str:
    return (value or "").strip()


def classify(labels: Iterable[str]) -> str | None:
    """Canonical label of the first known tag, or None."""
    for raw in labels:
        category = LABEL_MAP.get(normalize_label(raw).lower())
        if category:
            return category
    return None


def primary_label_of(device: UIDevice) -> str:
    """Override label, else first hub label, else category, else "Other"."""
    label = normalize_label(device.label)
    if label:
        return label
    if device.labels:
        first = normalize_label(device.labels[0])
        if first:
            return first
    return normalize_label(device.label_category) or OTHER_LABEL


def group_label_of(device: UIDevice) -> str:
    label = primary_label_of(device).lower()
    if label in _LABEL_ORDER_LOWER:
        return LABEL_ORDER[_LABEL_ORDER_LOWER.index(label)]
    return OTHER_LABEL


def _order_key(label: str) -> tuple[int, str]:
    lowered = label.lower()
    if lowered in _LABEL_ORDER_LOWER:
        return (_LABEL_ORDER_LOWER.index(lowered), lowered)
    return (len(LABEL_ORDER), lowered)


def sort_labels(labels: Sequence[str]) -> list[str]:
    """Known labels in display order, then the rest case-insensitively."""
    return sorted(labels, key=_order_key)


def _normalize_category(value: str | None) -> str:
    return (value or "").strip().lower()


def is_detail_reading(state: str | None) -> bool:
    """True for numeric states and "unavailable"."""
    trimmed = (state or "").strip()
    if not trimmed:
        return False
    if trimmed.lower() == "unavailable":
        return True
    # float() accepts digit separators ("1_000"); hub states never use them
    if "_" in trimmed:
        return False
    try:
        float(trimmed)
    except ValueError:
        return False
    return True


def is_sensor(category: str | None, state: str | None) -> bool:
    if _normalize_category(category) in SENSOR_CATEGORIES:
        return True
    return is_detail_reading(state)


def is_primary(category: str | None, state: str | None) -> bool:
    # Sensor check comes first so a numeric-state switch is never primary.
    if is_sensor(category, state):
        return False
    if _normalize_category(category) in PRIMARY_CATEGORIES:
        return True
    return not is_detail_reading(state)


def is_sensor_device(device: UIDevice) -> bool:
    return is_sensor(device.label_category, device.state)


def is_primary_device(device: UIDevice) -> bool:
    return is_primary(device.label_category, device.state)
