"""
Monitoring History

Compacts stored sensor readings into daily, weekly or monthly buckets.
Energy units (anything containing "wh") are summed per bucket, every other
unit is averaged. When the reading store cannot be queried, one attempt is
made against the platform aggregation endpoint.
"""

import asyncio
import calendar
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import requests

from .connections import ConnectionResolver
from .exceptions import StoreError, UnableToLoadError
from .models import HistoryBucket, HistoryPoint, HistoryResult, MonitoringReading
from .store import RestStore

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = {
    HistoryBucket.DAILY: 30,
    HistoryBucket.WEEKLY: 84,
    HistoryBucket.MONTHLY: 365,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime | None:
    """ISO timestamp as an aware UTC datetime, or None if unparseable."""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def bucket_info(bucket: HistoryBucket, captured_at: datetime) -> tuple[str, str, datetime]:
    """(key, label, start) of the bucket containing a UTC timestamp."""
    day_start = captured_at.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

    if bucket == HistoryBucket.WEEKLY:
        iso_year, week, weekday = day_start.isocalendar()
        week_start = day_start - timedelta(days=weekday - 1)
        return f"{iso_year}-W{week:02d}", f"Week of {week_start:%Y-%m-%d}", week_start

    if bucket == HistoryBucket.MONTHLY:
        month_start = day_start.replace(day=1)
        label = f"{calendar.month_name[month_start.month]} {month_start.year}"
        return f"{month_start.year}-{month_start.month:02d}", label, month_start

    day = f"{day_start:%Y-%m-%d}"
    return day, day, day_start


@dataclass
class _Accumulator:
    label: str
    start: datetime
    total: float = 0.0
    count: int = 0


def aggregate(readings: Iterable[MonitoringReading], bucket: HistoryBucket) -> HistoryResult:
    """Group readings into calendar buckets.

    Readings without a numeric value are skipped but may still supply the
    unit (first non-empty unit wins).
    """
    unit = None
    buckets: dict[str, _Accumulator] = {}

    for reading in readings:
        if unit is None and reading.unit:
            unit = reading.unit
        if reading.numeric_value is None:
            continue
        captured = parse_timestamp(reading.captured_at)
        if captured is None:
            continue

        key, label, start = bucket_info(bucket, captured)
        acc = buckets.setdefault(key, _Accumulator(label=label, start=start))
        acc.total += reading.numeric_value
        acc.count += 1

    use_sum = unit is not None and "wh" in unit.lower()
    points = [
        HistoryPoint(
            key=key,
            bucket_start=acc.start.isoformat(),
            label=acc.label,
            value=acc.total if use_sum else acc.total / acc.count,
            count=acc.count,
        )
        for key, acc in sorted(buckets.items(), key=lambda item: item[1].start)
    ]
    return HistoryResult(unit=unit, points=points)


class HistoryAggregator:
    """Loads and buckets readings for one entity."""

    def __init__(
        self,
        store: RestStore,
        resolver: ConnectionResolver | None = None,
        platform_api_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 5.0,
        now: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.resolver = resolver or ConnectionResolver(store)
        self.platform_api_url = platform_api_url.rstrip("/") if platform_api_url else None
        self.session = session or requests.Session()
        self.timeout = timeout
        self.now = now

    async def fetch_readings(self, connection_id: int, entity_id: str, since: datetime) -> list[MonitoringReading]:
        rows = await self.store.select(
            "MonitoringReading",
            {"haConnectionId": connection_id, "entityId": entity_id},
            gte={"capturedAt": since.isoformat()},
            order="capturedAt",
        )
        return [MonitoringReading.from_row(row) for row in rows]

    async def fetch_history(self, user_id: int, entity_id: str, bucket: HistoryBucket) -> HistoryResult:
        """Bucketed history for an entity.

        Raises:
            ConnectionMissingError: If the user has no hub connection
            UnableToLoadError: If neither the store nor the fallback endpoint answered
        """
        bucket = HistoryBucket(bucket)
        _, connection = await self.resolver.resolve(user_id)
        since = self.now() - timedelta(days=LOOKBACK_DAYS[bucket])

        try:
            readings = await self.fetch_readings(connection.id, entity_id, since)
        except (StoreError, KeyError, TypeError, ValueError) as e:
            if not self.platform_api_url:
                logger.warning(f"History query failed for {entity_id} and no fallback is configured: {e}")
                raise UnableToLoadError() from e
            logger.warning(f"History query failed for {entity_id}, using platform API: {e}")
            return await asyncio.to_thread(self._fetch_via_platform, user_id, entity_id, bucket)

        logger.debug(f"Aggregating {len(readings)} readings for {entity_id} ({bucket.value})")
        return aggregate(readings, bucket)

    def _fetch_via_platform(self, user_id: int, entity_id: str, bucket: HistoryBucket) -> HistoryResult:
        url = f"{self.platform_api_url}/api/admin/monitoring/history"
        payload = {"userId": user_id, "entityId": entity_id, "bucket": bucket.value}
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise UnableToLoadError() from e

        if not 200 <= response.status_code < 300:
            logger.warning(f"Platform history API returned {response.status_code}")
            raise UnableToLoadError()
        try:
            return HistoryResult.from_json(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise UnableToLoadError() from e
