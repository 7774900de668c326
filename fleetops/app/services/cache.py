"""
Caching Service for fleet analytics.

Redis-backed, narrowly scoped: one entry per vehicle ROI (keyed by vehicle
id) and one for the whole-fleet metrics snapshot. Entries are dropped as soon
as a committed write touches them; the TTL only bounds staleness when an
invalidation is lost. A cache that cannot be reached behaves as a miss.

Every key has a generation counter that invalidation increments. A reader
takes the generation before computing and stores it with the entry; an entry
whose generation is behind the counter is never served, so a value computed
from a read that raced a write cannot outlive that write's invalidation.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError

from fleetops.app.core.config import settings
from fleetops.app.db.store import ChangeEvent
from fleetops.app.schemas.analytics import FleetMetrics, VehicleRoi

logger = logging.getLogger("fleetops.cache")


class CachedFleetMetrics(BaseModel):
    generation: int
    metrics: FleetMetrics


class CachedVehicleRoi(BaseModel):
    generation: int
    roi: VehicleRoi


class MetricsCache:

    def __init__(self, redis, ttl_seconds: int = None, prefix: str = "fleetops:metrics"):
        self._redis = redis
        self._ttl = ttl_seconds or settings.metrics_cache_ttl_seconds
        self._prefix = prefix

    def _fleet_key(self) -> str:
        return f"{self._prefix}:fleet"

    def _vehicle_key(self, vehicle_id: int) -> str:
        return f"{self._prefix}:roi:vehicle:{vehicle_id}"

    @staticmethod
    def _generation_key(key: str) -> str:
        return f"{key}:generation"

    async def _get(self, key: str):
        try:
            return await self._redis.get(key)
        except RedisError as exc:
            logger.warning("Metrics cache read failed", extra={"key": key, "error": str(exc)})
            return None

    async def _set(self, key: str, value: str) -> None:
        try:
            await self._redis.set(key, value, ex=self._ttl)
        except RedisError as exc:
            logger.warning("Metrics cache write failed", extra={"key": key, "error": str(exc)})

    async def _invalidate(self, key: str) -> None:
        try:
            await self._redis.incr(self._generation_key(key))
            await self._redis.delete(key)
        except RedisError as exc:
            logger.warning("Metrics cache invalidation failed", extra={"key": key, "error": str(exc)})

    async def _generation(self, key: str) -> Optional[int]:
        """Current generation of ``key``, or None when Redis cannot say."""
        try:
            raw = await self._redis.get(self._generation_key(key))
        except RedisError as exc:
            logger.warning("Metrics cache read failed", extra={"key": key, "error": str(exc)})
            return None
        return int(raw) if raw is not None else 0

    async def _read_entry(self, key: str, entry_class):
        raw = await self._get(key)
        if raw is None:
            return None
        try:
            entry = entry_class.model_validate_json(raw)
        except ValidationError:
            logger.warning("Unreadable metrics cache entry ignored", extra={"key": key})
            return None
        if entry.generation != await self._generation(key):
            return None
        return entry

    # --- Fleet snapshot ---

    async def fleet_generation(self) -> Optional[int]:
        """Take before reading the store; pass to ``set_fleet_metrics``."""
        return await self._generation(self._fleet_key())

    async def get_fleet_metrics(self, today: date) -> Optional[FleetMetrics]:
        """Cached snapshot, ignored once the day rolls over (expiry buckets move)."""
        entry = await self._read_entry(self._fleet_key(), CachedFleetMetrics)
        if entry is None or entry.metrics.computed_at.date() != today:
            return None
        return entry.metrics

    async def set_fleet_metrics(self, metrics: FleetMetrics, generation: Optional[int]) -> None:
        if generation is None:
            return
        entry = CachedFleetMetrics(generation=generation, metrics=metrics)
        await self._set(self._fleet_key(), entry.model_dump_json())

    # --- Vehicle ROI ---

    async def vehicle_generation(self, vehicle_id: int) -> Optional[int]:
        return await self._generation(self._vehicle_key(vehicle_id))

    async def get_vehicle_roi(self, vehicle_id: int) -> Optional[VehicleRoi]:
        entry = await self._read_entry(self._vehicle_key(vehicle_id), CachedVehicleRoi)
        return entry.roi if entry is not None else None

    async def set_vehicle_roi(self, roi: VehicleRoi, generation: Optional[int]) -> None:
        if generation is None:
            return
        entry = CachedVehicleRoi(generation=generation, roi=roi)
        await self._set(self._vehicle_key(roi.vehicle_id), entry.model_dump_json())

    async def invalidate_for_events(self, events: Iterable[ChangeEvent]) -> None:
        vehicle_ids = set()
        touched = False
        for event in events:
            touched = True
            if event.vehicle_id is not None:
                vehicle_ids.add(event.vehicle_id)
        if not touched:
            return

        await self._invalidate(self._fleet_key())
        for vehicle_id in sorted(vehicle_ids):
            await self._invalidate(self._vehicle_key(vehicle_id))
