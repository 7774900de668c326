"""
In-process implementation of the store contract.

Reads come from a copy of the committed rows taken at the transaction's
first access, so a unit never mixes state from before and after another
commit. Optimistic concurrency: a transaction stages its writes and remembers
the committed version each write was based on. At commit, under a lock, every
base version is re-checked against committed state; if another transaction
got there first the whole unit is rejected with ``PreconditionFailedError``.
Used for local runs (``STORE_BACKEND=memory``) and the engine test suite.
"""

import asyncio
import itertools
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from fleetops.app.core.exceptions import (
    DuplicateValueError, PreconditionFailedError, ResourceNotFoundError
)
from fleetops.app.db.store import (
    ChangeKind, ENTITY_CLASSES, EntityType, FleetStore, RESOURCE_NAMES,
    StoreTransaction, UNIQUE_FIELDS
)

# Entities stamped with created_at/updated_at datetimes by the store
_TIMESTAMPED = (EntityType.VEHICLE, EntityType.DRIVER, EntityType.TRIP)

_Key = Tuple[EntityType, int]


def _matches(entity: BaseModel, filters: Optional[Dict[str, Any]]) -> bool:
    for field, expected in (filters or {}).items():
        value = getattr(entity, field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class MemoryTransaction(StoreTransaction):

    def __init__(self, store: "MemoryFleetStore"):
        super().__init__()
        self._store = store
        self._staged: Dict[_Key, BaseModel] = {}
        self._base_versions: Dict[_Key, int] = {}  # 0 for rows inserted here
        self._snapshot: Optional[Dict[EntityType, Dict[int, BaseModel]]] = None

    def _committed(self, entity_type: EntityType) -> Dict[int, BaseModel]:
        if self._snapshot is None:
            self._snapshot = {kind: dict(rows) for kind, rows in self._store._rows.items()}
        return self._snapshot[entity_type]

    def _view(self, entity_type: EntityType, entity_id: int) -> Optional[BaseModel]:
        key = (entity_type, entity_id)
        if key in self._staged:
            return self._staged[key]
        return self._committed(entity_type).get(entity_id)

    async def get(self, entity_type: EntityType, entity_id: int) -> Optional[BaseModel]:
        # Yield like a network round trip so concurrent callers interleave
        await asyncio.sleep(0)
        return self._view(entity_type, entity_id)

    async def list(self, entity_type: EntityType, filters: Optional[Dict[str, Any]] = None) -> List[BaseModel]:
        await asyncio.sleep(0)
        ids = set(self._committed(entity_type))
        ids.update(entity_id for (kind, entity_id) in self._staged if kind == entity_type)
        rows = (self._view(entity_type, entity_id) for entity_id in sorted(ids))
        return [row for row in rows if _matches(row, filters)]

    async def conditional_update(
        self,
        entity_type: EntityType,
        entity_id: int,
        new_fields: Dict[str, Any],
        expected_version: Optional[int] = None,
        expected_fields: Optional[Dict[str, Any]] = None,
    ) -> BaseModel:
        await asyncio.sleep(0)
        current = self._view(entity_type, entity_id)
        if current is None:
            raise ResourceNotFoundError(RESOURCE_NAMES[entity_type], entity_id)

        expected = dict(expected_fields or {})
        if expected_version is not None:
            expected["version"] = expected_version
        if not _matches(current, expected):
            raise PreconditionFailedError(entity_type.value, entity_id, expected)

        key = (entity_type, entity_id)
        self._base_versions.setdefault(key, current.version)

        update = dict(new_fields)
        update["version"] = current.version + 1
        if entity_type in _TIMESTAMPED:
            update["updated_at"] = datetime.now(timezone.utc)
        updated = current.model_copy(update=update)
        self._staged[key] = updated
        self._record(entity_type, updated, ChangeKind.UPDATED)
        return updated

    async def insert(self, entity_type: EntityType, fields: Dict[str, Any]) -> BaseModel:
        await asyncio.sleep(0)
        self._check_unique(entity_type, fields, await self.list(entity_type))

        entity_id = next(self._store._ids[entity_type])
        values = {**fields, "id": entity_id, "version": 1}
        if entity_type in _TIMESTAMPED:
            now = datetime.now(timezone.utc)
            values.setdefault("created_at", now)
            values.setdefault("updated_at", now)
        entity = ENTITY_CLASSES[entity_type].model_validate(values)

        key = (entity_type, entity_id)
        self._staged[key] = entity
        self._base_versions[key] = 0
        self._record(entity_type, entity, ChangeKind.CREATED)
        return entity

    def _check_unique(self, entity_type: EntityType, fields: Dict[str, Any], existing: List[BaseModel]) -> None:
        for field in UNIQUE_FIELDS.get(entity_type, ()):
            value = fields.get(field)
            if any(getattr(row, field) == value for row in existing):
                raise DuplicateValueError(RESOURCE_NAMES[entity_type], field, value)

    def _verify(self) -> None:
        """Reject the unit if any row it wrote moved since it was read."""
        for (entity_type, entity_id), base_version in self._base_versions.items():
            committed = self._store._rows[entity_type].get(entity_id)
            committed_version = committed.version if committed is not None else 0
            if committed_version != base_version:
                raise PreconditionFailedError(entity_type.value, entity_id, {"version": base_version})

        for (entity_type, entity_id), base_version in self._base_versions.items():
            if base_version == 0:
                entity = self._staged[(entity_type, entity_id)]
                committed_rows = list(self._store._rows[entity_type].values())
                self._check_unique(entity_type, entity.model_dump(), committed_rows)

    def _apply(self) -> None:
        for (entity_type, entity_id), entity in self._staged.items():
            self._store._rows[entity_type][entity_id] = entity


class MemoryFleetStore(FleetStore):
    """Fleet state held in process memory."""

    def __init__(self, change_feed=None):
        super().__init__(change_feed)
        self._rows: Dict[EntityType, Dict[int, BaseModel]] = {kind: {} for kind in EntityType}
        self._ids = {kind: itertools.count(1) for kind in EntityType}
        self._commit_lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self):
        tx = MemoryTransaction(self)
        yield tx
        async with self._commit_lock:
            tx._verify()
            tx._apply()
        await self._publish(tx.events)
