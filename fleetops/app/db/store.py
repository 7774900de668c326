"""
Durable store contract.

The rule engine reads and writes fleet state only through a ``FleetStore``.
A store hands out ``StoreTransaction`` units of work; everything done inside
one commits together or not at all. Status-bearing fields are only ever
written through ``conditional_update`` so a concurrent writer that moved the
row first turns the second write into ``PreconditionFailedError`` instead of a
silent overwrite.
"""

import enum
from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Dict, List, Optional

from pydantic import BaseModel

from fleetops.app.domain.fleet.entities import Driver, Expense, Trip, Vehicle


class EntityType(str, enum.Enum):
    VEHICLE = "vehicle"
    DRIVER = "driver"
    TRIP = "trip"
    EXPENSE = "expense"


class ChangeKind(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"


ENTITY_CLASSES = {
    EntityType.VEHICLE: Vehicle,
    EntityType.DRIVER: Driver,
    EntityType.TRIP: Trip,
    EntityType.EXPENSE: Expense,
}

# Fields that must be unique across all rows of a type
UNIQUE_FIELDS = {
    EntityType.VEHICLE: ("plate",),
}

RESOURCE_NAMES = {
    EntityType.VEHICLE: "Vehicle",
    EntityType.DRIVER: "Driver",
    EntityType.TRIP: "Trip",
    EntityType.EXPENSE: "Expense",
}


class ChangeEvent(BaseModel):
    """One committed write, as seen by change-feed subscribers."""
    entity_type: EntityType
    entity_id: int
    change_kind: ChangeKind
    vehicle_id: Optional[int] = None  # Vehicle the write touches, if any


def related_vehicle_id(entity_type: EntityType, entity: BaseModel) -> Optional[int]:
    if entity_type == EntityType.VEHICLE:
        return entity.id
    return getattr(entity, "vehicle_id", None)


class StoreTransaction(ABC):
    """Unit of work against the store."""

    def __init__(self):
        self.events: List[ChangeEvent] = []

    @abstractmethod
    async def get(self, entity_type: EntityType, entity_id: int) -> Optional[BaseModel]:
        """Fetch one entity, or None if it does not exist."""
        ...

    @abstractmethod
    async def list(self, entity_type: EntityType, filters: Optional[Dict[str, Any]] = None) -> List[BaseModel]:
        """
        Fetch entities matching equality filters, ordered by id.

        A list, tuple or set filter value matches any of its members.
        """
        ...

    @abstractmethod
    async def conditional_update(
        self,
        entity_type: EntityType,
        entity_id: int,
        new_fields: Dict[str, Any],
        expected_version: Optional[int] = None,
        expected_fields: Optional[Dict[str, Any]] = None,
    ) -> BaseModel:
        """
        Write ``new_fields`` only if the row still matches the expectations.

        Always increments ``version``; an empty ``new_fields`` is a pure
        version bump that serializes competing writers on the row.

        Raises:
            PreconditionFailedError: row changed since it was read
            ResourceNotFoundError: row does not exist
        """
        ...

    @abstractmethod
    async def insert(self, entity_type: EntityType, fields: Dict[str, Any]) -> BaseModel:
        """
        Create an entity.

        Raises:
            DuplicateValueError: a unique field is already taken
        """
        ...

    def _record(self, entity_type: EntityType, entity: BaseModel, change_kind: ChangeKind) -> None:
        self.events.append(ChangeEvent(
            entity_type=entity_type,
            entity_id=entity.id,
            change_kind=change_kind,
            vehicle_id=related_vehicle_id(entity_type, entity),
        ))


class FleetStore(ABC):
    """Factory of transactions plus the change feed writes are announced on."""

    def __init__(self, change_feed=None):
        self.change_feed = change_feed

    @abstractmethod
    def transaction(self) -> AsyncContextManager[StoreTransaction]:
        """Async context manager: commit on clean exit, roll back on error."""
        ...

    async def _publish(self, events: List[ChangeEvent]) -> None:
        if self.change_feed is None or not events:
            return
        await self.change_feed.publish(events)
