"""
SQLAlchemy implementation of the store contract.

One transaction = one AsyncSession transaction. Conditional updates are a
single ``UPDATE ... WHERE id = :id AND version = :expected`` statement, so the
database serializes competing writers on the row: the loser matches zero rows
and gets ``PreconditionFailedError``.

On PostgreSQL every unit runs at ``REPEATABLE READ`` so all of its reads see
one snapshot; a write to a row another transaction changed after that
snapshot fails with a serialization error, reported the same way.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleetops.app.core.config import settings
from fleetops.app.core.exceptions import (
    DuplicateValueError, PreconditionFailedError, ResourceNotFoundError
)
from fleetops.app.core.reliability import run_store_call
from fleetops.app.db.store import (
    ChangeKind, ENTITY_CLASSES, EntityType, FleetStore, RESOURCE_NAMES,
    StoreTransaction, UNIQUE_FIELDS
)
from fleetops.app.models.driver import Driver
from fleetops.app.models.expense import Expense
from fleetops.app.models.trip import Trip
from fleetops.app.models.vehicle import Vehicle

MODEL_CLASSES = {
    EntityType.VEHICLE: Vehicle,
    EntityType.DRIVER: Driver,
    EntityType.TRIP: Trip,
    EntityType.EXPENSE: Expense,
}

# SQLSTATE for "could not serialize access due to concurrent update"
SERIALIZATION_FAILURE = "40001"

# Dialects that take an explicit isolation level for snapshot reads; SQLite
# transactions already read from one snapshot
SNAPSHOT_DIALECTS = ("postgresql",)


def _to_entity(entity_type: EntityType, row) -> BaseModel:
    return ENTITY_CLASSES[entity_type].model_validate(row)


def _is_serialization_failure(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == SERIALIZATION_FAILURE


class SqlTransaction(StoreTransaction):

    def __init__(self, session: AsyncSession, timeout_seconds: float):
        super().__init__()
        self._session = session
        self._timeout = timeout_seconds

    async def _execute(self, operation: str, stmt):
        return await run_store_call(operation, self._session.execute(stmt), self._timeout)

    async def get(self, entity_type: EntityType, entity_id: int) -> Optional[BaseModel]:
        model = MODEL_CLASSES[entity_type]
        stmt = (
            select(model)
            .where(model.id == entity_id)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(f"get {entity_type.value}", stmt)
        row = result.scalar_one_or_none()
        return _to_entity(entity_type, row) if row is not None else None

    async def list(self, entity_type: EntityType, filters: Optional[Dict[str, Any]] = None) -> List[BaseModel]:
        model = MODEL_CLASSES[entity_type]
        stmt = select(model).execution_options(populate_existing=True)
        for field, value in (filters or {}).items():
            column = getattr(model, field)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)
        stmt = stmt.order_by(model.id)

        result = await self._execute(f"list {entity_type.value}", stmt)
        return [_to_entity(entity_type, row) for row in result.scalars().all()]

    async def conditional_update(
        self,
        entity_type: EntityType,
        entity_id: int,
        new_fields: Dict[str, Any],
        expected_version: Optional[int] = None,
        expected_fields: Optional[Dict[str, Any]] = None,
    ) -> BaseModel:
        model = MODEL_CLASSES[entity_type]
        expected = dict(expected_fields or {})

        stmt = update(model).where(model.id == entity_id)
        if expected_version is not None:
            stmt = stmt.where(model.version == expected_version)
            expected["version"] = expected_version
        for field, value in (expected_fields or {}).items():
            stmt = stmt.where(getattr(model, field) == value)
        stmt = (
            stmt.values(**new_fields, version=model.version + 1)
            .execution_options(synchronize_session=False)
        )

        async def write():
            try:
                return await self._session.execute(stmt)
            except DBAPIError as exc:
                if _is_serialization_failure(exc):
                    raise PreconditionFailedError(entity_type.value, entity_id, expected) from exc
                raise

        result = await run_store_call(f"update {entity_type.value}", write(), self._timeout)
        if result.rowcount == 0:
            if await self.get(entity_type, entity_id) is None:
                raise ResourceNotFoundError(RESOURCE_NAMES[entity_type], entity_id)
            raise PreconditionFailedError(entity_type.value, entity_id, expected)

        updated = await self.get(entity_type, entity_id)
        self._record(entity_type, updated, ChangeKind.UPDATED)
        return updated

    async def insert(self, entity_type: EntityType, fields: Dict[str, Any]) -> BaseModel:
        row = MODEL_CLASSES[entity_type](**fields)
        self._session.add(row)
        try:
            await run_store_call(f"insert {entity_type.value}", self._session.flush(), self._timeout)
        except IntegrityError as exc:
            unique = UNIQUE_FIELDS.get(entity_type)
            if unique:
                raise DuplicateValueError(RESOURCE_NAMES[entity_type], unique[0], fields.get(unique[0])) from exc
            raise
        # Load server defaults (timestamps) before leaving the async context
        await run_store_call(f"refresh {entity_type.value}", self._session.refresh(row), self._timeout)

        entity = _to_entity(entity_type, row)
        self._record(entity_type, entity, ChangeKind.CREATED)
        return entity

    async def commit(self) -> None:
        await run_store_call("commit", self._session.commit(), self._timeout)


class SqlFleetStore(FleetStore):
    """Fleet state in a relational database via SQLAlchemy async sessions."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        change_feed=None,
        timeout_seconds: float = None,
        isolation_level: str = None,
    ):
        super().__init__(change_feed)
        self._session_factory = session_factory
        self._timeout = timeout_seconds or settings.store_timeout_seconds
        self._isolation_level = isolation_level or settings.store_isolation_level

    async def _begin(self, session: AsyncSession) -> None:
        """Pin the isolation level before the first statement of the unit."""
        if session.get_bind().dialect.name not in SNAPSHOT_DIALECTS:
            return
        await run_store_call(
            "begin",
            session.connection(execution_options={"isolation_level": self._isolation_level}),
            self._timeout,
        )

    @asynccontextmanager
    async def transaction(self):
        async with self._session_factory() as session:
            tx = SqlTransaction(session, self._timeout)
            try:
                await self._begin(session)
                yield tx
                await tx.commit()
            except BaseException:
                await session.rollback()
                raise
        await self._publish(tx.events)
