"""
Fleet Coordinator.

Entry point for every fleet write and query. Each write runs as one store
transaction: read the rows fresh, run the validation rules against them,
then apply the writes with conditional updates so a competing writer that
got there first turns this call into ``PreconditionFailedError``. Rule
violations are raised as typed ``FleetValidationError``s before anything is
written.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from fleetops.app.core.config import Settings, settings as default_settings
from fleetops.app.core.exceptions import (
    ConflictError,
    DuplicateValueError,
    FleetValidationError,
    IllegalTransitionError,
    InfrastructureError,
    InvalidRequestError,
    ResourceNotFoundError,
)
from fleetops.app.db.store import ChangeEvent, EntityType, FleetStore, RESOURCE_NAMES
from fleetops.app.domain.fleet import metrics
from fleetops.app.domain.fleet.clock import Clock, SystemClock
from fleetops.app.domain.fleet.entities import Driver, Expense, Trip, Vehicle
from fleetops.app.domain.fleet.rules import (
    validate_dispatch,
    validate_fuel_log,
    validate_maintenance_log,
    validate_odometer_reading,
    validate_status_transition,
    validate_trip_creation,
)
from fleetops.app.domain.fleet.safety import SafetyScoreProvider, UnscoredSafetyProvider
from fleetops.app.domain.fleet.state_machine import plan_trip_transition, plan_vehicle_change
from fleetops.app.models.fleet_enums import (
    DriverStatus, ExpenseType, OPEN_TRIP_STATUSES, TripStatus, VehicleEvent,
    VehicleStatus, VehicleType
)
from fleetops.app.schemas.analytics import (
    ComplianceReport, FleetMetrics, VehicleExpenseTotal, VehicleRoi
)
from fleetops.app.schemas.driver import DriverCreate, DriverStatusUpdate
from fleetops.app.schemas.expense import FuelCreate, MaintenanceCreate
from fleetops.app.schemas.trip import TripCreate
from fleetops.app.schemas.vehicle import OdometerUpdate, VehicleCreate
from fleetops.app.services.cache import MetricsCache

logger = logging.getLogger("fleetops.coordinator")


def _build_request(action: str, request_class, **fields):
    """Validate call arguments the way the HTTP layer validates bodies."""
    try:
        return request_class(**fields)
    except ValidationError as exc:
        raise InvalidRequestError(action, exc.errors()) from None


class FleetCoordinator:

    def __init__(
        self,
        store: FleetStore,
        clock: Clock = None,
        metrics_cache: Optional[MetricsCache] = None,
        safety_provider: Optional[SafetyScoreProvider] = None,
        settings: Settings = None,
    ):
        config = settings or default_settings
        self.store = store
        self.clock = clock or SystemClock()
        self.metrics_cache = metrics_cache
        self.safety_provider = safety_provider or UnscoredSafetyProvider()
        self.compliance_window_days = config.compliance_window_days
        self.prevent_driver_double_booking = config.prevent_driver_double_booking

    # --- Helpers ---

    @asynccontextmanager
    async def _operation(self, action: str, **context):
        """Log how a write ended; errors propagate unchanged."""
        log_context = {"action": action, **context}
        try:
            yield
        except FleetValidationError as exc:
            logger.info("Fleet action rejected", extra={**log_context, "error_code": exc.error_code, "kind": exc.kind})
            raise
        except ResourceNotFoundError as exc:
            logger.info("Fleet action on missing resource", extra={**log_context, "error_code": exc.error_code})
            raise
        except ConflictError as exc:
            logger.warning("Fleet action lost a concurrent update", extra={**log_context, "details": exc.details})
            raise
        except InfrastructureError as exc:
            logger.error("Fleet action failed in the store", extra={**log_context, "error_code": exc.error_code})
            raise

    async def _after_commit(self, events: List[ChangeEvent]) -> None:
        if self.metrics_cache is not None and events:
            await self.metrics_cache.invalidate_for_events(events)

    @staticmethod
    async def _require(tx, entity_type: EntityType, entity_id: int):
        entity = await tx.get(entity_type, entity_id)
        if entity is None:
            raise ResourceNotFoundError(RESOURCE_NAMES[entity_type], entity_id)
        return entity

    async def _get(self, entity_type: EntityType, entity_id: int):
        async with self.store.transaction() as tx:
            return await self._require(tx, entity_type, entity_id)

    async def _list(self, entity_type: EntityType, filters: Dict[str, Any]):
        async with self.store.transaction() as tx:
            return await tx.list(entity_type, filters)

    # --- Registration ---

    async def register_vehicle(self, payload: VehicleCreate) -> Vehicle:
        """
        Add a vehicle to the fleet in status Available.

        Raises:
            DuplicateValueError: plate already registered
        """
        async with self._operation("register_vehicle", plate=payload.plate):
            async with self.store.transaction() as tx:
                if await tx.list(EntityType.VEHICLE, {"plate": payload.plate}):
                    raise DuplicateValueError("Vehicle", "plate", payload.plate)
                vehicle = await tx.insert(EntityType.VEHICLE, {
                    **payload.model_dump(),
                    "status": VehicleStatus.AVAILABLE,
                })

        await self._after_commit(tx.events)
        logger.info("Vehicle registered", extra={"vehicle_id": vehicle.id, "plate": vehicle.plate})
        return vehicle

    async def register_driver(self, payload: DriverCreate) -> Driver:
        async with self._operation("register_driver"):
            async with self.store.transaction() as tx:
                driver = await tx.insert(EntityType.DRIVER, payload.model_dump())

        await self._after_commit(tx.events)
        logger.info("Driver registered", extra={"driver_id": driver.id})
        return driver

    async def update_driver_status(self, driver_id: int, status) -> Driver:
        """Change duty status; Suspended and Off Duty drivers cannot be assigned."""
        async with self._operation("update_driver_status", driver_id=driver_id):
            request = _build_request("update_driver_status", DriverStatusUpdate, status=status)
            async with self.store.transaction() as tx:
                driver = await self._require(tx, EntityType.DRIVER, driver_id)
                if driver.status == request.status:
                    updated = driver
                else:
                    updated = await tx.conditional_update(
                        EntityType.DRIVER, driver.id,
                        {"status": request.status},
                        expected_version=driver.version,
                    )

        await self._after_commit(tx.events)
        logger.info(
            "Driver status updated",
            extra={"driver_id": driver_id, "from_status": driver.status.value, "to_status": updated.status.value}
        )
        return updated

    # --- Trip lifecycle ---

    async def create_trip(self, vehicle_id: int, driver_id: int, cargo_weight: float, revenue: float = 0) -> Trip:
        """
        Create a Draft trip.

        The vehicle keeps its status; an open (Draft or Dispatched) trip
        holds the vehicle, so a second trip for it is refused until the first
        completes or is cancelled.

        Raises:
            InvalidRequestError: non-positive cargo_weight, negative revenue
            CapacityExceededError: cargo_weight above the vehicle max_load
            VehicleUnavailableError: vehicle not Available or already held
            DriverIneligibleError: driver not On Duty or licence expired
            PreconditionFailedError: another writer claimed the vehicle first
        """
        today = self.clock.today()

        async with self._operation("create_trip", vehicle_id=vehicle_id, driver_id=driver_id):
            request = _build_request(
                "create_trip", TripCreate,
                vehicle_id=vehicle_id, driver_id=driver_id, cargo_weight=cargo_weight, revenue=revenue
            )
            async with self.store.transaction() as tx:
                # 1. Fresh snapshot
                vehicle = await self._require(tx, EntityType.VEHICLE, request.vehicle_id)
                driver = await self._require(tx, EntityType.DRIVER, request.driver_id)
                open_trips = await tx.list(
                    EntityType.TRIP,
                    {"vehicle_id": vehicle.id, "status": OPEN_TRIP_STATUSES}
                )

                # 2. Rules
                validate_trip_creation(
                    vehicle, driver, request.cargo_weight, today,
                    open_trip_ids=[t.id for t in open_trips]
                )

                # 3. Claim the vehicle row so a concurrent creator for it fails
                await tx.conditional_update(
                    EntityType.VEHICLE, vehicle.id, {},
                    expected_version=vehicle.version,
                    expected_fields={"status": VehicleStatus.AVAILABLE},
                )

                # 4. Trip row
                trip = await tx.insert(EntityType.TRIP, {
                    "vehicle_id": vehicle.id,
                    "driver_id": driver.id,
                    "cargo_weight": request.cargo_weight,
                    "revenue": request.revenue,
                    "status": TripStatus.DRAFT,
                })

        await self._after_commit(tx.events)
        logger.info(
            "Trip created",
            extra={"trip_id": trip.id, "vehicle_id": trip.vehicle_id, "driver_id": trip.driver_id,
                   "cargo_weight": trip.cargo_weight}
        )
        return trip

    async def transition_trip(self, trip_id: int, new_status) -> Trip:
        """
        Move a trip along its lifecycle and cascade onto the vehicle.

        Dispatched puts the vehicle On Trip; Completed, and Cancelled from
        Dispatched, return it to Available. Trip and vehicle writes commit
        together.

        Raises:
            IllegalTransitionError: edge not allowed (including unknown targets)
            VehicleUnavailableError: dispatching onto a vehicle that is not Available
            DriverIneligibleError: dispatching a driver who can no longer drive
            PreconditionFailedError: trip or vehicle changed concurrently
        """
        now = self.clock.now()

        requested_label = getattr(new_status, "value", new_status)

        async with self._operation("transition_trip", trip_id=trip_id, requested_status=requested_label):
            async with self.store.transaction() as tx:
                trip = await self._require(tx, EntityType.TRIP, trip_id)
                try:
                    requested = TripStatus(new_status)
                except ValueError:
                    raise IllegalTransitionError(trip.id, trip.status.value, str(requested_label)) from None
                validate_status_transition(trip, requested)

                vehicle = await self._require(tx, EntityType.VEHICLE, trip.vehicle_id)

                if requested == TripStatus.DISPATCHED:
                    await self._check_dispatch(tx, trip, vehicle, now.date())

                plan = plan_trip_transition(trip, vehicle, requested, now)

                updated = await tx.conditional_update(
                    EntityType.TRIP, trip.id, plan.trip_fields,
                    expected_version=trip.version,
                    expected_fields={"status": trip.status},
                )

                change = plan.vehicle_change
                if change is not None and not change.is_noop:
                    await tx.conditional_update(
                        EntityType.VEHICLE, vehicle.id,
                        {"status": change.to_status},
                        expected_version=vehicle.version,
                        expected_fields={"status": change.from_status},
                    )

        await self._after_commit(tx.events)
        logger.info(
            "Trip transitioned",
            extra={"trip_id": trip_id, "from_status": plan.from_status.value, "to_status": plan.to_status.value,
                   "vehicle_id": vehicle.id}
        )
        return updated

    async def _check_dispatch(self, tx, trip: Trip, vehicle: Vehicle, today: date) -> None:
        driver = await self._require(tx, EntityType.DRIVER, trip.driver_id)

        busy_trip_id = None
        if self.prevent_driver_double_booking:
            dispatched = await tx.list(EntityType.TRIP, {"driver_id": driver.id, "status": TripStatus.DISPATCHED})
            busy_trip_id = next((t.id for t in dispatched if t.id != trip.id), None)

        validate_dispatch(vehicle, driver, today, driver_busy_trip_id=busy_trip_id)

        if self.prevent_driver_double_booking:
            # Serialize dispatches of the same driver
            await tx.conditional_update(EntityType.DRIVER, driver.id, {}, expected_version=driver.version)

    # --- Vehicle lifecycle ---

    async def log_maintenance(
        self,
        vehicle_id: int,
        amount: float,
        expense_date: Optional[date] = None,
        description: Optional[str] = None,
    ) -> Expense:
        """
        Record a maintenance expense and put the vehicle In Shop.

        Raises:
            InvalidRequestError: amount not positive, description too long
            VehicleRetiredError: vehicle is Retired
            IllegalVehicleTransitionError: vehicle is On Trip
        """
        async with self._operation("log_maintenance", vehicle_id=vehicle_id):
            request = _build_request(
                "log_maintenance", MaintenanceCreate,
                vehicle_id=vehicle_id, amount=amount, expense_date=expense_date, description=description
            )
            async with self.store.transaction() as tx:
                vehicle = await self._require(tx, EntityType.VEHICLE, request.vehicle_id)
                validate_maintenance_log(vehicle)
                change = plan_vehicle_change(vehicle, VehicleEvent.MAINTENANCE_LOGGED)

                expense = await tx.insert(EntityType.EXPENSE, {
                    "vehicle_id": vehicle.id,
                    "type": ExpenseType.MAINTENANCE,
                    "amount": request.amount,
                    "description": request.description,
                    "created_at": request.expense_date or self.clock.today(),
                })
                # Written even when already In Shop so the expense cannot land
                # after a concurrent completion released the vehicle
                await tx.conditional_update(
                    EntityType.VEHICLE, vehicle.id,
                    {"status": change.to_status},
                    expected_version=vehicle.version,
                    expected_fields={"status": change.from_status},
                )

        await self._after_commit(tx.events)
        logger.info(
            "Maintenance logged",
            extra={"vehicle_id": vehicle_id, "expense_id": expense.id, "amount": expense.amount,
                   "from_status": change.from_status.value}
        )
        return expense

    async def complete_maintenance(self, vehicle_id: int) -> Vehicle:
        """Return an In Shop vehicle to Available. Already Available is a no-op."""
        return await self._apply_vehicle_event(vehicle_id, VehicleEvent.MAINTENANCE_COMPLETED)

    async def retire_vehicle(self, vehicle_id: int) -> Vehicle:
        """
        Take a vehicle out of service for good.

        Allowed from every status; a vehicle on a trip stays Retired when the
        trip later ends. Retiring twice is a no-op.
        """
        return await self._apply_vehicle_event(vehicle_id, VehicleEvent.RETIRE)

    async def _apply_vehicle_event(self, vehicle_id: int, event: VehicleEvent) -> Vehicle:
        async with self._operation(event.value, vehicle_id=vehicle_id):
            async with self.store.transaction() as tx:
                vehicle = await self._require(tx, EntityType.VEHICLE, vehicle_id)
                change = plan_vehicle_change(vehicle, event)
                if change.is_noop:
                    result = vehicle
                else:
                    result = await tx.conditional_update(
                        EntityType.VEHICLE, vehicle.id,
                        {"status": change.to_status},
                        expected_version=vehicle.version,
                        expected_fields={"status": change.from_status},
                    )

        await self._after_commit(tx.events)
        logger.info(
            "Vehicle status changed" if not change.is_noop else "Vehicle status unchanged",
            extra={"vehicle_id": vehicle_id, "event": event.value,
                   "from_status": change.from_status.value, "to_status": change.to_status.value}
        )
        return result

    async def log_fuel(
        self,
        vehicle_id: int,
        liters: float,
        price_per_liter: float,
        expense_date: Optional[date] = None,
        description: Optional[str] = None,
    ) -> Expense:
        """Record a fuel purchase; amount is liters * price_per_liter."""
        async with self._operation("log_fuel", vehicle_id=vehicle_id):
            request = _build_request(
                "log_fuel", FuelCreate,
                vehicle_id=vehicle_id, liters=liters, price_per_liter=price_per_liter,
                expense_date=expense_date, description=description
            )
            async with self.store.transaction() as tx:
                vehicle = await self._require(tx, EntityType.VEHICLE, request.vehicle_id)
                validate_fuel_log(vehicle)

                expense = await tx.insert(EntityType.EXPENSE, {
                    "vehicle_id": vehicle.id,
                    "type": ExpenseType.FUEL,
                    "amount": round(request.liters * request.price_per_liter, 2),
                    "liters": request.liters,
                    "description": request.description,
                    "created_at": request.expense_date or self.clock.today(),
                })
                await tx.conditional_update(
                    EntityType.VEHICLE, vehicle.id, {},
                    expected_version=vehicle.version,
                )

        await self._after_commit(tx.events)
        logger.info(
            "Fuel logged",
            extra={"vehicle_id": vehicle_id, "expense_id": expense.id, "liters": expense.liters,
                   "amount": expense.amount}
        )
        return expense

    async def record_odometer(self, vehicle_id: int, reading: float) -> Vehicle:
        """
        Store a new odometer reading.

        Raises:
            InvalidRequestError: negative reading
            OdometerRegressionError: reading below the current one
            VehicleRetiredError: vehicle is Retired
        """
        async with self._operation("record_odometer", vehicle_id=vehicle_id):
            request = _build_request("record_odometer", OdometerUpdate, reading=reading)
            async with self.store.transaction() as tx:
                vehicle = await self._require(tx, EntityType.VEHICLE, vehicle_id)
                validate_odometer_reading(vehicle, request.reading)
                updated = await tx.conditional_update(
                    EntityType.VEHICLE, vehicle.id,
                    {"odometer": request.reading},
                    expected_version=vehicle.version,
                )

        await self._after_commit(tx.events)
        return updated

    # --- Queries ---

    async def get_vehicle(self, vehicle_id: int) -> Vehicle:
        return await self._get(EntityType.VEHICLE, vehicle_id)

    async def list_vehicles(
        self,
        status: Optional[VehicleStatus] = None,
        vehicle_type: Optional[VehicleType] = None,
        search: Optional[str] = None,
    ) -> List[Vehicle]:
        """Vehicles by id; ``search`` matches name or plate, case-insensitive."""
        filters = {}
        if status is not None:
            filters["status"] = VehicleStatus(status)
        if vehicle_type is not None:
            filters["type"] = VehicleType(vehicle_type)
        vehicles = await self._list(EntityType.VEHICLE, filters)

        if search:
            needle = search.strip().lower()
            vehicles = [v for v in vehicles if needle in v.name.lower() or needle in v.plate.lower()]
        return vehicles

    async def get_driver(self, driver_id: int) -> Driver:
        return await self._get(EntityType.DRIVER, driver_id)

    async def list_drivers(self, status: Optional[DriverStatus] = None) -> List[Driver]:
        filters = {"status": DriverStatus(status)} if status is not None else {}
        return await self._list(EntityType.DRIVER, filters)

    async def get_trip(self, trip_id: int) -> Trip:
        return await self._get(EntityType.TRIP, trip_id)

    async def list_trips(
        self,
        status: Optional[TripStatus] = None,
        vehicle_id: Optional[int] = None,
        driver_id: Optional[int] = None,
    ) -> List[Trip]:
        filters = {}
        if status is not None:
            filters["status"] = TripStatus(status)
        if vehicle_id is not None:
            filters["vehicle_id"] = vehicle_id
        if driver_id is not None:
            filters["driver_id"] = driver_id
        return await self._list(EntityType.TRIP, filters)

    async def list_expenses(
        self,
        vehicle_id: Optional[int] = None,
        expense_type: Optional[ExpenseType] = None,
    ) -> List[Expense]:
        filters = {}
        if vehicle_id is not None:
            filters["vehicle_id"] = vehicle_id
        if expense_type is not None:
            filters["type"] = ExpenseType(expense_type)
        return await self._list(EntityType.EXPENSE, filters)

    async def expense_summary(self) -> List[VehicleExpenseTotal]:
        async with self.store.transaction() as tx:
            vehicles = await tx.list(EntityType.VEHICLE)
            expenses = await tx.list(EntityType.EXPENSE)
        return metrics.expense_totals(vehicles, expenses)

    async def compliance_report(self) -> ComplianceReport:
        async with self.store.transaction() as tx:
            drivers = await tx.list(EntityType.DRIVER)
        return metrics.compliance_report(drivers, self.clock.today(), self.compliance_window_days)

    async def vehicle_roi(self, vehicle_id: int) -> VehicleRoi:
        generation = None
        if self.metrics_cache is not None:
            cached = await self.metrics_cache.get_vehicle_roi(vehicle_id)
            if cached is not None:
                return cached
            generation = await self.metrics_cache.vehicle_generation(vehicle_id)

        async with self.store.transaction() as tx:
            vehicle = await self._require(tx, EntityType.VEHICLE, vehicle_id)
            trips = await tx.list(EntityType.TRIP, {"vehicle_id": vehicle_id, "status": TripStatus.COMPLETED})
            expenses = await tx.list(EntityType.EXPENSE, {"vehicle_id": vehicle_id})
        roi = metrics.vehicle_roi(vehicle, trips, expenses)

        if self.metrics_cache is not None:
            await self.metrics_cache.set_vehicle_roi(roi, generation)
        return roi

    async def compute_fleet_metrics(self) -> FleetMetrics:
        """
        Fleet dashboard snapshot from one consistent read.

        ROI per vehicle, utilization over non-retired vehicles, licence
        compliance, KPIs, money totals and the safety summary. The cache
        generation is taken before the read so a snapshot that raced a write
        is never served after that write's invalidation.
        """
        now = self.clock.now()
        today = now.date()

        generation = None
        if self.metrics_cache is not None:
            cached = await self.metrics_cache.get_fleet_metrics(today)
            if cached is not None:
                return cached
            generation = await self.metrics_cache.fleet_generation()

        async with self.store.transaction() as tx:
            vehicles = await tx.list(EntityType.VEHICLE)
            drivers = await tx.list(EntityType.DRIVER)
            trips = await tx.list(EntityType.TRIP)
            expenses = await tx.list(EntityType.EXPENSE)

        window = self.compliance_window_days
        snapshot = FleetMetrics(
            roi=[metrics.vehicle_roi(v, trips, expenses) for v in vehicles],
            utilization_rate=metrics.utilization_rate(vehicles),
            compliance_score=metrics.compliance_score(drivers, today, window),
            kpis=metrics.fleet_kpis(vehicles, trips),
            financials=metrics.financial_totals(trips, expenses),
            compliance=metrics.compliance_summary(drivers, today, window),
            expense_totals=metrics.expense_totals(vehicles, expenses),
            safety=metrics.safety_summary(drivers, self.safety_provider),
            computed_at=now,
        )

        if self.metrics_cache is not None:
            await self.metrics_cache.set_fleet_metrics(snapshot, generation)
        logger.debug("Fleet metrics computed", extra={"total_vehicles": len(vehicles), "total_drivers": len(drivers)})
        return snapshot
