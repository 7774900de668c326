"""
Validation rules.

Pure checks of a proposed action against an entity snapshot. Each returns
None when the action is allowed and raises the matching
``FleetValidationError`` otherwise. No I/O, no writes: the coordinator runs
them again inside the write transaction against freshly read rows.
"""

from datetime import date
from typing import Optional, Sequence

from fleetops.app.core.exceptions import (
    CapacityExceededError,
    DriverIneligibleError,
    IllegalTransitionError,
    OdometerRegressionError,
    VehicleRetiredError,
    VehicleUnavailableError,
)
from fleetops.app.domain.fleet.entities import Driver, Trip, Vehicle
from fleetops.app.models.fleet_enums import (
    DriverStatus, TRIP_TRANSITIONS, TripStatus, VehicleStatus
)


def driver_ineligibility_reason(driver: Driver, today: date) -> Optional[str]:
    """Why the driver cannot be assigned today, or None if they can."""
    if driver.status != DriverStatus.ON_DUTY:
        return f"status is {driver.status.value}"
    if driver.license_expiry <= today:
        return f"license expired on {driver.license_expiry.isoformat()}"
    return None


def is_vehicle_selectable(vehicle: Vehicle) -> bool:
    return vehicle.status == VehicleStatus.AVAILABLE


def validate_trip_creation(
    vehicle: Vehicle,
    driver: Driver,
    cargo_weight: float,
    today: date,
    open_trip_ids: Sequence[int] = (),
) -> None:
    """
    Pre-check for a new trip.

    Args:
        vehicle: Vehicle snapshot
        driver: Driver snapshot
        cargo_weight: Requested load in kg (boundary inclusive)
        today: Current date for the licence check
        open_trip_ids: Draft/Dispatched trips already holding the vehicle

    Raises:
        CapacityExceededError, VehicleUnavailableError, DriverIneligibleError
    """
    if cargo_weight > vehicle.max_load:
        raise CapacityExceededError(cargo_weight, vehicle.max_load, vehicle_id=vehicle.id)

    if not is_vehicle_selectable(vehicle):
        raise VehicleUnavailableError(vehicle.id, vehicle.status.value)

    if open_trip_ids:
        raise VehicleUnavailableError(
            vehicle.id,
            vehicle.status.value,
            reason=f"already assigned to open trip {open_trip_ids[0]}"
        )

    reason = driver_ineligibility_reason(driver, today)
    if reason:
        raise DriverIneligibleError(driver.id, driver.status.value, driver.license_expiry, reason)


def validate_maintenance_log(vehicle: Vehicle) -> None:
    """Maintenance can be logged on any vehicle that is not retired."""
    if vehicle.status == VehicleStatus.RETIRED:
        raise VehicleRetiredError(vehicle.id)


def validate_fuel_log(vehicle: Vehicle) -> None:
    if vehicle.status == VehicleStatus.RETIRED:
        raise VehicleRetiredError(vehicle.id)


def validate_status_transition(trip: Trip, requested_status: TripStatus) -> None:
    """Only Draft->Dispatched, Draft->Cancelled, Dispatched->Completed, Dispatched->Cancelled."""
    if requested_status not in TRIP_TRANSITIONS[trip.status]:
        raise IllegalTransitionError(trip.id, trip.status.value, requested_status.value)


def validate_dispatch(
    vehicle: Vehicle,
    driver: Driver,
    today: date,
    driver_busy_trip_id: Optional[int] = None,
) -> None:
    """
    Precondition re-check when a Draft trip is dispatched.

    The vehicle must still be Available and the driver still eligible; a
    driver already out on another dispatched trip is rejected when
    ``driver_busy_trip_id`` is given.
    """
    if not is_vehicle_selectable(vehicle):
        raise VehicleUnavailableError(vehicle.id, vehicle.status.value)

    reason = driver_ineligibility_reason(driver, today)
    if reason is None and driver_busy_trip_id is not None:
        reason = f"already dispatched on trip {driver_busy_trip_id}"
    if reason:
        raise DriverIneligibleError(driver.id, driver.status.value, driver.license_expiry, reason)


def validate_odometer_reading(vehicle: Vehicle, reading: float) -> None:
    if vehicle.status == VehicleStatus.RETIRED:
        raise VehicleRetiredError(vehicle.id)
    if reading < vehicle.odometer:
        raise OdometerRegressionError(vehicle.id, vehicle.odometer, reading)
