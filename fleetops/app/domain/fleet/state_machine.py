"""
State transition engine.

Turns a requested trip or vehicle transition into a plan: the fields to write
on each entity and the cascade onto the vehicle. Plans are pure values; the
coordinator applies a plan's writes together in one store transaction so the
trip and vehicle halves of a cascade commit or roll back as a unit.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from fleetops.app.core.exceptions import IllegalVehicleTransitionError
from fleetops.app.domain.fleet.entities import Trip, Vehicle
from fleetops.app.domain.fleet.rules import validate_status_transition
from fleetops.app.models.fleet_enums import (
    TripStatus, VEHICLE_TRANSITIONS, VehicleEvent, VehicleStatus
)

_TRIP_TIMESTAMP_FIELDS = {
    TripStatus.DISPATCHED: "dispatched_at",
    TripStatus.COMPLETED: "completed_at",
    TripStatus.CANCELLED: "cancelled_at",
}


@dataclass(frozen=True)
class VehicleChange:
    vehicle_id: int
    event: VehicleEvent
    from_status: VehicleStatus
    to_status: VehicleStatus

    @property
    def is_noop(self) -> bool:
        return self.from_status == self.to_status


@dataclass(frozen=True)
class TripTransitionPlan:
    trip_id: int
    from_status: TripStatus
    to_status: TripStatus
    trip_fields: Dict[str, Any] = field(default_factory=dict)
    vehicle_change: Optional[VehicleChange] = None


def next_vehicle_status(vehicle: Vehicle, event: VehicleEvent) -> VehicleStatus:
    """
    Look up the vehicle status reached by ``event``.

    Raises:
        IllegalVehicleTransitionError: event not allowed from the current status
    """
    try:
        return VEHICLE_TRANSITIONS[(vehicle.status, event)]
    except KeyError:
        raise IllegalVehicleTransitionError(vehicle.id, vehicle.status.value, event.value) from None


def plan_vehicle_change(vehicle: Vehicle, event: VehicleEvent) -> VehicleChange:
    return VehicleChange(
        vehicle_id=vehicle.id,
        event=event,
        from_status=vehicle.status,
        to_status=next_vehicle_status(vehicle, event),
    )


def vehicle_event_for_trip(from_status: TripStatus, to_status: TripStatus) -> Optional[VehicleEvent]:
    """Cascade trigger for a trip edge, or None when the vehicle is untouched."""
    if to_status == TripStatus.DISPATCHED:
        return VehicleEvent.DISPATCH
    if to_status == TripStatus.COMPLETED:
        return VehicleEvent.RELEASE
    if to_status == TripStatus.CANCELLED and from_status == TripStatus.DISPATCHED:
        # Cancelling after dispatch releases the vehicle too
        return VehicleEvent.RELEASE
    return None


def plan_trip_transition(trip: Trip, vehicle: Vehicle, requested_status: TripStatus, now: datetime) -> TripTransitionPlan:
    """
    Plan a trip status change and its vehicle cascade.

    Raises:
        IllegalTransitionError: edge not in the trip lifecycle
        IllegalVehicleTransitionError: cascade not allowed for the vehicle
    """
    validate_status_transition(trip, requested_status)

    event = vehicle_event_for_trip(trip.status, requested_status)
    vehicle_change = plan_vehicle_change(vehicle, event) if event else None

    trip_fields = {"status": requested_status}
    timestamp_field = _TRIP_TIMESTAMP_FIELDS.get(requested_status)
    if timestamp_field:
        trip_fields[timestamp_field] = now

    return TripTransitionPlan(
        trip_id=trip.id,
        from_status=trip.status,
        to_status=requested_status,
        trip_fields=trip_fields,
        vehicle_change=vehicle_change,
    )
