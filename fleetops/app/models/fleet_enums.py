"""
Fleet enumerations and lifecycle transition tables.
"""

import enum


class VehicleType(str, enum.Enum):
    """Vehicle body type."""
    TRUCK = "Truck"
    VAN = "Van"


class VehicleStatus(str, enum.Enum):
    """Vehicle operational status."""
    AVAILABLE = "Available"  # In the dispatch pool
    ON_TRIP = "On Trip"  # Bound to a Dispatched trip
    IN_SHOP = "In Shop"  # Under maintenance
    RETIRED = "Retired"  # Terminal


class VehicleEvent(str, enum.Enum):
    """Triggers that move a vehicle between statuses."""
    DISPATCH = "dispatch"
    RELEASE = "release"  # Trip completed, or cancelled after dispatch
    MAINTENANCE_LOGGED = "maintenance_logged"
    MAINTENANCE_COMPLETED = "maintenance_completed"
    RETIRE = "retire"


class DriverStatus(str, enum.Enum):
    """Driver duty status."""
    ON_DUTY = "On Duty"
    OFF_DUTY = "Off Duty"
    SUSPENDED = "Suspended"


class TripStatus(str, enum.Enum):
    """Trip lifecycle status."""
    DRAFT = "Draft"  # Created, vehicle not yet committed
    DISPATCHED = "Dispatched"  # Vehicle On Trip
    COMPLETED = "Completed"  # Terminal
    CANCELLED = "Cancelled"  # Terminal


class ExpenseType(str, enum.Enum):
    """Expense log entry type."""
    FUEL = "Fuel"
    MAINTENANCE = "Maintenance"


class ExpiryBucket(str, enum.Enum):
    """Licence expiry urgency."""
    EXPIRED = "Expired"
    EXPIRING_SOON = "Expiring Soon"
    COMPLIANT = "Compliant"


# (current status, trigger) -> next status. Anything missing is illegal.
VEHICLE_TRANSITIONS = {
    (VehicleStatus.AVAILABLE, VehicleEvent.DISPATCH): VehicleStatus.ON_TRIP,
    (VehicleStatus.ON_TRIP, VehicleEvent.RELEASE): VehicleStatus.AVAILABLE,
    (VehicleStatus.AVAILABLE, VehicleEvent.MAINTENANCE_LOGGED): VehicleStatus.IN_SHOP,
    (VehicleStatus.IN_SHOP, VehicleEvent.MAINTENANCE_LOGGED): VehicleStatus.IN_SHOP,
    (VehicleStatus.IN_SHOP, VehicleEvent.MAINTENANCE_COMPLETED): VehicleStatus.AVAILABLE,
    (VehicleStatus.AVAILABLE, VehicleEvent.MAINTENANCE_COMPLETED): VehicleStatus.AVAILABLE,
    (VehicleStatus.AVAILABLE, VehicleEvent.RETIRE): VehicleStatus.RETIRED,
    (VehicleStatus.ON_TRIP, VehicleEvent.RETIRE): VehicleStatus.RETIRED,
    (VehicleStatus.IN_SHOP, VehicleEvent.RETIRE): VehicleStatus.RETIRED,
    (VehicleStatus.RETIRED, VehicleEvent.RETIRE): VehicleStatus.RETIRED,
    # A vehicle retired mid-trip stays retired when the trip closes
    (VehicleStatus.RETIRED, VehicleEvent.RELEASE): VehicleStatus.RETIRED,
}

TRIP_TRANSITIONS = {
    TripStatus.DRAFT: frozenset({TripStatus.DISPATCHED, TripStatus.CANCELLED}),
    TripStatus.DISPATCHED: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}

# Trips that still hold their vehicle
OPEN_TRIP_STATUSES = (TripStatus.DRAFT, TripStatus.DISPATCHED)
