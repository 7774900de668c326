"""
Trip API Endpoints.

Trips are created as Draft and moved along Draft -> Dispatched -> Completed,
with Cancelled reachable from Draft or Dispatched. Each status change also
moves the vehicle, in the same transaction.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from fleetops.app.core.dependencies import get_coordinator
from fleetops.app.models.fleet_enums import TripStatus
from fleetops.app.schemas.trip import (
    TripCreate, TripListResponse, TripResponse, TripStatusUpdate
)
from fleetops.app.services.fleet_coordinator import FleetCoordinator

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    """
    Create a Draft trip.

    Rejected with 400 when the cargo exceeds the vehicle capacity, the vehicle
    is not Available (or already holds an open trip) or the driver is not
    eligible; 409 when a concurrent request claimed the vehicle first.
    """
    trip = await coordinator.create_trip(
        vehicle_id=trip_data.vehicle_id,
        driver_id=trip_data.driver_id,
        cargo_weight=trip_data.cargo_weight,
        revenue=trip_data.revenue,
    )
    return TripResponse.model_validate(trip)


@router.get("", response_model=TripListResponse)
async def list_trips(
    status_filter: Optional[TripStatus] = Query(None, alias="status"),
    vehicle_id: Optional[int] = Query(None, gt=0),
    driver_id: Optional[int] = Query(None, gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    trips = await coordinator.list_trips(status=status_filter, vehicle_id=vehicle_id, driver_id=driver_id)
    return TripListResponse(
        trips=[TripResponse.model_validate(t) for t in trips],
        total=len(trips),
    )


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    return TripResponse.model_validate(await coordinator.get_trip(trip_id))


@router.patch("/{trip_id}/status", response_model=TripResponse)
async def transition_trip(
    status_data: TripStatusUpdate,
    trip_id: int = Path(..., gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    """Move the trip to Dispatched, Completed or Cancelled."""
    trip = await coordinator.transition_trip(trip_id, status_data.status)
    return TripResponse.model_validate(trip)
