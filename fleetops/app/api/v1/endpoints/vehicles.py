"""
Vehicle API Endpoints.

Registration, lookup and the explicit vehicle lifecycle actions (retire,
maintenance completed, odometer). Trip-driven status changes happen through
the trip endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from fleetops.app.core.dependencies import get_coordinator
from fleetops.app.models.fleet_enums import VehicleStatus, VehicleType
from fleetops.app.schemas.vehicle import (
    OdometerUpdate, VehicleCreate, VehicleListResponse, VehicleResponse
)
from fleetops.app.services.fleet_coordinator import FleetCoordinator

router = APIRouter(prefix="/vehicles", tags=["Vehicles"])


@router.post("", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
async def register_vehicle(
    vehicle_data: VehicleCreate,
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    """Register a vehicle; it starts Available."""
    vehicle = await coordinator.register_vehicle(vehicle_data)
    return VehicleResponse.model_validate(vehicle)


@router.get("", response_model=VehicleListResponse)
async def list_vehicles(
    status_filter: Optional[VehicleStatus] = Query(None, alias="status"),
    vehicle_type: Optional[VehicleType] = Query(None, alias="type"),
    search: Optional[str] = Query(None, max_length=100, description="Matches name or plate"),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    vehicles = await coordinator.list_vehicles(status=status_filter, vehicle_type=vehicle_type, search=search)
    return VehicleListResponse(
        vehicles=[VehicleResponse.model_validate(v) for v in vehicles],
        total=len(vehicles),
    )


@router.get("/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(
    vehicle_id: int = Path(..., gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    return VehicleResponse.model_validate(await coordinator.get_vehicle(vehicle_id))


@router.post("/{vehicle_id}/retire", response_model=VehicleResponse)
async def retire_vehicle(
    vehicle_id: int = Path(..., gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    """Retire a vehicle. Terminal; retiring twice is a no-op."""
    return VehicleResponse.model_validate(await coordinator.retire_vehicle(vehicle_id))


@router.post("/{vehicle_id}/maintenance/complete", response_model=VehicleResponse)
async def complete_maintenance(
    vehicle_id: int = Path(..., gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    """Return an In Shop vehicle to service."""
    return VehicleResponse.model_validate(await coordinator.complete_maintenance(vehicle_id))


@router.put("/{vehicle_id}/odometer", response_model=VehicleResponse)
async def record_odometer(
    odometer_data: OdometerUpdate,
    vehicle_id: int = Path(..., gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    vehicle = await coordinator.record_odometer(vehicle_id, odometer_data.reading)
    return VehicleResponse.model_validate(vehicle)
