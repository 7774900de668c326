"""
Analytics API Endpoints.

Read-only dashboard data.
"""

from fastapi import APIRouter, Depends, Path

from fleetops.app.core.dependencies import get_coordinator
from fleetops.app.schemas.analytics import FleetMetrics, VehicleRoi
from fleetops.app.services.fleet_coordinator import FleetCoordinator

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/fleet", response_model=FleetMetrics)
async def get_fleet_metrics(coordinator: FleetCoordinator = Depends(get_coordinator)):
    """ROI, utilization, compliance, KPIs, money totals and safety in one snapshot."""
    return await coordinator.compute_fleet_metrics()


@router.get("/vehicles/{vehicle_id}/roi", response_model=VehicleRoi)
async def get_vehicle_roi(
    vehicle_id: int = Path(..., gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    return await coordinator.vehicle_roi(vehicle_id)
