"""
Driver API Endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from fleetops.app.core.dependencies import get_coordinator
from fleetops.app.models.fleet_enums import DriverStatus
from fleetops.app.schemas.analytics import ComplianceReport
from fleetops.app.schemas.driver import (
    DriverCreate, DriverListResponse, DriverResponse, DriverStatusUpdate
)
from fleetops.app.services.fleet_coordinator import FleetCoordinator

router = APIRouter(prefix="/drivers", tags=["Drivers"])


@router.post("", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
async def register_driver(
    driver_data: DriverCreate,
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    return DriverResponse.model_validate(await coordinator.register_driver(driver_data))


@router.get("", response_model=DriverListResponse)
async def list_drivers(
    status_filter: Optional[DriverStatus] = Query(None, alias="status"),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    drivers = await coordinator.list_drivers(status=status_filter)
    return DriverListResponse(
        drivers=[DriverResponse.model_validate(d) for d in drivers],
        total=len(drivers),
    )


@router.get("/compliance", response_model=ComplianceReport)
async def get_compliance_report(coordinator: FleetCoordinator = Depends(get_coordinator)):
    """
    Licence compliance per driver.

    Most urgent first: expired licences, then those expiring within the
    compliance window, then the rest.
    """
    return await coordinator.compliance_report()


@router.get("/{driver_id}", response_model=DriverResponse)
async def get_driver(
    driver_id: int = Path(..., gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    return DriverResponse.model_validate(await coordinator.get_driver(driver_id))


@router.patch("/{driver_id}/status", response_model=DriverResponse)
async def update_driver_status(
    status_data: DriverStatusUpdate,
    driver_id: int = Path(..., gt=0),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    driver = await coordinator.update_driver_status(driver_id, status_data.status)
    return DriverResponse.model_validate(driver)
