"""
Expense API Endpoints.

Maintenance entries put the vehicle In Shop; fuel entries leave its status
alone.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from fleetops.app.core.dependencies import get_coordinator
from fleetops.app.models.fleet_enums import ExpenseType
from fleetops.app.schemas.analytics import VehicleExpenseTotal
from fleetops.app.schemas.expense import (
    ExpenseListResponse, ExpenseResponse, FuelCreate, MaintenanceCreate
)
from fleetops.app.services.fleet_coordinator import FleetCoordinator

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.post("/maintenance", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def log_maintenance(
    maintenance_data: MaintenanceCreate,
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    expense = await coordinator.log_maintenance(
        vehicle_id=maintenance_data.vehicle_id,
        amount=maintenance_data.amount,
        expense_date=maintenance_data.expense_date,
        description=maintenance_data.description,
    )
    return ExpenseResponse.model_validate(expense)


@router.post("/fuel", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def log_fuel(
    fuel_data: FuelCreate,
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    expense = await coordinator.log_fuel(
        vehicle_id=fuel_data.vehicle_id,
        liters=fuel_data.liters,
        price_per_liter=fuel_data.price_per_liter,
        expense_date=fuel_data.expense_date,
        description=fuel_data.description,
    )
    return ExpenseResponse.model_validate(expense)


@router.get("", response_model=ExpenseListResponse)
async def list_expenses(
    vehicle_id: Optional[int] = Query(None, gt=0),
    expense_type: Optional[ExpenseType] = Query(None, alias="type"),
    coordinator: FleetCoordinator = Depends(get_coordinator)
):
    expenses = await coordinator.list_expenses(vehicle_id=vehicle_id, expense_type=expense_type)
    return ExpenseListResponse(
        expenses=[ExpenseResponse.model_validate(e) for e in expenses],
        total=len(expenses),
    )


@router.get("/summary", response_model=List[VehicleExpenseTotal])
async def get_expense_summary(coordinator: FleetCoordinator = Depends(get_coordinator)):
    """Total cost per vehicle, highest first."""
    return await coordinator.expense_summary()
