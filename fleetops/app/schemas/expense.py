"""
Expense Pydantic schemas.

Maintenance and fuel entries share one expense ledger per vehicle.
"""

from pydantic import BaseModel, Field
from datetime import date
from typing import Optional, List

from fleetops.app.models.fleet_enums import ExpenseType


class MaintenanceCreate(BaseModel):
    """Schema for logging a maintenance expense."""
    vehicle_id: int = Field(..., gt=0)
    amount: float = Field(..., gt=0)
    expense_date: Optional[date] = Field(None, description="Defaults to today")
    description: Optional[str] = Field(None, max_length=255)


class FuelCreate(BaseModel):
    """Schema for logging a fuel purchase."""
    vehicle_id: int = Field(..., gt=0)
    liters: float = Field(..., gt=0)
    price_per_liter: float = Field(..., gt=0)
    expense_date: Optional[date] = Field(None, description="Defaults to today")
    description: Optional[str] = Field(None, max_length=255)


class ExpenseResponse(BaseModel):
    """Schema for expense response."""
    id: int
    vehicle_id: int
    type: ExpenseType
    amount: float
    liters: Optional[float]
    description: Optional[str]
    created_at: date
    version: int

    class Config:
        from_attributes = True


class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseResponse]
    total: int
