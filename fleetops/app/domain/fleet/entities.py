"""
Fleet entity model.

Immutable snapshots of store rows. Field constraints mirror the data model:
positive loads and amounts, non-negative odometer and money, closed status
enumerations. Every entity carries the ``version`` conditional writes check.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from fleetops.app.models.fleet_enums import (
    DriverStatus, ExpenseType, TripStatus, VehicleStatus, VehicleType
)


class Vehicle(BaseModel):
    id: int
    name: str = Field(..., min_length=1, max_length=100)
    plate: str = Field(..., min_length=1, max_length=32)
    type: VehicleType = VehicleType.TRUCK
    max_load: float = Field(..., gt=0)
    odometer: float = Field(0, ge=0)
    acquisition_cost: float = Field(0, ge=0)
    status: VehicleStatus = VehicleStatus.AVAILABLE
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True


class Driver(BaseModel):
    id: int
    name: str = Field(..., min_length=1, max_length=100)
    license_expiry: date
    status: DriverStatus = DriverStatus.ON_DUTY
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True


class Trip(BaseModel):
    id: int
    vehicle_id: int
    driver_id: int
    cargo_weight: float = Field(..., gt=0)
    revenue: float = Field(0, ge=0)
    status: TripStatus = TripStatus.DRAFT
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True


class Expense(BaseModel):
    id: int
    vehicle_id: int
    type: ExpenseType
    amount: float = Field(..., gt=0)
    liters: Optional[float] = Field(None, gt=0)
    description: Optional[str] = Field(None, max_length=255)
    created_at: date
    version: int = 1

    class Config:
        from_attributes = True
        frozen = True

    @model_validator(mode="after")
    def liters_only_for_fuel(self):
        if self.liters is not None and self.type != ExpenseType.FUEL:
            raise ValueError("liters is only recorded on Fuel expenses")
        return self
