"""
Driver Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List

from fleetops.app.models.fleet_enums import DriverStatus


class DriverCreate(BaseModel):
    """Schema for registering a driver."""
    name: str = Field(..., min_length=1, max_length=100)
    license_expiry: date = Field(..., description="Last day the licence is valid is the day before this date")
    status: DriverStatus = DriverStatus.ON_DUTY


class DriverStatusUpdate(BaseModel):
    """Schema for changing a driver's duty status."""
    status: DriverStatus


class DriverResponse(BaseModel):
    """Schema for driver response."""
    id: int
    name: str
    license_expiry: date
    status: DriverStatus
    version: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class DriverListResponse(BaseModel):
    drivers: List[DriverResponse]
    total: int
