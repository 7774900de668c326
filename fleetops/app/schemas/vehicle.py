"""
Vehicle Pydantic schemas.

Defines request and response models for vehicle management.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from fleetops.app.models.fleet_enums import VehicleStatus, VehicleType


class VehicleCreate(BaseModel):
    """Schema for registering a new vehicle."""
    name: str = Field(..., min_length=1, max_length=100, description="Display name or model")
    plate: str = Field(..., min_length=1, max_length=32, description="Unique licence plate")
    type: VehicleType = Field(VehicleType.TRUCK, description="Truck or Van")

    # Capacity and cost
    max_load: float = Field(..., gt=0, description="Maximum cargo weight in kg")
    odometer: float = Field(0, ge=0, description="Current odometer reading in km")
    acquisition_cost: float = Field(0, ge=0, description="Purchase price, basis for ROI")


class OdometerUpdate(BaseModel):
    """Schema for recording a new odometer reading."""
    reading: float = Field(..., ge=0, description="Reading in km, never below the current one")


class VehicleResponse(BaseModel):
    """Schema for vehicle response."""
    id: int
    name: str
    plate: str
    type: VehicleType
    max_load: float
    odometer: float
    acquisition_cost: float
    status: VehicleStatus
    version: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class VehicleListResponse(BaseModel):
    """Schema for vehicle list."""
    vehicles: List[VehicleResponse]
    total: int
