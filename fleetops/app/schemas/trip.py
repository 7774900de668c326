"""
Trip Pydantic schemas.

Defines request and response models for trip creation and lifecycle changes.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from fleetops.app.models.fleet_enums import TripStatus


class TripCreate(BaseModel):
    """Schema for creating a Draft trip."""
    vehicle_id: int = Field(..., gt=0)
    driver_id: int = Field(..., gt=0)
    cargo_weight: float = Field(..., gt=0, description="Cargo in kg, at most the vehicle max_load")
    revenue: float = Field(0, ge=0, description="Revenue booked when the trip completes")


class TripStatusUpdate(BaseModel):
    """
    Schema for a lifecycle change.

    Kept as a plain string so an unknown target reaches the engine and is
    reported as an illegal transition rather than a schema error.
    """
    status: str = Field(..., min_length=1, description="Dispatched, Completed or Cancelled")


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    vehicle_id: int
    driver_id: int
    cargo_weight: float
    revenue: float
    status: TripStatus
    version: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    dispatched_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    class Config:
        from_attributes = True


class TripListResponse(BaseModel):
    trips: List[TripResponse]
    total: int
