"""
Vehicle database model.

Vehicles are registered once and never deleted; retirement is a status.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum
from sqlalchemy.sql import func
from fleetops.app.db.session import Base
from fleetops.app.models.fleet_enums import VehicleStatus, VehicleType


class Vehicle(Base):
    """
    Vehicle model.

    ``version`` is bumped on every write and is what conditional updates
    compare against.
    """
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification
    name = Column(String(100), nullable=False)
    plate = Column(String(32), unique=True, nullable=False, index=True)
    type = Column(Enum(VehicleType), default=VehicleType.TRUCK, nullable=False)

    # Capacity and usage
    max_load = Column(Float, nullable=False)  # kg
    odometer = Column(Float, default=0, nullable=False)  # km, never decreases
    acquisition_cost = Column(Float, default=0, nullable=False)

    # Status (mutated only by the transition engine)
    status = Column(Enum(VehicleStatus), default=VehicleStatus.AVAILABLE, nullable=False, index=True)
    version = Column(Integer, default=1, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate='{self.plate}', status='{self.status.value}')>"
