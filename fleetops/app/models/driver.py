"""
Driver database model.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Enum
from sqlalchemy.sql import func
from fleetops.app.db.session import Base
from fleetops.app.models.fleet_enums import DriverStatus


class Driver(Base):
    """
    Driver model.

    Eligibility for assignment is computed from status and licence expiry
    on every check and is never stored.
    """
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    name = Column(String(100), nullable=False)
    license_expiry = Column(Date, nullable=False, index=True)

    status = Column(Enum(DriverStatus), default=DriverStatus.ON_DUTY, nullable=False, index=True)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Driver(id={self.id}, name='{self.name}', status='{self.status.value}')>"
