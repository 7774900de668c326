"""
Expense database model.

Append-only cost log per vehicle (fuel fills and maintenance jobs).
"""

from sqlalchemy import Column, Integer, Float, String, Date, ForeignKey, Enum
from fleetops.app.db.session import Base
from fleetops.app.models.fleet_enums import ExpenseType


class Expense(Base):
    """Expense log entry. Never updated after insert."""
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=False, index=True)
    type = Column(Enum(ExpenseType), nullable=False, index=True)

    amount = Column(Float, nullable=False)
    liters = Column(Float, nullable=True)  # Fuel only
    description = Column(String(255), nullable=True)

    created_at = Column(Date, nullable=False, index=True)
    version = Column(Integer, default=1, nullable=False)

    def __repr__(self):
        return f"<Expense(id={self.id}, vehicle_id={self.vehicle_id}, type='{self.type.value}', amount={self.amount})>"
