"""
Analytics Schemas.

Read-only views derived from the fleet snapshot.
"""

from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime

from fleetops.app.models.fleet_enums import DriverStatus, ExpiryBucket


class VehicleRoi(BaseModel):
    """Return on investment for one vehicle."""
    vehicle_id: int
    name: str
    revenue: float  # Completed trips only
    cost: float  # All expenses
    roi: float  # Percent of acquisition cost


class VehicleExpenseTotal(BaseModel):
    """Total logged cost for one vehicle."""
    vehicle_id: int
    name: str
    total: float


class ComplianceEntry(BaseModel):
    """Licence status of one driver."""
    driver_id: int
    name: str
    status: DriverStatus
    license_expiry: date
    days_remaining: int
    bucket: ExpiryBucket


class ComplianceSummary(BaseModel):
    """Bucket counts and overall score."""
    total_drivers: int
    expired: int
    expiring_soon: int
    compliant: int
    compliance_score: float


class ComplianceReport(BaseModel):
    """Drivers ordered most urgent first."""
    summary: ComplianceSummary
    drivers: List[ComplianceEntry]


class FleetKpis(BaseModel):
    """Dashboard counters."""
    active_fleet_count: int  # On Trip
    maintenance_alert_count: int  # In Shop
    pending_trip_count: int  # Draft
    total_vehicles: int


class FinancialTotals(BaseModel):
    """Fleet-wide money totals."""
    total_revenue: float
    total_cost: float
    net_profit: float


class SafetySummary(BaseModel):
    """Aggregate of externally supplied safety scores."""
    scored_drivers: int
    average_score: Optional[float]
    high_risk_count: int
    safe_count: int


class FleetMetrics(BaseModel):
    """Everything the fleet dashboard needs in one snapshot."""
    roi: List[VehicleRoi]
    utilization_rate: float
    compliance_score: float
    kpis: FleetKpis
    financials: FinancialTotals
    compliance: ComplianceSummary
    expense_totals: List[VehicleExpenseTotal]
    safety: SafetySummary
    computed_at: datetime
