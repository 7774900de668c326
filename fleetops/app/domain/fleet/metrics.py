"""
Fleet aggregation queries.

Pure functions over entity lists; callers fetch the snapshot and pass it in.
"""

from datetime import date, timedelta
from typing import Iterable, List, Sequence

from fleetops.app.domain.fleet.entities import Driver, Expense, Trip, Vehicle
from fleetops.app.domain.fleet.safety import (
    HIGH_RISK_BELOW, SAFE_AT_OR_ABOVE, SafetyScoreProvider, collect_scores
)
from fleetops.app.models.fleet_enums import ExpiryBucket, TripStatus, VehicleStatus
from fleetops.app.schemas.analytics import (
    ComplianceEntry,
    ComplianceReport,
    ComplianceSummary,
    FinancialTotals,
    FleetKpis,
    SafetySummary,
    VehicleExpenseTotal,
    VehicleRoi,
)

DEFAULT_COMPLIANCE_WINDOW_DAYS = 30


def _percent(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 2)


def completed_revenue(trips: Iterable[Trip]) -> float:
    return sum(t.revenue for t in trips if t.status == TripStatus.COMPLETED)


def vehicle_roi(vehicle: Vehicle, trips: Iterable[Trip], expenses: Iterable[Expense]) -> VehicleRoi:
    """
    ROI = (completed revenue - expenses) / acquisition cost * 100.

    Trips and expenses of other vehicles are ignored, so the full fleet lists
    can be passed. Zero acquisition cost yields 0.
    """
    revenue = completed_revenue(t for t in trips if t.vehicle_id == vehicle.id)
    cost = sum(e.amount for e in expenses if e.vehicle_id == vehicle.id)
    roi = _percent(revenue - cost, vehicle.acquisition_cost)
    return VehicleRoi(vehicle_id=vehicle.id, name=vehicle.name, revenue=revenue, cost=cost, roi=roi)


def utilization_rate(vehicles: Sequence[Vehicle]) -> float:
    """Share of non-retired vehicles currently On Trip."""
    in_service = [v for v in vehicles if v.status != VehicleStatus.RETIRED]
    on_trip = sum(1 for v in in_service if v.status == VehicleStatus.ON_TRIP)
    return _percent(on_trip, len(in_service))


def days_until_expiry(driver: Driver, today: date) -> int:
    return (driver.license_expiry - today).days


def expiry_bucket(days_remaining: int, window_days: int = DEFAULT_COMPLIANCE_WINDOW_DAYS) -> ExpiryBucket:
    if days_remaining < 0:
        return ExpiryBucket.EXPIRED
    if days_remaining <= window_days:
        return ExpiryBucket.EXPIRING_SOON
    return ExpiryBucket.COMPLIANT


def compliance_entries(
    drivers: Iterable[Driver],
    today: date,
    window_days: int = DEFAULT_COMPLIANCE_WINDOW_DAYS,
) -> List[ComplianceEntry]:
    """Drivers with days remaining, most urgent first, ties by id."""
    entries = []
    for driver in drivers:
        days = days_until_expiry(driver, today)
        entries.append(ComplianceEntry(
            driver_id=driver.id,
            name=driver.name,
            status=driver.status,
            license_expiry=driver.license_expiry,
            days_remaining=days,
            bucket=expiry_bucket(days, window_days),
        ))
    entries.sort(key=lambda e: (e.days_remaining, e.driver_id))
    return entries


def compliance_score(
    drivers: Sequence[Driver],
    today: date,
    window_days: int = DEFAULT_COMPLIANCE_WINDOW_DAYS,
) -> float:
    """Share of drivers whose licence runs past today + window."""
    horizon = today + timedelta(days=window_days)
    compliant = sum(1 for d in drivers if d.license_expiry > horizon)
    return _percent(compliant, len(drivers))


def compliance_summary(
    drivers: Sequence[Driver],
    today: date,
    window_days: int = DEFAULT_COMPLIANCE_WINDOW_DAYS,
) -> ComplianceSummary:
    entries = compliance_entries(drivers, today, window_days)
    return ComplianceSummary(
        total_drivers=len(entries),
        expired=sum(1 for e in entries if e.bucket == ExpiryBucket.EXPIRED),
        expiring_soon=sum(1 for e in entries if e.bucket == ExpiryBucket.EXPIRING_SOON),
        compliant=sum(1 for e in entries if e.bucket == ExpiryBucket.COMPLIANT),
        compliance_score=compliance_score(drivers, today, window_days),
    )


def compliance_report(
    drivers: Sequence[Driver],
    today: date,
    window_days: int = DEFAULT_COMPLIANCE_WINDOW_DAYS,
) -> ComplianceReport:
    return ComplianceReport(
        summary=compliance_summary(drivers, today, window_days),
        drivers=compliance_entries(drivers, today, window_days),
    )


def fleet_kpis(vehicles: Sequence[Vehicle], trips: Iterable[Trip]) -> FleetKpis:
    return FleetKpis(
        active_fleet_count=sum(1 for v in vehicles if v.status == VehicleStatus.ON_TRIP),
        maintenance_alert_count=sum(1 for v in vehicles if v.status == VehicleStatus.IN_SHOP),
        pending_trip_count=sum(1 for t in trips if t.status == TripStatus.DRAFT),
        total_vehicles=len(vehicles),
    )


def financial_totals(trips: Iterable[Trip], expenses: Iterable[Expense]) -> FinancialTotals:
    revenue = completed_revenue(trips)
    cost = sum(e.amount for e in expenses)
    return FinancialTotals(total_revenue=revenue, total_cost=cost, net_profit=revenue - cost)


def expense_totals(vehicles: Iterable[Vehicle], expenses: Sequence[Expense]) -> List[VehicleExpenseTotal]:
    """Per-vehicle cost, vehicles without expenses left out, highest first."""
    totals = []
    for vehicle in vehicles:
        total = sum(e.amount for e in expenses if e.vehicle_id == vehicle.id)
        if total > 0:
            totals.append(VehicleExpenseTotal(vehicle_id=vehicle.id, name=vehicle.name, total=total))
    totals.sort(key=lambda t: (-t.total, t.vehicle_id))
    return totals


def safety_summary(drivers: Sequence[Driver], provider: SafetyScoreProvider) -> SafetySummary:
    scores = collect_scores(drivers, provider)
    values = list(scores.values())
    return SafetySummary(
        scored_drivers=len(values),
        average_score=round(sum(values) / len(values), 2) if values else None,
        high_risk_count=sum(1 for v in values if v < HIGH_RISK_BELOW),
        safe_count=sum(1 for v in values if v >= SAFE_AT_OR_ABOVE),
    )
