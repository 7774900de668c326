"""
Coordination layer tests over the in-memory store.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from fleetops.app.core.config import Settings
from fleetops.app.core.exceptions import (
    CapacityExceededError,
    DriverIneligibleError,
    DuplicateValueError,
    IllegalTransitionError,
    IllegalVehicleTransitionError,
    InvalidRequestError,
    OdometerRegressionError,
    ResourceNotFoundError,
    VehicleRetiredError,
    VehicleUnavailableError,
)
from fleetops.app.db.store import ChangeKind, EntityType
from fleetops.app.domain.fleet.safety import StaticSafetyProvider
from fleetops.app.models.fleet_enums import (
    DriverStatus, ExpenseType, TripStatus, VehicleStatus
)
from fleetops.app.services.fleet_coordinator import FleetCoordinator

NOW = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


# --- Trip creation ---

@pytest.mark.asyncio
async def test_trip_at_full_capacity_is_created_as_draft(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle(max_load=20000)
    driver = await make_driver(license_expiry=TODAY + timedelta(days=10))

    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=20000, revenue=1000)

    assert trip.status == TripStatus.DRAFT
    assert trip.cargo_weight == 20000
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.AVAILABLE


@pytest.mark.asyncio
async def test_trip_over_capacity_is_rejected_and_nothing_written(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle(max_load=20000)
    driver = await make_driver()

    with pytest.raises(CapacityExceededError) as exc_info:
        await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=20001, revenue=1000)

    assert exc_info.value.details["cargo_weight"] == 20001
    assert exc_info.value.details["max_load"] == 20000
    assert await coordinator.list_trips() == []
    assert (await coordinator.get_vehicle(vehicle.id)).version == vehicle.version


@pytest.mark.asyncio
async def test_driver_with_licence_expiring_today_is_rejected(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver(license_expiry=TODAY)

    with pytest.raises(DriverIneligibleError):
        await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=100)


@pytest.mark.asyncio
async def test_off_duty_driver_is_rejected(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver(status="Off Duty")

    with pytest.raises(DriverIneligibleError):
        await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=100)


@pytest.mark.asyncio
async def test_open_trip_holds_its_vehicle(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    first = await make_driver()
    second = await make_driver(name="Robin")
    await coordinator.create_trip(vehicle.id, first.id, cargo_weight=100)

    with pytest.raises(VehicleUnavailableError):
        await coordinator.create_trip(vehicle.id, second.id, cargo_weight=100)


@pytest.mark.asyncio
async def test_unknown_vehicle_is_not_found(coordinator, make_driver):
    driver = await make_driver()

    with pytest.raises(ResourceNotFoundError):
        await coordinator.create_trip(999, driver.id, cargo_weight=100)


# --- Trip lifecycle ---

@pytest.mark.asyncio
async def test_dispatch_then_complete_round_trip(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500, revenue=1200)

    dispatched = await coordinator.transition_trip(trip.id, "Dispatched")
    assert dispatched.status == TripStatus.DISPATCHED
    assert dispatched.dispatched_at == NOW
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.ON_TRIP

    completed = await coordinator.transition_trip(trip.id, TripStatus.COMPLETED)
    assert completed.status == TripStatus.COMPLETED
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.AVAILABLE


@pytest.mark.asyncio
async def test_cancel_after_dispatch_frees_vehicle(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500)
    await coordinator.transition_trip(trip.id, "Dispatched")

    await coordinator.transition_trip(trip.id, "Cancelled")

    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.AVAILABLE
    again = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500)
    assert again.status == TripStatus.DRAFT


@pytest.mark.asyncio
async def test_cancel_draft_releases_hold(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500)

    cancelled = await coordinator.transition_trip(trip.id, "Cancelled")

    assert cancelled.status == TripStatus.CANCELLED
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.AVAILABLE
    await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500)


@pytest.mark.asyncio
async def test_completed_trip_is_terminal(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500)
    await coordinator.transition_trip(trip.id, "Dispatched")
    await coordinator.transition_trip(trip.id, "Completed")

    with pytest.raises(IllegalTransitionError):
        await coordinator.transition_trip(trip.id, "Cancelled")
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.AVAILABLE


@pytest.mark.asyncio
async def test_draft_cannot_jump_to_completed(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500)

    with pytest.raises(IllegalTransitionError):
        await coordinator.transition_trip(trip.id, "Completed")


@pytest.mark.asyncio
async def test_unknown_target_status_is_illegal(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500)

    with pytest.raises(IllegalTransitionError) as exc_info:
        await coordinator.transition_trip(trip.id, "Teleported")

    assert exc_info.value.details["requested_status"] == "Teleported"


@pytest.mark.asyncio
async def test_dispatch_rechecks_driver(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500)
    await coordinator.update_driver_status(driver.id, DriverStatus.SUSPENDED)

    with pytest.raises(DriverIneligibleError):
        await coordinator.transition_trip(trip.id, "Dispatched")

    assert (await coordinator.get_trip(trip.id)).status == TripStatus.DRAFT
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.AVAILABLE


@pytest.mark.asyncio
async def test_dispatch_rechecks_licence_against_clock(coordinator, clock, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver(license_expiry=TODAY + timedelta(days=2))
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=500)
    clock.advance(timedelta(days=2))

    with pytest.raises(DriverIneligibleError):
        await coordinator.transition_trip(trip.id, "Dispatched")


@pytest.mark.asyncio
async def test_driver_cannot_be_dispatched_twice(coordinator, make_vehicle, make_driver):
    first_vehicle = await make_vehicle()
    second_vehicle = await make_vehicle()
    driver = await make_driver()
    first = await coordinator.create_trip(first_vehicle.id, driver.id, cargo_weight=100)
    second = await coordinator.create_trip(second_vehicle.id, driver.id, cargo_weight=100)
    await coordinator.transition_trip(first.id, "Dispatched")

    with pytest.raises(DriverIneligibleError) as exc_info:
        await coordinator.transition_trip(second.id, "Dispatched")

    assert str(first.id) in exc_info.value.details["reason"]
    assert (await coordinator.get_vehicle(second_vehicle.id)).status == VehicleStatus.AVAILABLE


@pytest.mark.asyncio
async def test_double_booking_allowed_when_disabled(memory_store, clock, make_vehicle, make_driver):
    lenient = FleetCoordinator(
        memory_store, clock=clock, settings=Settings(prevent_driver_double_booking=False)
    )
    driver = await make_driver()
    trips = []
    for _ in range(2):
        vehicle = await make_vehicle()
        trips.append(await lenient.create_trip(vehicle.id, driver.id, cargo_weight=100))

    for trip in trips:
        assert (await lenient.transition_trip(trip.id, "Dispatched")).status == TripStatus.DISPATCHED


# --- Maintenance ---

@pytest.mark.asyncio
async def test_maintenance_puts_vehicle_in_shop(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()

    expense = await coordinator.log_maintenance(vehicle.id, 500, expense_date=TODAY)

    assert expense.type == ExpenseType.MAINTENANCE
    assert expense.amount == 500
    assert expense.created_at == TODAY
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.IN_SHOP
    with pytest.raises(VehicleUnavailableError):
        await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=100)


@pytest.mark.asyncio
async def test_maintenance_date_defaults_to_today(coordinator, make_vehicle):
    vehicle = await make_vehicle()

    expense = await coordinator.log_maintenance(vehicle.id, 80)

    assert expense.created_at == TODAY


@pytest.mark.asyncio
async def test_maintenance_on_vehicle_in_shop_keeps_status(coordinator, make_vehicle):
    vehicle = await make_vehicle()
    await coordinator.log_maintenance(vehicle.id, 500)

    await coordinator.log_maintenance(vehicle.id, 250)

    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.IN_SHOP
    assert len(await coordinator.list_expenses(vehicle_id=vehicle.id)) == 2


@pytest.mark.asyncio
async def test_maintenance_on_trip_is_rejected(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=100)
    await coordinator.transition_trip(trip.id, "Dispatched")

    with pytest.raises(IllegalVehicleTransitionError):
        await coordinator.log_maintenance(vehicle.id, 500)

    assert await coordinator.list_expenses(vehicle_id=vehicle.id) == []


@pytest.mark.asyncio
async def test_complete_maintenance_is_idempotent(coordinator, make_vehicle):
    vehicle = await make_vehicle()
    await coordinator.log_maintenance(vehicle.id, 500)

    first = await coordinator.complete_maintenance(vehicle.id)
    second = await coordinator.complete_maintenance(vehicle.id)

    assert first.status == VehicleStatus.AVAILABLE
    assert second.status == VehicleStatus.AVAILABLE
    assert second.version == first.version


# --- Retirement ---

@pytest.mark.asyncio
async def test_retired_vehicle_accepts_nothing(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()

    retired = await coordinator.retire_vehicle(vehicle.id)
    again = await coordinator.retire_vehicle(vehicle.id)

    assert retired.status == again.status == VehicleStatus.RETIRED
    with pytest.raises(VehicleUnavailableError):
        await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=100)
    with pytest.raises(VehicleRetiredError):
        await coordinator.log_maintenance(vehicle.id, 100)
    with pytest.raises(VehicleRetiredError):
        await coordinator.log_fuel(vehicle.id, liters=10, price_per_liter=2)
    with pytest.raises(IllegalVehicleTransitionError):
        await coordinator.complete_maintenance(vehicle.id)


@pytest.mark.asyncio
async def test_vehicle_retired_mid_trip_stays_retired(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=100, revenue=400)
    await coordinator.transition_trip(trip.id, "Dispatched")
    await coordinator.retire_vehicle(vehicle.id)

    completed = await coordinator.transition_trip(trip.id, "Completed")

    assert completed.status == TripStatus.COMPLETED
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.RETIRED


# --- Fuel, odometer, registration ---

@pytest.mark.asyncio
async def test_fuel_amount_and_status_untouched(coordinator, make_vehicle):
    vehicle = await make_vehicle()

    expense = await coordinator.log_fuel(vehicle.id, liters=50, price_per_liter=1.8)

    assert expense.type == ExpenseType.FUEL
    assert expense.amount == 90.0
    assert expense.liters == 50
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.AVAILABLE


@pytest.mark.asyncio
async def test_odometer_is_monotonic(coordinator, make_vehicle):
    vehicle = await make_vehicle(odometer=1000)

    updated = await coordinator.record_odometer(vehicle.id, 1250)
    with pytest.raises(OdometerRegressionError):
        await coordinator.record_odometer(vehicle.id, 1200)

    assert updated.odometer == 1250
    assert (await coordinator.get_vehicle(vehicle.id)).odometer == 1250


@pytest.mark.asyncio
async def test_plate_must_be_unique(make_vehicle):
    await make_vehicle(plate="DUP-1")

    with pytest.raises(DuplicateValueError):
        await make_vehicle(plate="DUP-1")


@pytest.mark.asyncio
async def test_list_vehicles_filters(coordinator, make_vehicle):
    await make_vehicle(name="Volvo FH16", plate="VOL-1")
    van = await make_vehicle(name="Ford Transit", plate="VAN-9", type="Van", max_load=1200)
    shop = await make_vehicle(name="Scania R", plate="SCA-2")
    await coordinator.log_maintenance(shop.id, 300)

    assert [v.id for v in await coordinator.list_vehicles(search="transit")] == [van.id]
    assert [v.id for v in await coordinator.list_vehicles(search="sca-")] == [shop.id]
    assert [v.id for v in await coordinator.list_vehicles(status="In Shop")] == [shop.id]
    assert [v.id for v in await coordinator.list_vehicles(vehicle_type="Van")] == [van.id]


# --- Argument validation ---

@pytest.mark.asyncio
async def test_zero_cargo_is_a_typed_rejection(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()

    with pytest.raises(InvalidRequestError) as exc_info:
        await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=0)

    assert exc_info.value.status_code == 400
    assert exc_info.value.details["action"] == "create_trip"
    assert [e["field"] for e in exc_info.value.details["errors"]] == ["cargo_weight"]
    assert await coordinator.list_trips() == []


@pytest.mark.asyncio
async def test_negative_maintenance_amount_is_a_typed_rejection(coordinator, make_vehicle):
    vehicle = await make_vehicle()

    with pytest.raises(InvalidRequestError):
        await coordinator.log_maintenance(vehicle.id, amount=-5)

    assert await coordinator.list_expenses() == []
    assert (await coordinator.get_vehicle(vehicle.id)).status == VehicleStatus.AVAILABLE


@pytest.mark.asyncio
async def test_invalid_fuel_odometer_and_status_arguments(coordinator, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()

    with pytest.raises(InvalidRequestError):
        await coordinator.log_fuel(vehicle.id, liters=-1, price_per_liter=1.5)
    with pytest.raises(InvalidRequestError):
        await coordinator.record_odometer(vehicle.id, -10)
    with pytest.raises(InvalidRequestError) as exc_info:
        await coordinator.update_driver_status(driver.id, "Asleep")

    assert exc_info.value.kind == "InvalidRequest"


# --- Aggregations ---

@pytest.mark.asyncio
async def test_fleet_metrics_snapshot(memory_store, clock, test_settings, make_vehicle, make_driver):
    coordinator = FleetCoordinator(
        memory_store, clock=clock, settings=test_settings,
        safety_provider=StaticSafetyProvider({1: 90})
    )
    earner = await make_vehicle(acquisition_cost=10000)
    busy = await make_vehicle()
    shop = await make_vehicle()
    retired = await make_vehicle()
    driver = await make_driver(license_expiry=TODAY + timedelta(days=60))
    await make_driver(name="Kim", license_expiry=TODAY + timedelta(days=5))

    done = await coordinator.create_trip(earner.id, driver.id, cargo_weight=100, revenue=3000)
    await coordinator.transition_trip(done.id, "Dispatched")
    await coordinator.transition_trip(done.id, "Completed")
    await coordinator.log_fuel(earner.id, liters=100, price_per_liter=5)
    live = await coordinator.create_trip(busy.id, driver.id, cargo_weight=100, revenue=800)
    await coordinator.transition_trip(live.id, "Dispatched")
    await coordinator.log_maintenance(shop.id, 700)
    await coordinator.retire_vehicle(retired.id)

    snapshot = await coordinator.compute_fleet_metrics()

    assert [r.vehicle_id for r in snapshot.roi] == [earner.id, busy.id, shop.id, retired.id]
    assert snapshot.roi[0].roi == 25.0
    assert snapshot.utilization_rate == pytest.approx(33.33)
    assert snapshot.compliance_score == 50.0
    assert snapshot.kpis.active_fleet_count == 1
    assert snapshot.kpis.maintenance_alert_count == 1
    assert snapshot.financials.total_revenue == 3000
    assert snapshot.financials.total_cost == 1200
    assert [t.vehicle_id for t in snapshot.expense_totals] == [shop.id, earner.id]
    assert snapshot.compliance.expiring_soon == 1
    assert snapshot.safety.scored_drivers == 1
    assert snapshot.computed_at == NOW


@pytest.mark.asyncio
async def test_compliance_report_orders_by_urgency(coordinator, make_driver):
    later = await make_driver(license_expiry=TODAY + timedelta(days=90))
    soon = await make_driver(license_expiry=TODAY + timedelta(days=3))

    report = await coordinator.compliance_report()

    assert [e.driver_id for e in report.drivers] == [soon.id, later.id]


# --- Change events ---

@pytest.mark.asyncio
async def test_committed_writes_are_announced(coordinator, change_feed, make_vehicle, make_driver):
    vehicle = await make_vehicle()
    driver = await make_driver()
    subscription = change_feed.subscribe()

    trip = await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=100)

    received = [await asyncio.wait_for(subscription.__anext__(), timeout=1) for _ in range(2)]
    await subscription.aclose()
    assert {(e.entity_type, e.entity_id, e.change_kind) for e in received} == {
        (EntityType.VEHICLE, vehicle.id, ChangeKind.UPDATED),
        (EntityType.TRIP, trip.id, ChangeKind.CREATED),
    }
    assert all(e.vehicle_id == vehicle.id for e in received)


@pytest.mark.asyncio
async def test_rejected_action_announces_nothing(coordinator, change_feed, make_vehicle, make_driver):
    vehicle = await make_vehicle(max_load=100)
    driver = await make_driver()
    subscription = change_feed.subscribe()

    with pytest.raises(CapacityExceededError):
        await coordinator.create_trip(vehicle.id, driver.id, cargo_weight=101)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(subscription.__anext__(), timeout=0.05)
    await subscription.aclose()
