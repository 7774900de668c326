"""
Pre-Deploy and Smoke Test Script.

Runs against a live deployment and walks one vehicle through the whole rule
set:
1. Health Check
2. Register vehicle and driver
3. Capacity rejection, then Draft -> Dispatched -> Completed
4. Maintenance round trip and fleet analytics

Usage: FLEETOPS_URL=http://127.0.0.1:8000 python scripts/validate_deployment.py
"""

import os
import sys
import uuid
from datetime import date, timedelta

import httpx

BASE_URL = os.getenv("FLEETOPS_URL", "http://127.0.0.1:8000")
API_PREFIX = "/v1"


def print_step(step, msg):
    print(f"[{step}] {msg}")


def fail(msg):
    print(f"❌ FAILURE: {msg}")
    sys.exit(1)


def success(msg):
    print(f"✅ {msg}")


def expect(response: httpx.Response, status_code: int, what: str) -> dict:
    if response.status_code != status_code:
        fail(f"{what}: expected {status_code}, got {response.status_code} {response.text}")
    return response.json()


def vehicle_status(client: httpx.Client, vehicle_id: int) -> str:
    return expect(client.get(f"{API_PREFIX}/vehicles/{vehicle_id}"), 200, "Fetch vehicle")["status"]


def main():
    print("🚀 Starting Deployment Validation...")
    run_id = uuid.uuid4().hex[:6].upper()

    with httpx.Client(base_url=BASE_URL, timeout=10) as client:
        # 1. Health Check
        print_step("PRE-DEPLOY", "Checking /health...")
        try:
            health = expect(client.get("/health"), 200, "Health check")
        except httpx.HTTPError as e:
            fail(f"Health check died: {e}")
        success(f"Healthy ({health['store_backend']} store)")

        # 2. Registration
        print_step("SETUP", "Registering smoke-test vehicle and driver...")
        vehicle = expect(client.post(f"{API_PREFIX}/vehicles", json={
            "name": f"Smoke Truck {run_id}",
            "plate": f"SMK-{run_id}",
            "max_load": 1000,
            "acquisition_cost": 50000,
        }), 201, "Register vehicle")
        driver = expect(client.post(f"{API_PREFIX}/drivers", json={
            "name": f"Smoke Driver {run_id}",
            "license_expiry": (date.today() + timedelta(days=365)).isoformat(),
        }), 201, "Register driver")
        success(f"Vehicle {vehicle['id']} and driver {driver['id']} registered")

        # 3. Trip flow
        print_step("SMOKE", "Running Trip Draft -> Dispatched -> Completed...")
        rejected = expect(client.post(f"{API_PREFIX}/trips", json={
            "vehicle_id": vehicle["id"], "driver_id": driver["id"], "cargo_weight": 1001,
        }), 400, "Overweight trip")
        if rejected["error_code"] != "ERR_CAPACITY_EXCEEDED":
            fail(f"Unexpected rejection: {rejected}")
        success("Overweight trip rejected")

        trip = expect(client.post(f"{API_PREFIX}/trips", json={
            "vehicle_id": vehicle["id"], "driver_id": driver["id"], "cargo_weight": 1000, "revenue": 750,
        }), 201, "Create trip")
        expect(client.patch(f"{API_PREFIX}/trips/{trip['id']}/status", json={"status": "Dispatched"}),
               200, "Dispatch trip")
        if vehicle_status(client, vehicle["id"]) != "On Trip":
            fail("Vehicle not On Trip after dispatch")
        expect(client.patch(f"{API_PREFIX}/trips/{trip['id']}/status", json={"status": "Completed"}),
               200, "Complete trip")
        if vehicle_status(client, vehicle["id"]) != "Available":
            fail("Vehicle not released after completion")
        success(f"Trip {trip['id']} completed, vehicle released")

        # 4. Maintenance and analytics
        print_step("SMOKE", "Maintenance round trip...")
        expect(client.post(f"{API_PREFIX}/expenses/maintenance", json={
            "vehicle_id": vehicle["id"], "amount": 250, "description": "Smoke test inspection",
        }), 201, "Log maintenance")
        if vehicle_status(client, vehicle["id"]) != "In Shop":
            fail("Vehicle not In Shop after maintenance")
        expect(client.post(f"{API_PREFIX}/vehicles/{vehicle['id']}/maintenance/complete"),
               200, "Complete maintenance")

        roi = expect(client.get(f"{API_PREFIX}/analytics/vehicles/{vehicle['id']}/roi"), 200, "Vehicle ROI")
        if roi["roi"] != 1.0:
            fail(f"Unexpected ROI {roi}")
        metrics = expect(client.get(f"{API_PREFIX}/analytics/fleet"), 200, "Fleet metrics")
        success(f"Fleet metrics: utilization {metrics['utilization_rate']}%, "
                f"compliance {metrics['compliance_score']}%")

        # Leave nothing dispatchable behind
        expect(client.post(f"{API_PREFIX}/vehicles/{vehicle['id']}/retire"), 200, "Retire smoke vehicle")

    success("Deployment Validation Passed!")


if __name__ == "__main__":
    main()
