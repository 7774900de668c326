import time
import subprocess
import httpx
import sys
import os
import signal

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
PLATE = "PERSIST-001"


def start_server():
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "fleetops.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env={**os.environ, "STORE_BACKEND": "sql"}
    )


def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.ConnectError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def find_vehicle():
    resp = httpx.get(f"{BASE_URL}{API_PREFIX}/vehicles", params={"search": PLATE})
    resp.raise_for_status()
    matches = [v for v in resp.json()["vehicles"] if v["plate"] == PLATE]
    return matches[0] if matches else None


def run_verification():
    # 1. Start Server (First Run)
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server()

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stderr:", server_logs[1].decode())
            raise RuntimeError("Server start failed")

        # 2. Register a vehicle and send it to the shop
        print("\n--- [Step 2] Registering Vehicle (Persistence Test) ---")
        vehicle = find_vehicle()
        if vehicle is not None:
            print("⚠️ Vehicle already exists (persistence working from previous run?)")
        else:
            resp = httpx.post(f"{BASE_URL}{API_PREFIX}/vehicles", json={
                "name": "Persistence Truck", "plate": PLATE, "max_load": 5000, "acquisition_cost": 40000
            })
            if resp.status_code != 201:
                print(f"❌ Registration Failed: {resp.status_code} {resp.text}")
                raise RuntimeError("Registration failed")
            vehicle = resp.json()
            print("✅ Vehicle Registered Successfully")

        if vehicle["status"] != "Retired":
            resp = httpx.post(f"{BASE_URL}{API_PREFIX}/expenses/maintenance", json={
                "vehicle_id": vehicle["id"], "amount": 120, "description": "Persistence check"
            })
            if resp.status_code != 201:
                print(f"⚠️ Maintenance not logged: {resp.status_code} {resp.text}")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    # 3. Restart Server
    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = start_server()

    try:
        if not wait_for_server():
            raise RuntimeError("Server restart failed")

        # 4. Vehicle, status and expense survived the restart
        print("\n--- [Step 5] Reading Vehicle (Post-Restart) ---")
        vehicle = find_vehicle()
        if vehicle is None:
            print("❌ Vehicle missing after restart (Persistence Issue?)")
            raise RuntimeError("Vehicle lost after restart")
        print(f"✅ Vehicle Persisted: status={vehicle['status']} version={vehicle['version']}")

        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/expenses", params={"vehicle_id": vehicle["id"]})
        if resp.status_code == 200 and resp.json()["total"] > 0:
            print(f"✅ {resp.json()['total']} expense(s) persisted")
        else:
            print(f"❌ Expense Check Failed: {resp.status_code}")

    finally:
        print("\n--- [Step 6] Stopping Server ---")
        stop_server(proc2)


if __name__ == "__main__":
    run_verification()
