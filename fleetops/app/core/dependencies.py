"""
Dependencies for FastAPI routes.

The coordinator is built once in the application lifespan and shared by all
requests through ``app.state``.
"""

from fastapi import Request

from fleetops.app.services.fleet_coordinator import FleetCoordinator


def get_coordinator(request: Request) -> FleetCoordinator:
    """FastAPI dependency returning the application's FleetCoordinator."""
    return request.app.state.coordinator
