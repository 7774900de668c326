"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from fleetops.app.api.v1.endpoints import analytics, drivers, expenses, trips, vehicles

router = APIRouter()

router.include_router(vehicles.router)
router.include_router(drivers.router)
router.include_router(trips.router)
router.include_router(expenses.router)
router.include_router(analytics.router)
