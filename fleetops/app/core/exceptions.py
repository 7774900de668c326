"""
Custom exceptions and error handlers for consistent error responses.

Every business-rule violation is a typed exception carrying the offending
values in ``details``. Three families are kept apart so callers can react
differently:

- ``FleetValidationError``: caller-correctable rejections (400).
- ``ConflictError``: a concurrent write invalidated the caller's snapshot (409),
  safe to refetch and retry.
- ``InfrastructureError``: the durable store is unreachable or timed out (503).
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("fleetops.errors")


class AppException(Exception):
    """Base application exception."""

    category = "AppError"
    kind = "AppError"
    retryable = False

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    kind = "NotFound"

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


# Validation family

class FleetValidationError(AppException):
    """A proposed action breaks a business rule against current fleet state."""

    category = "ValidationError"

    def __init__(self, message: str, error_code: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class CapacityExceededError(FleetValidationError):
    """Cargo weight is above the vehicle's max load."""

    kind = "CapacityExceeded"

    def __init__(self, cargo_weight: float, max_load: float, vehicle_id: Optional[int] = None):
        self.cargo_weight = cargo_weight
        self.max_load = max_load
        super().__init__(
            message=f"Cargo weight ({cargo_weight:g}kg) exceeds vehicle max load ({max_load:g}kg)",
            error_code="ERR_CAPACITY_EXCEEDED",
            details={"vehicle_id": vehicle_id, "cargo_weight": cargo_weight, "max_load": max_load}
        )


class VehicleUnavailableError(FleetValidationError):
    """Vehicle cannot take a new trip."""

    kind = "VehicleUnavailable"

    def __init__(self, vehicle_id: int, vehicle_status: str, reason: Optional[str] = None):
        message = f"Vehicle {vehicle_id} is not available (status: {vehicle_status})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            error_code="ERR_VEHICLE_UNAVAILABLE",
            details={"vehicle_id": vehicle_id, "status": vehicle_status, "reason": reason}
        )


class DriverIneligibleError(FleetValidationError):
    """Driver is off duty, suspended, unlicensed or already dispatched."""

    kind = "DriverIneligible"

    def __init__(self, driver_id: int, driver_status: str, license_expiry: date, reason: str):
        super().__init__(
            message=f"Driver {driver_id} is not eligible for assignment: {reason}",
            error_code="ERR_DRIVER_INELIGIBLE",
            details={
                "driver_id": driver_id,
                "status": driver_status,
                "license_expiry": license_expiry.isoformat(),
                "reason": reason,
            }
        )


class VehicleRetiredError(FleetValidationError):
    """Vehicle is retired and accepts no further activity."""

    kind = "VehicleRetired"

    def __init__(self, vehicle_id: int):
        super().__init__(
            message=f"Vehicle {vehicle_id} is retired",
            error_code="ERR_VEHICLE_RETIRED",
            details={"vehicle_id": vehicle_id}
        )


class IllegalTransitionError(FleetValidationError):
    """Requested trip status change is not an edge of the trip lifecycle."""

    kind = "IllegalTransition"

    def __init__(self, trip_id: Optional[int], current_status: str, requested_status: str):
        super().__init__(
            message=f"Trip {trip_id} cannot move from {current_status} to {requested_status}",
            error_code="ERR_ILLEGAL_TRANSITION",
            details={"trip_id": trip_id, "current_status": current_status, "requested_status": requested_status}
        )


class IllegalVehicleTransitionError(FleetValidationError):
    """Vehicle status change is not allowed from its current status."""

    kind = "IllegalVehicleTransition"

    def __init__(self, vehicle_id: Optional[int], current_status: str, trigger: str):
        super().__init__(
            message=f"Vehicle {vehicle_id} cannot apply '{trigger}' while {current_status}",
            error_code="ERR_ILLEGAL_VEHICLE_TRANSITION",
            details={"vehicle_id": vehicle_id, "current_status": current_status, "trigger": trigger}
        )


class OdometerRegressionError(FleetValidationError):
    """Odometer readings never go backwards."""

    kind = "OdometerRegression"

    def __init__(self, vehicle_id: int, current_reading: float, new_reading: float):
        super().__init__(
            message=f"Odometer for vehicle {vehicle_id} cannot go from {current_reading:g}km to {new_reading:g}km",
            error_code="ERR_ODOMETER_REGRESSION",
            details={"vehicle_id": vehicle_id, "current_reading": current_reading, "new_reading": new_reading}
        )


class DuplicateValueError(FleetValidationError):
    """A unique field already holds this value."""

    kind = "DuplicateValue"

    def __init__(self, resource: str, field: str, value: Any):
        super().__init__(
            message=f"{resource} with {field} '{value}' already exists",
            error_code="ERR_DUPLICATE_VALUE",
            details={"resource": resource, "field": field, "value": value}
        )


class InvalidRequestError(FleetValidationError):
    """Call arguments failed field validation before any rule ran."""

    kind = "InvalidRequest"

    def __init__(self, action: str, errors: List[Dict[str, Any]]):
        problems = [
            {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg")}
            for error in errors
        ]
        fields = ", ".join(problem["field"] for problem in problems)
        super().__init__(
            message=f"Invalid arguments for {action}: {fields}",
            error_code="ERR_INVALID_REQUEST",
            details={"action": action, "errors": problems}
        )


# Conflict family

class ConflictError(AppException):
    """The caller's snapshot went stale before the write landed."""

    category = "ConflictError"
    retryable = True


class PreconditionFailedError(ConflictError):
    """Conditional write rejected because the row changed underneath it."""

    kind = "PreconditionFailed"

    def __init__(self, entity_type: str, entity_id: int, expected: Dict[str, Any] = None):
        super().__init__(
            message=f"{entity_type} {entity_id} was modified concurrently; refetch and retry",
            error_code="ERR_PRECONDITION_FAILED",
            status_code=status.HTTP_409_CONFLICT,
            details={"entity_type": entity_type, "entity_id": entity_id, "expected": expected or {}}
        )


# Infrastructure family

class InfrastructureError(AppException):
    """The durable store could not complete the call."""

    category = "InfrastructureError"
    retryable = True

    def __init__(self, message: str, error_code: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details
        )


class StoreUnavailableError(InfrastructureError):
    kind = "StoreUnavailable"

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Store unavailable during {operation}",
            error_code="ERR_STORE_UNAVAILABLE",
            details={"operation": operation, "reason": reason}
        )


class StoreTimeoutError(InfrastructureError):
    kind = "StoreTimeout"

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            message=f"Store call {operation} timed out after {timeout_seconds:g}s",
            error_code="ERR_STORE_TIMEOUT",
            details={"operation": operation, "timeout_seconds": timeout_seconds}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "kind": exc.kind,
            "category": exc.category,
            "retryable": exc.retryable,
            "details": jsonable_encoder(exc.details)
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception", extra={"path": request.url.path, "error_type": type(exc).__name__})

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
