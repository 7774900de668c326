"""
Reliability Utilities.

Store-call guard (timeouts and lost connections become typed, retryable
infrastructure errors) and a Circuit Breaker for best-effort side channels.
"""

import asyncio
import time
from typing import Awaitable, Callable, Any, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

from fleetops.app.core.exceptions import StoreTimeoutError, StoreUnavailableError

T = TypeVar("T")


async def run_store_call(operation: str, call: Awaitable[T], timeout_seconds: float) -> T:
    """
    Await a store call with a timeout.

    Raises:
        StoreTimeoutError: call did not finish in time
        StoreUnavailableError: connection refused, dropped or invalidated
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise StoreTimeoutError(operation, timeout_seconds) from exc
    except (OperationalError, InterfaceError) as exc:
        raise StoreUnavailableError(operation, str(exc.orig or exc)) from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise StoreUnavailableError(operation, str(exc.orig or exc)) from exc
        raise
    except (ConnectionError, OSError) as exc:
        raise StoreUnavailableError(operation, str(exc)) from exc


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' failures occur within 'reset_timeout',
    the circuit opens and rejects calls for 'reset_timeout' seconds.
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.monotonic() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        if self.state == "HALF_OPEN":
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.monotonic()
        if self.failures >= self.failure_threshold:
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"
