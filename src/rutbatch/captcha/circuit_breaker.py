"""Circuit breaker guarding submissions to the solving service.

When the solving service is down or out of funds, every worker would otherwise
keep submitting challenges and wait for the same failure. The breaker counts
failed submissions and, once a threshold is crossed, rejects new submissions
immediately until a recovery period has passed.

States:
- CLOSED: submissions pass through
- OPEN: submissions are rejected with CircuitBreakerOpen
- HALF_OPEN: a limited number of trial submissions decide whether to close
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..config.logger import logger

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Thresholds of the breaker. recovery_timeout is in seconds."""
    failure_threshold: int = 5
    max_consecutive_failures: int = 3
    recovery_timeout: float = 60.0
    success_threshold: int = 2


class CircuitBreakerOpen(Exception):
    """Raised when a call is attempted through an open breaker."""


class CircuitBreaker:
    """Counts failures of an async callable and short-circuits when unhealthy."""

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._consecutive_failures = 0
        self._half_open_successes = 0
        self._opened_at: Optional[float] = None
        self.logger = logger.bind(circuit_breaker=name)

    @property
    def state(self) -> CircuitState:
        return self._state

    def is_open(self) -> bool:
        return self._state is CircuitState.OPEN

    def is_closed(self) -> bool:
        return self._state is CircuitState.CLOSED

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        if new_state is CircuitState.CLOSED:
            self._failures = 0
            self._consecutive_failures = 0
            self._opened_at = None
        elif new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state is CircuitState.HALF_OPEN:
            self._half_open_successes = 0

        self.logger.info(
            "circuit_breaker_state_change",
            old_state=old_state.value,
            new_state=new_state.value,
        )

    async def _before_call(self) -> None:
        async with self._lock:
            if self._state is not CircuitState.OPEN:
                return
            elapsed = self._clock() - (self._opened_at or 0.0)
            if elapsed >= self.config.recovery_timeout:
                self._transition_to(CircuitState.HALF_OPEN)
                return
            raise CircuitBreakerOpen(
                f"Circuit breaker '{self.name}' is open "
                f"(retry in {self.config.recovery_timeout - elapsed:.1f}s)"
            )

    async def record_success(self) -> None:
        async with self._lock:
            self._consecutive_failures = 0
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)

    async def record_failure(self) -> None:
        async with self._lock:
            self._failures += 1
            self._consecutive_failures += 1
            if self._state is CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif self._state is CircuitState.CLOSED and (
                self._failures >= self.config.failure_threshold
                or self._consecutive_failures >= self.config.max_consecutive_failures
            ):
                self._transition_to(CircuitState.OPEN)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` unless the breaker is open.

        Any exception raised by ``func`` counts as a failure and is re-raised.

        Raises:
            CircuitBreakerOpen: If the breaker is open and not due for a trial.
        """
        await self._before_call()
        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception:
            await self.record_failure()
            raise
        await self.record_success()
        return result

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failures,
            "consecutive_failures": self._consecutive_failures,
            "half_open_successes": self._half_open_successes,
        }
