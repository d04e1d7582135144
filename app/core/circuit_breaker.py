"""Async circuit breaker guarding a single downstream dependency.

State transitions:
- CLOSED → OPEN: after ``failure_threshold`` consecutive failures
- OPEN → HALF_OPEN: lazily, once ``half_open_after_ms`` has elapsed
  (on the next ``state`` query or ``execute`` call)
- HALF_OPEN → CLOSED: on a successful probe (failure counter reset)
- HALF_OPEN → OPEN: on a failed probe, regardless of the threshold

Bookkeeping happens between awaits, so on a single event loop every
transition is atomic. The breaker imposes no timeout of its own; wrap the
awaited call in ``asyncio.wait_for`` when guarding network I/O.

Usage:
    breaker = CircuitBreaker("ml-classifier", failure_threshold=3, half_open_after_ms=30_000)
    result = await breaker.execute(lambda: client.classify(payload))
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from app.core.logging import get_logger, log_with_context

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Calls short-circuited
    HALF_OPEN = "half-open"  # One probe permitted


class CircuitOpenError(RuntimeError):
    """Raised by ``execute`` when the circuit is open and cooling down."""

    def __init__(self, name: str, retry_after_ms: float):
        self.name = name
        self.retry_after_ms = retry_after_ms
        super().__init__(f"Circuit '{name}' is open; retry after {retry_after_ms:.0f}ms")


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class CircuitBreaker:
    """Open/half-open/closed guard around an async callable."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        half_open_after_ms: float = 30_000,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Label used in logs and errors
            failure_threshold: Consecutive failures that open the circuit
            half_open_after_ms: Cooldown before a probe is allowed
            clock: Millisecond clock (defaults to time.monotonic based)
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.half_open_after_ms = half_open_after_ms
        self._clock = clock or _monotonic_ms

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_opened_at = 0.0

    @property
    def failures(self) -> int:
        return self._failures

    def state(self) -> CircuitState:
        """Current state, applying the lazy OPEN → HALF_OPEN transition."""
        if self._state == CircuitState.OPEN and self._cooldown_elapsed(self._clock()):
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` through the breaker.

        Raises:
            CircuitOpenError: If open and still cooling down (fn not invoked)
            Exception: Whatever ``fn`` raised, after bookkeeping
        """
        now = self._clock()
        if self._state == CircuitState.OPEN:
            if not self._cooldown_elapsed(now):
                raise CircuitOpenError(
                    self.name, self.half_open_after_ms - (now - self._last_opened_at)
                )
            self._transition(CircuitState.HALF_OPEN)

        try:
            result = await fn()
        except Exception as e:
            self._on_failure(self._clock(), e)
            raise

        self._on_success()
        return result

    def reset(self) -> None:
        """Manually close the circuit and clear the failure counter."""
        self._failures = 0
        self._last_opened_at = 0.0
        self._transition(CircuitState.CLOSED)

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state().value,
            "failures": self._failures,
            "failure_threshold": self.failure_threshold,
            "half_open_after_ms": self.half_open_after_ms,
            "last_opened_at": self._last_opened_at or None,
        }

    # ------------------------------------------------------------------

    def _cooldown_elapsed(self, now: float) -> bool:
        return now - self._last_opened_at >= self.half_open_after_ms

    def _on_success(self) -> None:
        self._failures = 0
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED)

    def _on_failure(self, now: float, error: Exception) -> None:
        self._failures += 1
        if self._state == CircuitState.HALF_OPEN:
            self._open(now, f"probe failed: {error!r}")
        elif self._state == CircuitState.CLOSED and self._failures >= self.failure_threshold:
            self._open(now, f"{self._failures} consecutive failures")

    def _open(self, now: float, reason: str) -> None:
        self._last_opened_at = now
        self._transition(CircuitState.OPEN, reason=reason)

    def _transition(self, new_state: CircuitState, reason: str | None = None) -> None:
        if new_state == self._state:
            return
        level = logging.WARNING if new_state == CircuitState.OPEN else logging.INFO
        log_with_context(
            logger,
            level,
            f"Circuit breaker '{self.name}': {self._state.value} → {new_state.value}",
            breaker=self.name,
            reason=reason or "",
        )
        self._state = new_state
