"""Resilience patterns for cross-site calls.

- Circuit Breaker per remote site (CLOSED → OPEN → HALF_OPEN → CLOSED)
- Retry with Exponential Backoff, used only for idempotent calls
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Circuit Breaker ──

class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Circuit breaker for a remote site.

    - CLOSED: normal operation
    - failure_threshold consecutive failures → OPEN (block for open_timeout seconds)
    - After open_timeout → HALF_OPEN (allow 1 trial)
    - Trial success → CLOSED / failure → OPEN
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        open_timeout: float = 30.0,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.open_timeout = open_timeout

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: float = 0

    def _should_allow(self) -> bool:
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            elapsed = time.time() - self.last_failure_time
            if elapsed >= self.open_timeout:
                self.state = CircuitState.HALF_OPEN
                logger.info("Circuit %s: OPEN → HALF_OPEN", self.name)
                return True
            return False

        # HALF_OPEN: allow one trial
        return True

    def record_success(self):
        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.CLOSED
            logger.info("Circuit %s: HALF_OPEN → CLOSED", self.name)
        self.failure_count = 0

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            logger.warning("Circuit %s: HALF_OPEN → OPEN", self.name)
        elif self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN
            logger.warning(
                "Circuit %s: CLOSED → OPEN (failures=%d)",
                self.name, self.failure_count,
            )

    async def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Execute func through the circuit breaker."""
        if not self._should_allow():
            raise CircuitOpenError(f"Circuit '{self.name}' is OPEN")

        try:
            result = await func(*args, **kwargs)
        except httpx.HTTPError:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self):
        self.state = CircuitState.CLOSED
        self.failure_count = 0


class CircuitOpenError(Exception):
    """Raised when circuit breaker is open and blocking requests."""
    pass


# ── Retry with Exponential Backoff ──

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


async def retry_with_backoff(
    func: Callable[..., Any],
    *args: Any,
    max_retries: int = 3,
    backoff_base: float = 1.0,
    backoff_factor: float = 2.0,
    retryable_exceptions: tuple = (httpx.HTTPStatusError, httpx.TransportError),
    **kwargs: Any,
) -> Any:
    """Execute func with exponential backoff retry on retryable errors.

    Retries on transport errors and on 429, 500, 502, 503, 504 status codes.
    Delay: backoff_base * (backoff_factor ** attempt)
        → 1s, 2s, 4s by default
    """
    last_exc: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as exc:
            last_exc = exc
            if isinstance(exc, httpx.HTTPStatusError):
                if exc.response.status_code not in RETRYABLE_STATUS_CODES:
                    raise  # Non-retryable status, fail immediately

            if attempt < max_retries:
                delay = backoff_base * (backoff_factor ** attempt)
                logger.warning(
                    "Retry %d/%d after %.1fs: %s",
                    attempt + 1, max_retries, delay, exc,
                )
                await asyncio.sleep(delay)
            else:
                logger.error("Max retries (%d) exceeded: %s", max_retries, exc)
                raise

    raise last_exc  # type: ignore[misc]


# ── Circuit breakers, one per remote site ──

circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str) -> CircuitBreaker:
    """Get or create a circuit breaker by name (e.g. "site-5")."""
    if name not in circuit_breakers:
        circuit_breakers[name] = CircuitBreaker(name)
    return circuit_breakers[name]
