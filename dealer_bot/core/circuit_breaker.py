"""
Circuit Breaker

Stops hammering the SMS transport or Telegram after repeated failures and
lets a few probe calls through once the cool-down has elapsed.
"""
import asyncio
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TypeVar, ParamSpec

from dealer_bot.core.logging import get_logger
from dealer_bot.core.exceptions import CircuitBreakerOpenError

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 3


class CircuitBreaker:
    """
    Per-service breaker shared across the process.

    A threading.Lock guards the counters because Celery tasks run each call
    on a fresh event loop.
    """

    _instances: dict[str, "CircuitBreaker"] = {}
    _instances_lock = threading.Lock()

    def __init__(self, service_name: str, config: CircuitBreakerConfig | None = None):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at = 0.0
        self._probe_calls = 0
        self._lock = threading.Lock()

    @classmethod
    def get_instance(
        cls,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ) -> "CircuitBreaker":
        with cls._instances_lock:
            if service_name not in cls._instances:
                cls._instances[service_name] = cls(service_name, config)
            return cls._instances[service_name]

    @classmethod
    def reset_all(cls) -> None:
        """Forget every breaker (tests)."""
        with cls._instances_lock:
            cls._instances.clear()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def _move_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        if new_state in (CircuitState.HALF_OPEN, CircuitState.CLOSED):
            self._successes = 0
            self._probe_calls = 0
        if new_state == CircuitState.CLOSED:
            self._failures = 0

        logger.info(
            f"Circuit breaker '{self.service_name}' is now {new_state.value}",
            extra_data={
                "service": self.service_name,
                "old_state": old_state.value,
                "new_state": new_state.value,
            }
        )

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.config.success_threshold:
                    self._move_to(CircuitState.CLOSED)
            else:
                self._failures = 0

    def record_failure(self, error: Exception | None = None) -> None:
        with self._lock:
            self._failures += 1
            self._opened_at = time.monotonic()
            logger.warning(
                f"Circuit breaker '{self.service_name}' recorded failure",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self._failures,
                    "threshold": self.config.failure_threshold,
                    "error": str(error) if error else None,
                }
            )
            if (
                self._state == CircuitState.HALF_OPEN
                or self._failures >= self.config.failure_threshold
            ):
                self._move_to(CircuitState.OPEN)

    def can_execute(self) -> bool:
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.OPEN:
                if time.monotonic() - self._opened_at < self.config.timeout_seconds:
                    return False
                self._move_to(CircuitState.HALF_OPEN)
            if self._probe_calls < self.config.half_open_max_calls:
                self._probe_calls += 1
                return True
            return False

    def get_retry_after(self) -> float:
        if self._state != CircuitState.OPEN:
            return 0.0
        elapsed = time.monotonic() - self._opened_at
        return max(0.0, self.config.timeout_seconds - elapsed)

    async def execute(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        """
        Run ``func`` under breaker protection.

        Raises:
            CircuitBreakerOpenError: while the circuit is open
        """
        if not self.can_execute():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())

        try:
            if asyncio.iscoroutinefunction(func):
                result = await func(*args, **kwargs)
            else:
                result = func(*args, **kwargs)
        except Exception as e:
            self.record_failure(e)
            raise

        self.record_success()
        return result


def get_twilio_circuit_breaker() -> CircuitBreaker:
    return CircuitBreaker.get_instance(
        "twilio",
        CircuitBreakerConfig(failure_threshold=5, success_threshold=2, timeout_seconds=30.0)
    )


def get_telegram_circuit_breaker() -> CircuitBreaker:
    return CircuitBreaker.get_instance(
        "telegram",
        CircuitBreakerConfig(failure_threshold=3, success_threshold=1, timeout_seconds=60.0)
    )
