from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised by fire() without invoking the operation."""

    def __init__(self, name: str):
        super().__init__(f"Service {name} is temporarily unavailable (circuit breaker open)")
        self.name = name


class CircuitTimeoutError(Exception):
    def __init__(self, name: str, timeout: float):
        super().__init__(f"{name}: call timed out after {timeout:g}s")
        self.name = name
        self.timeout = timeout


class CircuitBreakerListener:
    """
    Lifecycle hooks. Subclass and override what you need.
    """

    def opened(self, breaker: "CircuitBreaker") -> None:
        pass

    def half_opened(self, breaker: "CircuitBreaker") -> None:
        pass

    def closed(self, breaker: "CircuitBreaker") -> None:
        pass

    def success(self, breaker: "CircuitBreaker", elapsed_ms: int) -> None:
        pass

    def failure(self, breaker: "CircuitBreaker", error: BaseException) -> None:
        pass

    def rejected(self, breaker: "CircuitBreaker") -> None:
        pass

    def timed_out(self, breaker: "CircuitBreaker") -> None:
        pass


class LoggingListener(CircuitBreakerListener):
    def opened(self, breaker: "CircuitBreaker") -> None:
        log.warning("[CircuitBreaker:%s] Circuit OPENED - service unhealthy, failing fast", breaker.name)

    def half_opened(self, breaker: "CircuitBreaker") -> None:
        log.info("[CircuitBreaker:%s] Circuit HALF-OPEN - testing service health", breaker.name)

    def closed(self, breaker: "CircuitBreaker") -> None:
        log.info("[CircuitBreaker:%s] Circuit CLOSED - service recovered", breaker.name)

    def failure(self, breaker: "CircuitBreaker", error: BaseException) -> None:
        log.debug("[CircuitBreaker:%s] call failed: %s", breaker.name, error)

    def rejected(self, breaker: "CircuitBreaker") -> None:
        log.warning("[CircuitBreaker:%s] Request REJECTED - circuit is open", breaker.name)

    def timed_out(self, breaker: "CircuitBreaker") -> None:
        log.warning("[CircuitBreaker:%s] Request timeout after %ss", breaker.name, breaker.timeout)


@dataclass(frozen=True)
class CircuitBreakerState:
    name: str
    state: CircuitState
    window_failures: int
    window_total: int
    last_transition_at: datetime

    fires: int = 0
    successes: int = 0
    failures: int = 0
    rejects: int = 0
    timeouts: int = 0
    latency_mean_ms: float | None = None


@dataclass
class _Bucket:
    index: int
    total: int = 0
    failures: int = 0


class CircuitBreaker:
    """
    Fail-fast wrapper around one async dependency.

    CLOSED -> OPEN once the rolling window holds at least volume_threshold calls
    and the failure rate reaches error_threshold_percentage.
    OPEN -> HALF_OPEN after reset_timeout; one trial call decides CLOSED or OPEN again.
    Rejections while OPEN are not counted in the window.
    """

    def __init__(
        self,
        *,
        name: str,
        timeout: float | None = 10.0,
        error_threshold_percentage: float = 50.0,
        volume_threshold: int = 5,
        rolling_count_timeout: float = 10.0,
        rolling_count_buckets: int = 10,
        reset_timeout: float = 30.0,
        error_filter: Callable[[BaseException], bool] | None = None,
        listeners: Iterable[CircuitBreakerListener] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        if rolling_count_buckets < 1:
            raise ValueError("rolling_count_buckets must be >= 1")
        self.name = name
        self.timeout = timeout
        self.error_threshold_percentage = error_threshold_percentage
        self.volume_threshold = volume_threshold
        self.rolling_count_timeout = rolling_count_timeout
        self.rolling_count_buckets = rolling_count_buckets
        self.reset_timeout = reset_timeout

        self._error_filter = error_filter
        self._listeners = list(listeners)
        self._clock = clock
        self._bucket_width = rolling_count_timeout / rolling_count_buckets

        self._state = CircuitState.CLOSED
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._last_transition_at = datetime.now(timezone.utc)
        self._window: deque[_Bucket] = deque()

        self._fires = 0
        self._successes = 0
        self._failures = 0
        self._rejects = 0
        self._timeouts = 0
        self._latency_total_ms = 0
        self._latency_count = 0

    # listeners
    def add_listener(self, listener: CircuitBreakerListener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: str, *args: Any) -> None:
        for listener in self._listeners:
            try:
                getattr(listener, event)(self, *args)
            except Exception:
                log.exception("[CircuitBreaker:%s] listener %r failed on %s", self.name, listener, event)

    # state
    @property
    def state(self) -> CircuitState:
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.reset_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    @property
    def opened(self) -> bool:
        return self.state is CircuitState.OPEN

    @property
    def half_open(self) -> bool:
        return self.state is CircuitState.HALF_OPEN

    def _transition(self, new: CircuitState) -> None:
        if new is self._state:
            return
        self._state = new
        self._last_transition_at = datetime.now(timezone.utc)
        if new is CircuitState.OPEN:
            self._opened_at = self._clock()
            self._emit("opened")
        elif new is CircuitState.HALF_OPEN:
            self._emit("half_opened")
        else:
            self._opened_at = None
            self._window.clear()
            self._emit("closed")

    def reset(self) -> None:
        """Force the breaker back to CLOSED (admin / tests)."""
        self._trial_in_flight = False
        self._window.clear()
        self._transition(CircuitState.CLOSED)
        log.info("[CircuitBreaker:%s] Manually reset to CLOSED state", self.name)

    # rolling window
    def _current_bucket(self) -> _Bucket:
        idx = int(self._clock() // self._bucket_width)
        while self._window and self._window[0].index <= idx - self.rolling_count_buckets:
            self._window.popleft()
        if not self._window or self._window[-1].index != idx:
            self._window.append(_Bucket(index=idx))
        return self._window[-1]

    def _window_counts(self) -> tuple[int, int]:
        self._current_bucket()
        total = sum(b.total for b in self._window)
        failures = sum(b.failures for b in self._window)
        return failures, total

    def _should_trip(self) -> bool:
        failures, total = self._window_counts()
        if total < self.volume_threshold:
            return False
        return failures * 100.0 / total >= self.error_threshold_percentage

    # outcomes
    def _on_success(self, trial: bool, started: float) -> None:
        elapsed_ms = int((self._clock() - started) * 1000)
        self._successes += 1
        self._latency_total_ms += elapsed_ms
        self._latency_count += 1
        self._current_bucket().total += 1
        self._emit("success", elapsed_ms)
        if trial:
            self._transition(CircuitState.CLOSED)

    def _on_failure(self, trial: bool, error: BaseException) -> None:
        self._failures += 1
        bucket = self._current_bucket()
        bucket.total += 1
        bucket.failures += 1
        self._emit("failure", error)
        if trial:
            # reopening restarts the reset timer
            self._transition(CircuitState.OPEN)
            return
        if self._state is CircuitState.CLOSED and self._should_trip():
            self._transition(CircuitState.OPEN)

    async def fire(self, op: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        self._fires += 1
        state = self.state
        if state is CircuitState.OPEN or (state is CircuitState.HALF_OPEN and self._trial_in_flight):
            self._rejects += 1
            self._emit("rejected")
            raise CircuitOpenError(self.name)

        trial = state is CircuitState.HALF_OPEN
        if trial:
            self._trial_in_flight = True

        started = self._clock()
        deadline = asyncio.timeout(self.timeout)
        try:
            async with deadline:
                result = await op(*args, **kwargs)
        except TimeoutError as e:
            if deadline.expired():
                self._timeouts += 1
                self._emit("timed_out")
                self._on_failure(trial, e)
                raise CircuitTimeoutError(self.name, self.timeout or 0) from None
            self._on_failure(trial, e)
            raise
        except Exception as e:
            if self._error_filter is not None and self._error_filter(e):
                self._on_success(trial, started)
            else:
                self._on_failure(trial, e)
            raise
        finally:
            if trial:
                self._trial_in_flight = False

        self._on_success(trial, started)
        return result

    def stats(self) -> CircuitBreakerState:
        state = self.state
        failures, total = self._window_counts()
        return CircuitBreakerState(
            name=self.name,
            state=state,
            window_failures=failures,
            window_total=total,
            last_transition_at=self._last_transition_at,
            fires=self._fires,
            successes=self._successes,
            failures=self._failures,
            rejects=self._rejects,
            timeouts=self._timeouts,
            latency_mean_ms=(self._latency_total_ms / self._latency_count) if self._latency_count else None,
        )
