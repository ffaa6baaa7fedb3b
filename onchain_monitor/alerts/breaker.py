"""CircuitBreaker — rolling-window dispatch cap with a fixed cooldown."""

from __future__ import annotations

from collections import deque
from enum import StrEnum


class BreakerState(StrEnum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"


class BreakerDecision(StrEnum):
    """What the dispatch path should do with the alert in hand."""

    DISPATCH = "DISPATCH"
    TRIP = "TRIP"  # breaker just opened: send the single breaker notice
    DROP = "DROP"  # breaker open and cooling down


class CircuitBreaker:
    """Closed / Open(since) state machine driven only by ``evaluate()``.

    Time is passed in by the caller, so the logic is testable without
    sleeping. A dispatch is counted only when ``evaluate`` returns
    ``DISPATCH``; dropped alerts and the breaker notice are not counted.
    """

    def __init__(
        self,
        max_dispatches: int = 10,
        window_secs: float = 60.0,
        cooldown_secs: float = 60.0,
    ) -> None:
        self._max_dispatches = max_dispatches
        self._window_secs = window_secs
        self._cooldown_secs = cooldown_secs
        self._state = BreakerState.CLOSED
        self._opened_at: float | None = None
        self._dispatches: deque[float] = deque()

    # ── Properties ────────────────────────────────────────────────

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == BreakerState.OPEN

    @property
    def opened_at(self) -> float | None:
        return self._opened_at

    @property
    def cooldown_secs(self) -> float:
        return self._cooldown_secs

    def dispatches_in_window(self, now: float) -> int:
        """Dispatches recorded within the window ending at *now*."""
        self._prune(now)
        return len(self._dispatches)

    def cooldown_remaining(self, now: float) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self._cooldown_secs - (now - self._opened_at))

    # ── State machine ─────────────────────────────────────────────

    def evaluate(self, now: float) -> BreakerDecision:
        """Decide the fate of one alert at time *now* and update state."""
        if self._state == BreakerState.OPEN:
            if self.cooldown_remaining(now) > 0:
                return BreakerDecision.DROP
            self.close()

        self._prune(now)
        if len(self._dispatches) >= self._max_dispatches:
            self._state = BreakerState.OPEN
            self._opened_at = now
            return BreakerDecision.TRIP

        self._dispatches.append(now)
        return BreakerDecision.DISPATCH

    def close(self) -> None:
        """Close the breaker and reset the window."""
        self._state = BreakerState.CLOSED
        self._opened_at = None
        self._dispatches.clear()

    def _prune(self, now: float) -> None:
        while self._dispatches and now - self._dispatches[0] >= self._window_secs:
            self._dispatches.popleft()
