"""
Trigger policies deciding when implicit preferences are recomputed.

Recomputing implicit preferences scans a user's whole swipe history, so it
runs only on a sample of like-swipes (probabilistic) or at most once per
interval per user (scheduled).
"""

import random
import threading
import time
from typing import Callable, Dict, Optional

PROBABILISTIC = 'probabilistic'
SCHEDULED = 'scheduled'

_MIN_PRUNE_SIZE = 1024


class TriggerPolicy:
    """
    Decides whether a like-swipe should trigger a recomputation.

    Use the `probabilistic` and `scheduled` constructors rather than calling
    __init__ directly.
    """

    def __init__(
        self,
        kind: str,
        rate: float = 0.2,
        interval: float = 3600.0,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        if kind not in (PROBABILISTIC, SCHEDULED):
            raise ValueError(f"Unknown trigger policy kind: {kind}")
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"rate must be within [0, 1], got {rate}")
        if interval < 0:
            raise ValueError(f"interval must be non-negative, got {interval}")

        self.kind = kind
        self.rate = rate
        self.interval = interval
        self._rng = random.Random(seed)
        self._clock = clock
        self._last_run: Dict[str, float] = {}
        self._prune_at = _MIN_PRUNE_SIZE
        self._lock = threading.Lock()

    @classmethod
    def probabilistic(cls, rate: float = 0.2, seed: Optional[int] = None) -> 'TriggerPolicy':
        return cls(PROBABILISTIC, rate=rate, seed=seed)

    @classmethod
    def scheduled(
        cls,
        interval: float = 3600.0,
        clock: Callable[[], float] = time.monotonic
    ) -> 'TriggerPolicy':
        return cls(SCHEDULED, interval=interval, clock=clock)

    @classmethod
    def from_config(cls, config) -> 'TriggerPolicy':
        """Build the policy described by a Config."""
        if config.trigger_kind == SCHEDULED:
            return cls.scheduled(interval=config.trigger_interval_seconds)
        return cls(config.trigger_kind, rate=config.trigger_rate)

    def should_trigger(self, user_id: str) -> bool:
        """Return True if a recomputation should run for this like-swipe."""
        with self._lock:
            if self.kind == PROBABILISTIC:
                return self._rng.random() < self.rate

            now = self._clock()
            last = self._last_run.get(user_id)
            if last is not None and now - last < self.interval:
                return False
            self._last_run[user_id] = now
            if len(self._last_run) >= self._prune_at:
                self._prune(now)
            return True

    def _prune(self, now: float) -> None:
        """Forget users whose last run is older than the interval."""
        self._last_run = {
            uid: last for uid, last in self._last_run.items()
            if now - last < self.interval
        }
        self._prune_at = max(_MIN_PRUNE_SIZE, 2 * len(self._last_run))

    def tracked_users(self) -> int:
        """Number of users the scheduled policy currently remembers."""
        with self._lock:
            return len(self._last_run)

    def __repr__(self) -> str:
        if self.kind == PROBABILISTIC:
            return f"TriggerPolicy(kind={self.kind}, rate={self.rate})"
        return f"TriggerPolicy(kind={self.kind}, interval={self.interval})"
