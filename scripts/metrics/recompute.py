"""
Recomputation triggers for live analytics.

AnalyticsMemo re-runs the engine only when the event sequence identity or
the reset token changed since the last run. BackgroundRecomputer offloads
runs to a worker and publishes only the result of the latest trigger.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional, Sequence

from .config import config
from .engine import MetricsEngine
from .registry import MetricRegistry, Number


class AnalyticsMemo:
    """
    Caches the last analytics result keyed on (sequence identity, reset token).

    Usage:
        memo = AnalyticsMemo()
        analytics = memo.compute(session.events)
        memo.reset()  # "clear analytics": next compute re-runs
    """

    def __init__(
        self,
        engine: Optional[MetricsEngine] = None,
        registry: Optional[MetricRegistry] = None
    ):
        self.engine = engine or MetricsEngine(registry)
        self.registry = registry
        self.runs = 0
        self.reset_token = 0
        self._last_events = None
        self._last_token = None
        self._last_result: Optional[Dict[str, Number]] = None

    def compute(
        self,
        events: Sequence[Any],
        reset_token: Optional[int] = None
    ) -> Dict[str, Number]:
        """
        Return analytics for the sequence, recomputing only when needed.

        Args:
            events: Current event sequence (compared by identity)
            reset_token: External reset token (default: the memo's own token)

        Returns:
            Analytics mapping (the cached object when nothing changed)
        """
        token = self.reset_token if reset_token is None else reset_token

        if (
            self._last_result is not None
            and events is self._last_events
            and token == self._last_token
        ):
            return self._last_result

        result = self.engine.run(events, self.registry)
        self.runs += 1
        self._last_events = events
        self._last_token = token
        self._last_result = result
        return result

    def needs_recompute(self, events: Sequence[Any], reset_token: Optional[int] = None) -> bool:
        token = self.reset_token if reset_token is None else reset_token
        return (
            self._last_result is None
            or events is not self._last_events
            or token != self._last_token
        )

    def reset(self) -> int:
        """Bump the internal reset token; returns the new token."""
        self.reset_token += 1
        return self.reset_token

    def invalidate(self):
        """Drop the cached result."""
        self._last_events = None
        self._last_token = None
        self._last_result = None


class BackgroundRecomputer:
    """
    Runs the engine on a worker thread with last-trigger-wins publishing.

    Each trigger gets a generation number. A run's result is published only
    if its generation is still the newest when it completes; superseded runs
    finish but are ignored.
    """

    def __init__(
        self,
        engine: Optional[MetricsEngine] = None,
        registry: Optional[MetricRegistry] = None,
        max_workers: Optional[int] = None
    ):
        self.engine = engine or MetricsEngine(registry)
        self.registry = registry
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or config.get('recompute.max_workers', 1)
        )
        self._lock = threading.Lock()
        self._generation = 0
        self._published_generation = 0
        self._result: Optional[Dict[str, Number]] = None
        self._latest_future: Optional[Future] = None
        self.discarded = 0

    def trigger(self, events: Sequence[Any]) -> int:
        """
        Schedule a recomputation for the sequence.

        Args:
            events: Event sequence to analyze

        Returns:
            Generation number of this trigger
        """
        snapshot = tuple(events)
        with self._lock:
            self._generation += 1
            generation = self._generation
            future = self._executor.submit(self._run, generation, snapshot)
            self._latest_future = future
        return generation

    def _run(self, generation: int, events: Sequence[Any]) -> Dict[str, Number]:
        result = self.engine.run(events, self.registry)
        with self._lock:
            if generation == self._generation:
                self._result = result
                self._published_generation = generation
            else:
                self.discarded += 1
        return result

    def latest(self) -> Optional[Dict[str, Number]]:
        """Most recently published result (None before the first publish)."""
        with self._lock:
            return self._result

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def published_generation(self) -> int:
        with self._lock:
            return self._published_generation

    def wait(self, timeout: Optional[float] = None) -> Optional[Dict[str, Number]]:
        """
        Block until the latest trigger's run completes.

        Args:
            timeout: Seconds to wait

        Returns:
            Latest published result
        """
        with self._lock:
            future = self._latest_future
        if future is not None:
            future.result(timeout=timeout)
        return self.latest()

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
