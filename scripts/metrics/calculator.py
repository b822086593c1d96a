"""
Metric calculation utilities.

Provides common calculations shared by typing metrics:
- Event filtering and timestamp intervals
- Interval statistics (mean, std, percentiles)
- Coefficient of variation
"""

import numpy as np
from typing import Callable, Dict, List, Sequence, Any


class MetricsCalculator:
    """Shared metric calculation utilities."""

    @staticmethod
    def select(events: Sequence[Any], predicate: Callable[[Any], bool]) -> List[Any]:
        """
        Filter events, skipping any the predicate cannot inspect.

        Args:
            events: Event sequence
            predicate: Function (event) -> bool

        Returns:
            Matching events in input order
        """
        selected = []
        for event in events:
            try:
                if predicate(event):
                    selected.append(event)
            except (AttributeError, TypeError, KeyError):
                continue
        return selected

    @staticmethod
    def intervals_ms(events: Sequence[Any]) -> List[float]:
        """
        Calculate milliseconds between consecutive events.

        Args:
            events: Chronologically ordered events with a timestamp

        Returns:
            List of len(events) - 1 intervals
        """
        intervals = []
        for previous, current in zip(events, events[1:]):
            delta = current.timestamp - previous.timestamp
            intervals.append(delta.total_seconds() * 1000.0)
        return intervals

    @staticmethod
    def span_ms(events: Sequence[Any]) -> float:
        """Milliseconds from first to last event (0 for fewer than 2)."""
        if len(events) < 2:
            return 0.0
        return (events[-1].timestamp - events[0].timestamp).total_seconds() * 1000.0

    @staticmethod
    def interval_stats(intervals_ms: List[float]) -> Dict[str, float]:
        """
        Calculate interval statistics.

        Args:
            intervals_ms: Interval measurements in milliseconds

        Returns:
            Dictionary with interval statistics
        """
        if not intervals_ms:
            return {
                "avg_ms": 0.0,
                "min_ms": 0.0,
                "max_ms": 0.0,
                "std_ms": 0.0,
                "p50_ms": 0.0,
                "p95_ms": 0.0,
                "count": 0
            }

        intervals_array = np.array(intervals_ms, dtype=float)

        return {
            "avg_ms": float(np.mean(intervals_array)),
            "min_ms": float(np.min(intervals_array)),
            "max_ms": float(np.max(intervals_array)),
            "std_ms": float(np.std(intervals_array)),
            "p50_ms": float(np.percentile(intervals_array, 50)),
            "p95_ms": float(np.percentile(intervals_array, 95)),
            "count": len(intervals_ms)
        }

    @staticmethod
    def coefficient_of_variation(values: List[float]) -> float:
        """
        Population coefficient of variation as a percentage.

        Args:
            values: Numeric samples

        Returns:
            std / mean * 100, or 0 when undefined
        """
        if not values:
            return 0.0

        values_array = np.array(values, dtype=float)
        mean = float(np.mean(values_array))
        if mean <= 0:
            return 0.0
        return float(np.std(values_array)) / mean * 100.0

    @staticmethod
    def per_minute(count: float, duration_ms: float) -> float:
        """Rate per minute, or 0 for a non-positive duration."""
        minutes = duration_ms / 60000.0
        return count / minutes if minutes > 0 else 0.0
