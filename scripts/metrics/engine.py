"""
Metrics computation engine.

Runs every registered calculator over an event sequence and aggregates the
values. A failing calculator never aborts the run: its metric gets the
default value and the failure is reported as a structured entry.
"""

import math
import numbers
import sys
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .config import config
from .jsonl_utils import BatchedJSONLWriter
from .registry import MetricDefinition, MetricRegistry, Number
from .typing_metrics import get_default_registry


@dataclass
class CalculatorFailure:
    """A calculator that raised, timed out or returned an invalid value."""
    metric_id: str
    error_type: str
    message: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MetricOutcome:
    """Result of invoking one calculator: a value or a failure."""
    metric_id: str
    value: Optional[Number] = None
    failure: Optional[CalculatorFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class EngineRun:
    """Values of one engine run plus the failures recorded during it."""
    values: Dict[str, Number] = field(default_factory=dict)
    failures: List[CalculatorFailure] = field(default_factory=list)

    @property
    def failed_ids(self) -> List[str]:
        return [f.metric_id for f in self.failures]


def _validate_value(value: Any) -> Number:
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise TypeError(f"Calculator returned non-numeric value {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"Calculator returned non-finite value {value!r}")
    return value


class MetricsEngine:
    """Executes a metric registry against an event sequence."""

    def __init__(
        self,
        registry: Optional[MetricRegistry] = None,
        default_value: Optional[Number] = None,
        timeout_sec: Optional[float] = None,
        failure_log: Optional[BatchedJSONLWriter] = None,
    ):
        """
        Initialize engine.

        Args:
            registry: Registry to run (default: built-in typing metrics)
            default_value: Value assigned to failed metrics (config: engine.default_value)
            timeout_sec: Per-calculator deadline (config: engine.calculator_timeout_sec)
            failure_log: Writer for structured failure entries
        """
        self.registry = registry
        self.default_value = (
            default_value if default_value is not None
            else config.get('engine.default_value', 0)
        )
        self.timeout_sec = (
            timeout_sec if timeout_sec is not None
            else config.get('engine.calculator_timeout_sec')
        )

        self._deadline_pool: Optional[ThreadPoolExecutor] = None

        self.failure_log = failure_log
        if self.failure_log is None and config.is_enabled('engine.failure_log'):
            log_path = Path(config.get('engine.failure_log.log_path')).expanduser()
            self.failure_log = BatchedJSONLWriter(
                log_path,
                batch_size=config.get('engine.failure_log.batch_size', 10),
                flush_interval=config.get('engine.failure_log.batch_flush_interval_sec', 5.0),
            )

    def run(
        self,
        events: Sequence[Any],
        registry: Optional[MetricRegistry] = None
    ) -> Dict[str, Number]:
        """
        Compute every registered metric.

        Args:
            events: Chronologically ordered events (may be empty)
            registry: Registry override for this run

        Returns:
            Fresh mapping of metric id to value, in registry order
        """
        return self.run_detailed(events, registry).values

    def run_detailed(
        self,
        events: Sequence[Any],
        registry: Optional[MetricRegistry] = None
    ) -> EngineRun:
        """
        Compute every registered metric and keep the failure records.

        An empty sequence gives every metric its definition's empty_value
        without invoking the calculators.

        Args:
            events: Chronologically ordered events (may be empty)
            registry: Registry override for this run

        Returns:
            EngineRun with values and failures
        """
        if registry is None:
            registry = self.registry if self.registry is not None else get_default_registry()
        frozen_events = tuple(events)

        run = EngineRun()
        for definition in registry.list():
            if not frozen_events:
                run.values[definition.id] = definition.empty_value
                continue

            outcome = self.invoke(definition, frozen_events)
            if outcome.ok:
                run.values[definition.id] = outcome.value
            else:
                run.values[definition.id] = self.default_value
                run.failures.append(outcome.failure)
                self._log_failure(outcome.failure)

        return run

    def invoke(self, definition: MetricDefinition, events: Sequence[Any]) -> MetricOutcome:
        """
        Invoke one calculator, converting any error into a failure outcome.

        Args:
            definition: Metric to compute
            events: Event sequence

        Returns:
            MetricOutcome
        """
        try:
            if self.timeout_sec:
                value = self._call_with_deadline(definition, events)
            else:
                value = definition.calculator(events)
            return MetricOutcome(definition.id, value=_validate_value(value))
        except Exception as e:
            failure = CalculatorFailure(
                metric_id=definition.id,
                error_type=type(e).__name__,
                message=str(e) or repr(e),
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
            return MetricOutcome(definition.id, failure=failure)

    def _call_with_deadline(self, definition: MetricDefinition, events: Sequence[Any]) -> Any:
        """
        Run a calculator on the engine's worker pool with a deadline.

        An expired calculator is not interrupted: it keeps its worker thread
        until it returns, and its result is dropped. Pool threads are joined at
        interpreter exit, so a calculator still running then delays exit. The
        pool is shared by every call on this engine and released by close().
        """
        if self._deadline_pool is None:
            self._deadline_pool = ThreadPoolExecutor(
                max_workers=config.get('engine.deadline_workers', 4),
                thread_name_prefix="metric-deadline",
            )

        future = self._deadline_pool.submit(definition.calculator, events)
        try:
            return future.result(timeout=self.timeout_sec)
        except FutureTimeout:
            future.cancel()
            raise TimeoutError(
                f"Calculator exceeded {self.timeout_sec}s deadline"
            ) from None

    def _log_failure(self, failure: CalculatorFailure):
        print(
            f"Warning: Error calculating metric {failure.metric_id}: "
            f"{failure.error_type}: {failure.message}",
            file=sys.stderr
        )

        if self.failure_log is not None:
            entry = {"event_type": "calculator_failure", **failure.to_dict()}
            try:
                self.failure_log.append(entry)
            except Exception as e:
                print(f"Warning: Failed to log calculator failure: {e}", file=sys.stderr)

    def flush(self):
        """Force flush buffered failure entries to disk."""
        if self.failure_log is not None:
            self.failure_log.flush()

    def close(self, wait: bool = False):
        """
        Flush the failure log and release the deadline worker pool.

        Args:
            wait: If True, block until expired calculators still running finish
        """
        self.flush()
        if self._deadline_pool is not None:
            self._deadline_pool.shutdown(wait=wait)
            self._deadline_pool = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def compute_typing_analytics(
    events: Sequence[Any],
    registry: Optional[MetricRegistry] = None
) -> Dict[str, Number]:
    """
    Compute analytics with a default engine.

    Args:
        events: Chronologically ordered events
        registry: Registry to run (default: built-in typing metrics)

    Returns:
        Mapping of metric id to value
    """
    return MetricsEngine(registry).run(events)
