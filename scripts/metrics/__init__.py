"""
Typing metrics computation.

This package turns an ordered event sequence into named behavioral metrics:
- registry: Ordered metric table (id -> calculator)
- typing_metrics: Built-in typing behavior calculators
- engine: Fault-isolated computation over a registry
- recompute: Memoized and background recomputation
- formatters: Markdown/JSON output
- config: Unified configuration management
- jsonl_utils: Event exports and structured logs
"""

from .config import AnalyticsConfig, config
from .calculator import MetricsCalculator
from .registry import MetricDefinition, MetricRegistry, DuplicateMetricId, RegistryFrozen
from .typing_metrics import (
    TYPING_METRICS,
    DEFAULT_METRICS,
    CATEGORY_LABELS,
    CATEGORY_ORDER,
    build_typing_registry,
    get_default_registry,
)
from .engine import MetricsEngine, EngineRun, CalculatorFailure, compute_typing_analytics
from .recompute import AnalyticsMemo, BackgroundRecomputer
from .jsonl_utils import JSONLReader, JSONLWriter, BatchedJSONLWriter

__all__ = [
    'AnalyticsConfig',
    'config',
    'MetricsCalculator',
    'MetricDefinition',
    'MetricRegistry',
    'DuplicateMetricId',
    'RegistryFrozen',
    'TYPING_METRICS',
    'DEFAULT_METRICS',
    'CATEGORY_LABELS',
    'CATEGORY_ORDER',
    'build_typing_registry',
    'get_default_registry',
    'MetricsEngine',
    'EngineRun',
    'CalculatorFailure',
    'compute_typing_analytics',
    'AnalyticsMemo',
    'BackgroundRecomputer',
    'JSONLReader',
    'JSONLWriter',
    'BatchedJSONLWriter',
]

__version__ = '1.0.0'
