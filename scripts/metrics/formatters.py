"""
Output formatters for typing analytics.

Supports Markdown and JSON output of an analytics mapping, grouped by
metric category.
"""

import json
import math
from datetime import datetime
from typing import Dict, Iterable, Optional

from .registry import MetricDefinition, MetricRegistry, Number
from .typing_metrics import CATEGORY_LABELS, CATEGORY_ORDER


def format_duration(ms: Number) -> str:
    """
    Format milliseconds as a compact duration.

    Examples: "0s", "42s", "3m 5s", "1h 2m 3s"
    """
    if ms <= 0:
        return "0s"

    seconds = int(ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def format_number(value: Number, decimals: int = 1) -> str:
    return f"{value:,.{decimals}f}"


def format_percentage(value: Number) -> str:
    return f"{value:.1f}%"


def format_metric(definition: MetricDefinition, value: Number) -> str:
    """
    Format a metric value according to its unit.

    Args:
        definition: Metric definition
        value: Computed value

    Returns:
        Human-readable string
    """
    unit = definition.unit
    if unit == 'duration':
        return format_duration(value)
    if unit == '%':
        return format_percentage(value)
    if unit == 'ratio':
        return format_percentage(value * 100)
    if unit == 'score':
        return f"{format_number(value, 0)}%"
    if unit == 'ms':
        return f"{format_number(value, 0)} ms"
    if unit == 'CPM':
        return f"{format_number(value, 0)} CPM"
    if unit == 'WPM':
        return f"{format_number(value, 1)} WPM"
    if unit == 'chars/min':
        return f"{format_number(value, 1)}/min"
    return f"{int(math.floor(value + 0.5))}"


def _selected(registry: MetricRegistry, selected: Optional[Iterable[str]]):
    if selected is None:
        return registry.list()
    wanted = set(selected)
    return tuple(d for d in registry.list() if d.id in wanted)


class MarkdownFormatter:
    """Format analytics as Markdown."""

    @staticmethod
    def format(
        analytics: Dict[str, Number],
        registry: MetricRegistry,
        selected: Optional[Iterable[str]] = None,
        title: str = "Typing Analytics"
    ) -> str:
        """
        Format analytics as Markdown grouped by category.

        Args:
            analytics: Metric id -> value
            registry: Registry describing the metrics
            selected: Metric ids to include (None = all)
            title: Report heading

        Returns:
            Markdown formatted report
        """
        definitions = _selected(registry, selected)

        sections = [f"# {title}", ""]
        sections.append(f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        sections.append("")

        for category in CATEGORY_ORDER:
            in_category = [d for d in definitions if d.category == category]
            if not in_category:
                continue

            sections.append(f"## {CATEGORY_LABELS[category]}")
            sections.append("")
            sections.append("| Metric | Value |")
            sections.append("|--------|-------|")
            for definition in in_category:
                if definition.id in analytics:
                    shown = format_metric(definition, analytics[definition.id])
                else:
                    shown = "not computed"
                sections.append(f"| {definition.label or definition.id} | {shown} |")
            sections.append("")

        return "\n".join(sections)


class JSONFormatter:
    """Format analytics as JSON."""

    @staticmethod
    def format(
        analytics: Dict[str, Number],
        registry: Optional[MetricRegistry] = None,
        selected: Optional[Iterable[str]] = None,
        pretty: bool = True
    ) -> str:
        """
        Format analytics as JSON.

        Args:
            analytics: Metric id -> value
            registry: Used to keep registry order and drop unknown ids
            selected: Metric ids to include (None = all)
            pretty: If True, indent output

        Returns:
            JSON string
        """
        if registry is not None:
            data = {
                d.id: analytics[d.id]
                for d in _selected(registry, selected)
                if d.id in analytics
            }
        else:
            wanted = set(selected) if selected is not None else None
            data = {k: v for k, v in analytics.items() if wanted is None or k in wanted}

        if pretty:
            return json.dumps(data, indent=2)
        return json.dumps(data)
