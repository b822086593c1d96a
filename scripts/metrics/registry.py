"""
Metric registry.

Holds the ordered table of metric definitions (id -> calculator). The table
is built once at initialization, in explicit insertion order, and frozen.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple, Union

Number = Union[int, float]
Calculator = Callable[[Sequence[Any]], Number]

CATEGORIES = ('speed', 'timing', 'behavior', 'quality', 'session')


class DuplicateMetricId(ValueError):
    """Raised when a metric id is registered twice."""


class RegistryFrozen(RuntimeError):
    """Raised when registering into a frozen registry."""


@dataclass(frozen=True)
class MetricDefinition:
    """A named, pure function of an event sequence to a number."""
    id: str
    calculator: Calculator
    label: str = ""
    category: str = "session"
    description: str = ""
    unit: str = ""
    empty_value: Number = 0  # engine result for an empty sequence

    def __post_init__(self):
        if not self.id:
            raise ValueError("Metric id must be a non-empty string")
        if not callable(self.calculator):
            raise TypeError(f"Calculator for {self.id!r} is not callable")
        if self.category not in CATEGORIES:
            raise ValueError(f"Unknown category {self.category!r} for {self.id!r}")


class MetricRegistry:
    """Ordered, reject-on-duplicate metric table."""

    def __init__(self, definitions: Sequence[MetricDefinition] = ()):
        self._definitions: Dict[str, MetricDefinition] = {}
        self._frozen = False
        for definition in definitions:
            self.register(definition)

    def register(
        self,
        definition: Union[MetricDefinition, str],
        calculator: Optional[Calculator] = None,
        **meta
    ) -> MetricDefinition:
        """
        Add a metric.

        Args:
            definition: MetricDefinition, or a metric id when calculator is given
            calculator: Calculator function (when registering by id)
            **meta: label/category/description/unit/empty_value

        Returns:
            The registered definition

        Raises:
            DuplicateMetricId: If the id is already registered
            RegistryFrozen: If the registry has been frozen
        """
        if not isinstance(definition, MetricDefinition):
            definition = MetricDefinition(id=definition, calculator=calculator, **meta)

        if self._frozen:
            raise RegistryFrozen(f"Cannot register {definition.id!r}: registry is frozen")
        if definition.id in self._definitions:
            raise DuplicateMetricId(f"Metric id {definition.id!r} is already registered")

        self._definitions[definition.id] = definition
        return definition

    def list(self) -> Tuple[MetricDefinition, ...]:
        """Registered definitions in insertion order."""
        return tuple(self._definitions.values())

    def ids(self) -> Tuple[str, ...]:
        return tuple(self._definitions)

    def get(self, metric_id: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_id)

    def by_category(self, category: str) -> Tuple[MetricDefinition, ...]:
        return tuple(d for d in self._definitions.values() if d.category == category)

    def freeze(self) -> "MetricRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, metric_id: object) -> bool:
        return metric_id in self._definitions

    def __iter__(self) -> Iterator[MetricDefinition]:
        return iter(self.list())
