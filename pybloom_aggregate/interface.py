"""The capability contract shared by filters and aggregates."""
from typing import Protocol, runtime_checkable


@runtime_checkable
class FilterInterface(Protocol):
    """Anything an aggregate can hold as a child.

    Filter, Aggregate and AutoGrowingAggregate all satisfy this protocol
    structurally; none of them inherits from it.
    """

    def add(self, item):
        """Insert ``item`` and return the filter that stored it."""

    def has(self, item):
        """Tell whether ``item`` may be present (truthy) or is certainly absent."""

    def is_full(self):
        """Return True when no further insertion can be usefully stored."""

    @property
    def count(self):
        """Number of insertions performed."""

    def false_positive_probability(self):
        """Current false positive probability as a float in [0, 1]."""
