"""Exception hierarchy for pybloom_aggregate.

Every exception derives from BloomError. The leaf classes also derive from
the built-in exception raised for the same situation in earlier releases
(ValueError for bad parameters, IndexError for capacity problems), so
existing ``except ValueError`` handlers keep working.
"""


class BloomError(Exception):
    """Base exception for all pybloom_aggregate errors."""


class ConfigurationError(BloomError, ValueError):
    """Raised when a filter or aggregate is built with invalid parameters.

    Covers non-positive sizes, empty or unknown hash algorithm lists,
    probabilities outside [0, 1] and negative item counts.
    """


class DegenerateProbabilityError(BloomError, ArithmeticError):
    """Raised when a probability of exactly 0 or 1 reaches a formula that
    is only defined on the open interval (0, 1)."""


class IncompatibleFilterError(BloomError, ValueError):
    """Raised when two filters cannot be combined, or when serialized data
    was produced with a different hash folding width."""


class CapacityError(BloomError, IndexError):
    """Base class for aggregates that cannot accept an insertion."""


class FilterUnderflowError(CapacityError):
    """Raised when adding to an aggregate with no attached filter."""


class FilterOverflowError(CapacityError):
    """Raised when every filter attached to an aggregate is virtually full."""
