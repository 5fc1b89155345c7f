"""Bloom filters, weighted filter aggregates and auto-growing aggregates."""
from .aggregate import (OVERFLOW, UNDERFLOW, AddResult, Aggregate,
                        AutoGrowingAggregate, ScalingFactory)
from .bloom import Filter
from .exceptions import (BloomError, CapacityError, ConfigurationError,
                         DegenerateProbabilityError, FilterOverflowError,
                         FilterUnderflowError, IncompatibleFilterError)
from .hashing import FOLD_WIDTH, HASH_ALGORITHMS
from .interface import FilterInterface
from .scheduling import WeightedRoundRobin, gcd

__version__ = "1.0.0"

__all__ = [
    'AddResult', 'Aggregate', 'AutoGrowingAggregate', 'BloomError',
    'CapacityError', 'ConfigurationError', 'DegenerateProbabilityError',
    'FOLD_WIDTH', 'Filter', 'FilterInterface', 'FilterOverflowError',
    'FilterUnderflowError', 'HASH_ALGORITHMS', 'IncompatibleFilterError',
    'OVERFLOW', 'ScalingFactory', 'UNDERFLOW', 'WeightedRoundRobin', 'gcd',
]
