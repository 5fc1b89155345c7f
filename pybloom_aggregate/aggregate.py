"""Aggregates of Bloom filters.

This module implements two composites built on top of bloom.Filter:

1. Aggregate: an ordered collection of filters (or nested aggregates).
   Insertions are spread with a weighted round-robin where the weight of a
   child decreases as its false positive probability grows; membership
   queries poll every child.
2. AutoGrowingAggregate: an Aggregate plus a factory. When the aggregate
   has no child, or no child can take more items, the factory builds a new
   child which is attached before the insertion is retried.

ScalingFactory is a ready-made factory following "Scalable Bloom Filters"
by Almeida et al., GLOBECOM 2007: each new filter has a geometrically larger
capacity and a tighter error rate.
"""
import logging
import math
from collections import namedtuple
from io import BytesIO
from struct import calcsize, pack, unpack

from .bloom import Filter, _read_exact
from .exceptions import (ConfigurationError, FilterOverflowError,
                         FilterUnderflowError, IncompatibleFilterError)
from .interface import FilterInterface
from .scheduling import WeightedRoundRobin

logger = logging.getLogger(__name__)

UNDERFLOW = 'underflow'
OVERFLOW = 'overflow'


class AddResult(namedtuple('AddResult', ['handled_by', 'condition'])):
    """Outcome of Aggregate.try_add().

    ``condition`` is None when the item was stored, in which case
    ``handled_by`` is the filter that took it. Otherwise it is UNDERFLOW
    (nothing attached) or OVERFLOW (every child is ineligible) and
    ``handled_by`` is None.
    """
    __slots__ = ()

    @property
    def ok(self):
        return self.condition is None


def _round_half_up(value):
    return int(math.floor(value + 0.5))


class Aggregate:
    """Weighted collection of Bloom filters.

    Example:
        >>> aggregate = Aggregate()
        >>> aggregate.attach(Filter(512, ['md5', 'sha1'])).attach(Filter(512, ['xxh64']))
        Aggregate(filters=2, count=0)
        >>> stored_in = aggregate.add("apple")
        >>> aggregate.has("apple") == [stored_in]
        True
    """
    FILE_FMT = '<qqd'

    def __init__(self, false_probability_threshold=1):
        """Initialize an empty aggregate.

        Args:
            false_probability_threshold (float, optional): Children whose
                false positive probability exceeds this value no longer
                receive insertions. Must be in [0, 1]. Default is 1.

        Raises:
            ConfigurationError: If the threshold is outside [0, 1].
        """
        self._setup(WeightedRoundRobin(), false_probability_threshold)
        self.filters = []

    def _setup(self, scheduler, false_probability_threshold):
        if not 0 <= false_probability_threshold <= 1:
            raise ConfigurationError(
                "False probability threshold must be between 0 and 1")
        self.scheduler = scheduler
        self.false_probability_threshold = false_probability_threshold

    def attach(self, filter):
        """Append a child filter and return the aggregate.

        Children do not need to share size or hash algorithms.

        Raises:
            ConfigurationError: If ``filter`` does not implement
                FilterInterface.
        """
        if not isinstance(filter, FilterInterface):
            raise ConfigurationError(
                "{!r} does not implement the filter interface".format(filter))
        self.filters.append(filter)
        return self

    @property
    def count(self):
        """Sum of the children's insertion counts."""
        return sum(filter.count for filter in self.filters)

    def __len__(self):
        return self.count

    def weights(self):
        """Scheduling weight of each child, in attachment order.

        A child weighs ``100 - round(p * 100)`` where ``p`` is its false
        positive probability, or 0 when ``p`` exceeds the threshold or the
        child is full.
        """
        weights = []
        for filter in self.filters:
            probability = filter.false_positive_probability()
            weight = 100 - _round_half_up(probability * 100)
            if probability > self.false_probability_threshold or filter.is_full():
                weight = 0
            weights.append(weight)
        return weights

    def try_add(self, item):
        """Add an item without raising on capacity conditions.

        Returns:
            AddResult: The child that stored the item, or the UNDERFLOW /
                OVERFLOW condition that prevented the insertion.
        """
        if not self.filters:
            return AddResult(None, UNDERFLOW)

        weights = self.weights()
        index = self.scheduler.next(weights) if sum(weights) else None
        if index is None:
            logger.debug("All %d attached filters are virtually full", len(self.filters))
            return AddResult(None, OVERFLOW)

        return AddResult(self.filters[index].add(item), None)

    def add(self, item):
        """Add an item to one of the children.

        The child is picked by weighted round-robin over weights(): the
        higher a child's false positive probability, the less likely it is
        to receive the item.

        Returns:
            The filter that handled the item.

        Raises:
            FilterUnderflowError: If no filter is attached.
            FilterOverflowError: If every attached filter is full or above
                the false probability threshold.
        """
        result = self.try_add(item)
        if result.condition == UNDERFLOW:
            raise FilterUnderflowError("No filter attached to current aggregate")
        if result.condition == OVERFLOW:
            raise FilterOverflowError("All attached filters are virtually full")
        return result.handled_by

    def has(self, item):
        """Return the children that may hold the item.

        Returns:
            list: Positive children ordered by decreasing confidence
                (``1 - p``), the most reliable first. Empty when no child
                has the item.
        """
        positives = [filter for filter in self.filters if filter.has(item)]
        positives.sort(key=lambda filter: 1 - filter.false_positive_probability(),
                       reverse=True)
        return positives

    def __contains__(self, item):
        return any(filter.has(item) for filter in self.filters)

    def is_full(self):
        """Return True if every child is full."""
        return all(filter.is_full() for filter in self.filters)

    def false_positive_probability(self):
        """Highest false positive probability amongst the children."""
        return max((filter.false_positive_probability() for filter in self.filters),
                   default=0)

    def tofile(self, f):
        """Serialize the aggregate and all of its children to a binary file.

        File Format:
            1. Header: scheduler index, scheduler current weight, false
               probability threshold (packed as '<qqd')
            2. Number of children ('<l')
            3. Size table: size of each child in bytes ('<Q' each)
            4. Children: a kind byte (b'F' filter, b'A' aggregate) followed
               by the child's own tofile() output

        An AutoGrowingAggregate child is written as its wrapped aggregate.

        Args:
            f: Seekable file-like object opened in binary write mode.
        """
        f.write(pack(self.FILE_FMT, self.scheduler.index,
                     self.scheduler.current_weight, self.false_probability_threshold))
        f.write(pack('<l', len(self.filters)))

        if self.filters:
            headerpos = f.tell()
            headerfmt = '<' + 'Q' * len(self.filters)
            f.write(b'.' * calcsize(headerfmt))

            filter_sizes = []
            for filter in self.filters:
                begin = f.tell()
                _write_child(f, filter)
                filter_sizes.append(f.tell() - begin)

            end = f.tell()
            f.seek(headerpos)
            f.write(pack(headerfmt, *filter_sizes))
            f.seek(end)

    @classmethod
    def fromfile(cls, f):
        """Deserialize an aggregate written by tofile().

        Raises:
            IncompatibleFilterError: If the data is truncated or malformed.
        """
        index, current_weight, threshold = unpack(
            cls.FILE_FMT, _read_exact(f, calcsize(cls.FILE_FMT)))
        aggregate = cls.__new__(cls)
        aggregate._setup(WeightedRoundRobin(index, current_weight), threshold)
        aggregate.filters = []

        nfilters, = unpack('<l', _read_exact(f, calcsize('<l')))
        if nfilters < 0:
            raise IncompatibleFilterError("Negative number of filters: {}".format(nfilters))
        if nfilters > 0:
            header_fmt = '<' + 'Q' * nfilters
            filter_lengths = unpack(header_fmt, _read_exact(f, calcsize(header_fmt)))
            for length in filter_lengths:
                aggregate.filters.append(_read_child(_read_exact(f, length)))

        return aggregate

    def serialize(self):
        buffer = BytesIO()
        self.tofile(buffer)
        return buffer.getvalue()

    @classmethod
    def deserialize(cls, data):
        return cls.fromfile(BytesIO(data))

    def __repr__(self):
        return 'Aggregate(filters={}, count={})'.format(len(self.filters), self.count)


def _write_child(f, child):
    if isinstance(child, Filter):
        f.write(b'F')
        child.tofile(f)
    elif isinstance(child, Aggregate):
        f.write(b'A')
        child.tofile(f)
    elif isinstance(child, AutoGrowingAggregate):
        f.write(b'A')
        child.aggregate.tofile(f)
    else:
        raise ConfigurationError(
            "Cannot serialize child of type {}".format(type(child).__name__))


def _read_child(data):
    kind, body = data[:1], BytesIO(data[1:])
    if kind == b'F':
        return Filter.fromfile(body)
    if kind == b'A':
        return Aggregate.fromfile(body)
    raise IncompatibleFilterError("Unknown child kind {!r}".format(kind))


class AutoGrowingAggregate:
    """An aggregate that never rejects an insertion.

    Whenever the wrapped Aggregate reports UNDERFLOW or OVERFLOW, the
    factory is called with this object, its result is attached and the
    insertion is retried. The number of filters is unbounded.

    Example:
        >>> grower = AutoGrowingAggregate(lambda agg: Filter(64, ['md5', 'sha1']),
        ...                               false_probability_threshold=0.1)
        >>> for i in range(100):
        ...     _ = grower.add(i)
        >>> len(grower), len(grower.filters) > 1
        (100, True)
    """

    def __init__(self, factory, false_probability_threshold=1, aggregate=None):
        """Initialize an auto-growing aggregate.

        Args:
            factory (callable): ``factory(auto_growing_aggregate)`` returning
                a new child implementing FilterInterface.
            false_probability_threshold (float, optional): Threshold of the
                wrapped aggregate. Ignored when ``aggregate`` is given.
            aggregate (Aggregate, optional): Existing aggregate to wrap.
        """
        if not callable(factory):
            raise ConfigurationError("Factory must be callable")
        self.factory = factory
        if aggregate is None:
            aggregate = Aggregate(false_probability_threshold)
        self.aggregate = aggregate

    @classmethod
    def scalable(cls, initial_capacity=100, error_rate=0.001,
                 mode=None, ratio=0.9):
        """Build a scalable Bloom filter on top of ScalingFactory.

        The aggregate threshold is the flat ``error_rate``: every child keeps
        receiving items until its own false positive probability exceeds
        ``error_rate``, not its tightened ``error_rate * ratio ** (n + 1)``.
        The ratio therefore only shapes the sizing of new children, and the
        whole aggregate's false positive probability is bounded by
        ``error_rate`` per child rather than by the compounded bound of
        Almeida et al.
        """
        if mode is None:
            mode = ScalingFactory.LARGE_SET_GROWTH
        factory = ScalingFactory(initial_capacity, error_rate, mode, ratio)
        return cls(factory, false_probability_threshold=error_rate)

    @property
    def filters(self):
        return self.aggregate.filters

    @property
    def false_probability_threshold(self):
        return self.aggregate.false_probability_threshold

    def attach(self, filter):
        self.aggregate.attach(filter)
        return self

    def grow(self):
        """Build a child with the factory and attach it.

        Returns:
            The new child.
        """
        filter = self.factory(self)
        self.aggregate.attach(filter)
        logger.debug("Attached filter #%d: %r", len(self.filters), filter)
        return filter

    def add(self, item):
        """Add an item, growing the aggregate as many times as needed.

        Returns:
            The filter that handled the item.

        Raises:
            FilterOverflowError: If a filter freshly built by the factory
                cannot take the item either.
        """
        grown = False
        while True:
            result = self.aggregate.try_add(item)
            if result.ok:
                return result.handled_by
            if grown:
                raise FilterOverflowError(
                    "Filter built by the factory cannot accept items: {!r}".format(
                        self.filters[-1]))
            self.grow()
            grown = True

    def has(self, item):
        return self.aggregate.has(item)

    def __contains__(self, item):
        return item in self.aggregate

    def is_full(self):
        return self.aggregate.is_full()

    @property
    def count(self):
        return self.aggregate.count

    def __len__(self):
        return self.aggregate.count

    def false_positive_probability(self):
        return self.aggregate.false_positive_probability()

    def tofile(self, f):
        """Serialize the wrapped aggregate. The factory is not persisted."""
        self.aggregate.tofile(f)

    @classmethod
    def fromfile(cls, f, factory):
        """Deserialize an aggregate and wrap it with ``factory``."""
        return cls(factory, aggregate=Aggregate.fromfile(f))

    def serialize(self):
        return self.aggregate.serialize()

    @classmethod
    def deserialize(cls, data, factory):
        return cls(factory, aggregate=Aggregate.deserialize(data))

    def __repr__(self):
        return 'AutoGrowingAggregate(filters={}, count={})'.format(
            len(self.filters), self.count)


class ScalingFactory:
    """Factory producing geometrically growing filters.

    The n-th child (0-based) is sized for ``initial_capacity * mode ** n``
    items at an error rate of ``error_rate * ratio ** (n + 1)``.

    Class Attributes:
        SMALL_SET_GROWTH (int): Growth factor of 2 - slower growth, less memory
        LARGE_SET_GROWTH (int): Growth factor of 4 - faster growth (default)
    """
    SMALL_SET_GROWTH = 2
    LARGE_SET_GROWTH = 4

    def __init__(self, initial_capacity=100, error_rate=0.001,
                 mode=LARGE_SET_GROWTH, ratio=0.9, rng=None):
        if not initial_capacity > 0:
            raise ConfigurationError("Capacity must be > 0")
        if not 0 < error_rate < 1:
            raise ConfigurationError("Error_Rate must be between 0 and 1.")
        if not mode >= 1:
            raise ConfigurationError("Growth mode must be >= 1")
        if not 0 < ratio <= 1:
            raise ConfigurationError("Tightening ratio must be in (0, 1]")
        self.initial_capacity = initial_capacity
        self.error_rate = error_rate
        self.scale = mode
        self.ratio = ratio
        self.rng = rng

    def capacity_for(self, n):
        return self.initial_capacity * self.scale ** n

    def error_rate_for(self, n):
        return self.error_rate * self.ratio ** (n + 1)

    def __call__(self, aggregate):
        n = len(aggregate.filters)
        return Filter.optimum(self.error_rate_for(n), self.capacity_for(n), self.rng)
