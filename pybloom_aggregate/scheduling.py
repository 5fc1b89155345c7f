"""Weighted round-robin scheduling.

Adapted from the LVS weighted round-robin algorithm
(http://kb.linuxvirtualserver.org/wiki/Weighted_Round-Robin_Scheduling).
Aggregates use it to spread insertions over their filters: each filter gets
picked in proportion to its weight, and picks are interleaved within a cycle
instead of being emitted in bursts.
"""
from .exceptions import ConfigurationError


def gcd(*numbers):
    """Greatest common divisor of non-negative integers.

    Accepts either several integers or a single iterable of them.

    Example:
        >>> gcd(12, 18, 24)
        6
        >>> gcd([100, 97, 0])
        1
        >>> gcd(0, 0)
        0
    """
    if len(numbers) == 1 and not isinstance(numbers[0], int):
        numbers = tuple(numbers[0])
    if not numbers:
        raise ConfigurationError("gcd() requires at least one number")

    values = sorted(set(numbers))
    a = values[0]
    for b in values[1:]:
        # b is never 0 here: values are unique and sorted, so only the
        # first one can be 0
        while b:
            a, b = b, a % b
        if a == 1:
            break
    return a


class WeightedRoundRobin:
    """Stateful weighted round-robin selector.

    The scheduler keeps the position of the last pick and the current
    weight between calls, which is what provides round-robin continuity.
    Both may be passed in to resume a persisted schedule.

    Example:
        >>> wrr = WeightedRoundRobin()
        >>> [wrr.next([5, 1, 1]) for _ in range(7)]
        [0, 0, 0, 0, 0, 1, 2]
    """

    def __init__(self, index=-1, current_weight=0):
        self.index = index
        self.current_weight = current_weight

    def next(self, weights):
        """Return the index of the next candidate, or None.

        None is returned when ``weights`` is empty or every weight is zero.
        """
        n = len(weights)
        # an all-zero vector has gcd 0, current_weight would never drop
        if not n or not any(weights):
            return None

        while True:
            self.index = (self.index + 1) % n
            if self.index == 0:
                self.current_weight -= gcd(weights)
                if self.current_weight <= 0:
                    self.current_weight = max(weights)
                    if self.current_weight == 0:
                        return None
            if weights[self.index] >= self.current_weight:
                return self.index

    def __repr__(self):
        return 'WeightedRoundRobin(index={}, current_weight={})'.format(
            self.index, self.current_weight)
