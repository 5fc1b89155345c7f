"""Fixed-size Bloom filter.

A Filter is a bit array of ``size`` bits plus an ordered list of named hash
algorithms. Each algorithm contributes one bit position per item, so an
item is stored by setting ``len(hash_algorithms)`` bits and is reported as
present when all of them are set. Filters never produce false negatives.

Mathematical Foundation:
    - Optimal bit count: m = -(n × ln(P)) / ln(2)²
    - Optimal hash functions: k = max((m / n) × ln(2), 1)
    - False positive probability: P ≈ (1 - e^(-kn/m))^k
    - Capacity for a target P: n = -(m × ln(2)²) / ln(P)

Requirements:
    - bitarray: Efficient bit array operations
    - xxhash: Fast non-cryptographic hashing (see hashing.HASH_ALGORITHMS)
"""
import logging
import math
import random
from io import BytesIO
from struct import calcsize, pack, unpack

from .exceptions import (ConfigurationError, DegenerateProbabilityError,
                         IncompatibleFilterError)
from .hashing import FOLD_WIDTH, HASH_ALGORITHMS, make_positions, resolve

try:
    import bitarray
except ImportError:
    raise ImportError('pybloom_aggregate requires bitarray >= 2.0')

logger = logging.getLogger(__name__)


def _read_exact(f, n):
    data = f.read(n)
    if len(data) != n:
        raise IncompatibleFilterError(
            "Truncated data: expected {} bytes, got {}".format(n, len(data)))
    return data


def _decode_ascii(data):
    try:
        return data.decode('ascii')
    except UnicodeDecodeError:
        raise IncompatibleFilterError("Serialized filter contains non-ASCII data") from None


def _bits_from_hex(hex_bits, size):
    """Rebuild a little-endian bit array from its hexadecimal dump."""
    try:
        raw = bytes.fromhex(hex_bits)
    except ValueError:
        raise IncompatibleFilterError("Bit field is not a valid hexadecimal string") from None
    if len(raw) != (size + 7) // 8:
        raise IncompatibleFilterError('Bit length mismatch!')
    bits = bitarray.bitarray(endian='little')
    bits.frombytes(raw)
    del bits[size:]
    return bits


class Filter:
    """Bloom filter over a fixed number of bits.

    Example:
        >>> f = Filter(1024, ['md5', 'sha1', 'xxh64'])
        >>> f.add("apple") is f
        True
        >>> "apple" in f
        True
        >>> len(f)
        1
    """
    FILE_FMT = '<QQHB'

    def __init__(self, size, hash_algorithms):
        """Initialize an empty Bloom filter.

        Args:
            size (int): Number of bits. Must be > 0.
            hash_algorithms (list of str): Ordered names of the hash
                algorithms to use, taken from hashing.HASH_ALGORITHMS.
                The order defines the order in which bit positions are
                derived and is preserved by serialization.

        Raises:
            ConfigurationError: If size is not a positive integer, if no
                algorithm is given, or if an algorithm is not supported.
        """
        self._setup(size, hash_algorithms, 0)
        self.bitarray = bitarray.bitarray(self.size, endian='little')
        self.bitarray.setall(False)

    def _setup(self, size, hash_algorithms, count):
        """Validate and install the filter configuration.

        Used both by the constructor and when restoring a serialized filter.
        """
        if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
            raise ConfigurationError("Size must be a positive integer")
        hash_algorithms = tuple(hash_algorithms)
        hashfns = resolve(hash_algorithms)

        self.size = size
        self.hash_algorithms = hash_algorithms
        self.count = count
        self.make_positions = make_positions(hashfns, size)

    # ------------------------------------------------------------------
    # Sizing math
    # ------------------------------------------------------------------

    @staticmethod
    def optimal_size(probability, items_count):
        """Optimal number of bits for a target false positive probability.

        Args:
            probability (float): Target false positive probability.
            items_count (int): Number of items the filter should hold.

        Returns:
            float: -(items_count × ln(probability)) / ln(2)²

        Raises:
            ConfigurationError: If items_count is negative or probability
                is outside [0, 1].
            DegenerateProbabilityError: If probability is exactly 0 or 1,
                where the formula is undefined.

        Example:
            >>> round(Filter.optimal_size(0.01, 1000), 2)
            9585.06
        """
        if items_count < 0:
            raise ConfigurationError("Item count cannot be negative")
        if not 0 <= probability <= 1:
            raise ConfigurationError(
                "False positive probability cannot be negative or greater than 1")
        if probability == 0 or probability == 1:
            raise DegenerateProbabilityError(
                "Unable to calculate size for false positive probability of {}".format(probability))

        return -(items_count * math.log(probability)) / (math.log(2) ** 2)

    @staticmethod
    def optimal_num_hashes(size, items_count):
        """Optimal number of hash functions for a size and a capacity.

        Returns:
            float: max((size / items_count) × ln(2), 1)

        Raises:
            ConfigurationError: If either argument is negative or
                items_count is 0.
        """
        if size < 0:
            raise ConfigurationError("Size cannot be negative")
        if items_count < 0:
            raise ConfigurationError("Item count cannot be negative")
        if items_count == 0:
            raise ConfigurationError("Item count must be > 0")

        return max((size / items_count) * math.log(2), 1)

    @classmethod
    def optimum(cls, probability, items_count, rng=None):
        """Build a filter sized for a target probability and capacity.

        The size is rounded up and the number of hash functions rounded to
        the nearest integer; that many distinct algorithms are then drawn at
        random from the registry.

        Args:
            probability (float): Target false positive probability, in (0, 1).
            items_count (int): Expected number of items. Must be > 0.
            rng (random.Random, optional): Source of randomness for the
                algorithm draw. Defaults to the ``random`` module.

        Returns:
            Filter: A new, empty filter.

        Example:
            >>> f = Filter.optimum(0.01, 1000)
            >>> f.size, len(f.hash_algorithms)
            (9586, 7)
        """
        size = max(1, int(math.ceil(cls.optimal_size(probability, items_count))))
        num_hashes = int(round(cls.optimal_num_hashes(size, items_count)))

        algorithms = sorted(HASH_ALGORITHMS)
        if num_hashes > len(algorithms):
            logger.warning(
                "%d hash functions requested for p=%s but only %d are available; "
                "the filter will exceed its target probability",
                num_hashes, probability, len(algorithms))
            num_hashes = len(algorithms)

        rng = rng or random
        return cls(size, rng.sample(algorithms, num_hashes))

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def hash(self, item):
        """Yield one bit position per hash algorithm, in algorithm order.

        The generator is pure: calling hash() again on the same item yields
        the same positions.
        """
        return self.make_positions(item)

    def add(self, item):
        """Add an item to the filter.

        Every insertion increments ``count``, duplicates included.

        Returns:
            Filter: This filter, the one that stored the item.
        """
        bitarray = self.bitarray
        for k in self.make_positions(item):
            bitarray[k] = True
        self.count += 1
        return self

    def has(self, item):
        """Tell whether the item may be in the set.

        Returns:
            bool: False if the item is definitely absent, True if it was
                added or is a false positive.
        """
        bitarray = self.bitarray
        for k in self.make_positions(item):
            if not bitarray[k]:
                return False
        return True

    def __contains__(self, item):
        return self.has(item)

    def __len__(self):
        return self.count

    def is_full(self):
        """Return True if every bit is set."""
        return self.bitarray.all()

    def fill_ratio(self):
        """Fraction of bits currently set."""
        return self.bitarray.count(1) / self.size

    def distance_with(self, item):
        """Hamming distance between the item and the filter.

        Counts the item's positions that are not set yet: 0 means the item
        is (or looks like) a member, larger values mean further away.
        """
        bitarray = self.bitarray
        return sum(1 for k in self.make_positions(item) if not bitarray[k])

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------

    def false_positive_probability(self):
        """Current false positive probability, (1 - e^(-kn/m))^k."""
        m = self.size
        n = self.count
        k = len(self.hash_algorithms)
        return (1 - math.exp(-k * n / m)) ** k

    def estimate_capacity(self, probability):
        """Estimate how many distinct items fit before reaching a probability.

        Returns:
            float: -(size × ln(2)²) / ln(probability); ``inf`` for a
                probability of 1 and 0 for a probability of 0.

        Raises:
            ConfigurationError: If probability is outside [0, 1].
        """
        if not 0 <= probability <= 1:
            raise ConfigurationError(
                "False positive probability cannot be negative or greater than 1")
        if probability == 1:
            return math.inf
        if probability == 0:
            return 0

        return -(self.size * math.log(2) ** 2) / math.log(probability)

    def estimate_fill_rate(self, probability):
        """Ratio between ``count`` and estimate_capacity(probability)."""
        if not self.count:
            return 0
        capacity = self.estimate_capacity(probability)
        if not capacity:
            return math.inf
        return self.count / capacity

    # ------------------------------------------------------------------
    # Set operations
    # ------------------------------------------------------------------

    def copy(self):
        """Create an independent copy of this filter, count included."""
        new_filter = Filter(self.size, self.hash_algorithms)
        new_filter.bitarray = self.bitarray.copy()
        new_filter.count = self.count
        return new_filter

    def _check_compatible(self, other, operation):
        if not isinstance(other, Filter):
            raise IncompatibleFilterError(
                "Cannot compute {} of a bloom-filter and {!r}".format(operation, other))
        if self.hash_algorithms != other.hash_algorithms:
            raise IncompatibleFilterError(
                "Cannot compute {} of bloom-filters with different sets of hash functions".format(operation))
        if self.size != other.size:
            raise IncompatibleFilterError(
                "Cannot compute {} of bloom-filters with different sizes".format(operation))

    def union(self, other):
        """Bitwise OR of two filters with the same size and hash algorithms.

        The result holds every item of both filters. Its count is reset to 0
        since overlapping insertions cannot be told apart.

        Raises:
            IncompatibleFilterError: If sizes or hash algorithms differ.
        """
        self._check_compatible(other, 'union')
        new_filter = Filter(self.size, self.hash_algorithms)
        new_filter.bitarray = self.bitarray | other.bitarray
        return new_filter

    def __or__(self, other):
        return self.union(other)

    def intersect(self, other):
        """Bitwise AND of two filters with the same size and hash algorithms.

        An item is reported by the result when all its positions are set in
        both filters. The count of the result is 0.

        Raises:
            IncompatibleFilterError: If sizes or hash algorithms differ.
        """
        self._check_compatible(other, 'intersection')
        new_filter = Filter(self.size, self.hash_algorithms)
        new_filter.bitarray = self.bitarray & other.bitarray
        return new_filter

    def __and__(self, other):
        return self.intersect(other)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_hex(self):
        """Export the bit array as a fixed-length hexadecimal string.

        Byte ``i // 8`` holds bit ``i`` at position ``i % 8``, least
        significant bit first; the last byte is zero-padded.
        """
        return self.bitarray.tobytes().hex()

    def _restore(self, size, hash_algorithms, count, fold_width, hex_bits):
        if fold_width != FOLD_WIDTH:
            raise IncompatibleFilterError(
                "Unable to import bloom-filter folded on {}b: current fold width is {}b".format(
                    fold_width, FOLD_WIDTH))
        self._setup(size, hash_algorithms, count)
        self.bitarray = _bits_from_hex(hex_bits, size)

    def __getstate__(self):
        """Return the serialized field sequence used for pickling.

        Fields: size, hash algorithm names, count, fold width, hex bits.
        """
        return (self.size, list(self.hash_algorithms), self.count,
                FOLD_WIDTH, self.to_hex())

    def __setstate__(self, state):
        self._restore(*state)

    def tofile(self, f):
        """Serialize the filter to a binary file.

        File Format:
            - Header: size, count, fold width, number of algorithms
              (packed as '<QQHB')
            - For each algorithm: its name length ('<B') then its ASCII name
            - Body: the to_hex() string, ASCII encoded

        Args:
            f: File-like object opened in binary write mode.
        """
        names = [name.encode('ascii') for name in self.hash_algorithms]
        f.write(pack(self.FILE_FMT, self.size, self.count, FOLD_WIDTH, len(names)))
        for name in names:
            f.write(pack('<B', len(name)))
            f.write(name)
        f.write(self.to_hex().encode('ascii'))

    @classmethod
    def fromfile(cls, f):
        """Deserialize a filter written by tofile().

        Raises:
            IncompatibleFilterError: If the data is truncated or malformed,
                or was written with a different fold width.
            ConfigurationError: If the stored configuration is invalid.
        """
        size, count, fold_width, num_algorithms = unpack(
            cls.FILE_FMT, _read_exact(f, calcsize(cls.FILE_FMT)))

        names = []
        for _ in range(num_algorithms):
            length, = unpack('<B', _read_exact(f, 1))
            names.append(_decode_ascii(_read_exact(f, length)))
        hex_bits = _decode_ascii(_read_exact(f, 2 * ((size + 7) // 8)))

        filter = cls.__new__(cls)
        filter._restore(size, names, count, fold_width, hex_bits)
        return filter

    def serialize(self):
        """Return the tofile() representation as bytes."""
        buffer = BytesIO()
        self.tofile(buffer)
        return buffer.getvalue()

    @classmethod
    def deserialize(cls, data):
        """Rebuild a filter from serialize() output."""
        return cls.fromfile(BytesIO(data))

    def __repr__(self):
        return 'Filter(size={}, hash_algorithms={!r}, count={})'.format(
            self.size, list(self.hash_algorithms), self.count)


if __name__ == "__main__":
    import doctest

    doctest.testmod()
