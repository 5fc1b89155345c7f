"""Hash algorithm registry and bit position derivation.

A filter is configured with an ordered list of algorithm *names*. Names are
resolved once, at construction, against the closed registry below; hashing
an item then runs each digest over the item's canonical bytes and folds the
digest to a bit position.

Folding:
    position = crc32(digest) % num_bits

``zlib.crc32`` always returns an unsigned 32-bit value, so positions are
identical on every host regardless of native word size. FOLD_WIDTH is
written into serialized filters and checked on load.
"""
import hashlib
import zlib

import xxhash

from .exceptions import ConfigurationError

FOLD_WIDTH = 32

HASH_ALGORITHMS = {
    'md5': hashlib.md5,
    'sha1': hashlib.sha1,
    'sha224': hashlib.sha224,
    'sha256': hashlib.sha256,
    'sha384': hashlib.sha384,
    'sha512': hashlib.sha512,
    'sha3_224': hashlib.sha3_224,
    'sha3_256': hashlib.sha3_256,
    'sha3_384': hashlib.sha3_384,
    'sha3_512': hashlib.sha3_512,
    'blake2b': hashlib.blake2b,
    'blake2s': hashlib.blake2s,
    'xxh32': xxhash.xxh32,
    'xxh64': xxhash.xxh64,
    'xxh3_64': xxhash.xxh3_64,
    'xxh3_128': xxhash.xxh3_128,
}


def canonical_bytes(item):
    """Normalize an item to the bytes that get hashed.

    Strings are UTF-8 encoded, bytes are used as-is and anything else goes
    through ``str()`` first, so ``42`` and ``"42"`` hash identically.
    """
    if isinstance(item, str):
        return item.encode('utf-8')
    if isinstance(item, bytes):
        return item
    return str(item).encode('utf-8')


def fold(digest):
    """Fold a digest of any length to an unsigned 32-bit checksum."""
    return zlib.crc32(digest) & 0xFFFFFFFF


def resolve(names):
    """Validate algorithm names and return their digest constructors.

    Args:
        names (iterable of str): Ordered algorithm names.

    Returns:
        tuple: Digest constructors, in the same order as ``names``.

    Raises:
        ConfigurationError: If ``names`` is empty or contains a name that
            is not in HASH_ALGORITHMS.
    """
    names = list(names)
    if not names:
        raise ConfigurationError("You must provide at least one hash algorithm")
    hashfns = []
    for name in names:
        try:
            hashfns.append(HASH_ALGORITHMS[name])
        except (KeyError, TypeError):
            raise ConfigurationError(
                "Hash algorithm {!r} is not supported".format(name)) from None
    return tuple(hashfns)


def make_positions(hashfns, num_bits):
    """Create the position generator for a filter.

    Args:
        hashfns (tuple): Digest constructors returned by resolve().
        num_bits (int): Size of the bit array positions are reduced to.

    Returns:
        callable: ``positions(item)`` yielding one bit index per algorithm,
            in algorithm order.
    """
    def _positions(item):
        key = canonical_bytes(item)
        for hashfn in hashfns:
            yield fold(hashfn(key).digest()) % num_bits

    return _positions
