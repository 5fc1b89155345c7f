#!/usr/bin/env python3
"""Setup script for pybloom_aggregate - Bloom filters and filter aggregates."""
from setuptools import setup

VERSION = "1.0.0"
DESCRIPTION = "Bloom filter aggregates: weighted and self-growing collections of Bloom filters"
LONG_DESCRIPTION = """
A pure-Python Bloom filter library built around three composable pieces.

This module provides three implementations sharing one capability contract
(add, has, is_full, count, false_positive_probability):
- Filter: Fixed-size bit array with an ordered list of named hash algorithms
- Aggregate: Weighted round-robin collection of filters, which can be nested
- AutoGrowingAggregate: Aggregate that builds a new filter whenever every
  attached one is saturated, so insertions never fail

Features:
- Closed-form sizing math (optimal size, optimal number of hash functions)
- Hash algorithms from hashlib and xxHash, selectable by name
- Space-efficient bit array storage
- Set operations (union, intersection)
- Binary serialization of filters and whole aggregates
- Scalable Bloom filter growth (geometric capacity, tightening error rate)
"""

CLASSIFIERS = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "License :: OSI Approved :: MIT License",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3.8",
    "Programming Language :: Python :: 3.9",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3 :: Only",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: Utilities",
]

setup(
    name="pybloom_aggregate",
    version=VERSION,
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/plain",
    classifiers=CLASSIFIERS,
    keywords=[
        "bloom filter",
        "probabilistic",
        "data structures",
        "set membership",
        "weighted round robin",
        "scalable",
        "xxhash",
    ],
    license="MIT License",
    platforms=["any"],
    python_requires=">=3.8",
    install_requires=["bitarray>=2.0", "xxhash>=3.0.0"],
    extras_require={"test": ["pytest"]},
    packages=["pybloom_aggregate"],
    zip_safe=True,
)
