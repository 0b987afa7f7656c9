"""Partition-aware key sampling.

The keyspace [0, dbsize) is split into thread_count equal chunks of
dbsize // thread_count keys. Keys past thread_count * chunk_size (the
truncated tail) belong to no partition and are never produced by the
partitioned sampler.

Key types:
- Keyspace: Immutable partition geometry
- KeySets: Immutable (readset, writeset) pair
- sample_uniform_keys: Disjoint readset/writeset over the whole keyspace
- sample_partitioned_keys: Disjoint sets spanning exactly k partitions

Both samplers reject keys already drawn and redraw. The retry budget is
bounded and capacity is checked before any draw, so a request that cannot
be satisfied fails with ValueError up front rather than spinning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Set, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Draws allowed per key, as a multiple of the domain being sampled.
_RETRY_FACTOR = 100


class SamplingError(RuntimeError):
    """Raised when rejection sampling exhausts its retry budget."""
    pass


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Keyspace:
    """Keyspace [0, dbsize) split into thread_count equal partitions."""
    dbsize: int
    thread_count: int = 1

    def __post_init__(self):
        if self.thread_count < 1:
            raise ValueError(f"thread_count must be >= 1, got {self.thread_count}")
        if self.dbsize < self.thread_count:
            raise ValueError(
                f"dbsize ({self.dbsize}) must be >= thread_count ({self.thread_count})"
            )

    @property
    def chunk_size(self) -> int:
        return self.dbsize // self.thread_count

    @property
    def reachable(self) -> int:
        """Number of keys covered by some partition."""
        return self.chunk_size * self.thread_count

    def bounds(self, partition: int) -> Tuple[int, int]:
        """Half-open [lo, hi) key range of a partition."""
        if not 0 <= partition < self.thread_count:
            raise ValueError(
                f"partition must be in [0, {self.thread_count}), got {partition}"
            )
        lo = partition * self.chunk_size
        return lo, lo + self.chunk_size

    def partition_of(self, key: int) -> Optional[int]:
        """Partition index of key, or None for the truncated tail."""
        if not 0 <= key < self.dbsize:
            raise ValueError(f"key must be in [0, {self.dbsize}), got {key}")
        if key >= self.reachable:
            return None
        return key // self.chunk_size

    def partitions_touched(self, keys) -> FrozenSet[int]:
        return frozenset(
            p for p in (self.partition_of(k) for k in keys) if p is not None
        )


@dataclass(frozen=True)
class KeySets:
    """Disjoint readset and writeset."""
    readset: FrozenSet[int]
    writeset: FrozenSet[int]


# ---------------------------------------------------------------------------
# Rejection sampling
# ---------------------------------------------------------------------------

def _draw_fresh(
    lo: int,
    hi: int,
    taken: Set[int],
    exclude: Set[int],
    rng: np.random.RandomState,
) -> int:
    """Draw a key uniformly from [lo, hi) that is in neither set."""
    budget = _RETRY_FACTOR * (hi - lo)
    for _ in range(budget):
        key = int(rng.randint(lo, hi))
        if key not in taken and key not in exclude:
            return key
    raise SamplingError(
        f"no fresh key in [{lo}, {hi}) after {budget} draws"
    )


def _check_sizes(dbsize: int, readsetsize: int, writesetsize: int) -> None:
    if readsetsize < 0 or writesetsize < 0:
        raise ValueError(
            f"set sizes must be >= 0, got readsetsize={readsetsize}, "
            f"writesetsize={writesetsize}"
        )
    if dbsize < readsetsize + writesetsize:
        raise ValueError(
            f"dbsize ({dbsize}) must be >= readsetsize + writesetsize "
            f"({readsetsize + writesetsize})"
        )


def sample_uniform_keys(
    dbsize: int,
    readsetsize: int,
    writesetsize: int,
    rng: np.random.RandomState,
) -> KeySets:
    """Unique keys drawn uniformly from [0, dbsize).

    The readset is filled first, then the writeset avoiding every read key.
    """
    _check_sizes(dbsize, readsetsize, writesetsize)

    readset: Set[int] = set()
    writeset: Set[int] = set()
    for _ in range(readsetsize):
        readset.add(_draw_fresh(0, dbsize, readset, writeset, rng))
    for _ in range(writesetsize):
        writeset.add(_draw_fresh(0, dbsize, writeset, readset, rng))

    return KeySets(frozenset(readset), frozenset(writeset))


def choose_partitions(
    k: int,
    thread_count: int,
    rng: np.random.RandomState,
) -> List[int]:
    """k distinct partition indices, in the random order they were drawn."""
    chosen = rng.choice(thread_count, size=k, replace=False)
    return [int(p) for p in chosen]


def sample_partitioned_keys(
    dbsize: int,
    readsetsize: int,
    writesetsize: int,
    k: int,
    thread_count: int,
    rng: np.random.RandomState,
) -> KeySets:
    """Disjoint sets whose union touches exactly min(k, thread_count) partitions.

    Writeset keys are placed first, then readset keys. The first k keys go
    one each to the target partitions in target order (coverage phase), so
    every target is hit before any is reused. Remaining keys go to a
    uniformly chosen target (fill phase), restricted to targets that still
    have unused keys.

    Requires readsetsize + writesetsize >= k after clamping.
    """
    _check_sizes(dbsize, readsetsize, writesetsize)
    space = Keyspace(dbsize, thread_count)

    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    if k > thread_count:
        logger.debug(f"Clamping k={k} to thread_count={thread_count}")
        k = thread_count

    total = readsetsize + writesetsize
    if total < k:
        raise ValueError(
            f"readsetsize + writesetsize ({total}) must be >= k ({k}) "
            f"to cover every target partition"
        )
    capacity = k * space.chunk_size
    if total > capacity:
        raise ValueError(
            f"readsetsize + writesetsize ({total}) exceeds the {capacity} keys "
            f"in {k} partitions of {space.chunk_size}"
        )

    targets = choose_partitions(k, thread_count, rng)
    used = {p: 0 for p in targets}
    readset: Set[int] = set()
    writeset: Set[int] = set()
    placed = 0

    def next_partition() -> int:
        if placed < k:
            return targets[placed]
        open_targets = [p for p in targets if used[p] < space.chunk_size]
        return open_targets[int(rng.randint(len(open_targets)))]

    for dest, other, n in ((writeset, readset, writesetsize),
                           (readset, writeset, readsetsize)):
        for _ in range(n):
            partition = next_partition()
            lo, hi = space.bounds(partition)
            dest.add(_draw_fresh(lo, hi, dest, other, rng))
            used[partition] += 1
            placed += 1

    logger.debug(
        f"Sampled {len(readset)} reads, {len(writeset)} writes "
        f"across partitions {sorted(space.partitions_touched(readset | writeset))}"
    )
    return KeySets(frozenset(readset), frozenset(writeset))
