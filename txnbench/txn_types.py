"""Concrete transaction types.

- Noop: Declares nothing, commits immediately
- Expect: Reads keys and commits only if every value matches
- Put: Writes a fixed mapping and commits
- RMW: Read-modify-write over explicit or randomly generated key sets,
  with a configurable busy-wait to simulate CPU-bound logic
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Callable, Dict, Iterable, Optional

import numpy as np

from txnbench.keyspace import sample_partitioned_keys, sample_uniform_keys
from txnbench.transaction import Key, Transaction, Value

logger = logging.getLogger(__name__)


def busy_wait(duration: float, clock: Callable[[], float]) -> int:
    """Spin on CPU-bound arithmetic until clock() has advanced by duration.

    Never sleeps or yields. Returns the number of spin rounds.
    """
    rounds = 0
    begin = clock()
    while clock() - begin < duration:
        for _ in range(1000):
            x = 100
            x = x + 2
            x = x * x
        rounds += 1
    return rounds


class Noop(Transaction):
    """Immediately commits."""

    def run(self) -> None:
        self.commit()

    def clone(self) -> Noop:
        return self._copy_txn_internals(Noop())


class Expect(Transaction):
    """Verification transaction.

    Reads every key in the expected mapping. Aborts on the first key that
    is missing or holds a different value; commits if all match. Built from
    a plain iterable of keys (not a str or bytes), every key is expected to
    hold default_value.
    """

    def __init__(self, expected: Mapping | Iterable[Key], default_value: Value = 1):
        super().__init__()
        if isinstance(expected, (str, bytes)):
            raise TypeError(
                f"expected must be a mapping or an iterable of keys, got {type(expected).__name__}"
            )
        if isinstance(expected, Mapping):
            self._expected: Dict[Key, Value] = dict(expected)
        else:
            self._expected = {key: default_value for key in expected}
        self._readset = set(self._expected)

    @property
    def expected(self) -> Dict[Key, Value]:
        return dict(self._expected)

    def run(self) -> None:
        for key in sorted(self._expected):
            found, value = self.read(key)
            if not found:
                self.abort(f"key {key!r} not found")
                return
            if value != self._expected[key]:
                self.abort(f"key {key!r}: expected {self._expected[key]!r}, got {value!r}")
                return
        self.commit()

    def clone(self) -> Expect:
        return self._copy_txn_internals(Expect(self._expected))


class Put(Transaction):
    """Inserts all pairs of a mapping."""

    def __init__(self, values: Mapping):
        super().__init__()
        self._values: Dict[Key, Value] = dict(values)
        self._writeset = set(self._values)

    @property
    def values(self) -> Dict[Key, Value]:
        return dict(self._values)

    def run(self) -> None:
        for key in sorted(self._values):
            self.write(key, self._values[key])
        self.commit()

    def clone(self) -> Put:
        return self._copy_txn_internals(Put(self._values))


class RMW(Transaction):
    """Read-modify-write transaction.

    Reads the whole readset (values discarded), spins for duration seconds,
    then increments every writeset key (absent keys count as 0). Never
    aborts.

    Construct with explicit sets, or with RMW.random() / RMW.partitioned()
    for generated ones.
    """

    def __init__(
        self,
        readset: Iterable[Key] = (),
        writeset: Iterable[Key] = (),
        duration: float = 0.0,
    ):
        super().__init__()
        if duration < 0:
            raise ValueError(f"duration must be >= 0, got {duration}")
        self._readset = set(readset)
        self._writeset = set(writeset)
        overlap = self._readset & self._writeset
        if overlap:
            raise ValueError(f"readset and writeset overlap on {sorted(overlap)}")
        self._duration = float(duration)

    @property
    def duration(self) -> float:
        return self._duration

    @classmethod
    def random(
        cls,
        dbsize: int,
        readsetsize: int,
        writesetsize: int,
        duration: float = 0.0,
        rng: Optional[np.random.RandomState] = None,
    ) -> RMW:
        """RMW over unique keys drawn uniformly from [0, dbsize)."""
        rng = rng if rng is not None else np.random.RandomState()
        keys = sample_uniform_keys(dbsize, readsetsize, writesetsize, rng)
        return cls(keys.readset, keys.writeset, duration)

    @classmethod
    def partitioned(
        cls,
        dbsize: int,
        readsetsize: int,
        writesetsize: int,
        k: int,
        thread_count: int,
        duration: float = 0.0,
        rng: Optional[np.random.RandomState] = None,
    ) -> RMW:
        """RMW whose keys span exactly min(k, thread_count) partitions."""
        rng = rng if rng is not None else np.random.RandomState()
        keys = sample_partitioned_keys(
            dbsize, readsetsize, writesetsize, k, thread_count, rng,
        )
        return cls(keys.readset, keys.writeset, duration)

    def run(self) -> None:
        for key in sorted(self._readset):
            self.read(key)

        if self._duration > 0:
            rounds = busy_wait(self._duration, self.get_time)
            logger.debug(f"RMW spun {rounds} rounds for {self._duration}s")

        for key in sorted(self._writeset):
            found, value = self.read(key)
            self.write(key, (value if found else 0) + 1)

        self.commit()

    def clone(self) -> RMW:
        return self._copy_txn_internals(RMW(duration=self._duration))
