"""In-memory execution context.

InMemoryStore is a dict-backed ExecutionContext for serial runs and tests.
It does no locking or isolation; whoever drives it runs one transaction at
a time.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Mapping, Optional, Tuple

from txnbench.transaction import ExecutionContext, Key, Value


class InMemoryStore(ExecutionContext):
    """Dict-backed key-value store with read/write counters."""

    def __init__(
        self,
        initial: Optional[Mapping[Key, Value]] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self._data: Dict[Key, Value] = dict(initial) if initial else {}
        self._clock = clock
        self.reads = 0
        self.writes = 0

    def read(self, key: Key) -> Tuple[bool, Value]:
        self.reads += 1
        if key in self._data:
            return True, self._data[key]
        return False, None

    def write(self, key: Key, value: Value) -> None:
        self.writes += 1
        self._data[key] = value

    def get_time(self) -> float:
        return self._clock()

    def get(self, key: Key, default: Value = None) -> Value:
        """Direct lookup that bypasses the counters."""
        return self._data.get(key, default)

    def snapshot(self) -> Dict[Key, Value]:
        return dict(self._data)

    def __contains__(self, key: Key) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)
