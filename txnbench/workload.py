"""Workload generator.

The Workload produces RMW transactions from a fixed configuration and a
seeded RandomState. Two workloads built from the same config and seed
yield identical key sets.

Key types:
- WorkloadConfig: Immutable workload configuration
- Workload: Transaction generator
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generator, List, Optional

import numpy as np

from txnbench.txn_types import RMW

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# WorkloadConfig
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkloadConfig:
    """Immutable workload configuration.

    partitions_per_txn of None draws keys uniformly over the whole
    keyspace; otherwise every transaction touches exactly
    min(partitions_per_txn, thread_count) partitions.
    """
    dbsize: int
    readsetsize: int
    writesetsize: int

    # Simulated CPU time per transaction, in seconds
    duration: float = 0.0

    # Partitioning (None = whole keyspace)
    partitions_per_txn: Optional[int] = None
    thread_count: int = 1


# ---------------------------------------------------------------------------
# Workload
# ---------------------------------------------------------------------------

class Workload:
    """RMW transaction generator with an encapsulated RandomState.

    Usage:
        for txn in workload.generate():
            scheduler.submit(txn)
    """

    def __init__(
        self,
        config: WorkloadConfig,
        seed: Optional[int] = None,
    ):
        self._config = config
        self._rng = np.random.RandomState(seed)
        self._txn_counter = 0

    @property
    def config(self) -> WorkloadConfig:
        return self._config

    @property
    def generated(self) -> int:
        return self._txn_counter

    def generate(self) -> Generator[RMW, None, None]:
        """Yield transactions indefinitely."""
        while True:
            yield self._create_transaction()

    def take(self, n: int) -> List[RMW]:
        gen = self.generate()
        return [next(gen) for _ in range(n)]

    def _create_transaction(self) -> RMW:
        cfg = self._config
        self._txn_counter += 1

        if cfg.partitions_per_txn is None:
            txn = RMW.random(
                cfg.dbsize,
                cfg.readsetsize,
                cfg.writesetsize,
                duration=cfg.duration,
                rng=self._rng,
            )
        else:
            txn = RMW.partitioned(
                cfg.dbsize,
                cfg.readsetsize,
                cfg.writesetsize,
                cfg.partitions_per_txn,
                cfg.thread_count,
                duration=cfg.duration,
                rng=self._rng,
            )

        logger.debug(f"TXN {self._txn_counter} generated: {txn!r}")
        return txn
