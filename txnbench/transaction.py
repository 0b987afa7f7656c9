"""Transaction contract.

A transaction declares the keys it will touch up front (readset and
writeset), then runs its logic against an ExecutionContext that supplies
read/write primitives and a monotonic clock. The declared sets are the
manifest a scheduler uses for locking or routing; run() must stay inside
them.

Key types (public):
- TransactionStatus: Lifecycle enum
- TransactionResult: Immutable execution result
- ExecutionContext: ABC for the store/scheduler binding
- Transaction: ABC with execute() entry point and clone()
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, FrozenSet, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

Key = Hashable
Value = Any


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TransactionStateError(Exception):
    """Raised when a transaction's terminal signal is missing or repeated."""
    pass


class UndeclaredKeyError(Exception):
    """Raised when run() touches a key outside the declared sets."""

    def __init__(self, key: Key, op: str):
        self.key = key
        self.op = op
        super().__init__(f"{op} of undeclared key {key!r}")


# ---------------------------------------------------------------------------
# Enums and data types
# ---------------------------------------------------------------------------

class TransactionStatus(Enum):
    """Transaction lifecycle states."""
    PENDING = auto()
    COMMITTED = auto()
    ABORTED = auto()


@dataclass(frozen=True)
class TransactionResult:
    """Immutable result of one execution."""
    status: TransactionStatus
    operation_type: str
    reads: int
    writes: int
    elapsed_s: float
    abort_reason: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self.status == TransactionStatus.COMMITTED


# ---------------------------------------------------------------------------
# Execution context
# ---------------------------------------------------------------------------

class ExecutionContext(ABC):
    """Store binding handed to a transaction while it runs.

    Calls are treated as synchronous: each completes before the
    transaction's next statement.
    """

    @abstractmethod
    def read(self, key: Key) -> Tuple[bool, Value]:
        """Return (found, value). value is None when not found."""
        ...

    @abstractmethod
    def write(self, key: Key, value: Value) -> None:
        ...

    def get_time(self) -> float:
        """Monotonic time in seconds."""
        return time.perf_counter()


# ---------------------------------------------------------------------------
# Transaction ABC
# ---------------------------------------------------------------------------

class Transaction(ABC):
    """Abstract transaction with declared key sets.

    Subclasses implement run() using read(), write(), commit() and abort(),
    and clone() returning an independent copy of the same variant.
    """

    def __init__(self):
        self._readset: set = set()
        self._writeset: set = set()

        # Per-execution state
        self._status = TransactionStatus.PENDING
        self._abort_reason: Optional[str] = None
        self._context: Optional[ExecutionContext] = None
        self._started = False
        self._reads = 0
        self._writes = 0

    @property
    def readset(self) -> FrozenSet[Key]:
        return frozenset(self._readset)

    @property
    def writeset(self) -> FrozenSet[Key]:
        return frozenset(self._writeset)

    @property
    def status(self) -> TransactionStatus:
        return self._status

    @property
    def abort_reason(self) -> Optional[str]:
        return self._abort_reason

    @property
    def operation_type(self) -> str:
        return type(self).__name__.lower()

    @abstractmethod
    def run(self) -> None:
        """Transaction logic. Must end with exactly one commit() or abort()."""
        ...

    @abstractmethod
    def clone(self) -> Transaction:
        """Return a fresh PENDING copy with the same sets and configuration."""
        ...

    def _copy_txn_internals(self, clone: Transaction) -> Transaction:
        """Copy declared sets into clone. Status is left untouched."""
        clone._readset = set(self._readset)
        clone._writeset = set(self._writeset)
        return clone

    # ------------------------------------------------------------------
    # Primitives available to run()
    # ------------------------------------------------------------------

    def read(self, key: Key) -> Tuple[bool, Value]:
        if key not in self._readset and key not in self._writeset:
            raise UndeclaredKeyError(key, "read")
        result = self._bound_context().read(key)
        self._reads += 1
        return result

    def write(self, key: Key, value: Value) -> None:
        if key not in self._writeset:
            raise UndeclaredKeyError(key, "write")
        self._bound_context().write(key, value)
        self._writes += 1

    def get_time(self) -> float:
        return self._bound_context().get_time()

    def commit(self) -> None:
        self._finish(TransactionStatus.COMMITTED)

    def abort(self, reason: Optional[str] = None) -> None:
        self._finish(TransactionStatus.ABORTED)
        self._abort_reason = reason

    def _finish(self, status: TransactionStatus) -> None:
        if self._status != TransactionStatus.PENDING:
            raise TransactionStateError(
                f"{self.operation_type}: {status.name} after {self._status.name}"
            )
        self._status = status

    def _bound_context(self) -> ExecutionContext:
        if self._context is None:
            raise TransactionStateError(
                f"{self.operation_type}: primitive called outside execute()"
            )
        return self._context

    # ------------------------------------------------------------------
    # Execute (main entry point)
    # ------------------------------------------------------------------

    def execute(self, context: ExecutionContext) -> TransactionResult:
        """Run this transaction to completion against context.

        A transaction executes once; clone() it to run the same definition
        again.
        """
        if self._started:
            raise TransactionStateError(
                f"{self.operation_type} already executed ({self._status.name}); clone() to rerun"
            )

        self._started = True
        self._context = context
        begin = context.get_time()
        try:
            self.run()
        finally:
            self._context = None
        elapsed = context.get_time() - begin

        if self._status == TransactionStatus.PENDING:
            raise TransactionStateError(
                f"{self.operation_type}: run() returned without commit or abort"
            )

        logger.debug(
            f"TXN {self.operation_type} {self._status.name} "
            f"reads={self._reads} writes={self._writes} elapsed={elapsed:.6f}s"
        )
        return TransactionResult(
            status=self._status,
            operation_type=self.operation_type,
            reads=self._reads,
            writes=self._writes,
            elapsed_s=elapsed,
            abort_reason=self._abort_reason,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(readset={sorted(self._readset)!r}, "
            f"writeset={sorted(self._writeset)!r}, status={self._status.name})"
        )
