"""Unit tests for the transaction contract and concrete types.

Tests:
- TransactionStatus enum values
- TransactionResult frozen dataclass
- Noop: no keys, commits
- Expect: commits on match, aborts on first missing/mismatched key
- Put: writes every pair, commits
- RMW: reads readset, increments writeset, busy-waits for duration
- clone(): same sets and configuration, independent status
- Contract violations: undeclared keys, missing or repeated terminal signal
"""

import pytest

from txnbench.storage import InMemoryStore
from txnbench.transaction import (
    Transaction,
    TransactionResult,
    TransactionStateError,
    TransactionStatus,
    UndeclaredKeyError,
)
from txnbench.txn_types import RMW, Expect, Noop, Put, busy_wait


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class StepClock:
    """Deterministic clock advancing by step on every call."""

    def __init__(self, step: float = 0.001):
        self.now = 0.0
        self.step = step
        self.calls = 0

    def __call__(self) -> float:
        self.calls += 1
        self.now += self.step
        return self.now


class ReadsUndeclared(Transaction):
    def run(self):
        self.read(99)
        self.commit()

    def clone(self):
        return self._copy_txn_internals(ReadsUndeclared())


class WritesReadKey(Transaction):
    def __init__(self):
        super().__init__()
        self._readset = {1}

    def run(self):
        self.write(1, "x")
        self.commit()

    def clone(self):
        return self._copy_txn_internals(WritesReadKey())


class NeverFinishes(Transaction):
    def run(self):
        pass

    def clone(self):
        return self._copy_txn_internals(NeverFinishes())


class CommitsTwice(Transaction):
    def run(self):
        self.commit()
        self.commit()

    def clone(self):
        return self._copy_txn_internals(CommitsTwice())


class FailingWriteStore(InMemoryStore):
    """Store whose first write raises, later writes succeed."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures_left = 1

    def write(self, key, value):
        if self.failures_left:
            self.failures_left -= 1
            raise IOError(f"write of {key!r} failed")
        super().write(key, value)


# ---------------------------------------------------------------------------
# TransactionStatus / TransactionResult
# ---------------------------------------------------------------------------

class TestTransactionStatus:
    def test_has_all_states(self):
        assert TransactionStatus.PENDING is not None
        assert TransactionStatus.COMMITTED is not None
        assert TransactionStatus.ABORTED is not None

    def test_distinct_values(self):
        statuses = [s for s in TransactionStatus]
        assert len(statuses) == 3
        assert len(set(s.value for s in statuses)) == 3


class TestTransactionResult:
    def test_frozen(self):
        result = TransactionResult(
            status=TransactionStatus.COMMITTED,
            operation_type="noop",
            reads=0,
            writes=0,
            elapsed_s=0.0,
        )
        with pytest.raises(AttributeError):
            result.reads = 5

    def test_committed_property(self):
        result = Noop().execute(InMemoryStore())
        assert result.committed
        assert result.abort_reason is None


# ---------------------------------------------------------------------------
# Noop
# ---------------------------------------------------------------------------

class TestNoop:
    def test_no_declared_keys(self):
        txn = Noop()
        assert txn.readset == frozenset()
        assert txn.writeset == frozenset()

    def test_commits(self):
        txn = Noop()
        result = txn.execute(InMemoryStore())
        assert txn.status == TransactionStatus.COMMITTED
        assert result.operation_type == "noop"
        assert result.reads == 0
        assert result.writes == 0

    def test_starts_pending(self):
        assert Noop().status == TransactionStatus.PENDING


# ---------------------------------------------------------------------------
# Expect
# ---------------------------------------------------------------------------

class TestExpect:
    def test_readset_is_mapping_keys(self):
        txn = Expect({5: 10, 7: 20})
        assert txn.readset == frozenset({5, 7})
        assert txn.writeset == frozenset()

    def test_commits_when_all_match(self):
        store = InMemoryStore({5: 10, 7: 20, 8: 0})
        result = Expect({5: 10, 7: 20}).execute(store)
        assert result.status == TransactionStatus.COMMITTED
        assert result.reads == 2

    def test_aborts_on_mismatch(self):
        store = InMemoryStore({5: 10, 7: 99})
        txn = Expect({5: 10, 7: 20})
        result = txn.execute(store)
        assert result.status == TransactionStatus.ABORTED
        assert "7" in result.abort_reason

    def test_aborts_on_missing_key(self):
        result = Expect({1: 1}).execute(InMemoryStore())
        assert result.status == TransactionStatus.ABORTED
        assert "not found" in result.abort_reason

    def test_short_circuits_after_first_failure(self):
        store = InMemoryStore({1: 1})
        result = Expect({1: 1, 2: 2, 3: 3}).execute(store)
        assert result.status == TransactionStatus.ABORTED
        assert result.reads == 2
        assert store.reads == 2

    def test_never_writes(self):
        store = InMemoryStore({1: 1})
        Expect({1: 1}).execute(store)
        assert store.writes == 0

    def test_from_key_set_uses_default_value(self):
        txn = Expect({1, 2})
        assert txn.expected == {1: 1, 2: 1}
        assert txn.execute(InMemoryStore({1: 1, 2: 1})).committed

    def test_custom_default_value(self):
        txn = Expect([3], default_value="v")
        assert txn.expected == {3: "v"}
        assert not txn.execute(InMemoryStore({3: 1})).committed

    def test_empty_commits(self):
        assert Expect({}).execute(InMemoryStore()).committed

    @pytest.mark.parametrize("keys", ["abc", b"abc"])
    def test_string_keys_rejected(self, keys):
        with pytest.raises(TypeError, match="mapping or an iterable"):
            Expect(keys)


# ---------------------------------------------------------------------------
# Put
# ---------------------------------------------------------------------------

class TestPut:
    def test_writeset_is_mapping_keys(self):
        txn = Put({3: "a", 4: "b"})
        assert txn.writeset == frozenset({3, 4})
        assert txn.readset == frozenset()

    def test_writes_and_commits(self):
        store = InMemoryStore()
        result = Put({3: "a", 4: "b"}).execute(store)
        assert result.status == TransactionStatus.COMMITTED
        assert store.read(3) == (True, "a")
        assert store.read(4) == (True, "b")

    def test_overwrites_existing(self):
        store = InMemoryStore({3: "old"})
        Put({3: "new"}).execute(store)
        assert store.get(3) == "new"

    def test_no_reads(self):
        store = InMemoryStore()
        result = Put({1: 1, 2: 2}).execute(store)
        assert result.reads == 0
        assert result.writes == 2

    def test_put_then_expect(self):
        store = InMemoryStore()
        values = {i: i * 10 for i in range(5)}
        Put(values).execute(store)
        assert Expect(values).execute(store).committed

    def test_constructor_copies_mapping(self):
        values = {1: "a"}
        txn = Put(values)
        values[2] = "b"
        assert txn.writeset == frozenset({1})


# ---------------------------------------------------------------------------
# RMW
# ---------------------------------------------------------------------------

class TestRMW:
    def test_explicit_sets(self):
        txn = RMW(readset={1, 2}, writeset={3}, duration=0.5)
        assert txn.readset == frozenset({1, 2})
        assert txn.writeset == frozenset({3})
        assert txn.duration == 0.5

    def test_writeset_only(self):
        txn = RMW(writeset={4, 5})
        assert txn.readset == frozenset()
        assert txn.writeset == frozenset({4, 5})
        assert txn.duration == 0.0

    def test_overlapping_sets_rejected(self):
        with pytest.raises(ValueError, match="overlap"):
            RMW(readset={1, 2}, writeset={2, 3})

    def test_negative_duration_rejected(self):
        with pytest.raises(ValueError, match="duration"):
            RMW(duration=-1.0)

    def test_increments_writeset(self):
        store = InMemoryStore({3: 5, 1: 100})
        result = RMW(readset={1}, writeset={3, 4}).execute(store)
        assert result.status == TransactionStatus.COMMITTED
        assert store.get(3) == 6
        assert store.get(4) == 1

    def test_readset_untouched(self):
        store = InMemoryStore({1: 100})
        RMW(readset={1, 2}, writeset={3}).execute(store)
        assert store.get(1) == 100
        assert 2 not in store

    def test_reads_every_key(self):
        store = InMemoryStore()
        result = RMW(readset={1, 2}, writeset={3, 4, 5}).execute(store)
        assert result.reads == 5
        assert result.writes == 3

    def test_repeated_clones_accumulate(self):
        store = InMemoryStore()
        txn = RMW(writeset={7})
        for _ in range(4):
            txn.clone().execute(store)
        assert store.get(7) == 4

    def test_busy_waits_for_duration(self):
        clock = StepClock(step=0.001)
        store = InMemoryStore(clock=clock)
        result = RMW(writeset={1}, duration=0.05).execute(store)
        assert result.committed
        assert result.elapsed_s >= 0.05

    def test_zero_duration_skips_spin(self):
        clock = StepClock()
        store = InMemoryStore(clock=clock)
        RMW(writeset={1}).execute(store)
        # Only the two execute() timestamps
        assert clock.calls == 2


class TestBusyWait:
    def test_spins_until_elapsed(self):
        clock = StepClock(step=0.01)
        rounds = busy_wait(0.1, clock)
        assert rounds >= 9
        assert clock.now >= 0.1

    def test_zero_duration_returns_immediately(self):
        assert busy_wait(0.0, StepClock()) == 0


# ---------------------------------------------------------------------------
# clone()
# ---------------------------------------------------------------------------

class TestClone:
    @pytest.mark.parametrize("txn", [
        Noop(),
        Expect({1: "a", 2: "b"}),
        Put({3: "c"}),
        RMW(readset={4}, writeset={5, 6}, duration=0.25),
    ])
    def test_same_variant_and_sets(self, txn):
        clone = txn.clone()
        assert type(clone) is type(txn)
        assert clone is not txn
        assert clone.readset == txn.readset
        assert clone.writeset == txn.writeset
        assert clone.status == TransactionStatus.PENDING

    def test_rmw_keeps_duration(self):
        assert RMW(writeset={1}, duration=0.25).clone().duration == 0.25

    def test_expect_keeps_expected_values(self):
        assert Expect({1, 2}, default_value=9).clone().expected == {1: 9, 2: 9}

    def test_put_keeps_values(self):
        assert Put({3: "c"}).clone().values == {3: "c"}

    def test_independent_status(self):
        original = Expect({1: 1})
        clone = original.clone()
        clone.execute(InMemoryStore())
        assert clone.status == TransactionStatus.ABORTED
        assert original.status == TransactionStatus.PENDING

        original.execute(InMemoryStore({1: 1}))
        assert original.status == TransactionStatus.COMMITTED
        assert clone.status == TransactionStatus.ABORTED

    def test_clone_of_executed_is_pending(self):
        txn = Noop()
        txn.execute(InMemoryStore())
        assert txn.clone().status == TransactionStatus.PENDING

    def test_no_shared_sets(self):
        txn = RMW(readset={1}, writeset={2})
        clone = txn.clone()
        clone._writeset.add(3)
        assert txn.writeset == frozenset({2})


# ---------------------------------------------------------------------------
# Contract violations
# ---------------------------------------------------------------------------

class TestContract:
    def test_read_of_undeclared_key(self):
        with pytest.raises(UndeclaredKeyError) as exc:
            ReadsUndeclared().execute(InMemoryStore())
        assert exc.value.key == 99
        assert exc.value.op == "read"

    def test_write_to_readset_key(self):
        with pytest.raises(UndeclaredKeyError):
            WritesReadKey().execute(InMemoryStore())

    def test_missing_terminal_signal(self):
        with pytest.raises(TransactionStateError, match="without commit or abort"):
            NeverFinishes().execute(InMemoryStore())

    def test_double_commit(self):
        with pytest.raises(TransactionStateError):
            CommitsTwice().execute(InMemoryStore())

    def test_execute_twice_rejected(self):
        txn = Noop()
        txn.execute(InMemoryStore())
        with pytest.raises(TransactionStateError, match="clone"):
            txn.execute(InMemoryStore())

    def test_primitive_outside_execute(self):
        with pytest.raises(TransactionStateError):
            RMW(writeset={1}).read(1)

    def test_context_released_after_failure(self):
        txn = ReadsUndeclared()
        with pytest.raises(UndeclaredKeyError):
            txn.execute(InMemoryStore())
        assert txn._context is None

    def test_failed_execute_cannot_be_retried(self):
        txn = RMW(readset={1, 2}, writeset={3})
        store = FailingWriteStore()
        with pytest.raises(IOError):
            txn.execute(store)
        assert txn.status == TransactionStatus.PENDING
        with pytest.raises(TransactionStateError, match="already executed"):
            txn.execute(store)

    def test_failed_operations_not_counted(self):
        txn = RMW(readset={1, 2}, writeset={3})
        with pytest.raises(IOError):
            txn.execute(FailingWriteStore())
        assert txn._reads == 3
        assert txn._writes == 0

    def test_clone_after_failure_counts_only_its_run(self):
        txn = RMW(readset={1, 2}, writeset={3})
        store = FailingWriteStore()
        with pytest.raises(IOError):
            txn.execute(store)
        result = txn.clone().execute(store)
        assert result.committed
        assert result.reads == 3
        assert result.writes == 1
        assert store.get(3) == 1
