import pytest

from vebalance.aggregate import Aggregate, AggregateKind
from vebalance.checkpoint import CheckpointEngine
from vebalance.constants import MAX_LOCK_DURATION
from vebalance.decay import ZERO, DecayFunction
from vebalance.epochs import EpochMath
from vebalance.errors import EpochNotFinalized, InvariantViolation

from conftest import AMOUNT, EPOCH, START, START_EPOCH, expiry_in


@pytest.fixture
def engine():
    epochs = EpochMath()
    return CheckpointEngine(epochs, Aggregate("global", AggregateKind.GLOBAL, START))


def test_settle_walks_one_epoch_at_a_time(engine):
    aggregate = engine.global_aggregate
    lock = DecayFunction.from_principal(AMOUNT, expiry_in(3), MAX_LOCK_DURATION)
    aggregate.add(lock)
    aggregate.slope_changes.schedule(expiry_in(3), lock.slope)
    aggregate.record_checkpoint()

    steps = engine.settle(aggregate, START + 5 * EPOCH + 10)

    assert steps == 5
    assert aggregate.last_updated == START + 5 * EPOCH
    assert sorted(aggregate.history) == [START + i * EPOCH for i in range(6)]
    # Slope dropped exactly at expiry
    assert aggregate.history[expiry_in(2)].decay == lock
    assert aggregate.history[expiry_in(3)].decay == ZERO
    assert len(aggregate.slope_changes) == 0


def test_settle_is_idempotent_within_an_epoch(engine):
    aggregate = engine.global_aggregate
    lock = DecayFunction.from_principal(AMOUNT, expiry_in(6), MAX_LOCK_DURATION)
    aggregate.add(lock)
    aggregate.slope_changes.schedule(expiry_in(6), lock.slope)
    now = START + 2 * EPOCH + 100

    assert engine.settle(aggregate, now) == 2
    snapshot = (aggregate.decay, dict(aggregate.history), len(aggregate.slope_changes), dict(engine.total_supply_at))

    assert engine.settle(aggregate, now) == 0
    assert engine.settle(aggregate, now + 1000) == 0
    assert (aggregate.decay, dict(aggregate.history), len(aggregate.slope_changes), dict(engine.total_supply_at)) == snapshot


def test_pending_delta_drains_at_its_boundary(engine):
    personal = Aggregate("personal:alice", AggregateKind.PERSONAL, START)
    lock = DecayFunction.from_principal(AMOUNT, expiry_in(8), MAX_LOCK_DURATION)
    personal.add(lock)
    personal.record_checkpoint()
    personal.pending.subtract(START + EPOCH, lock)

    engine.settle(personal, START + 3 * EPOCH)

    assert personal.history[START].decay == lock
    assert personal.history[START + EPOCH].decay == ZERO
    assert len(personal.pending) == 0


def test_global_crossing_finalizes_total_supply(engine):
    aggregate = engine.global_aggregate
    lock = DecayFunction.from_principal(AMOUNT, expiry_in(4), MAX_LOCK_DURATION)
    aggregate.add(lock)
    aggregate.slope_changes.schedule(expiry_in(4), lock.slope)

    engine.settle(aggregate, START + 6 * EPOCH)

    for i in range(1, 7):
        boundary = START + i * EPOCH
        assert engine.total_supply_at[boundary] == lock.evaluate(boundary)
    assert engine.total_supply_at[expiry_in(4)] == 0


def test_other_aggregates_do_not_finalize(engine):
    personal = Aggregate("personal:alice", AggregateKind.PERSONAL, START)
    engine.settle(personal, START + 3 * EPOCH)

    assert engine.total_supply_at == {}
    assert not engine.is_finalized(START + EPOCH)


def test_view_matches_later_settlement(engine):
    aggregate = Aggregate("delegated:dave", AggregateKind.DELEGATED, START)
    lock = DecayFunction.from_principal(AMOUNT, expiry_in(4), MAX_LOCK_DURATION)
    aggregate.pending.add(START + EPOCH, lock)
    aggregate.slope_changes.schedule(expiry_in(4), lock.slope)

    projected = {START + i * EPOCH: engine.view(aggregate, START + i * EPOCH) for i in range(6)}
    # Viewing mutates nothing
    assert aggregate.last_updated == START
    assert len(aggregate.pending) == 1

    engine.settle(aggregate, START + 5 * EPOCH)
    for boundary, value in projected.items():
        assert aggregate.history[boundary].decay == value

    assert engine.view(aggregate, START - EPOCH) == ZERO
    with pytest.raises(ValueError):
        engine.view(aggregate, START + 1)


def test_negative_aggregate_is_an_invariant_violation():
    aggregate = Aggregate("personal:alice", AggregateKind.PERSONAL, START)
    with pytest.raises(InvariantViolation):
        aggregate.add(-DecayFunction(1, 1))


def test_snapshot_never_changes_after_finalization(ledger, clock):
    ledger.create_lock("alice", AMOUNT, 0, expiry_in(6))
    with pytest.raises(EpochNotFinalized):
        ledger.total_supply_at(START_EPOCH)

    clock.to_next_epoch(offset=5)
    ledger.settle()
    finalized = ledger.total_supply_at(START_EPOCH)
    assert finalized == ledger.balance_at_epoch_end("alice", START_EPOCH)

    # New locks, increases and expiries later on
    ledger.create_lock("bob", 5 * AMOUNT, AMOUNT, expiry_in(10))
    ledger.increase_amount("alice", 1, AMOUNT, 0)
    clock.advance_epochs(8)
    ledger.unlock("alice", 1)
    ledger.settle()

    assert ledger.total_supply_at(START_EPOCH) == finalized
    assert ledger.engine.total_supply_at[START + EPOCH] == finalized
