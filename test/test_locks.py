import pytest

from vebalance.collaborators import ESCROWED, PRIMARY
from vebalance.constants import DAY, MAX_LOCK_DURATION
from vebalance.decay import DecayFunction
from vebalance.errors import (
    AlreadyUnlocked,
    InsufficientBalance,
    InvalidAmount,
    InvalidExpiry,
    LockExpiringTooSoon,
    LockNotFound,
    NotExpired,
    Unauthorized,
    ZeroAmount,
)
from vebalance.ledger import VeBalanceLedger
from vebalance.locks import DelegationState

from conftest import AMOUNT, EPOCH, START, START_EPOCH, expiry_in, lock_value


def test_create_lock_credits_owner_and_global(ledger, vault):
    lock_id = ledger.create_lock("alice", AMOUNT, AMOUNT // 2, expiry_in(10))
    lock = ledger.get_lock(lock_id)

    assert lock_id == 1
    assert lock.principal == AMOUNT + AMOUNT // 2
    assert ledger.delegation_state(lock_id) is DelegationState.UNDELEGATED
    assert ledger.total_locked_primary == AMOUNT
    assert ledger.total_locked_escrowed == AMOUNT // 2
    assert vault.held[PRIMARY] == AMOUNT
    assert vault.held[ESCROWED] == AMOUNT // 2

    t = START + 2 * DAY
    assert ledger.balance_of_at("alice", t) == lock_value(ledger, lock_id, t)
    assert ledger.total_supply_at_timestamp(t) == lock_value(ledger, lock_id, t)
    assert ledger.balance_at_epoch_end("alice", START_EPOCH) == lock_value(ledger, lock_id, START + EPOCH)
    assert [lock.lock_id for lock in ledger.locks_of("alice")] == [1]


def test_identical_locks_days_apart_are_identical(ledger, clock):
    first = ledger.create_lock("alice", AMOUNT, 0, expiry_in(8))
    clock.advance(5 * DAY)
    second = ledger.create_lock("bob", AMOUNT, 0, expiry_in(8))

    a = ledger.get_lock(first).decay(MAX_LOCK_DURATION)
    b = ledger.get_lock(second).decay(MAX_LOCK_DURATION)
    assert a == b
    for t in range(clock.now(), expiry_in(9), DAY):
        assert ledger.get_lock_voting_power_at(first, t) == ledger.get_lock_voting_power_at(second, t)


@pytest.mark.parametrize("epochs_ahead, valid", [(1, False), (2, False), (3, True), (26, True)])
def test_create_lock_enforces_next_epoch_rule(ledger, epochs_ahead, valid):
    expiry = expiry_in(epochs_ahead)
    if valid:
        assert ledger.create_lock("alice", AMOUNT, 0, expiry) == 1
    else:
        with pytest.raises(InvalidExpiry):
            ledger.create_lock("alice", AMOUNT, 0, expiry)


def test_create_lock_rejects_bad_input(ledger):
    with pytest.raises(InvalidExpiry):
        ledger.create_lock("alice", AMOUNT, 0, expiry_in(5) + 1)
    with pytest.raises(InvalidExpiry):
        ledger.create_lock("alice", AMOUNT, 0, expiry_in(27))
    with pytest.raises(ZeroAmount):
        ledger.create_lock("alice", 0, 0, expiry_in(5))
    with pytest.raises(InvalidAmount):
        ledger.create_lock("alice", -AMOUNT, AMOUNT, expiry_in(5))
    # Validation errors are also ValueErrors
    with pytest.raises(ValueError):
        ledger.create_lock("alice", 0, 0, expiry_in(5))

    assert ledger.registry.locks == {}
    assert "alice" not in ledger.book.personal


def test_failed_custody_leaves_ledger_untouched(ledger):
    global_history = dict(ledger.book.global_aggregate.history)

    with pytest.raises(InsufficientBalance):
        ledger.create_lock("carol", AMOUNT, 0, expiry_in(5))

    assert ledger.registry.locks == {}
    assert ledger.registry.next_lock_id == 1
    assert "carol" not in ledger.book.personal
    assert ledger.book.global_aggregate.history == global_history
    assert ledger.book.global_aggregate.decay.is_zero


def test_increase_amount_updates_curve_and_history(ledger, clock, vault):
    lock_id = ledger.create_lock("alice", AMOUNT, 0, expiry_in(10))
    created_at = clock.now()
    before = ledger.get_lock(lock_id).decay(MAX_LOCK_DURATION)

    clock.advance(3 * DAY)
    ledger.increase_amount("alice", lock_id, AMOUNT, AMOUNT)
    after = ledger.get_lock(lock_id).decay(MAX_LOCK_DURATION)

    assert after == DecayFunction.from_principal(3 * AMOUNT, expiry_in(10), MAX_LOCK_DURATION)
    assert after.slope > before.slope
    assert ledger.total_locked_escrowed == AMOUNT
    assert ledger.balance_of_at("alice", clock.now()) == after.evaluate(clock.now())

    # Lock history answers past timestamps with the curve in force then
    assert ledger.get_lock_voting_power_at(lock_id, created_at - 1) == 0
    assert ledger.get_lock_voting_power_at(lock_id, created_at + DAY) == before.evaluate(created_at + DAY)
    assert ledger.get_lock_voting_power_at(lock_id, clock.now()) == after.evaluate(clock.now())


def test_increase_amount_rejections(ledger, clock):
    lock_id = ledger.create_lock("alice", AMOUNT, 0, expiry_in(3))

    with pytest.raises(Unauthorized):
        ledger.increase_amount("bob", lock_id, AMOUNT)
    with pytest.raises(ZeroAmount):
        ledger.increase_amount("alice", lock_id, 0, 0)
    with pytest.raises(LockNotFound):
        ledger.increase_amount("alice", 99, AMOUNT)

    # Expiry no longer outlives the next epoch
    clock.to_next_epoch()
    with pytest.raises(LockExpiringTooSoon):
        ledger.increase_amount("alice", lock_id, AMOUNT)


def test_increase_duration_moves_slope_bucket(ledger, clock):
    lock_id = ledger.create_lock("alice", AMOUNT, 0, expiry_in(5))
    slope = ledger.get_lock(lock_id).decay(MAX_LOCK_DURATION).slope
    personal = ledger.book.personal["alice"]
    global_aggregate = ledger.book.global_aggregate

    ledger.increase_duration("alice", lock_id, expiry_in(9))

    for aggregate in (personal, global_aggregate):
        assert aggregate.slope_changes.get(expiry_in(5)) == 0
        assert aggregate.slope_changes.get(expiry_in(9)) == slope
    assert ledger.get_lock(lock_id).expiry == expiry_in(9)
    assert ledger.balance_at_epoch_end("alice", START_EPOCH + 6) > 0
    assert ledger.balance_at_epoch_end("alice", START_EPOCH + 9) == 0


def test_increase_duration_rejections(ledger, clock):
    lock_id = ledger.create_lock("alice", AMOUNT, 0, expiry_in(5))

    with pytest.raises(InvalidExpiry):
        ledger.increase_duration("alice", lock_id, expiry_in(5))
    with pytest.raises(InvalidExpiry):
        ledger.increase_duration("alice", lock_id, expiry_in(7) + DAY)
    with pytest.raises(InvalidExpiry):
        ledger.increase_duration("alice", lock_id, expiry_in(27))
    with pytest.raises(Unauthorized):
        ledger.increase_duration("bob", lock_id, expiry_in(7))

    clock.advance_epochs(3)
    with pytest.raises(LockExpiringTooSoon):
        ledger.increase_duration("alice", lock_id, expiry_in(10))


def test_unlock_after_expiry_releases_principal(ledger, clock, vault):
    lock_id = ledger.create_lock("alice", AMOUNT, 2 * AMOUNT, expiry_in(4))
    balance = vault.balance_of("alice", ESCROWED)

    clock.set(expiry_in(4))
    with pytest.raises(NotExpired):
        ledger.unlock("alice", lock_id)
    assert ledger.get_lock_voting_power_at(lock_id, clock.now()) == 0

    clock.advance(1)
    with pytest.raises(Unauthorized):
        ledger.unlock("bob", lock_id)
    ledger.unlock("alice", lock_id)

    assert ledger.delegation_state(lock_id) is DelegationState.UNLOCKED
    assert vault.balance_of("alice", ESCROWED) == balance + 2 * AMOUNT
    assert ledger.total_locked_primary == 0
    assert ledger.total_locked_escrowed == 0
    assert len(ledger.book.personal["alice"].slope_changes) == 0
    assert len(ledger.book.global_aggregate.slope_changes) == 0
    assert ledger.book.global_aggregate.decay.is_zero

    with pytest.raises(AlreadyUnlocked):
        ledger.unlock("alice", lock_id)
    with pytest.raises(AlreadyUnlocked):
        ledger.increase_amount("alice", lock_id, AMOUNT)


def test_unknown_lock(ledger):
    with pytest.raises(LockNotFound) as excinfo:
        ledger.get_lock_voting_power_at(7, START)
    assert excinfo.value.lock_id == 7
    assert excinfo.value.code == "LOCK_NOT_FOUND"
    assert not isinstance(excinfo.value, ValueError)


def test_ledger_with_manual_clock_defaults():
    ledger = VeBalanceLedger.with_manual_clock(timestamp=START + DAY)
    ledger.custody.mint("alice", AMOUNT)

    lock_id = ledger.create_lock("alice", AMOUNT, 0, expiry_in(4))
    ledger.clock.advance_epochs(2)
    ledger.settle("alice")

    assert ledger.book.personal["alice"].last_updated == START + 2 * EPOCH
    assert ledger.total_supply_at(START_EPOCH) == lock_value(ledger, lock_id, START + EPOCH)
    assert ledger.balance_at_epoch_end("alice", START_EPOCH + 1) == lock_value(ledger, lock_id, START + 2 * EPOCH)
