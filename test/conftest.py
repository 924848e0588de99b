import pytest

from vebalance.collaborators import DelegateRegistry, TokenVault
from vebalance.constants import DAY, DECIMALS, EPOCH_DURATION
from vebalance.epochs import ManualClock
from vebalance.ledger import VeBalanceLedger
from vebalance.params import LedgerParams

EPOCH = EPOCH_DURATION
START_EPOCH = 100
START = START_EPOCH * EPOCH
AMOUNT = 1000 * DECIMALS


@pytest.fixture
def clock():
    # One day into epoch 100
    return ManualClock(START + DAY, EPOCH)


@pytest.fixture
def delegates():
    registry = DelegateRegistry()
    registry.register("dave")
    registry.register("erin")
    return registry


@pytest.fixture
def vault():
    vault = TokenVault()
    for address in ("alice", "bob"):
        vault.mint(address, 1_000_000 * DECIMALS, 1_000_000 * DECIMALS)
    return vault


@pytest.fixture
def ledger(clock, delegates, vault):
    return VeBalanceLedger(LedgerParams(), clock, delegates, vault)


def expiry_in(epochs: int) -> int:
    """Boundary ``epochs`` epochs after the start of epoch 100."""
    return START + epochs * EPOCH


def lock_value(ledger, lock_id, t):
    return ledger.get_lock(lock_id).decay(ledger.epochs.max_lock_duration).evaluate(t)
