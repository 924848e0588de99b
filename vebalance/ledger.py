import logging
from typing import List, Optional, Union

from vebalance.book import AggregateBook
from vebalance.collaborators import Custody, DelegateDirectory, DelegateRegistry, TokenVault
from vebalance.decay import DecayFunction
from vebalance.epochs import ManualClock, SystemClock
from vebalance.errors import EpochNotFinalized
from vebalance.locks import DelegationState, Lock
from vebalance.params import LedgerParams
from vebalance.registry import LockRegistry

logger = logging.getLogger(__name__)


class VeBalanceLedger:
    """Wires the ledger together and serves the balance reads.

    Write operations take the caller's address and read ``now`` from the
    clock. Reads never settle anything; epochs the aggregates have not been
    settled to yet are computed from pending queues and slope schedules.
    """

    def __init__(
        self,
        params: Optional[LedgerParams] = None,
        clock: Optional[Union[SystemClock, ManualClock]] = None,
        delegates: Optional[DelegateDirectory] = None,
        custody: Optional[Custody] = None,
    ) -> None:
        self.params = params or LedgerParams()
        self.epochs = self.params.epochs
        self.clock = clock or SystemClock()
        self.delegates = delegates if delegates is not None else DelegateRegistry()
        self.custody = custody if custody is not None else TokenVault()
        self.book = AggregateBook(self.epochs, self.clock.now())
        self.registry = LockRegistry(self.params, self.book, self.delegates, self.custody)

    @classmethod
    def with_manual_clock(cls, params: Optional[LedgerParams] = None, timestamp: int = 0) -> "VeBalanceLedger":
        params = params or LedgerParams()
        return cls(params=params, clock=ManualClock(timestamp, params.epoch_duration))

    @property
    def engine(self):
        return self.book.engine

    def now(self) -> int:
        return self.clock.now()

    ###################
    # Lock operations
    ###################

    def create_lock(
        self,
        caller: str,
        primary_amount: int,
        escrowed_amount: int,
        expiry: int,
        delegate: Optional[str] = None,
    ) -> int:
        return self.registry.create_lock(caller, primary_amount, escrowed_amount, expiry, self.now(), delegate)

    def increase_amount(self, caller: str, lock_id: int, add_primary: int = 0, add_escrowed: int = 0) -> None:
        self.registry.increase_amount(caller, lock_id, add_primary, add_escrowed, self.now())

    def increase_duration(self, caller: str, lock_id: int, new_expiry: int) -> None:
        self.registry.increase_duration(caller, lock_id, new_expiry, self.now())

    def delegate_lock(self, caller: str, lock_id: int, delegate: str) -> None:
        self.registry.delegate_lock(caller, lock_id, delegate, self.now())

    def switch_delegate(self, caller: str, lock_id: int, new_delegate: str) -> None:
        self.registry.switch_delegate(caller, lock_id, new_delegate, self.now())

    def undelegate_lock(self, caller: str, lock_id: int) -> None:
        self.registry.undelegate_lock(caller, lock_id, self.now())

    def unlock(self, caller: str, lock_id: int) -> None:
        self.registry.unlock(caller, lock_id, self.now())

    def settle(self, *addresses: str) -> None:
        """Catch up the global aggregate and those of ``addresses`` (all when none given)."""
        now = self.now()
        if not addresses:
            self.book.settle_all(now)
            return
        for address in addresses:
            self.book.settle_address(address, now)

    ########
    # Reads
    ########

    def _epoch_boundary(self, timestamp: int) -> int:
        return self.epochs.current_epoch_start(timestamp)

    def _pockets_at(self, address: str, boundary: int, include_delegated: bool) -> DecayFunction:
        value = self.book.view(self.book.personal, address, boundary)
        if include_delegated:
            value = value + self.book.view(self.book.delegated, address, boundary)
        return value

    def balance_of_at(self, address: str, timestamp: int, include_delegated: bool = False) -> int:
        boundary = self._epoch_boundary(timestamp)
        return self._pockets_at(address, boundary, include_delegated).evaluate(timestamp)

    def balance_at_epoch_end(self, address: str, epoch: int, include_delegated: bool = False) -> int:
        """Voting power held during ``epoch``, benchmarked at the epoch's end."""
        boundary = self.epochs.epoch_start(epoch)
        return self._pockets_at(address, boundary, include_delegated).evaluate(self.epochs.epoch_end(epoch))

    def get_specific_delegated_balance_at_epoch_end(self, delegator: str, delegate: str, epoch: int) -> int:
        boundary = self.epochs.epoch_start(epoch)
        value = self.book.view(self.book.pairs, (delegator, delegate), boundary)
        return value.evaluate(self.epochs.epoch_end(epoch))

    def get_lock_voting_power_at(self, lock_id: int, timestamp: int) -> int:
        return self.registry.get(lock_id).voting_power_at(timestamp)

    def total_supply_at(self, epoch: int) -> int:
        """Finalized total supply for ``epoch``, benchmarked at its end."""
        boundary = self.epochs.epoch_end(epoch)
        if not self.engine.is_finalized(boundary):
            raise EpochNotFinalized(epoch)
        return self.engine.total_supply_at[boundary]

    def total_supply_at_timestamp(self, timestamp: int) -> int:
        boundary = self._epoch_boundary(timestamp)
        return self.engine.view(self.book.global_aggregate, boundary).evaluate(timestamp)

    def get_lock(self, lock_id: int) -> Lock:
        return self.registry.get(lock_id)

    def locks_of(self, owner: str) -> List[Lock]:
        return self.registry.locks_of(owner)

    def delegation_state(self, lock_id: int) -> DelegationState:
        return self.registry.get(lock_id).delegation_state(self.epochs.epoch_of(self.now()))

    @property
    def total_locked_primary(self) -> int:
        return self.registry.total_locked_primary

    @property
    def total_locked_escrowed(self) -> int:
        return self.registry.total_locked_escrowed

    def check_conservation(self, epoch: int) -> DecayFunction:
        """Global minus the sum of personal and delegated pockets at the epoch start."""
        boundary = self.epochs.epoch_start(epoch)
        return self.engine.view(self.book.global_aggregate, boundary) - self.book.pockets_sum(boundary)
