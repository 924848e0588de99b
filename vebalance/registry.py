import logging
from collections import defaultdict
from typing import Dict, List, Optional

from vebalance.aggregate import Aggregate
from vebalance.book import AggregateBook
from vebalance.collaborators import Custody, DelegateDirectory
from vebalance.decay import ZERO, DecayFunction
from vebalance.errors import (
    ActionLimitExceeded,
    AlreadyDelegated,
    AlreadyUndelegated,
    AlreadyUnlocked,
    DelegateNotRegistered,
    InvalidAmount,
    InvalidExpiry,
    LockExpiringTooSoon,
    LockNotFound,
    NotDelegated,
    NotExpired,
    SameDelegate,
    SelfDelegation,
    Unauthorized,
    ZeroAmount,
)
from vebalance.locks import Lock, Pocket, PocketKind
from vebalance.params import LedgerParams

logger = logging.getLogger(__name__)


class LockRegistry:
    """Owns every lock and runs the lock lifecycle against the aggregate book.

    Every operation checks all of its preconditions and moves principal
    through custody before it touches any aggregate. It then settles each
    aggregate it is about to change and applies its own delta; effects due
    at the next epoch boundary go to pending queues.
    """

    def __init__(
        self,
        params: LedgerParams,
        book: AggregateBook,
        delegates: DelegateDirectory,
        custody: Custody,
    ) -> None:
        self.params = params
        self.epochs = params.epochs
        self.book = book
        self.delegates = delegates
        self.custody = custody
        self.locks: Dict[int, Lock] = {}
        self.locks_by_owner: Dict[str, List[int]] = defaultdict(list)
        self.next_lock_id = 1
        self.total_locked_primary = 0
        self.total_locked_escrowed = 0

    ##########
    # Lookups
    ##########

    def get(self, lock_id: int) -> Lock:
        if lock_id not in self.locks:
            raise LockNotFound(f"Lock {lock_id} does not exist", lock_id=lock_id)
        return self.locks[lock_id]

    def locks_of(self, owner: str) -> List[Lock]:
        return [self.locks[lock_id] for lock_id in self.locks_by_owner.get(owner, [])]

    ###############
    # Preconditions
    ###############

    def _owned_live_lock(self, caller: str, lock_id: int) -> Lock:
        lock = self.get(lock_id)
        if caller != lock.owner:
            raise Unauthorized(f"{caller} does not own lock {lock_id}", lock_id=lock_id, address=caller)
        if lock.unlocked:
            raise AlreadyUnlocked(f"Lock {lock_id} is already unlocked", lock_id=lock_id)
        return lock

    def _check_amounts(self, primary_amount: int, escrowed_amount: int) -> None:
        if primary_amount < 0 or escrowed_amount < 0:
            raise InvalidAmount("Amounts cannot be negative")
        if primary_amount == 0 and escrowed_amount == 0:
            raise ZeroAmount("At least one amount must be positive")

    def _outlives_next_epoch(self, expiry: int, now: int) -> bool:
        # Expiry must fall strictly after the end of the next epoch
        return expiry > self.epochs.epoch_end(self.epochs.epoch_of(now) + 1)

    def _check_new_expiry(self, expiry: int, now: int) -> None:
        if not self.epochs.is_aligned(expiry):
            raise InvalidExpiry(f"Expiry {expiry} is not an epoch boundary")
        if not self._outlives_next_epoch(expiry, now):
            raise InvalidExpiry(f"Expiry {expiry} does not outlive the next epoch")
        if expiry > now + self.epochs.max_lock_duration:
            raise InvalidExpiry(f"Expiry {expiry} exceeds the maximum lock duration")

    def _check_lock_alive(self, lock: Lock, now: int) -> None:
        if not self._outlives_next_epoch(lock.expiry, now):
            raise LockExpiringTooSoon(f"Lock {lock.lock_id} expires too soon", lock_id=lock.lock_id)

    def _check_delegate(self, owner: str, delegate: str) -> None:
        if delegate == owner:
            raise SelfDelegation(f"{owner} cannot delegate to itself", address=owner)
        if not self.delegates.is_registered_delegate(delegate):
            raise DelegateNotRegistered(f"{delegate} is not a registered delegate", address=delegate)

    def _check_action_limit(self, lock: Lock, epoch: int) -> None:
        # Callers check expiry first, so a lock near expiry reports LockExpiringTooSoon
        if lock.delegate_actions_in(epoch) >= self.params.max_delegate_actions_per_epoch:
            raise ActionLimitExceeded(
                f"Lock {lock.lock_id} reached {self.params.max_delegate_actions_per_epoch} delegate actions this epoch",
                lock_id=lock.lock_id,
            )

    ##########
    # Booking
    ##########

    def _settle_for(self, lock: Lock, now: int, *extra_pockets: Pocket) -> List[Aggregate]:
        epoch = self.epochs.epoch_of(now)
        pockets = {lock.holder(epoch), lock.target(), *extra_pockets}
        aggregates = []
        for pocket in pockets:
            aggregates.extend(self.book.aggregates_for(pocket, lock.owner, now))
        self.book.settle(aggregates, now)
        return aggregates

    def _credit(self, lock: Lock, old: DecayFunction, old_expiry: Optional[int], now: int) -> None:
        """Books the change from ``old`` to the lock's current decay function.

        The pocket holding the lock this epoch gets the delta at once. While a
        delegation change is pending the same delta is queued to move to the
        target at the next boundary. Slope reductions live with the target.
        """
        epoch = self.epochs.epoch_of(now)
        new = lock.decay(self.epochs.max_lock_duration)
        delta = new - old
        holder_aggregates = self.book.aggregates_for(lock.holder(epoch), lock.owner, now)
        target_aggregates = self.book.aggregates_for(lock.target(), lock.owner, now)

        for aggregate in holder_aggregates:
            aggregate.add(delta)
        if lock.holder(epoch) != lock.target():
            boundary = self.epochs.epoch_end(epoch)
            for aggregate in holder_aggregates:
                aggregate.pending.subtract(boundary, delta)
            for aggregate in target_aggregates:
                aggregate.pending.add(boundary, delta)

        global_aggregate = self.book.global_aggregate
        global_aggregate.add(delta)
        for aggregate in target_aggregates + [global_aggregate]:
            if old_expiry is not None:
                aggregate.slope_changes.cancel(old_expiry, old.slope)
            aggregate.slope_changes.schedule(lock.expiry, new.slope)

        for aggregate in holder_aggregates + target_aggregates + [global_aggregate]:
            aggregate.record_checkpoint()
        lock.record_checkpoint(now, new)

    def _redirect(self, lock: Lock, new_delegate: Optional[str], now: int) -> None:
        """Queues the move of the lock from its current target to ``new_delegate``."""
        epoch = self.epochs.epoch_of(now)
        boundary = self.epochs.epoch_end(epoch)
        current = lock.decay(self.epochs.max_lock_duration)

        source_aggregates = self.book.aggregates_for(lock.target(), lock.owner, now)
        holder = lock.holder(epoch)
        lock.previous_delegate = None if holder.kind is PocketKind.PERSONAL else holder.address
        lock.delegate = new_delegate
        lock.delegation_effective_epoch = epoch + 1
        destination_aggregates = self.book.aggregates_for(lock.target(), lock.owner, now)

        for aggregate in source_aggregates:
            aggregate.pending.subtract(boundary, current)
            aggregate.slope_changes.cancel(lock.expiry, current.slope)
        for aggregate in destination_aggregates:
            aggregate.pending.add(boundary, current)
            aggregate.slope_changes.schedule(lock.expiry, current.slope)
        lock.count_delegate_action(epoch)

    #############
    # Operations
    #############

    def create_lock(
        self,
        caller: str,
        primary_amount: int,
        escrowed_amount: int,
        expiry: int,
        now: int,
        delegate: Optional[str] = None,
    ) -> int:
        self._check_amounts(primary_amount, escrowed_amount)
        self._check_new_expiry(expiry, now)
        if delegate is not None:
            self._check_delegate(caller, delegate)

        self.custody.deposit(caller, primary_amount, escrowed_amount)

        epoch = self.epochs.epoch_of(now)
        lock = Lock(
            lock_id=self.next_lock_id,
            owner=caller,
            primary_amount=primary_amount,
            escrowed_amount=escrowed_amount,
            expiry=expiry,
        )
        if delegate is not None:
            lock.delegate = delegate
            lock.delegation_effective_epoch = epoch + 1
        self._settle_for(lock, now)
        self._credit(lock, ZERO, None, now)

        self.locks[lock.lock_id] = lock
        self.locks_by_owner[caller].append(lock.lock_id)
        self.next_lock_id += 1
        self.total_locked_primary += primary_amount
        self.total_locked_escrowed += escrowed_amount

        logger.info(
            "Created lock",
            extra={
                "event": "lock.created",
                "lock_id": lock.lock_id,
                "owner": caller,
                "principal": lock.principal,
                "expiry": expiry,
                "delegate": delegate,
            },
        )
        return lock.lock_id

    def increase_amount(self, caller: str, lock_id: int, add_primary: int, add_escrowed: int, now: int) -> None:
        lock = self._owned_live_lock(caller, lock_id)
        self._check_lock_alive(lock, now)
        self._check_amounts(add_primary, add_escrowed)

        self.custody.deposit(caller, add_primary, add_escrowed)

        self._settle_for(lock, now)
        old = lock.decay(self.epochs.max_lock_duration)
        lock.primary_amount += add_primary
        lock.escrowed_amount += add_escrowed
        self._credit(lock, old, lock.expiry, now)
        self.total_locked_primary += add_primary
        self.total_locked_escrowed += add_escrowed

        logger.info(
            "Increased lock amount",
            extra={"event": "lock.amount_increased", "lock_id": lock_id, "principal": lock.principal},
        )

    def increase_duration(self, caller: str, lock_id: int, new_expiry: int, now: int) -> None:
        lock = self._owned_live_lock(caller, lock_id)
        self._check_lock_alive(lock, now)
        if not self.epochs.is_aligned(new_expiry):
            raise InvalidExpiry(f"Expiry {new_expiry} is not an epoch boundary", lock_id=lock_id)
        if new_expiry <= lock.expiry:
            raise InvalidExpiry(f"Expiry {new_expiry} does not extend lock {lock_id}", lock_id=lock_id)
        if new_expiry > now + self.epochs.max_lock_duration:
            raise InvalidExpiry(f"Expiry {new_expiry} exceeds the maximum lock duration", lock_id=lock_id)

        self._settle_for(lock, now)
        old = lock.decay(self.epochs.max_lock_duration)
        old_expiry = lock.expiry
        lock.expiry = new_expiry
        self._credit(lock, old, old_expiry, now)

        logger.info(
            "Increased lock duration",
            extra={"event": "lock.duration_increased", "lock_id": lock_id, "old_expiry": old_expiry, "expiry": new_expiry},
        )

    def delegate_lock(self, caller: str, lock_id: int, delegate: str, now: int) -> None:
        lock = self._owned_live_lock(caller, lock_id)
        if lock.delegate is not None:
            raise AlreadyDelegated(f"Lock {lock_id} is already delegated to {lock.delegate}", lock_id=lock_id)
        self._check_delegate(caller, delegate)
        self._check_lock_alive(lock, now)
        self._check_action_limit(lock, self.epochs.epoch_of(now))

        self._settle_for(lock, now, Pocket.delegated(delegate))
        self._redirect(lock, delegate, now)

        logger.info(
            "Delegated lock",
            extra={
                "event": "lock.delegated",
                "lock_id": lock_id,
                "delegate": delegate,
                "effective_epoch": lock.delegation_effective_epoch,
            },
        )

    def switch_delegate(self, caller: str, lock_id: int, new_delegate: str, now: int) -> None:
        lock = self._owned_live_lock(caller, lock_id)
        if lock.delegate is None:
            raise NotDelegated(f"Lock {lock_id} is not delegated", lock_id=lock_id)
        if new_delegate == lock.delegate:
            raise SameDelegate(f"Lock {lock_id} is already delegated to {new_delegate}", lock_id=lock_id)
        self._check_delegate(caller, new_delegate)
        self._check_lock_alive(lock, now)
        self._check_action_limit(lock, self.epochs.epoch_of(now))

        old_delegate = lock.delegate
        self._settle_for(lock, now, Pocket.delegated(new_delegate))
        self._redirect(lock, new_delegate, now)

        logger.info(
            "Switched lock delegate",
            extra={
                "event": "lock.delegate_switched",
                "lock_id": lock_id,
                "old_delegate": old_delegate,
                "delegate": new_delegate,
                "effective_epoch": lock.delegation_effective_epoch,
            },
        )

    def undelegate_lock(self, caller: str, lock_id: int, now: int) -> None:
        lock = self._owned_live_lock(caller, lock_id)
        if lock.delegate is None:
            raise AlreadyUndelegated(f"Lock {lock_id} is not delegated", lock_id=lock_id)
        # Only the next boundary has to be outlived here
        if lock.expiry <= self.epochs.next_epoch_start(now):
            raise LockExpiringTooSoon(f"Lock {lock_id} expires at the next boundary", lock_id=lock_id)
        self._check_action_limit(lock, self.epochs.epoch_of(now))

        old_delegate = lock.delegate
        # Power returns to the owner at the next boundary
        self._settle_for(lock, now, Pocket.personal(lock.owner))
        self._redirect(lock, None, now)

        logger.info(
            "Undelegated lock",
            extra={
                "event": "lock.undelegated",
                "lock_id": lock_id,
                "old_delegate": old_delegate,
                "effective_epoch": lock.delegation_effective_epoch,
            },
        )

    def unlock(self, caller: str, lock_id: int, now: int) -> None:
        lock = self._owned_live_lock(caller, lock_id)
        if now <= lock.expiry:
            raise NotExpired(f"Lock {lock_id} expires at {lock.expiry}", lock_id=lock_id)

        self.custody.withdraw(caller, lock.primary_amount, lock.escrowed_amount)

        # Crossing the expiry boundary consumes the lock's slope buckets
        self._settle_for(lock, now)
        lock.unlocked = True
        self.total_locked_primary -= lock.primary_amount
        self.total_locked_escrowed -= lock.escrowed_amount

        logger.info(
            "Unlocked lock",
            extra={"event": "lock.unlocked", "lock_id": lock_id, "principal": lock.principal},
        )
