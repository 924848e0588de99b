from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from numpy.random import PCG64, Generator

from vebalance.collaborators import DelegateRegistry, TokenVault
from vebalance.constants import DECIMALS
from vebalance.epochs import ManualClock
from vebalance.errors import AuthorizationError, LockStateError, ValidationError
from vebalance.ledger import VeBalanceLedger
from vebalance.locks import DelegationState
from vebalance.params import LedgerParams


class EventType(Enum):
    CREATE_LOCK = "create_lock"
    INCREASE_AMOUNT = "increase_amount"
    INCREASE_DURATION = "increase_duration"
    DELEGATE = "delegate"
    SWITCH_DELEGATE = "switch_delegate"
    UNDELEGATE = "undelegate"
    UNLOCK = "unlock"


@dataclass
class Event:
    type: EventType
    epoch: int
    data: dict
    accepted: bool = True


@dataclass
class SimulationParams:
    epochs: int
    num_users: int
    num_delegates: int
    base_lock_rate: float          # Poisson rate of new locks per epoch
    mean_principal: float          # Median lock size in whole tokens
    min_lock_epochs: int
    max_lock_epochs: int
    delegate_probability: float    # Per live lock per epoch
    switch_probability: float      # Per delegated lock per epoch
    undelegate_probability: float  # Per delegated lock per epoch
    increase_probability: float    # Per live lock per epoch
    escrowed_share: float = 0.0    # Fraction of each new lock paid in the escrowed asset
    seed: Optional[int] = None
    start_timestamp: int = 0
    ledger: LedgerParams = field(default_factory=LedgerParams)

    def __post_init__(self) -> None:
        if self.epochs <= 0:
            raise ValueError("Epochs must be positive")
        if self.num_users <= 0:
            raise ValueError("At least one user is required")
        if self.num_delegates < 0:
            raise ValueError("Number of delegates cannot be negative")
        if self.base_lock_rate < 0:
            raise ValueError("Lock rate cannot be negative")
        if self.mean_principal <= 0:
            raise ValueError("Mean principal must be positive")
        max_epochs = self.ledger.max_lock_duration // self.ledger.epoch_duration - 1
        if self.min_lock_epochs < 2:
            raise ValueError("Locks must run at least two epochs past the current one")
        if self.max_lock_epochs > max_epochs:
            raise ValueError(f"Max lock epochs cannot exceed {max_epochs}")
        if self.min_lock_epochs > self.max_lock_epochs:
            raise ValueError("Min lock epochs cannot exceed max lock epochs")
        for name in ("delegate_probability", "switch_probability", "undelegate_probability",
                     "increase_probability", "escrowed_share"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1")


class LedgerSimulation:
    def __init__(self, params: SimulationParams, verbose: bool = False):
        self.params = params
        self.verbose = verbose
        self.rng = Generator(PCG64(params.seed))
        self.epoch = 0
        self.events: List[Event] = []
        self.history: List[dict] = []

        self.clock = ManualClock(params.start_timestamp, params.ledger.epoch_duration)
        self.delegates = DelegateRegistry()
        self.vault = TokenVault()
        self.ledger = VeBalanceLedger(
            params=params.ledger,
            clock=self.clock,
            delegates=self.delegates,
            custody=self.vault,
        )

        self.users = [f"user{i + 1}" for i in range(params.num_users)]
        self.delegate_addresses = [f"delegate{i + 1}" for i in range(params.num_delegates)]
        for delegate in self.delegate_addresses:
            self.delegates.register(delegate)

    @property
    def epoch_math(self):
        return self.ledger.epochs

    def _record_event(self, event_type: EventType, data: dict, action) -> bool:
        try:
            action()
        except (ValidationError, AuthorizationError, LockStateError) as exc:
            self.events.append(Event(event_type, self.epoch, {**data, "error": exc.code}, accepted=False))
            return False
        self.events.append(Event(event_type, self.epoch, data))
        return True

    def _sample_principal(self) -> int:
        tokens = self.rng.lognormal(mean=np.log(self.params.mean_principal), sigma=0.5)
        return max(1, int(tokens * 100)) * DECIMALS // 100

    def _live_locks(self):
        return [lock for lock in self.ledger.registry.locks.values() if not lock.unlocked]

    def _simulate_locking(self) -> None:
        num_locks = self.rng.poisson(self.params.base_lock_rate)
        current = self.epoch_math.epoch_of(self.clock.now())
        for _ in range(num_locks):
            owner = self.users[self.rng.integers(len(self.users))]
            principal = self._sample_principal()
            escrowed = principal * int(self.params.escrowed_share * 10_000) // 10_000
            primary = principal - escrowed
            duration = int(self.rng.integers(self.params.min_lock_epochs, self.params.max_lock_epochs + 1))
            expiry = self.epoch_math.epoch_start(current + 1 + duration)
            self.vault.mint(owner, primary, escrowed)
            self._record_event(
                EventType.CREATE_LOCK,
                {"owner": owner, "principal": principal, "expiry": expiry},
                lambda: self.ledger.create_lock(owner, primary, escrowed, expiry),
            )

    def _simulate_increases(self) -> None:
        current = self.epoch_math.epoch_of(self.clock.now())
        for lock in self._live_locks():
            if self.rng.random() >= self.params.increase_probability:
                continue
            if self.rng.random() < 0.5:
                amount = self._sample_principal()
                self.vault.mint(lock.owner, amount, 0)
                self._record_event(
                    EventType.INCREASE_AMOUNT,
                    {"lock_id": lock.lock_id, "amount": amount},
                    lambda: self.ledger.increase_amount(lock.owner, lock.lock_id, amount, 0),
                )
            else:
                extra = int(self.rng.integers(1, 4))
                latest = self.epoch_math.epoch_of(self.clock.now() + self.params.ledger.max_lock_duration)
                new_expiry = self.epoch_math.epoch_start(
                    min(self.epoch_math.epoch_of(lock.expiry) + extra, latest, current + 1 + self.params.max_lock_epochs)
                )
                self._record_event(
                    EventType.INCREASE_DURATION,
                    {"lock_id": lock.lock_id, "expiry": new_expiry},
                    lambda: self.ledger.increase_duration(lock.owner, lock.lock_id, new_expiry),
                )

    def _simulate_delegation(self) -> None:
        if not self.delegate_addresses:
            return
        for lock in self._live_locks():
            delegate = self.delegate_addresses[self.rng.integers(len(self.delegate_addresses))]
            if lock.delegate is None:
                if self.rng.random() < self.params.delegate_probability:
                    self._record_event(
                        EventType.DELEGATE,
                        {"lock_id": lock.lock_id, "delegate": delegate},
                        lambda: self.ledger.delegate_lock(lock.owner, lock.lock_id, delegate),
                    )
                continue
            draw = self.rng.random()
            if draw < self.params.undelegate_probability:
                self._record_event(
                    EventType.UNDELEGATE,
                    {"lock_id": lock.lock_id},
                    lambda: self.ledger.undelegate_lock(lock.owner, lock.lock_id),
                )
            elif draw < self.params.undelegate_probability + self.params.switch_probability:
                self._record_event(
                    EventType.SWITCH_DELEGATE,
                    {"lock_id": lock.lock_id, "delegate": delegate},
                    lambda: self.ledger.switch_delegate(lock.owner, lock.lock_id, delegate),
                )

    def _process_unlocks(self) -> None:
        now = self.clock.now()
        for lock in self._live_locks():
            if now > lock.expiry:
                self._record_event(
                    EventType.UNLOCK,
                    {"lock_id": lock.lock_id, "principal": lock.principal},
                    lambda: self.ledger.unlock(lock.owner, lock.lock_id),
                )

    def _record_state(self) -> None:
        now = self.clock.now()
        addresses = self.users + self.delegate_addresses
        personal = sum(self.ledger.balance_of_at(a, now) for a in addresses)
        with_delegated = sum(self.ledger.balance_of_at(a, now, include_delegated=True) for a in addresses)
        gap = self.ledger.check_conservation(self.epoch_math.epoch_of(now))
        finalized = None
        if self.epoch > 0 and self.ledger.engine.is_finalized(self.epoch_math.current_epoch_start(now)):
            finalized = self.ledger.total_supply_at(self.epoch_math.epoch_of(now) - 1)

        states = [lock.delegation_state(self.epoch_math.epoch_of(now)) for lock in self.ledger.registry.locks.values()]
        epoch_events = [e for e in self.events if e.epoch == self.epoch]
        self.history.append({
            'epoch': self.epoch,
            'timestamp': now,
            'total_supply': self.ledger.total_supply_at_timestamp(now) / DECIMALS,
            'finalized_previous_epoch': finalized / DECIMALS if finalized is not None else np.nan,
            'personal_power': personal / DECIMALS,
            'delegated_power': (with_delegated - personal) / DECIMALS,
            'conservation_gap_bias': gap.bias,
            'conservation_gap_slope': gap.slope,
            'locked_primary': self.ledger.total_locked_primary / DECIMALS,
            'locked_escrowed': self.ledger.total_locked_escrowed / DECIMALS,
            'active_locks': sum(1 for s in states if s is not DelegationState.UNLOCKED),
            'pending_delegations': sum(1 for s in states if s is DelegationState.PENDING),
            'active_delegations': sum(1 for s in states if s is DelegationState.ACTIVE),
            'actions': sum(1 for e in epoch_events if e.accepted),
            'rejected_actions': sum(1 for e in epoch_events if not e.accepted),
        })

    def step(self) -> dict:
        self._process_unlocks()
        self._simulate_locking()
        self._simulate_delegation()
        self._simulate_increases()
        self.ledger.settle()
        self._record_state()

        record = self.history[-1]
        if self.verbose:
            print(f"\nEnd of Epoch {self.epoch} Summary:")
            print(f"  Total Supply: {record['total_supply']:.4f}")
            print(f"  Personal / Delegated: {record['personal_power']:.4f} / {record['delegated_power']:.4f}")
            print(f"  Active Locks: {record['active_locks']}")
            print(f"  Actions: {record['actions']} (rejected {record['rejected_actions']})")

        offset = int(self.rng.integers(0, self.params.ledger.epoch_duration))
        self.clock.to_next_epoch(offset)
        self.epoch += 1
        return record

    def run(self, epochs: Optional[int] = None) -> List[dict]:
        max_epochs = epochs or self.params.epochs
        for _ in range(max_epochs):
            self.step()
        return self.history

    def history_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.history)

    def events_frame(self) -> pd.DataFrame:
        return pd.DataFrame([
            {'epoch': e.epoch, 'type': e.type.value, 'accepted': e.accepted, **e.data}
            for e in self.events
        ])

    def delegate_shares(self, epoch: int) -> Dict[str, float]:
        """Per-delegate vote weight for ``epoch`` as a share of the total."""
        weights = {
            d: self.ledger.balance_at_epoch_end(d, epoch, include_delegated=True)
            for d in self.delegate_addresses
        }
        total = sum(weights.values())
        if total == 0:
            return {d: 0.0 for d in weights}
        return {d: w / total for d, w in weights.items()}
