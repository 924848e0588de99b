from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from vebalance.decay import ZERO, DecayFunction


class PocketKind(Enum):
    PERSONAL = "personal"
    DELEGATED = "delegated"


@dataclass(frozen=True)
class Pocket:
    kind: PocketKind
    address: str

    @classmethod
    def personal(cls, owner: str) -> "Pocket":
        return cls(PocketKind.PERSONAL, owner)

    @classmethod
    def delegated(cls, delegate: str) -> "Pocket":
        return cls(PocketKind.DELEGATED, delegate)


class DelegationState(Enum):
    UNDELEGATED = "undelegated"
    PENDING = "pending_delegation"
    ACTIVE = "active_delegation"
    UNLOCKED = "unlocked"


@dataclass(frozen=True)
class LockCheckpoint:
    timestamp: int
    decay: DecayFunction


@dataclass
class Lock:
    lock_id: int
    owner: str
    primary_amount: int
    escrowed_amount: int
    expiry: int
    delegate: Optional[str] = None
    delegation_effective_epoch: int = 0
    previous_delegate: Optional[str] = None  # holder until delegation_effective_epoch
    unlocked: bool = False
    actions_epoch: int = -1
    actions_in_epoch: int = 0
    checkpoints: List[LockCheckpoint] = field(default_factory=list)

    @property
    def principal(self) -> int:
        return self.primary_amount + self.escrowed_amount

    def decay(self, max_lock_duration: int) -> DecayFunction:
        return DecayFunction.from_principal(self.principal, self.expiry, max_lock_duration)

    def holder(self, epoch: int) -> Pocket:
        """Pocket credited with this lock during ``epoch``."""
        if epoch >= self.delegation_effective_epoch:
            address = self.delegate
        else:
            address = self.previous_delegate
        if address is None:
            return Pocket.personal(self.owner)
        return Pocket.delegated(address)

    def target(self) -> Pocket:
        """Pocket credited from the next boundary on."""
        if self.delegate is None:
            return Pocket.personal(self.owner)
        return Pocket.delegated(self.delegate)

    def delegation_state(self, epoch: int) -> DelegationState:
        if self.unlocked:
            return DelegationState.UNLOCKED
        if self.delegate is None:
            return DelegationState.UNDELEGATED
        if epoch < self.delegation_effective_epoch:
            return DelegationState.PENDING
        return DelegationState.ACTIVE

    def delegate_actions_in(self, epoch: int) -> int:
        return self.actions_in_epoch if self.actions_epoch == epoch else 0

    def count_delegate_action(self, epoch: int) -> None:
        if self.actions_epoch != epoch:
            self.actions_epoch = epoch
            self.actions_in_epoch = 0
        self.actions_in_epoch += 1

    def record_checkpoint(self, timestamp: int, decay: DecayFunction) -> None:
        if self.checkpoints and self.checkpoints[-1].timestamp == timestamp:
            self.checkpoints[-1] = LockCheckpoint(timestamp, decay)
        else:
            self.checkpoints.append(LockCheckpoint(timestamp, decay))

    def decay_at(self, timestamp: int) -> DecayFunction:
        # Latest checkpoint at or before the timestamp
        index = bisect_right([c.timestamp for c in self.checkpoints], timestamp)
        if index == 0:
            return ZERO
        return self.checkpoints[index - 1].decay

    def voting_power_at(self, timestamp: int) -> int:
        return self.decay_at(timestamp).evaluate(timestamp)
