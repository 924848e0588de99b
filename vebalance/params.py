from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

from vebalance.constants import EPOCH_DURATION, MAX_DELEGATE_ACTIONS_PER_EPOCH, MAX_LOCK_DURATION
from vebalance.epochs import EpochMath


@dataclass(frozen=True)
class LedgerParams:
    epoch_duration: int = EPOCH_DURATION
    max_lock_duration: int = MAX_LOCK_DURATION
    max_delegate_actions_per_epoch: int = MAX_DELEGATE_ACTIONS_PER_EPOCH

    def __post_init__(self) -> None:
        if self.epoch_duration <= 0:
            raise ValueError("Epoch duration must be positive")
        if self.max_lock_duration % self.epoch_duration != 0:
            raise ValueError("Max lock duration must be a whole number of epochs")
        # A new lock has to outlive the epoch after the current one
        if self.max_lock_duration < 3 * self.epoch_duration:
            raise ValueError("Max lock duration must span at least three epochs")
        if self.max_delegate_actions_per_epoch <= 0:
            raise ValueError("Delegate action cap must be positive")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "LedgerParams":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown ledger parameters: {sorted(unknown)}")
        return cls(**{name: int(value) for name, value in values.items()})

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @property
    def epochs(self) -> EpochMath:
        return EpochMath(self.epoch_duration, self.max_lock_duration)
