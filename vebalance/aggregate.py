from dataclasses import dataclass
from enum import Enum
from typing import Dict

from vebalance.decay import DecayFunction
from vebalance.errors import InvariantViolation
from vebalance.schedule import PendingDeltaQueue, ScheduledAdjustment, SlopeScheduler


class AggregateKind(Enum):
    GLOBAL = "global"
    PERSONAL = "personal"
    DELEGATED = "delegated"
    PAIR = "pair"


@dataclass(frozen=True)
class Checkpoint:
    timestamp: int
    bias: int
    slope: int

    @property
    def decay(self) -> DecayFunction:
        return DecayFunction(self.bias, self.slope)


class Aggregate:
    """Sum of the decay functions of every lock attributed to one pocket.

    ``last_updated`` is always an epoch boundary. ``history`` holds one
    checkpoint per boundary from creation up to ``last_updated``; the entry at
    ``last_updated`` is rewritten after each mutation within that epoch.
    """

    def __init__(self, name: str, kind: AggregateKind, last_updated: int) -> None:
        self.name = name
        self.kind = kind
        self.bias = 0
        self.slope = 0
        self.last_updated = last_updated
        self.created_at = last_updated
        self.slope_changes = SlopeScheduler()
        self.pending = PendingDeltaQueue()
        self.history: Dict[int, Checkpoint] = {}
        self.record_checkpoint()

    @property
    def decay(self) -> DecayFunction:
        return DecayFunction(self.bias, self.slope)

    def _set(self, value: DecayFunction) -> None:
        if value.is_negative:
            raise InvariantViolation(
                f"Aggregate {self.name} would go negative (bias={value.bias}, slope={value.slope})"
            )
        self.bias = value.bias
        self.slope = value.slope

    def add(self, delta: DecayFunction) -> None:
        self._set(self.decay + delta)

    def expire(self, slope: int, boundary: int) -> None:
        self._set(self.decay.expire(slope, boundary))

    def apply(self, adjustment: ScheduledAdjustment) -> None:
        self._set(adjustment.apply_to(self.decay))

    def record_checkpoint(self) -> Checkpoint:
        checkpoint = Checkpoint(self.last_updated, self.bias, self.slope)
        self.history[self.last_updated] = checkpoint
        return checkpoint

    def value_at(self, t: int) -> int:
        return self.decay.evaluate(t)

    def __repr__(self) -> str:
        return (
            f"Aggregate(name={self.name!r}, bias={self.bias}, slope={self.slope}, "
            f"last_updated={self.last_updated})"
        )
