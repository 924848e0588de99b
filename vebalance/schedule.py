from dataclasses import dataclass, field
from typing import Dict, Optional

from vebalance.decay import ZERO, DecayFunction
from vebalance.errors import InvariantViolation


class SlopeScheduler:
    """Slope reductions keyed by the epoch boundary at which they apply."""

    def __init__(self) -> None:
        self._reductions: Dict[int, int] = {}

    def schedule(self, boundary: int, slope: int) -> None:
        if slope < 0:
            raise ValueError("Scheduled slope cannot be negative")
        if slope == 0:
            return
        self._reductions[boundary] = self._reductions.get(boundary, 0) + slope

    def cancel(self, boundary: int, slope: int) -> None:
        if slope == 0:
            return
        remaining = self._reductions.get(boundary, 0) - slope
        if remaining < 0:
            raise InvariantViolation(f"Slope bucket at {boundary} would go negative")
        if remaining == 0:
            self._reductions.pop(boundary, None)
        else:
            self._reductions[boundary] = remaining

    def get(self, boundary: int) -> int:
        return self._reductions.get(boundary, 0)

    def pop(self, boundary: int) -> int:
        return self._reductions.pop(boundary, 0)

    def __len__(self) -> int:
        return len(self._reductions)

    def __contains__(self, boundary: int) -> bool:
        return boundary in self._reductions


@dataclass
class ScheduledAdjustment:
    boundary: int
    additions: DecayFunction = ZERO
    subtractions: DecayFunction = ZERO

    def apply_to(self, current: DecayFunction) -> DecayFunction:
        return current + self.additions - self.subtractions


@dataclass
class PendingDeltaQueue:
    entries: Dict[int, ScheduledAdjustment] = field(default_factory=dict)

    def _entry(self, boundary: int) -> ScheduledAdjustment:
        if boundary not in self.entries:
            self.entries[boundary] = ScheduledAdjustment(boundary)
        return self.entries[boundary]

    def add(self, boundary: int, delta: DecayFunction) -> None:
        entry = self._entry(boundary)
        entry.additions = entry.additions + delta

    def subtract(self, boundary: int, delta: DecayFunction) -> None:
        entry = self._entry(boundary)
        entry.subtractions = entry.subtractions + delta

    def peek(self, boundary: int) -> Optional[ScheduledAdjustment]:
        return self.entries.get(boundary)

    def pop(self, boundary: int) -> Optional[ScheduledAdjustment]:
        return self.entries.pop(boundary, None)

    def __len__(self) -> int:
        return len(self.entries)
