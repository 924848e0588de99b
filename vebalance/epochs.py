import time
from dataclasses import dataclass

from vebalance.constants import EPOCH_DURATION, MAX_LOCK_DURATION


@dataclass(frozen=True)
class EpochMath:
    epoch_duration: int = EPOCH_DURATION
    max_lock_duration: int = MAX_LOCK_DURATION

    def __post_init__(self) -> None:
        if self.epoch_duration <= 0:
            raise ValueError("Epoch duration must be positive")
        if self.max_lock_duration < self.epoch_duration:
            raise ValueError("Max lock duration must span at least one epoch")

    def epoch_of(self, timestamp: int) -> int:
        return timestamp // self.epoch_duration

    def epoch_start(self, epoch: int) -> int:
        return epoch * self.epoch_duration

    def epoch_end(self, epoch: int) -> int:
        return (epoch + 1) * self.epoch_duration

    def current_epoch_start(self, timestamp: int) -> int:
        return self.epoch_start(self.epoch_of(timestamp))

    def next_epoch_start(self, timestamp: int) -> int:
        return self.epoch_end(self.epoch_of(timestamp))

    def is_aligned(self, timestamp: int) -> bool:
        return timestamp % self.epoch_duration == 0


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class ManualClock:
    def __init__(self, timestamp: int = 0, epoch_duration: int = EPOCH_DURATION) -> None:
        if timestamp < 0:
            raise ValueError("Timestamp cannot be negative")
        self.timestamp = timestamp
        self.epoch_duration = epoch_duration

    def now(self) -> int:
        return self.timestamp

    def set(self, timestamp: int) -> None:
        if timestamp < self.timestamp:
            raise ValueError("Clock cannot move backwards")
        self.timestamp = timestamp

    def advance(self, seconds: int) -> int:
        self.set(self.timestamp + seconds)
        return self.timestamp

    def advance_epochs(self, epochs: int = 1) -> int:
        return self.advance(epochs * self.epoch_duration)

    def to_next_epoch(self, offset: int = 0) -> int:
        """Jump to the start of the next epoch, plus ``offset`` seconds."""
        boundary = (self.timestamp // self.epoch_duration + 1) * self.epoch_duration
        self.set(boundary + offset)
        return self.timestamp
