import logging
from typing import Dict

from vebalance.aggregate import Aggregate
from vebalance.decay import ZERO, DecayFunction
from vebalance.epochs import EpochMath

logger = logging.getLogger(__name__)


class CheckpointEngine:
    """Brings aggregates up to the current epoch start, one epoch at a time.

    Each step moves ``last_updated`` forward by exactly one epoch, drops the
    slope of locks expiring at the new boundary, drains the pending deltas
    booked for it and records a checkpoint. Consumed entries are removed, so
    settling twice within one epoch is a no-op. Crossing a boundary with the
    global aggregate freezes ``total_supply_at`` for that boundary.
    """

    def __init__(self, epochs: EpochMath, global_aggregate: Aggregate) -> None:
        self.epochs = epochs
        self.global_aggregate = global_aggregate
        self.total_supply_at: Dict[int, int] = {}

    def settle(self, aggregate: Aggregate, now: int) -> int:
        target = self.epochs.current_epoch_start(now)
        steps = 0
        while aggregate.last_updated < target:
            boundary = aggregate.last_updated + self.epochs.epoch_duration
            reduction = aggregate.slope_changes.pop(boundary)
            if reduction:
                aggregate.expire(reduction, boundary)
            adjustment = aggregate.pending.pop(boundary)
            if adjustment is not None:
                aggregate.apply(adjustment)
            aggregate.last_updated = boundary
            aggregate.record_checkpoint()
            if aggregate is self.global_aggregate:
                self._finalize(boundary)
            steps += 1

        if steps:
            logger.debug(
                "Settled aggregate",
                extra={
                    "event": "checkpoint.settled",
                    "aggregate": aggregate.name,
                    "steps": steps,
                    "last_updated": aggregate.last_updated,
                },
            )
        return steps

    def _finalize(self, boundary: int) -> None:
        if boundary in self.total_supply_at:
            return
        supply = self.global_aggregate.value_at(boundary)
        self.total_supply_at[boundary] = supply
        logger.info(
            "Finalized total supply",
            extra={"event": "supply.finalized", "boundary": boundary, "supply": supply},
        )

    def view(self, aggregate: Aggregate, boundary: int) -> DecayFunction:
        """The aggregate's ``{bias, slope}`` as of ``boundary``, without mutating it.

        Settled boundaries are read from history. Later boundaries are walked
        forward with the same rules as ``settle`` while leaving the scheduler
        and queue untouched.
        """
        if not self.epochs.is_aligned(boundary):
            raise ValueError(f"Timestamp {boundary} is not an epoch boundary")
        if boundary < aggregate.created_at:
            return ZERO
        if boundary <= aggregate.last_updated:
            return aggregate.history[boundary].decay

        value = aggregate.decay
        current = aggregate.last_updated
        while current < boundary:
            current += self.epochs.epoch_duration
            reduction = aggregate.slope_changes.get(current)
            if reduction:
                value = value.expire(reduction, current)
            adjustment = aggregate.pending.peek(current)
            if adjustment is not None:
                value = adjustment.apply_to(value)
        return value

    def is_finalized(self, boundary: int) -> bool:
        return boundary in self.total_supply_at
