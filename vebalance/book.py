from typing import Dict, Iterable, List, Tuple

from vebalance.aggregate import Aggregate, AggregateKind
from vebalance.checkpoint import CheckpointEngine
from vebalance.decay import ZERO, DecayFunction
from vebalance.epochs import EpochMath
from vebalance.locks import Pocket, PocketKind


class AggregateBook:
    """Every aggregate the ledger keeps, created lazily at first touch.

    A delegated pocket is mirrored by a pair aggregate per delegator so the
    share each delegator contributes to a delegate stays readable.
    """

    def __init__(self, epochs: EpochMath, now: int) -> None:
        self.epochs = epochs
        self.global_aggregate = Aggregate("global", AggregateKind.GLOBAL, epochs.current_epoch_start(now))
        self.engine = CheckpointEngine(epochs, self.global_aggregate)
        self.personal: Dict[str, Aggregate] = {}
        self.delegated: Dict[str, Aggregate] = {}
        self.pairs: Dict[Tuple[str, str], Aggregate] = {}

    def _start(self, now: int) -> int:
        return self.epochs.current_epoch_start(now)

    def personal_aggregate(self, owner: str, now: int) -> Aggregate:
        if owner not in self.personal:
            self.personal[owner] = Aggregate(f"personal:{owner}", AggregateKind.PERSONAL, self._start(now))
        return self.personal[owner]

    def delegated_aggregate(self, delegate: str, now: int) -> Aggregate:
        if delegate not in self.delegated:
            self.delegated[delegate] = Aggregate(f"delegated:{delegate}", AggregateKind.DELEGATED, self._start(now))
        return self.delegated[delegate]

    def pair_aggregate(self, delegator: str, delegate: str, now: int) -> Aggregate:
        key = (delegator, delegate)
        if key not in self.pairs:
            self.pairs[key] = Aggregate(f"pair:{delegator}->{delegate}", AggregateKind.PAIR, self._start(now))
        return self.pairs[key]

    def aggregates_for(self, pocket: Pocket, owner: str, now: int) -> List[Aggregate]:
        if pocket.kind is PocketKind.PERSONAL:
            return [self.personal_aggregate(pocket.address, now)]
        return [
            self.delegated_aggregate(pocket.address, now),
            self.pair_aggregate(owner, pocket.address, now),
        ]

    def settle(self, aggregates: Iterable[Aggregate], now: int) -> None:
        self.engine.settle(self.global_aggregate, now)
        for aggregate in aggregates:
            self.engine.settle(aggregate, now)

    def settle_address(self, address: str, now: int) -> None:
        """Settle the global aggregate and every aggregate keyed by ``address``."""
        touched = []
        if address in self.personal:
            touched.append(self.personal[address])
        if address in self.delegated:
            touched.append(self.delegated[address])
        touched.extend(agg for (delegator, delegate), agg in self.pairs.items() if address in (delegator, delegate))
        self.settle(touched, now)

    def settle_all(self, now: int) -> None:
        self.settle(
            list(self.personal.values()) + list(self.delegated.values()) + list(self.pairs.values()),
            now,
        )

    def view(self, aggregates: Dict, key, boundary: int) -> DecayFunction:
        aggregate = aggregates.get(key)
        if aggregate is None:
            return ZERO
        return self.engine.view(aggregate, boundary)

    def pockets_sum(self, boundary: int) -> DecayFunction:
        total = ZERO
        for aggregate in list(self.personal.values()) + list(self.delegated.values()):
            total = total + self.engine.view(aggregate, boundary)
        return total
