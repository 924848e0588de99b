import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Set

from vebalance.errors import InsufficientBalance

logger = logging.getLogger(__name__)

PRIMARY = "primary"
ESCROWED = "escrowed"


class DelegateDirectory(ABC):
    @abstractmethod
    def is_registered_delegate(self, address: str) -> bool:
        pass


class Custody(ABC):
    """Moves principal in and out of the ledger.

    Any exception raised here aborts the calling operation before the ledger
    mutates anything.
    """

    @abstractmethod
    def deposit(self, owner: str, primary_amount: int, escrowed_amount: int) -> None:
        pass

    @abstractmethod
    def withdraw(self, owner: str, primary_amount: int, escrowed_amount: int) -> None:
        pass


class DelegateRegistry(DelegateDirectory):
    def __init__(self) -> None:
        self.delegates: Set[str] = set()

    def register(self, address: str) -> None:
        self.delegates.add(address)
        logger.info("Registered delegate", extra={"event": "delegate.registered", "address": address})

    def unregister(self, address: str) -> None:
        self.delegates.discard(address)
        logger.info("Unregistered delegate", extra={"event": "delegate.unregistered", "address": address})

    def is_registered_delegate(self, address: str) -> bool:
        return address in self.delegates


class TokenVault(Custody):
    """In-memory custody holding two assets per address."""

    def __init__(self) -> None:
        self.balances: Dict[str, Dict[str, int]] = {
            PRIMARY: defaultdict(int),
            ESCROWED: defaultdict(int),
        }
        self.held: Dict[str, int] = {PRIMARY: 0, ESCROWED: 0}

    def mint(self, owner: str, primary_amount: int = 0, escrowed_amount: int = 0) -> None:
        if primary_amount < 0 or escrowed_amount < 0:
            raise ValueError("Mint amounts cannot be negative")
        self.balances[PRIMARY][owner] += primary_amount
        self.balances[ESCROWED][owner] += escrowed_amount

    def balance_of(self, owner: str, asset: str = PRIMARY) -> int:
        return self.balances[asset].get(owner, 0)

    def deposit(self, owner: str, primary_amount: int, escrowed_amount: int) -> None:
        for asset, amount in ((PRIMARY, primary_amount), (ESCROWED, escrowed_amount)):
            if self.balances[asset].get(owner, 0) < amount:
                raise InsufficientBalance(
                    f"{owner} holds {self.balances[asset].get(owner, 0)} {asset}, needs {amount}",
                    address=owner,
                )
        for asset, amount in ((PRIMARY, primary_amount), (ESCROWED, escrowed_amount)):
            self.balances[asset][owner] -= amount
            self.held[asset] += amount

    def withdraw(self, owner: str, primary_amount: int, escrowed_amount: int) -> None:
        for asset, amount in ((PRIMARY, primary_amount), (ESCROWED, escrowed_amount)):
            if self.held[asset] < amount:
                raise InsufficientBalance(f"Vault holds {self.held[asset]} {asset}, needs {amount}")
        for asset, amount in ((PRIMARY, primary_amount), (ESCROWED, escrowed_amount)):
            self.held[asset] -= amount
            self.balances[asset][owner] += amount
