"""
Bank keeper: account balances and the protocol reserve.

The settlement core treats the bank as an external collaborator and only
talks to the BankKeeper interface. InMemoryBank is the reference
implementation used by the app, the replayer and the tests.

Atomicity is provided by BankTransaction:
    1. Every operation is staged as a delta, never applied directly
    2. Every debit is checked against the staged view at the moment it is
       staged, so a transaction can never be committed into a negative
       balance
    3. commit() applies all deltas at once; an exception inside the
       `with` block discards them all
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Tuple

from usdm.core.crypto import is_valid_address, module_address
from usdm.core.exceptions import (
    InsufficientFundsError,
    InsufficientReserveError,
    InvalidAddressError,
)
from usdm.core.models import MODULE_NAME, Coin, validate_amount


_Key = Tuple[str, str]   # (account, denom)


class BankTransaction:
    """
    Staged balance mutations against a BankKeeper.

    Usage:
        with bank.transaction() as tx:
            tx.send_to_reserve(user, "uusdm", 100)
            tx.burn_from_reserve("uusdm", 100)
        # committed here; any exception above leaves the bank untouched
    """

    def __init__(self, bank: "BankKeeper"):
        self._bank                          = bank
        self._deltas:        Dict[_Key, int] = {}
        self._supply_deltas: Dict[str, int]  = {}
        self._closed                        = False

    # ── Context manager ───────────────────────────────────────

    def __enter__(self) -> "BankTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.commit()
        else:
            self.discard()
        return False

    # ── Staged view ───────────────────────────────────────────

    def balance(self, account: str, denom: str) -> int:
        return self._bank.balance(account, denom) + self._deltas.get((account, denom), 0)

    def supply(self, denom: str) -> int:
        return self._bank.supply(denom) + self._supply_deltas.get(denom, 0)

    # ── Primitive operations ──────────────────────────────────

    def debit(self, account: str, denom: str, amount: int) -> None:
        """
        Stage removal of amount from account.

        Raises InsufficientReserveError for the reserve account,
        InsufficientFundsError for any other account.
        """
        self._check_open()
        validate_amount(amount)
        available = self.balance(account, denom)
        if available < amount:
            details = {
                "account":   account,
                "denom":     denom,
                "available": available,
                "required":  amount,
            }
            if account == self._bank.reserve_account:
                raise InsufficientReserveError(
                    f"insufficient reserve: {available}{denom} < {amount}{denom}",
                    details,
                )
            raise InsufficientFundsError(
                f"insufficient funds: {available}{denom} < {amount}{denom}",
                details,
            )
        self._stage(account, denom, -amount)

    def credit(self, account: str, denom: str, amount: int) -> None:
        self._check_open()
        validate_amount(amount)
        if not is_valid_address(account):
            raise InvalidAddressError("invalid account address", {"account": account})
        self._stage(account, denom, amount)

    # ── Reserve operations ────────────────────────────────────

    def mint_to_reserve(self, denom: str, amount: int) -> None:
        """Create amount of denom inside the reserve account."""
        self.credit(self._bank.reserve_account, denom, amount)
        self._supply_deltas[denom] = self._supply_deltas.get(denom, 0) + amount

    def burn_from_reserve(self, denom: str, amount: int) -> None:
        """Destroy amount of denom held by the reserve account."""
        self.debit(self._bank.reserve_account, denom, amount)
        self._supply_deltas[denom] = self._supply_deltas.get(denom, 0) - amount

    def send_from_reserve(self, recipient: str, denom: str, amount: int) -> None:
        self.debit(self._bank.reserve_account, denom, amount)
        self.credit(recipient, denom, amount)

    def send_to_reserve(self, sender: str, denom: str, amount: int) -> None:
        self.debit(sender, denom, amount)
        self.credit(self._bank.reserve_account, denom, amount)

    # ── Completion ────────────────────────────────────────────

    def commit(self) -> None:
        self._check_open()
        self._closed = True
        self._bank._apply(self._deltas, self._supply_deltas)

    def discard(self) -> None:
        self._closed = True
        self._deltas = {}
        self._supply_deltas = {}

    # ── Internal ──────────────────────────────────────────────

    def _stage(self, account: str, denom: str, delta: int) -> None:
        key = (account, denom)
        self._deltas[key] = self._deltas.get(key, 0) + delta

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("bank transaction already committed or discarded")


class BankKeeper(ABC):
    """
    Interface the settlement core consumes.

    Single-shot helpers (debit, credit, ...) each run inside their own
    transaction. Multi-step mutations must share one transaction().
    """

    reserve_account: str

    @abstractmethod
    def balance(self, account: str, denom: str) -> int:
        ...

    @abstractmethod
    def supply(self, denom: str) -> int:
        ...

    @abstractmethod
    def _apply(self, deltas: Dict[_Key, int], supply_deltas: Dict[str, int]) -> None:
        ...

    def transaction(self) -> BankTransaction:
        return BankTransaction(self)

    def debit(self, account: str, denom: str, amount: int) -> None:
        with self.transaction() as tx:
            tx.debit(account, denom, amount)

    def credit(self, account: str, denom: str, amount: int) -> None:
        with self.transaction() as tx:
            tx.credit(account, denom, amount)

    def mint_to_reserve(self, denom: str, amount: int) -> None:
        with self.transaction() as tx:
            tx.mint_to_reserve(denom, amount)

    def burn_from_reserve(self, denom: str, amount: int) -> None:
        with self.transaction() as tx:
            tx.burn_from_reserve(denom, amount)

    def send_from_reserve(self, recipient: str, denom: str, amount: int) -> None:
        with self.transaction() as tx:
            tx.send_from_reserve(recipient, denom, amount)

    def send_to_reserve(self, sender: str, denom: str, amount: int) -> None:
        with self.transaction() as tx:
            tx.send_to_reserve(sender, denom, amount)

    def fund_account(self, account: str, coins: Iterable[Coin]) -> None:
        """Mint coins and deliver them to account in one transaction."""
        with self.transaction() as tx:
            for coin in coins:
                tx.mint_to_reserve(coin.denom, coin.amount)
                tx.send_from_reserve(account, coin.denom, coin.amount)

    def fund_reserve(self, coins: Iterable[Coin]) -> None:
        with self.transaction() as tx:
            for coin in coins:
                tx.mint_to_reserve(coin.denom, coin.amount)


class InMemoryBank(BankKeeper):
    """Dictionary-backed BankKeeper."""

    def __init__(self, module_name: str = MODULE_NAME, reserve_account: Optional[str] = None):
        self.reserve_account = reserve_account or module_address(module_name)
        self._balances: Dict[_Key, int] = {}
        self._supply:   Dict[str, int]  = {}

    def balance(self, account: str, denom: str) -> int:
        return self._balances.get((account, denom), 0)

    def supply(self, denom: str) -> int:
        return self._supply.get(denom, 0)

    def balances(self, account: str) -> Dict[str, int]:
        """All non-zero balances of account, keyed by denom."""
        return {
            denom: amount
            for (acc, denom), amount in sorted(self._balances.items())
            if acc == account and amount
        }

    def snapshot(self) -> Dict[_Key, int]:
        """Copy of every non-zero balance. Used to assert nothing changed."""
        return {key: amount for key, amount in self._balances.items() if amount}

    def _apply(self, deltas: Dict[_Key, int], supply_deltas: Dict[str, int]) -> None:
        for key, delta in deltas.items():
            self._balances[key] = self._balances.get(key, 0) + delta
        for denom, delta in supply_deltas.items():
            self._supply[denom] = self._supply.get(denom, 0) + delta
