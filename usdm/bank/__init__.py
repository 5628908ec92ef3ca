"""
USDM Bank - balance custody collaborator with staged, all-or-nothing
transactions.
"""

from usdm.bank.keeper import BankKeeper, BankTransaction, InMemoryBank

__all__ = ["BankKeeper", "BankTransaction", "InMemoryBank"]
