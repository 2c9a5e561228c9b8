"""
Error Taxonomy Module

Typed failures raised by the ledger, the stores and the user directory.
The console catches BankingError per operation and prints its message.
"""

from decimal import Decimal
from typing import Optional


class BankingError(Exception):
    """Base class for every expected banking failure"""


class LedgerError(BankingError):
    """A ledger operation was rejected by validation"""


class InvalidAmount(LedgerError):
    """Amount is not a positive value with at most two decimal places"""

    def __init__(self, amount, reason: str = "amount must be greater than zero"):
        self.amount = amount
        super().__init__(f"Invalid amount {amount!r}: {reason}")


class InsufficientFunds(LedgerError):
    """Account balance does not cover the requested debit"""

    def __init__(self, account_id: str, balance: Decimal, requested: Decimal):
        self.account_id = account_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Insufficient funds in account {account_id}: "
            f"available {balance}, requested {requested}"
        )


class AccountNotFound(LedgerError):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class SameAccountTransfer(LedgerError):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Cannot transfer from account {account_id} to itself")


class InvalidAccountType(LedgerError):
    """Operation is not allowed for this account type"""

    def __init__(self, account_id: str, account_type: str,
                 reason: str = "only CHECKING accounts may originate transfers"):
        self.account_id = account_id
        self.account_type = account_type
        super().__init__(f"Account {account_id} is {account_type}: {reason}")


class DuplicateEntry(LedgerError):
    """A ledger entry with this id was already written"""

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry {entry_id} already exists")


class StoreUnavailable(BankingError):
    """The persistence backend failed; the operation was rolled back"""

    def __init__(self, message: str = "Storage backend unavailable"):
        super().__init__(message)


class OwnerNotFound(BankingError):
    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"User {owner_id} not found")


class UserAlreadyExists(BankingError):
    def __init__(self, cpf: str):
        self.cpf = cpf
        super().__init__("CPF already registered")


class AuthenticationFailed(BankingError):
    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Invalid CPF or password")
