"""
Ledger Service Module

Validates and executes deposits, withdrawals, transfers and balance queries.
Each mutation is one unit of work inside storage.atomic(): the account is
re-read (locked for update) inside the block, the balance check uses that
fresh read, and the balance write and its ledger entries commit together or
not at all.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from contextlib import contextmanager
from typing import Dict, List, Optional
import uuid

from .accounts import Account, AccountStore
from .errors import (
    AccountNotFound, InsufficientFunds, InvalidAccountType, LedgerError,
    SameAccountTransfer, StoreUnavailable
)
from .money import AmountLike, to_amount
from .storage import StorageInterface
from .transactions import Transaction, TransactionLog, TransactionType
from .logging_config import get_logger, log_action


@dataclass(frozen=True)
class TransferReceipt:
    """Both legs of a completed transfer and the resulting balances"""
    outgoing: Transaction
    incoming: Transaction
    source_balance: Decimal
    target_balance: Decimal

    @property
    def amount(self) -> Decimal:
        return self.outgoing.amount


class LedgerService:
    """
    Account ledger: the only component that mutates balances
    """

    def __init__(self, storage: StorageInterface, accounts: AccountStore, log: TransactionLog):
        self.storage = storage
        self.accounts = accounts
        self.log = log
        self.logger = get_logger("console_banking.ledger")

    @contextmanager
    def _operation(self, action: str, resource: str, extra: Optional[Dict] = None,
                   atomic: bool = True):
        """Run one ledger operation, logging rejections and store failures"""
        try:
            if atomic:
                with self.storage.atomic():
                    yield
            else:
                yield
        except LedgerError as e:
            log_action(
                self.logger, "warning", f"{action} rejected: {e}",
                action=action, resource=resource,
                extra={**(extra or {}), "error": type(e).__name__}
            )
            raise
        except StoreUnavailable as e:
            log_action(
                self.logger, "error", f"{action} failed, rolled back: {e}",
                action=action, resource=resource, extra=extra, exc_info=True
            )
            raise

    def _require_account(self, account_id: str, for_update: bool = False) -> Account:
        account = self.accounts.get(account_id, for_update=for_update)
        if not account:
            raise AccountNotFound(account_id)
        return account

    def deposit(self, account_id: str, amount: AmountLike) -> Transaction:
        """
        Credit an account

        Returns:
            The DEPOSIT ledger entry

        Raises:
            AccountNotFound, InvalidAmount, StoreUnavailable
        """
        extra = {"amount": str(amount)}
        with self._operation("deposit", f"account:{account_id}", extra):
            account = self._require_account(account_id, for_update=True)
            value = to_amount(amount)

            updated = self.accounts.update_balance(account.id, account.balance + value)
            entry = self.log.append(Transaction.new(account.id, TransactionType.DEPOSIT, value))

        log_action(
            self.logger, "info", f"Deposit of {value} completed",
            action="deposit", resource=f"account:{account_id}",
            extra={"transaction_id": entry.id, "amount": str(value), "balance": str(updated.balance)}
        )
        return entry

    def withdraw(self, account_id: str, amount: AmountLike) -> Transaction:
        """
        Debit an account

        The balance that authorizes the debit is read inside the atomic
        block, never taken from an earlier balance query.

        Returns:
            The WITHDRAWAL ledger entry

        Raises:
            AccountNotFound, InvalidAmount, InsufficientFunds, StoreUnavailable
        """
        extra = {"amount": str(amount)}
        with self._operation("withdraw", f"account:{account_id}", extra):
            account = self._require_account(account_id, for_update=True)
            value = to_amount(amount)

            if account.balance < value:
                raise InsufficientFunds(account.id, account.balance, value)

            updated = self.accounts.update_balance(account.id, account.balance - value)
            entry = self.log.append(Transaction.new(account.id, TransactionType.WITHDRAWAL, value))

        log_action(
            self.logger, "info", f"Withdrawal of {value} completed",
            action="withdraw", resource=f"account:{account_id}",
            extra={"transaction_id": entry.id, "amount": str(value), "balance": str(updated.balance)}
        )
        return entry

    def check_balance(self, account_id: str) -> Decimal:
        """Current balance; pure read"""
        with self._operation("check_balance", f"account:{account_id}", atomic=False):
            return self._require_account(account_id).balance

    def transfer(self, source_account_id: str, target_account_id: str,
                 amount: AmountLike) -> TransferReceipt:
        """
        Move money between two accounts as one unit of work

        Checks run in this order and the first failure aborts the transfer:
        source exists, target exists, accounts differ, source is CHECKING,
        amount is valid, source balance covers the amount.

        Raises:
            AccountNotFound, SameAccountTransfer, InvalidAccountType,
            InvalidAmount, InsufficientFunds, StoreUnavailable
        """
        resource = f"account:{source_account_id}"
        extra = {"target_account": target_account_id, "amount": str(amount)}

        with self._operation("transfer", resource, extra):
            # Lock rows in a fixed order so two opposite transfers cannot deadlock
            locked = {
                account_id: self.accounts.get(account_id, for_update=True)
                for account_id in sorted({source_account_id, target_account_id})
            }
            source = locked[source_account_id]
            if not source:
                raise AccountNotFound(source_account_id)
            target = locked[target_account_id]
            if not target:
                raise AccountNotFound(target_account_id)

            if source.id == target.id:
                raise SameAccountTransfer(source.id)

            if not source.can_originate_transfers:
                raise InvalidAccountType(source.id, source.account_type.value)

            value = to_amount(amount)

            if source.balance < value:
                raise InsufficientFunds(source.id, source.balance, value)

            timestamp = datetime.now(timezone.utc)
            correlation_id = str(uuid.uuid4())

            updated_source = self.accounts.update_balance(source.id, source.balance - value)
            updated_target = self.accounts.update_balance(target.id, target.balance + value)

            outgoing = self.log.append(Transaction.new(
                source.id, TransactionType.TRANSFER_OUT, value,
                timestamp=timestamp, correlation_id=correlation_id,
                counterparty_account_id=target.id
            ))
            incoming = self.log.append(Transaction.new(
                target.id, TransactionType.TRANSFER_IN, value,
                timestamp=timestamp, correlation_id=correlation_id,
                counterparty_account_id=source.id
            ))

        log_action(
            self.logger, "info", f"Transfer of {value} completed",
            action="transfer", resource=resource,
            extra={
                "correlation_id": correlation_id,
                "target_account": target.id,
                "amount": str(value),
                "source_balance": str(updated_source.balance),
                "target_balance": str(updated_target.balance)
            }
        )

        return TransferReceipt(
            outgoing=outgoing,
            incoming=incoming,
            source_balance=updated_source.balance,
            target_balance=updated_target.balance
        )

    def list_transactions(self, account_id: str, newest_first: bool = False,
                          limit: Optional[int] = None) -> List[Transaction]:
        """
        Ledger entries of an account, oldest first unless newest_first is set
        """
        with self._operation("list_transactions", f"account:{account_id}", atomic=False):
            self._require_account(account_id)
            return self.log.list_by_account(account_id, newest_first=newest_first, limit=limit)

    def get_account(self, account_id: str) -> Account:
        return self._require_account(account_id)

    def get_account_by_number(self, account_number: str) -> Account:
        """Resolve a human-facing account number"""
        account = self.accounts.get_by_number(account_number.strip())
        if not account:
            raise AccountNotFound(account_number)
        return account
