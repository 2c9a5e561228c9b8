"""
Transaction Log Module

Append-only record of every completed monetary movement. Entries are
immutable: the log exposes no update or delete, and append() refuses to
overwrite an existing id.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, replace
from typing import Dict, List, Optional
from enum import Enum
import uuid

from .errors import DuplicateEntry
from .money import to_amount
from .storage import StorageInterface


class TransactionType(Enum):
    """Types of ledger entries"""
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER_IN = "TRANSFER_IN"    # Credit leg of a transfer
    TRANSFER_OUT = "TRANSFER_OUT"  # Debit leg of a transfer

    @property
    def is_credit(self) -> bool:
        return self in (TransactionType.DEPOSIT, TransactionType.TRANSFER_IN)


@dataclass(frozen=True)
class Transaction:
    """
    Immutable ledger entry for one account
    """
    id: str
    account_id: str
    transaction_type: TransactionType
    amount: Decimal
    timestamp: datetime
    correlation_id: str
    counterparty_account_id: Optional[str] = None
    sequence: Optional[int] = None  # Assigned by TransactionLog.append

    def __post_init__(self):
        # Validate amount is positive with monetary precision
        object.__setattr__(self, 'amount', to_amount(self.amount))

    @classmethod
    def new(
        cls,
        account_id: str,
        transaction_type: TransactionType,
        amount: Decimal,
        timestamp: Optional[datetime] = None,
        correlation_id: Optional[str] = None,
        counterparty_account_id: Optional[str] = None
    ) -> 'Transaction':
        """Build an unsequenced entry with a fresh id"""
        entry_id = str(uuid.uuid4())
        return cls(
            id=entry_id,
            account_id=account_id,
            transaction_type=transaction_type,
            amount=amount,
            timestamp=timestamp or datetime.now(timezone.utc),
            correlation_id=correlation_id or entry_id,
            counterparty_account_id=counterparty_account_id
        )

    @property
    def signed_amount(self) -> Decimal:
        """Amount as it affected the account balance"""
        return self.amount if self.transaction_type.is_credit else -self.amount


class TransactionLog:
    """
    Durable, append-only ledger entries keyed by account
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"

    def append(self, transaction: Transaction) -> Transaction:
        """
        Write a new entry and return it with its log sequence number

        Raises:
            DuplicateEntry: If an entry with the same id was already written
        """
        with self.storage.atomic():
            if self.storage.exists(self.table_name, transaction.id):
                raise DuplicateEntry(transaction.id)

            sequence = self.storage.next_sequence(self.table_name, start=self.storage.count(self.table_name))
            sequenced = replace(transaction, sequence=sequence)
            self.storage.save(self.table_name, sequenced.id, self._transaction_to_dict(sequenced))

        return sequenced

    def get(self, entry_id: str) -> Optional[Transaction]:
        """Get entry by ID"""
        data = self.storage.load(self.table_name, entry_id)
        if data:
            return self._transaction_from_dict(data)
        return None

    def list_by_account(
        self,
        account_id: str,
        newest_first: bool = False,
        limit: Optional[int] = None
    ) -> List[Transaction]:
        """
        Get entries for an account ordered by log sequence

        Args:
            account_id: Account ID
            newest_first: Reverse the default oldest-first order
            limit: Optional cap, applied after ordering

        Returns:
            A new list on every call
        """
        entries = [
            self._transaction_from_dict(data)
            for data in self.storage.find(self.table_name, {"account_id": account_id})
        ]
        entries.sort(key=lambda t: t.sequence, reverse=newest_first)

        if limit is not None:
            entries = entries[:limit]

        return entries

    def _transaction_to_dict(self, transaction: Transaction) -> Dict:
        """Convert Transaction to dictionary for storage"""
        return {
            'id': transaction.id,
            'account_id': transaction.account_id,
            'transaction_type': transaction.transaction_type.value,
            'amount': str(transaction.amount),
            'transaction_date': transaction.timestamp.isoformat(),
            'correlation_id': transaction.correlation_id,
            'counterparty_account_id': transaction.counterparty_account_id,
            'sequence': transaction.sequence
        }

    def _transaction_from_dict(self, data: Dict) -> Transaction:
        """Convert dictionary to Transaction"""
        return Transaction(
            id=data['id'],
            account_id=data['account_id'],
            transaction_type=TransactionType(data['transaction_type']),
            amount=Decimal(data['amount']),
            timestamp=datetime.fromisoformat(data['transaction_date']),
            correlation_id=data['correlation_id'],
            counterparty_account_id=data.get('counterparty_account_id'),
            sequence=data['sequence']
        )
