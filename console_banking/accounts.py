"""
Account Store Module

Durable mapping from account id to owner, type and balance. Balances are
changed only through AccountStore.update_balance, which the ledger calls
inside its own atomic() block after re-reading the account.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from enum import Enum
import uuid

from .errors import AccountNotFound, InsufficientFunds, OwnerNotFound
from .money import ZERO, to_balance
from .storage import StorageInterface, StorageRecord
from .logging_config import get_logger, log_action


class AccountType(Enum):
    """Banking product types offered at account opening"""
    CHECKING = "CHECKING"  # The only type that may originate transfers
    SAVINGS = "SAVINGS"
    SALARY = "SALARY"

    @classmethod
    def parse(cls, value: str) -> 'AccountType':
        """Case-insensitive lookup used for user input"""
        try:
            return cls(value.strip().upper())
        except (ValueError, AttributeError):
            allowed = ", ".join(t.value for t in cls)
            raise ValueError(f"Invalid account type {value!r}: choose one of {allowed}")


@dataclass
class Account(StorageRecord):
    """
    Bank account owned by one user
    """
    account_number: str
    owner_id: str
    account_type: AccountType
    balance: Decimal = ZERO

    def __post_init__(self):
        if self.balance < 0:
            raise ValueError("Account balance cannot be negative")

    @property
    def can_originate_transfers(self) -> bool:
        """Check if this account may be the source of a transfer"""
        return self.account_type == AccountType.CHECKING


class AccountStore:
    """
    Persists accounts and applies balance updates
    """

    def __init__(
        self,
        storage: StorageInterface,
        owner_exists: Optional[Callable[[str], bool]] = None
    ):
        self.storage = storage
        self.table_name = "accounts"
        self.logger = get_logger("console_banking.accounts")
        self._owner_exists = owner_exists

    def set_owner_lookup(self, owner_exists: Callable[[str], bool]) -> None:
        """Attach the user-record lookup consulted on account creation"""
        self._owner_exists = owner_exists

    def create_account(
        self,
        owner_id: str,
        account_type: AccountType,
        initial_balance: Decimal = ZERO
    ) -> Account:
        """
        Open a new account

        Args:
            owner_id: ID of the owning user
            account_type: CHECKING, SAVINGS or SALARY
            initial_balance: Opening balance, zero by default

        Returns:
            Created Account object

        Raises:
            OwnerNotFound: If the owner lookup does not know owner_id
        """
        if self._owner_exists is not None and not self._owner_exists(owner_id):
            raise OwnerNotFound(owner_id)

        balance = to_balance(initial_balance)

        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_number=self._next_account_number(),
                owner_id=owner_id,
                account_type=account_type,
                balance=balance
            )
            self._save_account(account)

        log_action(
            self.logger, "info", f"Account opened: {account_type.value}",
            action="create_account", resource=f"account:{account.id}",
            extra={
                "account_number": account.account_number,
                "owner_id": owner_id,
                "initial_balance": str(balance)
            }
        )

        return account

    def get(self, account_id: str, for_update: bool = False) -> Optional[Account]:
        """Get account by ID"""
        account_dict = self.storage.load(self.table_name, account_id, for_update=for_update)
        if account_dict:
            return self._account_from_dict(account_dict)
        return None

    def exists(self, account_id: str) -> bool:
        return self.storage.exists(self.table_name, account_id)

    def get_by_number(self, account_number: str) -> Optional[Account]:
        """Get account by its human-facing number"""
        accounts = self.storage.find(self.table_name, {"account_number": account_number})
        if accounts:
            return self._account_from_dict(accounts[0])
        return None

    def get_by_owner(self, owner_id: str) -> Optional[Account]:
        """Get the owner's first-opened account"""
        accounts = self.list_by_owner(owner_id)
        return accounts[0] if accounts else None

    def list_by_owner(self, owner_id: str) -> List[Account]:
        accounts_data = self.storage.find(self.table_name, {"owner_id": owner_id})
        accounts = [self._account_from_dict(data) for data in accounts_data]
        accounts.sort(key=lambda a: a.created_at)
        return accounts

    def update_balance(self, account_id: str, new_balance: Decimal) -> Account:
        """
        Replace the stored balance of an account

        Callers must have read the current balance within the same atomic()
        block; this method never computes a balance itself.

        Raises:
            AccountNotFound: If the account does not exist
            InsufficientFunds: If new_balance is negative
        """
        account = self.get(account_id, for_update=True)
        if not account:
            raise AccountNotFound(account_id)

        if new_balance < 0:
            raise InsufficientFunds(account_id, account.balance, account.balance - new_balance)

        account.balance = to_balance(new_balance)
        account.updated_at = datetime.now(timezone.utc)
        self._save_account(account)
        return account

    def _next_account_number(self) -> str:
        """Sequential six-digit account number, called inside atomic()"""
        number = self.storage.next_sequence(self.table_name, start=self.storage.count(self.table_name))
        return f"{number:06d}"

    def _save_account(self, account: Account) -> None:
        """Save account to storage"""
        account_dict = self._account_to_dict(account)
        self.storage.save(self.table_name, account.id, account_dict)

    def _account_to_dict(self, account: Account) -> Dict:
        """Convert Account to dictionary for storage"""
        result = account.to_dict()
        result['account_type'] = account.account_type.value
        result['balance'] = str(account.balance)
        return result

    def _account_from_dict(self, data: Dict) -> Account:
        """Convert dictionary to Account"""
        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_number=data['account_number'],
            owner_id=data['owner_id'],
            account_type=AccountType(data['account_type']),
            balance=Decimal(data['balance'])
        )
