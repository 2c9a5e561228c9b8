"""
Banking System Wiring

Builds storage, stores, ledger and user directory from configuration.
"""

from typing import Optional

from .accounts import AccountStore
from .config import BankConfig, get_config
from .encryption import EncryptedStorage, create_encryption_provider
from .ledger import LedgerService
from .storage import StorageInterface, create_storage
from .transactions import TransactionLog
from .users import UserDirectory


class BankingSystem:
    """Console banking system with all components initialized"""

    def __init__(self, config: Optional[BankConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()

        # Initialize storage
        if storage is None:
            storage = create_storage(self.config.database_url, timeout=self.config.database_busy_timeout)
        if self.config.encryption_enabled:
            provider = create_encryption_provider(True, self.config.encryption_master_key)
            storage = EncryptedStorage(storage, provider)
        self.storage = storage

        # Initialize core components
        self.accounts = AccountStore(self.storage)
        self.transaction_log = TransactionLog(self.storage)
        self.ledger = LedgerService(self.storage, self.accounts, self.transaction_log)
        self.users = UserDirectory(self.storage, self.accounts)

    def close(self) -> None:
        self.storage.close()
