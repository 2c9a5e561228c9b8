"""
PII Encryption at Rest Module

Field-level encryption of user-record PII, transparent to the rest of the
system. Accounts and ledger entries are never encrypted.
"""

import base64
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .storage import StorageInterface


logger = logging.getLogger(__name__)


# PII field definitions per table; cpf stays clear because login looks it up
PII_FIELDS = {
    "users": ["name", "email", "phone", "birth_date"],
}

# Encryption marker prefix
ENCRYPTION_PREFIX = "ENC:"


class EncryptionProvider(ABC):
    """Abstract base class for encryption providers"""

    @abstractmethod
    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext and return ciphertext"""
        pass

    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        """Decrypt ciphertext and return plaintext"""
        pass


class NoOpEncryptionProvider(EncryptionProvider):
    """Pass-through provider used when encryption is disabled"""

    def encrypt(self, plaintext: str) -> str:
        return str(plaintext)

    def decrypt(self, ciphertext: str) -> str:
        return str(ciphertext)


class FernetEncryptionProvider(EncryptionProvider):
    """Fernet encryption provider (AES-128-CBC + HMAC-SHA256)"""

    def __init__(self, master_key: str, salt: Optional[bytes] = None):
        if not master_key:
            raise ValueError("A master key is required for FernetEncryptionProvider")

        self.salt = salt or b'console_banking_pii_salt'

        # Derive Fernet key from master key using PBKDF2
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self.salt,
            iterations=100000,
        )
        derived_key = kdf.derive(master_key.encode('utf-8'))
        self.fernet = Fernet(base64.urlsafe_b64encode(derived_key))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext using Fernet"""
        token = self.fernet.encrypt(str(plaintext).encode('utf-8'))
        return f"{ENCRYPTION_PREFIX}{token.decode('ascii')}"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt ciphertext using Fernet"""
        if ciphertext.startswith(ENCRYPTION_PREFIX):
            ciphertext = ciphertext[len(ENCRYPTION_PREFIX):]

        try:
            return self.fernet.decrypt(ciphertext.encode('ascii')).decode('utf-8')
        except InvalidToken as e:
            raise ValueError("Failed to decrypt data: wrong key or corrupted value") from e


class EncryptedStorage(StorageInterface):
    """
    Storage wrapper that encrypts PII fields on save and decrypts on load.
    Wraps any StorageInterface implementation; transactions are delegated
    to the inner backend.
    """

    def __init__(
        self,
        inner: StorageInterface,
        encryption_provider: EncryptionProvider,
        pii_fields: Optional[Dict[str, List[str]]] = None
    ):
        super().__init__()
        self.inner = inner
        self.provider = encryption_provider
        self.pii_fields = pii_fields or PII_FIELDS
        logger.info(f"EncryptedStorage initialized with {type(encryption_provider).__name__}")

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save record with PII encryption"""
        self.inner.save(table, record_id, self._encrypt_pii(table, data))

    def load(self, table: str, record_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
        """Load record and decrypt PII"""
        data = self.inner.load(table, record_id, for_update=for_update)
        if data:
            return self._decrypt_pii(table, data)
        return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        return [self._decrypt_pii(table, data) for data in self.inner.load_all(table)]

    def exists(self, table: str, record_id: str) -> bool:
        return self.inner.exists(table, record_id)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Find records matching filters.

        Filters on encrypted fields are applied in memory after decryption,
        since each encryption of the same value yields a different token.
        """
        pii_field_names = self.pii_fields.get(table, [])
        encrypted_field_filters = {k: v for k, v in filters.items() if k in pii_field_names}
        plain_filters = {k: v for k, v in filters.items() if k not in pii_field_names}

        if plain_filters:
            results = self.inner.find(table, plain_filters)
        else:
            results = self.inner.load_all(table)

        decrypted = [self._decrypt_pii(table, data) for data in results]
        return [
            record for record in decrypted
            if all(record.get(key) == value for key, value in encrypted_field_filters.items())
        ]

    def count(self, table: str) -> int:
        return self.inner.count(table)

    def close(self) -> None:
        self.inner.close()

    @property
    def in_transaction(self) -> bool:
        return self.inner.in_transaction

    def begin_transaction(self) -> None:
        self.inner.begin_transaction()

    def commit(self) -> None:
        self.inner.commit()

    def rollback(self) -> None:
        self.inner.rollback()

    def _encrypt_pii(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Encrypt PII fields in a copy of data"""
        encrypted = data.copy()
        for field in self.pii_fields.get(table, []):
            value = encrypted.get(field)
            if value is not None and not self._is_encrypted(value):
                encrypted[field] = self.provider.encrypt(str(value))
        return encrypted

    def _decrypt_pii(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Decrypt PII fields in a copy of data"""
        decrypted = data.copy()
        for field in self.pii_fields.get(table, []):
            value = decrypted.get(field)
            if value is not None and self._is_encrypted(value):
                decrypted[field] = self.provider.decrypt(value)
        return decrypted

    def _is_encrypted(self, value: Any) -> bool:
        """Check if value appears to be encrypted"""
        return isinstance(value, str) and value.startswith(ENCRYPTION_PREFIX)


def create_encryption_provider(enabled: bool, master_key: str) -> EncryptionProvider:
    """Factory for the configured provider"""
    if not enabled:
        return NoOpEncryptionProvider()
    if not master_key:
        raise ValueError("BANK_ENCRYPTION_MASTER_KEY must be set when encryption is enabled")
    return FernetEncryptionProvider(master_key)
