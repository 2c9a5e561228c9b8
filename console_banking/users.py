"""
User Directory Module

Registration, CPF lookup and password check for account holders. Also
provides the owner-exists lookup consulted by AccountStore when an account
is opened.
"""

from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import hashlib
import hmac
import secrets
import uuid

from .accounts import Account, AccountStore
from .errors import AuthenticationFailed, UserAlreadyExists
from .schemas import UserRegistration, normalize_cpf
from .storage import StorageInterface, StorageRecord
from .logging_config import get_logger, log_action


@dataclass
class User(StorageRecord):
    """Account holder"""
    cpf: str
    name: str
    email: str
    phone: str
    birth_date: date
    password_hash: str
    password_salt: str

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result['birth_date'] = self.birth_date.isoformat()
        return result


class UserDirectory:
    """
    Manages user records and wires the owner lookup into the account store
    """

    def __init__(self, storage: StorageInterface, accounts: AccountStore):
        self.storage = storage
        self.accounts = accounts
        self.table_name = "users"
        self.logger = get_logger("console_banking.users")
        accounts.set_owner_lookup(self.exists)

    def register(self, registration: UserRegistration) -> Tuple[User, Account]:
        """
        Store a new user and open their account in one unit of work

        Raises:
            UserAlreadyExists: If the CPF is already registered
        """
        with self.storage.atomic():
            if self.is_cpf_registered(registration.cpf):
                raise UserAlreadyExists(registration.cpf)

            now = datetime.now(timezone.utc)
            salt = secrets.token_hex(16)
            user = User(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                cpf=registration.cpf,
                name=registration.name,
                email=registration.email,
                phone=registration.phone,
                birth_date=registration.birth_date,
                password_hash=self._hash_password(registration.password, salt),
                password_salt=salt
            )
            self.storage.save(self.table_name, user.id, user.to_dict())

            account = self.accounts.create_account(user.id, registration.account_type)

        log_action(
            self.logger, "info", "User registered",
            action="register_user", resource=f"user:{user.id}",
            extra={"account_id": account.id, "account_type": account.account_type.value}
        )
        return user, account

    def exists(self, user_id: str) -> bool:
        return self.storage.exists(self.table_name, user_id)

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(self.table_name, user_id)
        if data:
            return self._user_from_dict(data)
        return None

    def get_by_cpf(self, cpf: str) -> Optional[User]:
        users = self.storage.find(self.table_name, {"cpf": normalize_cpf(cpf)})
        if users:
            return self._user_from_dict(users[0])
        return None

    def is_cpf_registered(self, cpf: str) -> bool:
        return self.get_by_cpf(cpf) is not None

    def authenticate(self, cpf: str, password: str) -> User:
        """
        Check a CPF/password pair

        Raises:
            AuthenticationFailed: If the CPF is unknown or the password is wrong
        """
        user = self.get_by_cpf(cpf)
        if user is None or not hmac.compare_digest(
            user.password_hash, self._hash_password(password, user.password_salt)
        ):
            log_action(self.logger, "warning", "Login failed", action="authenticate")
            raise AuthenticationFailed()

        log_action(self.logger, "info", "Login succeeded",
                   action="authenticate", resource=f"user:{user.id}")
        return user

    def _hash_password(self, password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _user_from_dict(self, data: Dict) -> User:
        return User(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            cpf=data['cpf'],
            name=data['name'],
            email=data['email'],
            phone=data['phone'],
            birth_date=date.fromisoformat(data['birth_date']),
            password_hash=data['password_hash'],
            password_salt=data['password_salt']
        )
