"""
Pydantic schemas for console input
"""

from datetime import date, datetime
from typing import List
import re

from pydantic import BaseModel, Field, ValidationError, field_validator

from .accounts import AccountType
from .config import get_config


MINIMUM_AGE = 18
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
NAME_PATTERN = re.compile(r"^[A-Za-zÀ-ÿ' ]{3,100}$")


def normalize_cpf(value: str) -> str:
    """Strip the usual 000.000.000-00 punctuation"""
    return re.sub(r'[.\-\s]', '', value or '')


def is_valid_cpf(value: str) -> bool:
    """Check CPF length and both check digits"""
    cpf = normalize_cpf(value)
    if not re.fullmatch(r'\d{11}', cpf) or cpf == cpf[0] * 11:
        return False

    digits = [int(c) for c in cpf]
    for position in (9, 10):
        total = sum(d * (position + 1 - i) for i, d in enumerate(digits[:position]))
        check = (total * 10 % 11) % 10
        if digits[position] != check:
            return False
    return True


class UserRegistration(BaseModel):
    """Everything the console collects when opening an account"""
    cpf: str = Field(..., description="11-digit CPF, punctuation allowed")
    name: str
    email: str
    phone: str = Field(..., description="DDD + 8 or 9 digit number")
    birth_date: date = Field(..., description="dd/MM/yyyy")
    account_type: AccountType
    password: str

    @field_validator("cpf")
    @classmethod
    def check_cpf(cls, value: str) -> str:
        if not is_valid_cpf(value):
            raise ValueError("CPF must have 11 digits with valid check digits")
        return normalize_cpf(value)

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        value = " ".join(value.split())
        if not NAME_PATTERN.match(value):
            raise ValueError("name must be 3 to 100 letters")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.strip()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("invalid email format")
        return value.lower()

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: str) -> str:
        digits = re.sub(r'[()\-\s]', '', value)
        if not re.fullmatch(r'[1-9]{2}9?\d{8}', digits):
            raise ValueError("phone must be DDD followed by 8 or 9 digits")
        return digits

    @field_validator("birth_date", mode="before")
    @classmethod
    def parse_birth_date(cls, value):
        if isinstance(value, str):
            try:
                return datetime.strptime(value.strip(), "%d/%m/%Y").date()
            except ValueError:
                raise ValueError("birth date must use the dd/MM/yyyy format")
        return value

    @field_validator("birth_date")
    @classmethod
    def check_age(cls, value: date) -> date:
        today = date.today()
        if value >= today:
            raise ValueError("birth date must be in the past")
        age = today.year - value.year - ((today.month, today.day) < (value.month, value.day))
        if age < MINIMUM_AGE:
            raise ValueError(f"account holder must be at least {MINIMUM_AGE} years old")
        return value

    @field_validator("account_type", mode="before")
    @classmethod
    def parse_account_type(cls, value):
        if isinstance(value, str):
            return AccountType.parse(value)
        return value

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        min_length = get_config().password_min_length
        if len(value) < min_length:
            raise ValueError(f"password must have at least {min_length} characters")
        if not re.search(r'[A-Za-z]', value) or not re.search(r'\d', value):
            raise ValueError("password must contain letters and digits")
        return value


def validation_messages(exc: ValidationError) -> List[str]:
    """Readable one-line messages for the console"""
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "input"
        message = error.get("msg", "invalid value")
        # pydantic prefixes messages raised from validators
        message = message.replace("Value error, ", "")
        messages.append(f"{field}: {message}")
    return messages
