"""
Tests for registration input validation
"""

import pytest
from datetime import date

from pydantic import ValidationError

from console_banking.accounts import AccountType
from console_banking.schemas import (
    UserRegistration, is_valid_cpf, normalize_cpf, validation_messages
)


VALID = {
    "cpf": "111.444.777-35",
    "name": "  Joao   Pereira ",
    "email": " joao@example.com ",
    "phone": "2133334444",
    "birth_date": "01/01/1980",
    "account_type": "SALARY",
    "password": "abc123",
}


def failed_fields(**overrides):
    with pytest.raises(ValidationError) as exc_info:
        UserRegistration(**{**VALID, **overrides})
    return {err["loc"][0] for err in exc_info.value.errors()}


class TestCpf:
    def test_normalize(self):
        assert normalize_cpf("529.982.247-25") == "52998224725"

    @pytest.mark.parametrize("cpf", ["529.982.247-25", "11144477735"])
    def test_valid(self, cpf):
        assert is_valid_cpf(cpf)

    @pytest.mark.parametrize("cpf", ["529.982.247-24", "111.111.111-11", "1234", "abcdefghijk", ""])
    def test_invalid(self, cpf):
        assert not is_valid_cpf(cpf)


class TestUserRegistration:
    """Test field normalization and rejection"""

    def test_valid_registration_is_normalized(self):
        registration = UserRegistration(**VALID)

        assert registration.cpf == "11144477735"
        assert registration.name == "Joao Pereira"
        assert registration.email == "joao@example.com"
        assert registration.birth_date == date(1980, 1, 1)
        assert registration.account_type == AccountType.SALARY

    def test_invalid_cpf(self):
        assert failed_fields(cpf="111.444.777-36") == {"cpf"}

    def test_invalid_name(self):
        assert failed_fields(name="J0") == {"name"}

    def test_invalid_email(self):
        assert failed_fields(email="joao@example") == {"email"}

    @pytest.mark.parametrize("phone", ["0133334444", "21 3333", "219999988887777"])
    def test_invalid_phone(self, phone):
        assert failed_fields(phone=phone) == {"phone"}

    def test_birth_date_format(self):
        assert failed_fields(birth_date="1980-01-01") == {"birth_date"}

    def test_future_birth_date(self):
        assert failed_fields(birth_date=f"01/01/{date.today().year + 1}") == {"birth_date"}

    def test_minor_rejected(self):
        today = date.today()
        assert failed_fields(birth_date=f"01/01/{today.year - 10}") == {"birth_date"}

    def test_unknown_account_type(self):
        assert failed_fields(account_type="CRYPTO") == {"account_type"}

    @pytest.mark.parametrize("password", ["ab1", "abcdefgh", "12345678"])
    def test_weak_password(self, password):
        assert failed_fields(password=password) == {"password"}

    def test_several_failures_reported_together(self):
        assert failed_fields(cpf="1", email="x", password="x") == {"cpf", "email", "password"}

    def test_validation_messages(self):
        with pytest.raises(ValidationError) as exc_info:
            UserRegistration(**{**VALID, "email": "nope"})

        assert validation_messages(exc_info.value) == ["email: invalid email format"]
