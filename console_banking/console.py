"""
Text Menu Console

Prompts for input, calls the ledger and the user directory, and renders
their results and errors. Holds no balances of its own: every number shown
comes from a fresh ledger call.
"""

import getpass
import sys
from decimal import Decimal
from typing import Callable, Optional

from pydantic import ValidationError

from .accounts import Account, AccountType
from .config import get_config
from .errors import (
    AccountNotFound, AuthenticationFailed, BankingError, InsufficientFunds,
    InvalidAmount, UserAlreadyExists
)
from .logging_config import get_logger, setup_logging
from .money import decimal_from_string, format_amount
from .schemas import UserRegistration, is_valid_cpf, validation_messages
from .system import BankingSystem
from .users import User


REGISTRATION_PROMPTS = [
    ("cpf", "Enter CPF: "),
    ("name", "Enter full name: "),
    ("email", "Enter email: "),
    ("phone", "Enter phone number (DDD + XXXXXXXX): "),
    ("birth_date", "Enter your birth date (dd/MM/yyyy): "),
    ("account_type", "Enter account type (CHECKING, SAVINGS, SALARY): "),
    ("password", "Enter your password: "),
]

logger = get_logger("console_banking.console")


class BankConsole:
    """Interactive menus over a BankingSystem"""

    def __init__(
        self,
        system: BankingSystem,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
        secret_fn: Optional[Callable[[str], str]] = None
    ):
        self.system = system
        self.ledger = system.ledger
        self.users = system.users
        self._input = input_fn
        self._output = output_fn
        self._secret = secret_fn or input_fn
        self.symbol = system.config.currency_symbol

    def _say(self, message: str = "") -> None:
        self._output(message)

    def _ask(self, prompt: str) -> str:
        return self._input(prompt).strip()

    def _money(self, amount: Decimal) -> str:
        return format_amount(amount, self.symbol)

    # Main menu

    def run(self) -> None:
        """Main menu loop; returns on Exit or end of input"""
        try:
            while True:
                self._say("")
                self._say("=== Bank Menu ===")
                self._say("1 - Open account")
                self._say("2 - Login")
                self._say("0 - Exit")
                choice = self._ask("Choose an option: ")

                if choice == "1":
                    self.open_account()
                elif choice == "2":
                    self.login()
                elif choice == "0":
                    self._say("Goodbye!")
                    return
                else:
                    self._say("Invalid option, try again.")
        except EOFError:
            self._say("")
            self._say("Goodbye!")

    def open_account(self) -> Optional[Account]:
        """Collect registration data, re-prompting only the fields that failed"""
        values = {}
        pending = [field for field, _ in REGISTRATION_PROMPTS]

        while pending:
            for field, prompt in REGISTRATION_PROMPTS:
                if field not in pending:
                    continue
                reader = self._secret if field == "password" else self._input
                values[field] = reader(prompt).strip()

                if field == "cpf" and is_valid_cpf(values[field]) \
                        and self.users.is_cpf_registered(values[field]):
                    self._say("This CPF is already registered. Please login instead.")
                    return None

            try:
                registration = UserRegistration(**values)
            except ValidationError as e:
                for message in validation_messages(e):
                    self._say(message)
                pending = sorted(
                    {str(err["loc"][0]) for err in e.errors() if err.get("loc")},
                    key=[field for field, _ in REGISTRATION_PROMPTS].index
                )
                continue

            try:
                user, account = self.users.register(registration)
            except UserAlreadyExists as e:
                self._say(str(e))
                return None
            except BankingError as e:
                self._say(f"Could not open the account: {e}")
                return None

            self._say(f"Account opened. Welcome, {user.name}!")
            self._say(f"Your {account.account_type.value} account number is {account.account_number}.")
            return account

        return None

    def login(self) -> None:
        while True:
            cpf = self._ask("Enter CPF: ")
            password = self._secret("Enter password: ")

            try:
                user = self.users.authenticate(cpf, password)
            except AuthenticationFailed:
                self._say("Invalid CPF or password. Please try again.")
                again = self._ask("Would you like to try again? (yes/no): ")
                if again.lower() != "yes":
                    self._say("Returning to the main menu...")
                    return
                continue

            self._say(f"Login successful! Welcome, {user.name}!")
            account = self.system.accounts.get_by_owner(user.id)
            if account is None:
                self._say("No account found for this user.")
                return

            self.bank_menu(user, account)
            return

    # Bank menu

    def bank_menu(self, user: User, account: Account) -> None:
        actions = {
            "1": self.deposit,
            "2": self.withdraw,
            "3": self.check_balance,
            "4": self.transfer,
            "5": self.view_statement,
        }
        while True:
            self._say("")
            self._say(f"=== Account {account.account_number} ({account.account_type.value}) ===")
            self._say("1 - Deposit")
            self._say("2 - Withdraw")
            self._say("3 - Check balance")
            self._say("4 - Transfer")
            self._say("5 - Bank statement")
            self._say("0 - Logout")
            choice = self._ask("Choose an option: ")

            if choice == "0":
                self._say(f"Goodbye, {user.name}!")
                return

            action = actions.get(choice)
            if action is None:
                self._say("Invalid option, try again.")
                continue

            try:
                action(account)
            except BankingError as e:
                # Anything not handled by the action itself, e.g. StoreUnavailable
                logger.error(f"Operation failed: {e}")
                self._say(f"Operation failed: {e}")

    def _read_amount(self, prompt: str) -> Optional[Decimal]:
        """Prompt until a number is entered; blank input cancels"""
        while True:
            raw = self._ask(prompt)
            if not raw:
                self._say("Operation cancelled.")
                return None
            try:
                return decimal_from_string(raw)
            except InvalidAmount:
                self._say("Invalid input: Please enter a valid number.")

    def deposit(self, account: Account) -> None:
        while True:
            amount = self._read_amount("Enter the amount to deposit: ")
            if amount is None:
                return
            try:
                self.ledger.deposit(account.id, amount)
            except InvalidAmount as e:
                self._say(str(e))
                continue
            self._say(f"Deposit of {self._money(amount)} successfully made to account {account.account_number}.")
            return

    def withdraw(self, account: Account) -> None:
        while True:
            amount = self._read_amount("Enter the amount to withdraw: ")
            if amount is None:
                return
            try:
                self.ledger.withdraw(account.id, amount)
            except InvalidAmount as e:
                self._say(str(e))
                continue
            except InsufficientFunds as e:
                self._say(f"Insufficient funds: your balance is {self._money(e.balance)}.")
                continue
            self._say(f"Withdrawal of {self._money(amount)} successfully made from account {account.account_number}.")
            return

    def check_balance(self, account: Account) -> None:
        balance = self.ledger.check_balance(account.id)
        self._say(f"Your current balance is: {self._money(balance)}")

    def transfer(self, account: Account) -> None:
        if account.account_type != AccountType.CHECKING:
            self._say("Transfers are only allowed from CHECKING accounts.")
            return

        number = self._ask("Enter the target account number: ")
        try:
            target = self.ledger.get_account_by_number(number)
        except AccountNotFound:
            self._say("Target account not found.")
            return

        if target.id == account.id:
            self._say("Invalid operation: You cannot transfer money to the same account.")
            return

        amount = self._read_amount("Enter the amount to transfer: ")
        if amount is None:
            return

        try:
            receipt = self.ledger.transfer(account.id, target.id, amount)
        except (InvalidAmount, InsufficientFunds) as e:
            self._say(f"Transfer not made: {e}")
            return

        self._say(
            f"Transfer of {self._money(receipt.amount)} to account {target.account_number} completed. "
            f"New balance: {self._money(receipt.source_balance)}"
        )

    def view_statement(self, account: Account) -> None:
        limit = self.system.config.statement_limit
        # Most recent entries, displayed oldest first
        entries = list(reversed(self.ledger.list_transactions(account.id, newest_first=True, limit=limit)))

        if not entries:
            self._say("No transactions found for this account.")
            return

        self._say("Transaction History:")
        for entry in entries:
            sign = "+" if entry.transaction_type.is_credit else "-"
            self._say(
                f"#{entry.sequence} | {entry.timestamp.astimezone().strftime('%d/%m/%Y %H:%M')} | "
                f"{entry.transaction_type.value:<12} | {sign}{self._money(entry.amount)}"
            )
        self._say(f"Balance: {self._money(self.ledger.check_balance(account.id))}")


def main() -> None:
    """Console entry point"""
    config = get_config()
    setup_logging(config.log_level, config.log_format, config.log_file)

    try:
        system = BankingSystem(config)
    except BankingError as e:
        print(f"Error starting console bank: {e}")
        sys.exit(1)

    try:
        BankConsole(system, secret_fn=getpass.getpass).run()
    except KeyboardInterrupt:
        print("\nGoodbye!")
    finally:
        system.close()


if __name__ == "__main__":
    main()
