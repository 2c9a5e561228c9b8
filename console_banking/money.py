"""
Money Module

Decimal amounts at monetary precision (two places). NEVER uses float for
stored or computed monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union
import re

from .errors import InvalidAmount

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

# Largest amount or balance the ledger accepts; quantizing stays exact below it
MAX_AMOUNT = Decimal('1000000000000000000000000.00')

# A leading currency symbol the console may echo back, e.g. "R$ 10,00"
CURRENCY_PREFIX = re.compile(r'^(R\$|\$)\s*')
NUMBER_PATTERN = re.compile(r'[+\-]?\d[\d.,]*')

AmountLike = Union[Decimal, int, str, float]


def quantize(value: Decimal) -> Decimal:
    """Round a Decimal to two places"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a caller-supplied value into a positive two-place Decimal

    Floats go through str() so 0.1 stays 0.1. Values with more than two
    decimal places are rejected rather than rounded, since rounding would
    silently move money.

    Raises:
        InvalidAmount: If the value is not numeric, not finite, not positive,
            larger than MAX_AMOUNT, or carries sub-cent precision
    """
    if isinstance(value, bool):
        raise InvalidAmount(value, "not a number")

    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        elif isinstance(value, str):
            amount = Decimal(value.strip())
        else:
            raise InvalidAmount(value, "not a number")
    except InvalidOperation:
        raise InvalidAmount(value, "not a number")

    if not amount.is_finite():
        raise InvalidAmount(value, "not a finite number")

    if amount <= 0:
        raise InvalidAmount(value)

    if amount > MAX_AMOUNT:
        raise InvalidAmount(value, "amount too large")

    try:
        rounded = quantize(amount)
    except InvalidOperation:
        raise InvalidAmount(value, "amount too large")

    if amount != rounded:
        raise InvalidAmount(value, "at most two decimal places are allowed")

    return rounded


def to_balance(value: AmountLike) -> Decimal:
    """
    Convert a stored or initial balance; zero is allowed, negatives are not

    Raises:
        InvalidAmount: If the balance would exceed MAX_AMOUNT
        ValueError: If the value is negative or not a finite number
    """
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise ValueError(f"Balance must be a non-negative number, got {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Balance must be a non-negative number, got {value!r}")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(value, "balance limit exceeded")
    return quantize(amount)


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert user input to Decimal, handling common formats

    Accepts "1234.56", "1,234.56", "1.234,56", "1234,56" and a leading
    currency symbol such as "R$". Any other character is rejected.

    Raises:
        InvalidAmount: If the string cannot be read as a number
    """
    if not value or not isinstance(value, str):
        raise InvalidAmount(value, "please enter a valid number")

    clean_value = CURRENCY_PREFIX.sub('', value.strip())
    if not NUMBER_PATTERN.fullmatch(clean_value):
        raise InvalidAmount(value, "please enter a valid number")

    if ',' in clean_value and '.' in clean_value:
        # The right-most separator is the decimal point
        if clean_value.rfind(',') > clean_value.rfind('.'):
            clean_value = clean_value.replace('.', '').replace(',', '.')
        else:
            clean_value = clean_value.replace(',', '')
    elif ',' in clean_value and clean_value.count(',') == 1:
        parts = clean_value.split(',')
        if len(parts[1]) <= 2:  # Decimal comma
            clean_value = clean_value.replace(',', '.')
        else:  # Thousands separator
            clean_value = clean_value.replace(',', '')
    elif ',' in clean_value:
        clean_value = clean_value.replace(',', '')

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise InvalidAmount(value, "please enter a valid number")


def format_amount(amount: Decimal, symbol: str = "R$") -> str:
    """Format for display"""
    return f"{symbol} {quantize(amount):,.2f}"
