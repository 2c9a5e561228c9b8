"""
Console Banking

A single-session banking console with an account ledger that keeps balances
and an append-only transaction log consistent. All money math uses Decimal.
"""

__version__ = "1.0.0"
