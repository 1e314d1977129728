"""
Family Ledger - Source Package

A multi-user household finance tracker. Users record income and expense
transactions in shared bills (ledgers) and link them to assets (accounts)
whose balances always follow the transaction history.

DESIGN PRINCIPLES:
1. Asset balances are maintained incrementally and never drift
2. Every write is all-or-nothing
3. Permission is checked before anything is touched
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Family Ledger Team"
