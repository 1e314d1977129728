"""Validation package."""

from family_ledger.validation.validator import TransactionValidator

__all__ = ["TransactionValidator"]
