"""
Data Models Package

This package contains all Pydantic models used in Family Ledger.
Every entity in the store snapshot and every operation input/result
conforms to these schemas.
"""

from family_ledger.models.ledger import (
    Asset,
    AssetCreate,
    AssetUpdate,
    BalanceCheck,
    Bill,
    BillCreate,
    BillShare,
    BillUpdate,
    BillView,
    Category,
    CategoryCreate,
    CategoryUpdate,
    Permission,
    SharePermission,
    ShareCreate,
    ShareUpdate,
    Snapshot,
    Transaction,
    TransactionCreate,
    TransactionCreated,
    TransactionDeleted,
    TransactionType,
    TransactionUpdate,
    TransactionUpdated,
    User,
    UserProfile,
    UserRegistration,
    new_id,
    signed_amount,
)
from family_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Asset",
    "AssetCreate",
    "AssetUpdate",
    "BalanceCheck",
    "Bill",
    "BillCreate",
    "BillShare",
    "BillUpdate",
    "BillView",
    "Category",
    "CategoryCreate",
    "CategoryUpdate",
    "Permission",
    "SharePermission",
    "ShareCreate",
    "ShareUpdate",
    "Snapshot",
    "Transaction",
    "TransactionCreate",
    "TransactionCreated",
    "TransactionDeleted",
    "TransactionType",
    "TransactionUpdate",
    "TransactionUpdated",
    "User",
    "UserProfile",
    "UserRegistration",
    "new_id",
    "signed_amount",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
