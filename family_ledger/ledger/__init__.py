"""
Ledger Core Package

Authorization, sharing, registration and the transaction/asset mutation
engine. Every function here works on an in-memory Snapshot; persistence
and locking are the caller's job (see LedgerService and AtomicStore).
"""

from family_ledger.ledger.authorization import (
    can_read,
    can_write,
    effective_permission,
    readable_bill_ids,
    require_owner,
    require_write,
)
from family_ledger.ledger.mutations import (
    apply_deltas,
    create_transaction,
    delete_bill,
    delete_transaction,
    linked_total,
    unlink_asset,
    update_transaction,
)
from family_ledger.ledger.sharing import (
    create_share,
    delete_share,
    shares_granted_by,
    update_share_permission,
)
from family_ledger.ledger.users import (
    SEED_CATEGORIES,
    hash_password,
    register_user,
    verify_password,
)

__all__ = [
    # Authorization
    "can_read",
    "can_write",
    "effective_permission",
    "readable_bill_ids",
    "require_owner",
    "require_write",
    # Mutations
    "apply_deltas",
    "create_transaction",
    "delete_bill",
    "delete_transaction",
    "linked_total",
    "unlink_asset",
    "update_transaction",
    # Sharing
    "create_share",
    "delete_share",
    "shares_granted_by",
    "update_share_permission",
    # Users
    "SEED_CATEGORIES",
    "hash_password",
    "register_user",
    "verify_password",
]
