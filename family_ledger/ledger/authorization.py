"""
Authorization Engine

Pure functions over a Snapshot. Nothing here reads or writes storage.

    owner  - bill.user_id == caller
    edit   - caller holds an edit share
    view   - caller holds a view share
    none   - anything else (including unknown bills)

Writes require owner or edit. A failed check always raises
ForbiddenError; it is never a silent no-op.
"""

from family_ledger.errors import ForbiddenError, NotFoundError, NotOwnerError
from family_ledger.models.ledger import Bill, Permission, Snapshot

WRITE_PERMISSIONS = frozenset({Permission.OWNER, Permission.EDIT})


def effective_permission(user_id: str, bill_id: str, snapshot: Snapshot) -> Permission:
    """Compute the caller's permission on a bill."""
    bill = snapshot.find_bill(bill_id)
    if bill is None:
        return Permission.NONE
    if bill.user_id == user_id:
        return Permission.OWNER
    share = snapshot.find_share_for(bill_id, user_id)
    if share is None:
        return Permission.NONE
    return Permission(share.permission.value)


def can_read(user_id: str, bill_id: str, snapshot: Snapshot) -> bool:
    return effective_permission(user_id, bill_id, snapshot) != Permission.NONE


def can_write(user_id: str, bill_id: str, snapshot: Snapshot) -> bool:
    return effective_permission(user_id, bill_id, snapshot) in WRITE_PERMISSIONS


def require_write(user_id: str, bill_id: str, snapshot: Snapshot) -> Bill:
    """
    Return the bill if the caller may write to it.

    Raises:
        NotFoundError: bill does not exist
        ForbiddenError: caller lacks write permission
    """
    bill = snapshot.find_bill(bill_id)
    if bill is None:
        raise NotFoundError("Bill not found", details={"bill_id": bill_id})
    if not can_write(user_id, bill_id, snapshot):
        raise ForbiddenError(
            "You do not have write permission on this bill",
            details={"bill_id": bill_id},
        )
    return bill


def require_owner(user_id: str, bill_id: str, snapshot: Snapshot) -> Bill:
    """
    Return the bill if the caller owns it.

    Raises:
        NotFoundError: bill does not exist
        NotOwnerError: bill belongs to someone else
    """
    bill = snapshot.find_bill(bill_id)
    if bill is None:
        raise NotFoundError("Bill not found", details={"bill_id": bill_id})
    if bill.user_id != user_id:
        raise NotOwnerError(
            "Only the owner can do this",
            details={"bill_id": bill_id},
        )
    return bill


def readable_bill_ids(user_id: str, snapshot: Snapshot) -> set[str]:
    """Ids of every bill the caller owns or has been shared."""
    owned = {b.id for b in snapshot.bills if b.user_id == user_id}
    shared = {s.bill_id for s in snapshot.bill_shares if s.shared_with_user_id == user_id}
    existing = {b.id for b in snapshot.bills}
    return (owned | shared) & existing
