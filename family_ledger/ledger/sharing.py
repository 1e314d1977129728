"""
Sharing Registry

Manages BillShare grants on a working snapshot. The caller (LedgerService)
runs these inside AtomicStore.transaction(), so a raised error leaves the
store untouched.

INVARIANT: at most one share per (bill_id, shared_with_user_id).
"""

from family_ledger.errors import (
    DuplicateShareError,
    NotFoundError,
    NotOwnerError,
    SelfShareError,
    UnknownUserError,
)
from family_ledger.models.ledger import BillShare, SharePermission, Snapshot


def create_share(
    snapshot: Snapshot,
    owner_user_id: str,
    bill_id: str,
    target_email: str,
    permission: SharePermission,
) -> BillShare:
    """
    Grant another user view or edit permission on a bill.

    Raises:
        NotOwnerError: caller does not own the bill (or it does not exist)
        UnknownUserError: no user is registered with target_email
        SelfShareError: target is the owner
        DuplicateShareError: the bill is already shared with the target
    """
    bill = snapshot.find_bill(bill_id)
    if bill is None or bill.user_id != owner_user_id:
        raise NotOwnerError(
            "You can only share your own bills.",
            details={"bill_id": bill_id},
        )

    target = snapshot.find_user_by_email(target_email)
    if target is None:
        raise UnknownUserError(
            "User to share with not found.",
            details={"email": target_email},
        )
    if target.id == owner_user_id:
        raise SelfShareError("You cannot share a bill with yourself.")

    if snapshot.find_share_for(bill_id, target.id) is not None:
        raise DuplicateShareError(
            "This bill is already shared with this user.",
            details={"bill_id": bill_id, "user_id": target.id},
        )

    share = BillShare(
        bill_id=bill_id,
        owner_user_id=owner_user_id,
        shared_with_user_id=target.id,
        shared_with_user_email=target.email,
        permission=permission,
    )
    snapshot.bill_shares.append(share)
    return share


def _owned_share(snapshot: Snapshot, caller_id: str, share_id: str) -> BillShare:
    share = snapshot.find_share(share_id)
    if share is None:
        raise NotFoundError("Share not found", details={"share_id": share_id})
    if share.owner_user_id != caller_id:
        raise NotOwnerError(
            "Only the bill owner can manage this share",
            details={"share_id": share_id},
        )
    return share


def update_share_permission(
    snapshot: Snapshot,
    caller_id: str,
    share_id: str,
    permission: SharePermission,
) -> BillShare:
    """Change the permission of an existing share. Nothing else can change."""
    share = _owned_share(snapshot, caller_id, share_id)
    share.permission = permission
    return share


def delete_share(snapshot: Snapshot, caller_id: str, share_id: str) -> BillShare:
    """
    Remove a share.

    A missing share is NotFound: deletion never succeeds silently.
    """
    share = _owned_share(snapshot, caller_id, share_id)
    snapshot.bill_shares = [s for s in snapshot.bill_shares if s.id != share_id]
    return share


def shares_granted_by(snapshot: Snapshot, owner_user_id: str) -> list[BillShare]:
    """
    Shares the owner has granted, with the display email recomputed
    from the Users collection.
    """
    shares = []
    for share in snapshot.bill_shares:
        if share.owner_user_id != owner_user_id:
            continue
        user = snapshot.find_user(share.shared_with_user_id)
        email = user.email if user else share.shared_with_user_email
        shares.append(share.model_copy(update={"shared_with_user_email": email}))
    return shares
