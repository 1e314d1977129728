"""
Ledger Mutation Engine

Creates, updates and deletes transactions on a working snapshot and keeps
every linked asset's balance equal to

    initial_balance + sum(signed_amount of transactions linked to it)

signed_amount(type, amount) = +amount for income, -amount for expense.

Balance changes are collected as per-asset deltas and applied in one pass,
so an update that keeps the same asset nets its revert and reapply into a
single change. Callers run these functions inside
AtomicStore.transaction(): if anything raises, the working copy is
discarded and neither the transaction nor any balance changes.

DELIBERATE SIMPLIFICATION: deleting a bill drops its transactions WITHOUT
reverting their effect on linked assets. The owner reconciles those
accounts separately. Single-transaction deletes always revert.
"""

from decimal import Decimal
from typing import Optional

from family_ledger.errors import NotFoundError
from family_ledger.ledger.authorization import require_owner, require_write
from family_ledger.models.ledger import (
    Asset,
    Snapshot,
    Transaction,
    TransactionCreate,
    TransactionCreated,
    TransactionDeleted,
    TransactionUpdate,
    TransactionUpdated,
    signed_amount,
)
from family_ledger.validation import TransactionValidator

# asset_id -> net balance change, in first-referenced order
AssetDeltas = dict[str, Decimal]


def _add_delta(deltas: AssetDeltas, asset_id: Optional[str], amount: Decimal) -> None:
    if asset_id is None:
        return
    deltas[asset_id] = deltas.get(asset_id, Decimal("0")) + amount


def apply_deltas(snapshot: Snapshot, deltas: AssetDeltas) -> list[Asset]:
    """
    Apply accumulated balance deltas, one change per asset.

    Every asset is looked up before any balance moves, so a missing asset
    fails the whole write.

    Returns:
        The distinct assets touched, in the order they were first referenced
    """
    assets = []
    for asset_id in deltas:
        asset = snapshot.find_asset(asset_id)
        if asset is None:
            raise NotFoundError("Asset not found", details={"asset_id": asset_id})
        assets.append(asset)
    for asset in assets:
        asset.balance = asset.balance + deltas[asset.id]
    return assets


def _find_transaction(snapshot: Snapshot, tx_id: str) -> Transaction:
    tx = snapshot.find_transaction(tx_id)
    if tx is None:
        raise NotFoundError("Transaction not found", details={"transaction_id": tx_id})
    return tx


def create_transaction(
    snapshot: Snapshot,
    caller_id: str,
    data: TransactionCreate,
    validator: TransactionValidator,
) -> tuple[TransactionCreated, AssetDeltas]:
    """
    Record a new transaction and apply its signed amount to the linked asset.

    Order: authorize -> validate -> persist -> reconcile.
    """
    require_write(caller_id, data.bill_id, snapshot)

    tx = Transaction(user_id=caller_id, **data.model_dump())
    validator.validate(snapshot, caller_id, tx)

    deltas: AssetDeltas = {}
    _add_delta(deltas, tx.asset_id, tx.signed_amount)
    touched = apply_deltas(snapshot, deltas)

    snapshot.transactions.append(tx)
    return (
        TransactionCreated(transaction=tx, updated_asset=touched[0] if touched else None),
        deltas,
    )


def update_transaction(
    snapshot: Snapshot,
    caller_id: str,
    tx_id: str,
    changes: TransactionUpdate,
    validator: TransactionValidator,
) -> tuple[TransactionUpdated, AssetDeltas]:
    """
    Merge changes into a transaction, reverting the old effect and
    applying the new one.

    Handles amount changes, type flips, and moves between assets (or
    linking/unlinking). The result lists every distinct asset touched.
    """
    old = _find_transaction(snapshot, tx_id)
    require_write(caller_id, old.bill_id, snapshot)

    updates = changes.model_dump(exclude_unset=True)
    # Only asset_id may be explicitly cleared
    updates = {k: v for k, v in updates.items() if v is not None or k == "asset_id"}
    new = old.model_copy(update=updates)
    validator.validate(snapshot, caller_id, new, previous_asset_id=old.asset_id)

    deltas: AssetDeltas = {}
    _add_delta(deltas, old.asset_id, -old.signed_amount)
    _add_delta(deltas, new.asset_id, new.signed_amount)
    touched = apply_deltas(snapshot, deltas)

    snapshot.transactions = [new if t.id == tx_id else t for t in snapshot.transactions]
    return TransactionUpdated(transaction=new, updated_assets=touched), deltas


def delete_transaction(
    snapshot: Snapshot,
    caller_id: str,
    tx_id: str,
) -> tuple[TransactionDeleted, AssetDeltas, Transaction]:
    """Remove a transaction and revert its effect on the linked asset."""
    tx = _find_transaction(snapshot, tx_id)
    require_write(caller_id, tx.bill_id, snapshot)

    deltas: AssetDeltas = {}
    _add_delta(deltas, tx.asset_id, -tx.signed_amount)
    touched = apply_deltas(snapshot, deltas)

    snapshot.transactions = [t for t in snapshot.transactions if t.id != tx_id]
    return (
        TransactionDeleted(deleted_id=tx_id, updated_asset=touched[0] if touched else None),
        deltas,
        tx,
    )


def delete_bill(snapshot: Snapshot, caller_id: str, bill_id: str) -> dict[str, int]:
    """
    Owner-only cascade delete of a bill, its transactions, categories and
    shares. Linked asset balances are left untouched.

    Returns:
        Count of removed rows per collection
    """
    require_owner(caller_id, bill_id, snapshot)

    before = {
        "transactions": len(snapshot.transactions),
        "categories": len(snapshot.categories),
        "bill_shares": len(snapshot.bill_shares),
    }
    snapshot.bills = [b for b in snapshot.bills if b.id != bill_id]
    snapshot.transactions = [t for t in snapshot.transactions if t.bill_id != bill_id]
    snapshot.categories = [c for c in snapshot.categories if c.bill_id != bill_id]
    snapshot.bill_shares = [s for s in snapshot.bill_shares if s.bill_id != bill_id]
    return {
        "transactions": before["transactions"] - len(snapshot.transactions),
        "categories": before["categories"] - len(snapshot.categories),
        "bill_shares": before["bill_shares"] - len(snapshot.bill_shares),
    }


def unlink_asset(snapshot: Snapshot, asset_id: str) -> int:
    """Detach every transaction from an asset that is going away."""
    count = 0
    for tx in snapshot.transactions:
        if tx.asset_id == asset_id:
            tx.asset_id = None
            count += 1
    return count


def linked_total(snapshot: Snapshot, asset_id: str) -> tuple[Decimal, int]:
    """Sum of signed amounts currently linked to an asset, and how many."""
    linked = [t for t in snapshot.transactions if t.asset_id == asset_id]
    total = sum((signed_amount(t.type, t.amount) for t in linked), Decimal("0"))
    return total, len(linked)
