"""
Main Orchestrator for Family Ledger

This module ties together the storage, authorization, sharing and
mutation components and exposes the operation set the request layer calls.

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every write runs inside one AtomicStore.transaction() block
  (load -> authorize -> validate -> mutate -> save)
- A write that raises has changed nothing
- Reads use the last committed snapshot and never take the writer lock
- Every write, and every rejected write, is audited

Audit events are emitted after the lock is released.
"""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Optional
from uuid import UUID

from family_ledger.audit import AuditLogger, configure_logging, create_correlation_id
from family_ledger.config import AppSettings, get_settings
from family_ledger.errors import (
    CategoryInUseError,
    ForbiddenError,
    InvalidInputError,
    LedgerError,
    NotFoundError,
    TypeCategoryMismatchError,
    UnauthenticatedError,
    parse_input,
)
from family_ledger.ledger import (
    authorization,
    mutations,
    sharing,
    users,
)
from family_ledger.models.audit import AuditEventType
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
    ShareCreate,
    ShareUpdate,
    Snapshot,
    Transaction,
    TransactionCreate,
    TransactionCreated,
    TransactionDeleted,
    TransactionUpdate,
    TransactionUpdated,
    UserProfile,
    UserRegistration,
)
from family_ledger.services.storage import (
    AtomicStore,
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsSnapshotStore,
    InMemoryAuditStorage,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    SnapshotStore,
    StorageError,
)
from family_ledger.validation import TransactionValidator


def _authenticate(snapshot: Snapshot, user_id: Optional[str]) -> str:
    """The caller must send a user id that belongs to a registered user."""
    if not user_id:
        raise UnauthenticatedError("User ID is required")
    if snapshot.find_user(user_id) is None:
        raise UnauthenticatedError("Unknown user")
    return user_id


def _entity_type(error: LedgerError) -> Optional[str]:
    """Entity named by the first details key, e.g. bill_id -> bill."""
    key = next(iter(error.details), None)
    if key is None:
        return None
    return key[:-3] if key.endswith("_id") else key


class LedgerService:
    """
    The ledger's operation set.

    Every public coroutine takes the caller's opaque user id first.
    Failures raise LedgerError subclasses; see family_ledger.errors.
    """

    def __init__(
        self,
        store: AtomicStore,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[TransactionValidator] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or TransactionValidator()
        self._app_settings = app_settings or get_settings().app

    @property
    def store(self) -> AtomicStore:
        return self._store

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _write(
        self,
        user_id: Optional[str],
        operation: str,
        correlation_id: UUID,
        authenticate: bool = True,
    ) -> AsyncIterator[Snapshot]:
        """
        Exclusive write block with authentication and failure auditing.

        Ledger errors are audited as denials or rejections; storage
        failures as system errors.

        The rejection is audited after the lock has been released.
        """
        try:
            async with self._store.transaction() as snapshot:
                if authenticate:
                    _authenticate(snapshot, user_id)
                yield snapshot
        except ForbiddenError as e:
            await self._audit_logger.log_permission_denied(
                user_id=user_id,
                operation=operation,
                reason=e.message,
                correlation_id=correlation_id,
                entity_type=_entity_type(e),
                entity_id=next(iter(e.details.values()), None),
            )
            raise
        except LedgerError as e:
            await self._audit_logger.log_write_rejected(
                user_id=user_id,
                operation=operation,
                error_code=e.code,
                reason=e.message,
                correlation_id=correlation_id,
            )
            raise
        except StorageError as e:
            await self._audit_logger.log_error(
                error_type="storage_error",
                error_message=str(e),
                details={"operation": operation, "user_id": user_id},
                correlation_id=correlation_id,
            )
            raise

    async def _read(self, user_id: Optional[str]) -> Snapshot:
        snapshot = await self._store.read()
        _authenticate(snapshot, user_id)
        return snapshot

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def register_user(self, data) -> UserProfile:
        """Register a user with their default bill and starter categories."""
        data = parse_input(UserRegistration, data)
        correlation_id = create_correlation_id()
        settings = self._app_settings

        async with self._write(None, "register_user", correlation_id, authenticate=False) as snapshot:
            user, bill = users.register_user(
                snapshot,
                data,
                default_bill_name=settings.default_bill_name,
                default_bill_description=settings.default_bill_description,
                seed_categories=settings.seed_categories_on_register,
            )

        await self._audit_logger.log_user_registered(
            user_id=user.id,
            email=user.email,
            default_bill_id=bill.id,
            correlation_id=correlation_id,
        )
        return user.profile()

    async def get_profile(self, user_id: Optional[str]) -> UserProfile:
        snapshot = await self._read(user_id)
        return snapshot.find_user(user_id).profile()

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def list_bills(self, user_id: Optional[str]) -> list[BillView]:
        """Owned bills tagged owner, then shared bills tagged with their grant."""
        snapshot = await self._read(user_id)
        owned = [
            BillView(**b.model_dump(), permission=Permission.OWNER)
            for b in snapshot.bills
            if b.user_id == user_id
        ]
        shared = []
        for share in snapshot.bill_shares:
            if share.shared_with_user_id != user_id:
                continue
            bill = snapshot.find_bill(share.bill_id)
            if bill is not None:
                shared.append(BillView(
                    **bill.model_dump(),
                    permission=Permission(share.permission.value),
                ))
        return owned + shared

    async def create_bill(
        self,
        user_id: Optional[str],
        name: str,
        description: str = "",
    ) -> BillView:
        data = parse_input(BillCreate, {"name": name, "description": description})
        correlation_id = create_correlation_id()

        async with self._write(user_id, "create_bill", correlation_id) as snapshot:
            bill = Bill(user_id=user_id, **data.model_dump())
            snapshot.bills.append(bill)

        await self._audit_logger.log_entity_changed(
            AuditEventType.BILL_CREATED, user_id, "bill", bill.id, correlation_id,
            details={"name": bill.name},
        )
        return BillView(**bill.model_dump(), permission=Permission.OWNER)

    async def update_bill(self, user_id: Optional[str], bill_id: str, data) -> BillView:
        """Rename or re-describe a bill. Requires write permission."""
        changes = parse_input(BillUpdate, data)
        correlation_id = create_correlation_id()

        async with self._write(user_id, "update_bill", correlation_id) as snapshot:
            bill = authorization.require_write(user_id, bill_id, snapshot)
            for field, value in changes.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(bill, field, value)
            permission = authorization.effective_permission(user_id, bill_id, snapshot)

        await self._audit_logger.log_entity_changed(
            AuditEventType.BILL_UPDATED, user_id, "bill", bill_id, correlation_id,
            details=changes.model_dump(exclude_unset=True),
        )
        return BillView(**bill.model_dump(), permission=permission)

    async def delete_bill(self, user_id: Optional[str], bill_id: str) -> None:
        """
        Owner-only cascade delete.

        Asset balances are NOT reverted for the removed transactions.
        """
        correlation_id = create_correlation_id()

        async with self._write(user_id, "delete_bill", correlation_id) as snapshot:
            removed = mutations.delete_bill(snapshot, user_id, bill_id)

        await self._audit_logger.log_entity_changed(
            AuditEventType.BILL_DELETED, user_id, "bill", bill_id, correlation_id,
            details={"removed": removed},
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        user_id: Optional[str],
        bill_id: Optional[str] = None,
    ) -> list[Transaction]:
        """All transactions in bills the caller can read (optionally one bill)."""
        snapshot = await self._read(user_id)
        readable = authorization.readable_bill_ids(user_id, snapshot)
        if bill_id is not None:
            if snapshot.find_bill(bill_id) is None:
                raise NotFoundError("Bill not found", details={"bill_id": bill_id})
            if bill_id not in readable:
                raise ForbiddenError(
                    "You do not have access to this bill",
                    details={"bill_id": bill_id},
                )
            readable = {bill_id}
        return [t for t in snapshot.transactions if t.bill_id in readable]

    async def create_transaction(self, user_id: Optional[str], data) -> TransactionCreated:
        """Record a transaction and reconcile its linked asset."""
        data = parse_input(TransactionCreate, data)
        correlation_id = create_correlation_id()

        async with self._write(user_id, "create_transaction", correlation_id) as snapshot:
            result, deltas = mutations.create_transaction(
                snapshot, user_id, data, self._validator
            )

        await self._audit_logger.log_transaction_changed(
            AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            transaction_id=result.transaction.id,
            bill_id=result.transaction.bill_id,
            asset_deltas=deltas,
            correlation_id=correlation_id,
        )
        return result

    async def update_transaction(
        self,
        user_id: Optional[str],
        tx_id: str,
        data,
    ) -> TransactionUpdated:
        """Revert-then-reapply update, atomically."""
        changes = parse_input(TransactionUpdate, data)
        correlation_id = create_correlation_id()

        async with self._write(user_id, "update_transaction", correlation_id) as snapshot:
            result, deltas = mutations.update_transaction(
                snapshot, user_id, tx_id, changes, self._validator
            )

        await self._audit_logger.log_transaction_changed(
            AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            transaction_id=tx_id,
            bill_id=result.transaction.bill_id,
            asset_deltas=deltas,
            correlation_id=correlation_id,
        )
        return result

    async def delete_transaction(self, user_id: Optional[str], tx_id: str) -> TransactionDeleted:
        """Delete a transaction and revert its asset effect."""
        correlation_id = create_correlation_id()

        async with self._write(user_id, "delete_transaction", correlation_id) as snapshot:
            result, deltas, tx = mutations.delete_transaction(snapshot, user_id, tx_id)

        await self._audit_logger.log_transaction_changed(
            AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            transaction_id=tx_id,
            bill_id=tx.bill_id,
            asset_deltas=deltas,
            correlation_id=correlation_id,
        )
        return result

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(self, user_id: Optional[str]) -> list[Category]:
        snapshot = await self._read(user_id)
        readable = authorization.readable_bill_ids(user_id, snapshot)
        return [c for c in snapshot.categories if c.bill_id in readable]

    @staticmethod
    def _check_parent(snapshot: Snapshot, bill_id: str, parent_id: Optional[str]) -> None:
        if parent_id is None:
            return
        parent = snapshot.find_category(parent_id)
        if parent is None or parent.bill_id != bill_id:
            raise InvalidInputError(
                "Parent category must exist in the same bill",
                details={"parent_id": parent_id},
            )

    async def create_category(self, user_id: Optional[str], data) -> Category:
        data = parse_input(CategoryCreate, data)
        correlation_id = create_correlation_id()

        async with self._write(user_id, "create_category", correlation_id) as snapshot:
            authorization.require_write(user_id, data.bill_id, snapshot)
            self._check_parent(snapshot, data.bill_id, data.parent_id)
            category = Category(user_id=user_id, **data.model_dump())
            snapshot.categories.append(category)

        await self._audit_logger.log_entity_changed(
            AuditEventType.CATEGORY_CREATED, user_id, "category", category.id, correlation_id,
            details={"bill_id": category.bill_id, "type": category.type.value},
        )
        return category

    async def update_category(self, user_id: Optional[str], category_id: str, data) -> Category:
        """
        Update a category. bill_id never changes; the type may only change
        while no transaction uses the category.
        """
        changes = parse_input(CategoryUpdate, data)
        correlation_id = create_correlation_id()

        async with self._write(user_id, "update_category", correlation_id) as snapshot:
            category = snapshot.find_category(category_id)
            if category is None:
                raise NotFoundError("Category not found", details={"category_id": category_id})
            authorization.require_write(user_id, category.bill_id, snapshot)

            updates = changes.model_dump(exclude_unset=True)
            new_type = updates.get("type")
            if new_type is not None and new_type != category.type:
                if any(t.category_id == category_id for t in snapshot.transactions):
                    raise TypeCategoryMismatchError(
                        "Cannot change the type of a category that has transactions",
                        details={"category_id": category_id},
                    )
            if "parent_id" in updates:
                if updates["parent_id"] == category_id:
                    raise InvalidInputError("A category cannot be its own parent")
                self._check_parent(snapshot, category.bill_id, updates["parent_id"])

            for field, value in updates.items():
                if value is not None or field == "parent_id":
                    setattr(category, field, value)

        await self._audit_logger.log_entity_changed(
            AuditEventType.CATEGORY_UPDATED, user_id, "category", category_id, correlation_id,
            details=changes.model_dump(mode="json", exclude_unset=True),
        )
        return category

    async def delete_category(self, user_id: Optional[str], category_id: str) -> None:
        correlation_id = create_correlation_id()

        async with self._write(user_id, "delete_category", correlation_id) as snapshot:
            category = snapshot.find_category(category_id)
            if category is None:
                raise NotFoundError("Category not found", details={"category_id": category_id})
            authorization.require_write(user_id, category.bill_id, snapshot)
            in_use = sum(1 for t in snapshot.transactions if t.category_id == category_id)
            if in_use:
                raise CategoryInUseError(
                    f"Category is used by {in_use} transaction(s)",
                    details={"category_id": category_id, "transactions": in_use},
                )
            snapshot.categories = [
                c for c in snapshot.categories
                if c.id != category_id
            ]
            for child in snapshot.categories:
                if child.parent_id == category_id:
                    child.parent_id = None

        await self._audit_logger.log_entity_changed(
            AuditEventType.CATEGORY_DELETED, user_id, "category", category_id, correlation_id,
        )

    # -------------------------------------------------------------------------
    # Sharing
    # -------------------------------------------------------------------------

    async def list_shares(self, user_id: Optional[str]) -> list[BillShare]:
        """Shares the caller has granted on their own bills."""
        snapshot = await self._read(user_id)
        return sharing.shares_granted_by(snapshot, user_id)

    async def create_share(
        self,
        user_id: Optional[str],
        bill_id: str,
        email: str,
        permission,
    ) -> BillShare:
        data = parse_input(ShareCreate, {
            "bill_id": bill_id,
            "email": email,
            "permission": permission,
        })
        correlation_id = create_correlation_id()

        async with self._write(user_id, "create_share", correlation_id) as snapshot:
            share = sharing.create_share(
                snapshot, user_id, data.bill_id, data.email, data.permission
            )

        await self._audit_logger.log_entity_changed(
            AuditEventType.SHARE_CREATED, user_id, "share", share.id, correlation_id,
            details={
                "bill_id": share.bill_id,
                "shared_with_user_id": share.shared_with_user_id,
                "permission": share.permission.value,
            },
        )
        return share

    async def update_share(self, user_id: Optional[str], share_id: str, data) -> BillShare:
        changes = parse_input(ShareUpdate, data)
        correlation_id = create_correlation_id()

        async with self._write(user_id, "update_share", correlation_id) as snapshot:
            share = sharing.update_share_permission(
                snapshot, user_id, share_id, changes.permission
            )

        await self._audit_logger.log_entity_changed(
            AuditEventType.SHARE_UPDATED, user_id, "share", share_id, correlation_id,
            details={"permission": share.permission.value},
        )
        return share

    async def delete_share(self, user_id: Optional[str], share_id: str) -> None:
        correlation_id = create_correlation_id()

        async with self._write(user_id, "delete_share", correlation_id) as snapshot:
            share = sharing.delete_share(snapshot, user_id, share_id)

        await self._audit_logger.log_entity_changed(
            AuditEventType.SHARE_DELETED, user_id, "share", share_id, correlation_id,
            details={"bill_id": share.bill_id},
        )

    # -------------------------------------------------------------------------
    # Assets (owner-scoped, independent of bill sharing)
    # -------------------------------------------------------------------------

    @staticmethod
    def _owned_asset(snapshot: Snapshot, user_id: str, asset_id: str) -> Asset:
        """Someone else's asset is reported as not found."""
        asset = snapshot.find_asset(asset_id)
        if asset is None or asset.user_id != user_id:
            raise NotFoundError(
                "Asset not found or access denied",
                details={"asset_id": asset_id},
            )
        return asset

    async def list_assets(self, user_id: Optional[str]) -> list[Asset]:
        snapshot = await self._read(user_id)
        return [a for a in snapshot.assets if a.user_id == user_id]

    async def create_asset(self, user_id: Optional[str], data) -> Asset:
        data = parse_input(AssetCreate, data)
        correlation_id = create_correlation_id()

        async with self._write(user_id, "create_asset", correlation_id) as snapshot:
            asset = Asset(
                user_id=user_id,
                name=data.name,
                type=data.type,
                balance=data.balance,
                initial_balance=data.balance,
            )
            snapshot.assets.append(asset)

        await self._audit_logger.log_entity_changed(
            AuditEventType.ASSET_CREATED, user_id, "asset", asset.id, correlation_id,
            details={"opening_balance": str(asset.balance)},
        )
        return asset

    async def update_asset(self, user_id: Optional[str], asset_id: str, data) -> Asset:
        """
        Update descriptive fields, or set the balance directly.

        A direct balance change is an opening-balance correction: the
        initial balance shifts by the same delta so the invariant holds.
        """
        changes = parse_input(AssetUpdate, data)
        correlation_id = create_correlation_id()
        old_balance: Optional[Decimal] = None

        async with self._write(user_id, "update_asset", correlation_id) as snapshot:
            asset = self._owned_asset(snapshot, user_id, asset_id)
            if changes.name is not None:
                asset.name = changes.name
            if changes.type is not None:
                asset.type = changes.type
            if changes.balance is not None and changes.balance != asset.balance:
                old_balance = asset.balance
                asset.initial_balance = asset.initial_balance + (changes.balance - asset.balance)
                asset.balance = changes.balance

        if old_balance is not None:
            await self._audit_logger.log_asset_balance_adjusted(
                user_id=user_id,
                asset_id=asset_id,
                old_balance=old_balance,
                new_balance=asset.balance,
                correlation_id=correlation_id,
            )
        await self._audit_logger.log_entity_changed(
            AuditEventType.ASSET_UPDATED, user_id, "asset", asset_id, correlation_id,
        )
        return asset

    async def delete_asset(self, user_id: Optional[str], asset_id: str) -> None:
        """Delete an asset and unlink the transactions that referenced it."""
        correlation_id = create_correlation_id()

        async with self._write(user_id, "delete_asset", correlation_id) as snapshot:
            self._owned_asset(snapshot, user_id, asset_id)
            unlinked = mutations.unlink_asset(snapshot, asset_id)
            snapshot.assets = [a for a in snapshot.assets if a.id != asset_id]

        await self._audit_logger.log_entity_changed(
            AuditEventType.ASSET_DELETED, user_id, "asset", asset_id, correlation_id,
            details={"unlinked_transactions": unlinked},
        )

    async def check_asset_balance(self, user_id: Optional[str], asset_id: str) -> BalanceCheck:
        """Recompute an asset's expected balance from its linked transactions."""
        snapshot = await self._read(user_id)
        asset = self._owned_asset(snapshot, user_id, asset_id)
        total, count = mutations.linked_total(snapshot, asset_id)
        return BalanceCheck(
            asset_id=asset_id,
            stored_balance=asset.balance,
            initial_balance=asset.initial_balance,
            linked_total=total,
            linked_transaction_count=count,
        )


def create_snapshot_store(backend: Optional[str] = None) -> SnapshotStore:
    """Build the configured snapshot store backend."""
    store_settings = get_settings().store
    backend = backend or store_settings.backend
    if backend == "memory":
        return InMemorySnapshotStore()
    if backend == "sheets":
        return GoogleSheetsSnapshotStore(GoogleSheetsClient())
    return JsonFileSnapshotStore(store_settings.json_path)


def create_ledger_service(
    store: Optional[SnapshotStore] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> LedgerService:
    """
    Factory function to create the service with its collaborators.

    Args:
        store: Snapshot store to use. Defaults to the configured backend.
        audit_storage: Where audit events are persisted. Defaults to the
            Sheets audit log for the sheets backend, else in-memory.

    Returns:
        A ready LedgerService
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    if store is None:
        store = create_snapshot_store()
    if audit_storage is None:
        if isinstance(store, GoogleSheetsSnapshotStore):
            audit_storage = GoogleSheetsAuditStorage()
        else:
            audit_storage = InMemoryAuditStorage()

    return LedgerService(
        store=AtomicStore(store),
        audit_logger=AuditLogger(audit_storage),
        app_settings=settings.app,
    )
