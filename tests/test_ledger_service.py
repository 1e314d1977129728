"""Tests for registration, bills, sharing, categories and assets."""

from decimal import Decimal

import pytest

from conftest import run_async
from family_ledger.errors import (
    CategoryInUseError,
    DuplicateShareError,
    EmailTakenError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    NotOwnerError,
    SelfShareError,
    TypeCategoryMismatchError,
    UnknownUserError,
)
from family_ledger.ledger import verify_password
from family_ledger.models.ledger import Permission


class TestRegistration:
    """Tests for register_user."""

    def test_creates_default_bill_and_seed_categories(self, service):
        """A new user gets a Personal bill with five starter categories."""
        profile = run_async(service.register_user({
            "email": "New@Example.com", "password": "secret", "name": "New",
        }))
        assert profile.email == "new@example.com"
        bills = run_async(service.list_bills(profile.id))
        assert [b.name for b in bills] == ["Personal"]
        assert bills[0].permission == Permission.OWNER
        categories = run_async(service.list_categories(profile.id))
        names = {c.name: c.type.value for c in categories}
        assert names == {
            "Salary": "income",
            "Groceries": "expense",
            "Rent": "expense",
            "Transport": "expense",
            "Entertainment": "expense",
        }
        assert all(c.is_seed for c in categories)

    def test_name_defaults_to_email_prefix(self, service):
        """Without a name the part before @ is used."""
        profile = run_async(service.register_user({"email": "kim@example.com", "password": "x"}))
        assert profile.name == "kim"

    def test_duplicate_email(self, service, family):
        """Emails are unique, case-insensitively."""
        with pytest.raises(EmailTakenError):
            run_async(service.register_user({"email": "U1@example.com", "password": "x"}))

    def test_password_is_hashed(self, service, backend):
        """Only a passlib hash is stored."""
        run_async(service.register_user({"email": "p@example.com", "password": "hunter2"}))
        stored = run_async(backend.load()).users[0]
        assert stored.password_hash != "hunter2"
        assert verify_password("hunter2", stored.password_hash)

    def test_invalid_email(self, service):
        """An email without @ is invalid input."""
        with pytest.raises(InvalidInputError):
            run_async(service.register_user({"email": "nobody", "password": "x"}))


class TestBills:
    """Tests for bill listing, update and cascade delete."""

    def test_list_includes_shared_with_permission(self, service, family):
        """Shared bills are tagged with the granted permission."""
        run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "edit"))
        bills = run_async(service.list_bills(family["u2"]))
        perms = {b.id: b.permission for b in bills}
        assert perms[family["bill"]] == Permission.EDIT
        assert len(bills) == 2

    def test_editor_can_rename(self, service, family):
        """update_bill needs write permission, not ownership."""
        run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "edit"))
        bill = run_async(service.update_bill(family["u2"], family["bill"], {"name": "House"}))
        assert bill.name == "House"
        assert bill.permission == Permission.EDIT
        assert bill.user_id == family["u1"]

    def test_delete_is_owner_only(self, service, family):
        """An editor cannot delete the bill."""
        run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "edit"))
        with pytest.raises(NotOwnerError):
            run_async(service.delete_bill(family["u2"], family["bill"]))

    def test_delete_missing(self, service, family):
        """Deleting an unknown bill is NotFound."""
        with pytest.raises(NotFoundError):
            run_async(service.delete_bill(family["u1"], "nope"))

    def test_cascade_leaves_balances(self, service, family, backend):
        """Deleting a bill drops its rows but does not revert asset balances."""
        u1 = family["u1"]
        asset = run_async(service.create_asset(u1, {"name": "Bank", "balance": "1000"}))
        run_async(service.create_transaction(u1, {
            "bill_id": family["bill"], "category_id": family["groceries"],
            "type": "expense", "amount": "200", "asset_id": asset.id,
        }))
        run_async(service.create_share(u1, family["bill"], "u2@example.com", "view"))

        run_async(service.delete_bill(u1, family["bill"]))

        snapshot = run_async(backend.load())
        assert snapshot.find_bill(family["bill"]) is None
        assert not [t for t in snapshot.transactions if t.bill_id == family["bill"]]
        assert not [c for c in snapshot.categories if c.bill_id == family["bill"]]
        assert not [s for s in snapshot.bill_shares if s.bill_id == family["bill"]]
        assert snapshot.find_asset(asset.id).balance == Decimal("800")

        check = run_async(service.check_asset_balance(u1, asset.id))
        assert check.linked_transaction_count == 0
        assert check.is_consistent is False


class TestSharing:
    """Tests for the sharing registry through the service."""

    def test_create_share(self, service, family):
        """The share records the target id and email."""
        share = run_async(service.create_share(
            family["u1"], family["bill"], " U2@Example.com ", "view",
        ))
        assert share.shared_with_user_id == family["u2"]
        assert share.shared_with_user_email == "u2@example.com"
        assert share.owner_user_id == family["u1"]

    def test_only_owner_shares(self, service, family):
        """Sharing someone else's bill is NotOwner."""
        with pytest.raises(NotOwnerError):
            run_async(service.create_share(family["u2"], family["bill"], "u1@example.com", "view"))

    def test_unknown_target(self, service, family):
        """The target must be registered."""
        with pytest.raises(UnknownUserError):
            run_async(service.create_share(family["u1"], family["bill"], "x@example.com", "view"))

    def test_self_share(self, service, family):
        """An owner cannot share with themselves."""
        with pytest.raises(SelfShareError):
            run_async(service.create_share(family["u1"], family["bill"], "u1@example.com", "view"))

    def test_duplicate_share(self, service, family):
        """One share per bill and user."""
        run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "view"))
        with pytest.raises(DuplicateShareError):
            run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "edit"))
        assert len(run_async(service.list_shares(family["u1"]))) == 1

    def test_invalid_permission(self, service, family):
        """Only view and edit can be granted."""
        with pytest.raises(InvalidInputError):
            run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "owner"))

    def test_update_permission_changes_access(self, service, family):
        """Upgrading view to edit allows writes."""
        share = run_async(service.create_share(
            family["u1"], family["bill"], "u2@example.com", "view",
        ))
        updated = run_async(service.update_share(family["u1"], share.id, {"permission": "edit"}))
        assert updated.permission.value == "edit"
        run_async(service.create_category(family["u2"], {
            "bill_id": family["bill"], "name": "Snacks", "type": "expense",
        }))

    def test_update_by_non_owner(self, service, family):
        """Only the owner manages a share."""
        share = run_async(service.create_share(
            family["u1"], family["bill"], "u2@example.com", "view",
        ))
        with pytest.raises(NotOwnerError):
            run_async(service.update_share(family["u2"], share.id, {"permission": "edit"}))

    def test_delete_share_revokes_access(self, service, family):
        """After deletion the bill disappears for the target."""
        share = run_async(service.create_share(
            family["u1"], family["bill"], "u2@example.com", "view",
        ))
        run_async(service.delete_share(family["u1"], share.id))
        assert family["bill"] not in {b.id for b in run_async(service.list_bills(family["u2"]))}

    def test_delete_missing_share(self, service, family):
        """Deleting a missing share is NotFound, never a silent success."""
        with pytest.raises(NotFoundError):
            run_async(service.delete_share(family["u1"], "nope"))

    def test_list_shares_only_granted_by_caller(self, service, family):
        """The target does not see the owner's grants."""
        run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "view"))
        assert run_async(service.list_shares(family["u2"])) == []
        assert len(run_async(service.list_shares(family["u1"]))) == 1


class TestCategories:
    """Tests for category CRUD."""

    def test_create_and_list(self, service, family):
        """A new category shows up for readers of the bill."""
        run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "view"))
        category = run_async(service.create_category(family["u1"], {
            "bill_id": family["bill"], "name": "Pets", "type": "expense", "icon": "paw",
        }))
        assert category.user_id == family["u1"]
        assert category.id in {c.id for c in run_async(service.list_categories(family["u2"]))}

    def test_parent_must_be_in_same_bill(self, service, family):
        """parent_id must reference a category of the same bill."""
        other = run_async(service.create_bill(family["u1"], "Holiday"))
        with pytest.raises(InvalidInputError):
            run_async(service.create_category(family["u1"], {
                "bill_id": other.id, "name": "Food", "type": "expense",
                "parent_id": family["groceries"],
            }))

    def test_type_change_blocked_when_used(self, service, family):
        """A used category cannot change type."""
        run_async(service.create_transaction(family["u1"], {
            "bill_id": family["bill"], "category_id": family["groceries"],
            "type": "expense", "amount": "5",
        }))
        with pytest.raises(TypeCategoryMismatchError):
            run_async(service.update_category(family["u1"], family["groceries"], {"type": "income"}))

    def test_type_change_allowed_when_unused(self, service, family):
        """An unused category may change type."""
        category = run_async(service.update_category(
            family["u1"], family["groceries"], {"type": "income", "name": "Refunds"},
        ))
        assert category.type.value == "income"
        assert category.name == "Refunds"
        assert category.bill_id == family["bill"]

    def test_delete_in_use(self, service, family):
        """A referenced category cannot be deleted."""
        run_async(service.create_transaction(family["u1"], {
            "bill_id": family["bill"], "category_id": family["groceries"],
            "type": "expense", "amount": "5",
        }))
        with pytest.raises(CategoryInUseError):
            run_async(service.delete_category(family["u1"], family["groceries"]))

    def test_delete_unused(self, service, family):
        """An unused category is removed."""
        run_async(service.delete_category(family["u1"], family["groceries"]))
        ids = {c.id for c in run_async(service.list_categories(family["u1"]))}
        assert family["groceries"] not in ids

    def test_delete_missing(self, service, family):
        """Deleting an unknown category is NotFound."""
        with pytest.raises(NotFoundError):
            run_async(service.delete_category(family["u1"], "nope"))


class TestAssets:
    """Tests for owner-scoped assets."""

    def test_create_sets_initial_balance(self, service, family):
        """The opening balance is both balance and initial balance."""
        asset = run_async(service.create_asset(family["u1"], {
            "name": "Wallet", "type": "Cash", "balance": "42.50",
        }))
        assert asset.balance == Decimal("42.50")
        assert asset.initial_balance == Decimal("42.50")

    def test_list_is_owner_scoped(self, service, family):
        """Assets are never shared through bills."""
        run_async(service.create_asset(family["u1"], {"name": "Bank"}))
        run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "edit"))
        assert run_async(service.list_assets(family["u2"])) == []

    def test_update_foreign_asset_is_not_found(self, service, family):
        """Someone else's asset looks missing."""
        asset = run_async(service.create_asset(family["u1"], {"name": "Bank"}))
        with pytest.raises(NotFoundError):
            run_async(service.update_asset(family["u2"], asset.id, {"name": "Mine"}))
        with pytest.raises(NotFoundError):
            run_async(service.delete_asset(family["u2"], asset.id))
        with pytest.raises(NotFoundError):
            run_async(service.check_asset_balance(family["u2"], asset.id))

    def test_balance_edit_shifts_initial_balance(self, service, family):
        """A manual balance correction keeps the invariant."""
        u1 = family["u1"]
        asset = run_async(service.create_asset(u1, {"name": "Bank", "balance": "1000"}))
        run_async(service.create_transaction(u1, {
            "bill_id": family["bill"], "category_id": family["groceries"],
            "type": "expense", "amount": "100", "asset_id": asset.id,
        }))
        updated = run_async(service.update_asset(u1, asset.id, {"balance": "950"}))
        assert updated.balance == Decimal("950")
        assert updated.initial_balance == Decimal("1050")
        assert run_async(service.check_asset_balance(u1, asset.id)).is_consistent

    def test_delete_unlinks_transactions(self, service, family):
        """Transactions survive an asset delete, unlinked."""
        u1 = family["u1"]
        asset = run_async(service.create_asset(u1, {"name": "Bank", "balance": "1000"}))
        created = run_async(service.create_transaction(u1, {
            "bill_id": family["bill"], "category_id": family["groceries"],
            "type": "expense", "amount": "100", "asset_id": asset.id,
        }))
        run_async(service.delete_asset(u1, asset.id))
        txs = run_async(service.list_transactions(u1))
        assert txs[0].id == created.transaction.id
        assert txs[0].asset_id is None
        run_async(service.delete_transaction(u1, created.transaction.id))

    def test_check_balance_counts_linked(self, service, family):
        """The report lists the linked total and count."""
        u1 = family["u1"]
        asset = run_async(service.create_asset(u1, {"name": "Bank", "balance": "100"}))
        for tx_type, category, amount in [
            ("income", family["salary"], "50"),
            ("expense", family["groceries"], "20"),
        ]:
            run_async(service.create_transaction(u1, {
                "bill_id": family["bill"], "category_id": category,
                "type": tx_type, "amount": amount, "asset_id": asset.id,
            }))
        check = run_async(service.check_asset_balance(u1, asset.id))
        assert check.linked_total == Decimal("30")
        assert check.linked_transaction_count == 2
        assert check.expected_balance == Decimal("130")
        assert check.stored_balance == Decimal("130")

    def test_editor_cannot_link_owner_asset(self, service, family):
        """Editors of a bill still cannot newly link the owner's asset."""
        asset = run_async(service.create_asset(family["u1"], {"name": "Bank"}))
        run_async(service.create_share(family["u1"], family["bill"], "u2@example.com", "edit"))
        with pytest.raises(ForbiddenError):
            run_async(service.create_transaction(family["u2"], {
                "bill_id": family["bill"], "category_id": family["groceries"],
                "type": "expense", "amount": "5", "asset_id": asset.id,
            }))
