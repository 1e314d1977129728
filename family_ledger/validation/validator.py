"""
Transaction Validation

Checks run against the working snapshot before any transaction write:

STAGE 1 - SHAPE (done by pydantic when the input is parsed):
- amount is a positive decimal with at most 2 places
- type is income or expense
- date parses

STAGE 2 - REFERENCES (done here, needs the snapshot):
- category exists and belongs to the transaction's bill
- category type matches the transaction type
- a newly linked asset exists and belongs to the caller

IMPORTANT: Validation NEVER silently fixes issues. The first failing
check raises and the write is abandoned.
"""

from decimal import Decimal
from typing import Optional

from family_ledger.errors import (
    ForbiddenError,
    InvalidAmountError,
    InvalidInputError,
    NotFoundError,
    TypeCategoryMismatchError,
)
from family_ledger.models.ledger import (
    Asset,
    Category,
    Snapshot,
    Transaction,
    TransactionType,
)


class TransactionValidator:
    """
    Validates a transaction (new or merged-after-update) against the snapshot.

    Stateless; one instance can be shared by every service call.
    """

    def validate_amount(self, amount) -> Decimal:
        """Amount must be a finite, strictly positive decimal."""
        if isinstance(amount, bool) or amount is None:
            raise InvalidAmountError("Amount is required")
        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except ArithmeticError as e:
            raise InvalidAmountError(f"Amount is not a number: {amount!r}") from e
        if not value.is_finite() or value <= 0:
            raise InvalidAmountError(
                f"Amount must be greater than zero: {amount}",
                details={"amount": str(amount)},
            )
        return value

    def validate_category(
        self,
        snapshot: Snapshot,
        bill_id: str,
        category_id: str,
        tx_type: TransactionType,
    ) -> Category:
        category = snapshot.find_category(category_id)
        if category is None:
            raise NotFoundError(
                "Category not found",
                details={"category_id": category_id},
            )
        if category.bill_id != bill_id:
            raise InvalidInputError(
                "Category belongs to a different bill",
                details={"category_id": category_id, "bill_id": bill_id},
            )
        if category.type != tx_type:
            raise TypeCategoryMismatchError(
                f"A {tx_type.value} transaction cannot use "
                f"{category.type.value} category '{category.name}'",
                details={
                    "category_id": category_id,
                    "category_type": category.type.value,
                    "transaction_type": tx_type.value,
                },
            )
        return category

    def validate_asset_link(
        self,
        snapshot: Snapshot,
        caller_id: str,
        asset_id: str,
    ) -> Asset:
        """A caller may only link transactions to assets they own."""
        asset = snapshot.find_asset(asset_id)
        if asset is None:
            raise NotFoundError("Asset not found", details={"asset_id": asset_id})
        if asset.user_id != caller_id:
            raise ForbiddenError(
                "You can only link transactions to your own assets",
                details={"asset_id": asset_id},
            )
        return asset

    def validate(
        self,
        snapshot: Snapshot,
        caller_id: str,
        tx: Transaction,
        previous_asset_id: Optional[str] = None,
    ) -> None:
        """
        Run every reference check for a transaction about to be written.

        Args:
            tx: the transaction as it will be stored
            previous_asset_id: asset the transaction was linked to before
                this write (updates only). Keeping an existing link does not
                require the caller to own that asset.
        """
        self.validate_amount(tx.amount)
        self.validate_category(snapshot, tx.bill_id, tx.category_id, tx.type)
        if tx.asset_id is not None and tx.asset_id != previous_asset_id:
            self.validate_asset_link(snapshot, caller_id, tx.asset_id)
