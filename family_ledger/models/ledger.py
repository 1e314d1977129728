"""
Core Data Models for Family Ledger

These models define the strict schemas for every entity in the store
snapshot and for the inputs and results of the ledger operations.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for every storage backend
4. Keep money exact (Decimal, never float)

DESIGN DECISION: Identifiers are opaque strings. The request layer hands us
whatever the caller sent in the user header and we only compare it.
"""

from datetime import date as Date
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


def new_id() -> str:
    """Generate an opaque entity identifier."""
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction. Categories carry the same type."""
    INCOME = "income"
    EXPENSE = "expense"


class Permission(str, Enum):
    """
    Effective permission of a user on a bill.

    OWNER and EDIT may write; VIEW may only read; NONE sees nothing.
    """
    OWNER = "owner"
    EDIT = "edit"
    VIEW = "view"
    NONE = "none"


class SharePermission(str, Enum):
    """Permissions an owner can grant on a bill share."""
    VIEW = "view"
    EDIT = "edit"


PositiveAmount = Annotated[
    Decimal,
    Field(gt=0, decimal_places=2, description="Strictly positive amount"),
]


def signed_amount(tx_type: TransactionType, amount: Decimal) -> Decimal:
    """Income adds to an asset, expense subtracts from it."""
    return amount if tx_type == TransactionType.INCOME else -amount


# =============================================================================
# STORED ENTITIES
# =============================================================================

class User(BaseModel):
    """
    A registered user.

    The credential is stored hashed; it is never returned by the service.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    email: str = Field(..., min_length=3, max_length=254)
    name: str = Field(..., min_length=1, max_length=100)
    password_hash: str = Field(default="", repr=False)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are compared case-insensitively."""
        if "@" not in v:
            raise ValueError(f"Invalid email address: {v}")
        return v.lower()

    def profile(self) -> "UserProfile":
        return UserProfile(id=self.id, email=self.email, name=self.name)


class UserProfile(BaseModel):
    """Public projection of a user (no credential)."""

    id: str
    email: str
    name: str


class Bill(BaseModel):
    """
    A named ledger owned by exactly one user.

    Deleting a bill cascades to its transactions, categories and shares.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    user_id: str = Field(..., description="Owning user")
    created_at: datetime = Field(default_factory=utcnow)


class BillView(Bill):
    """A bill as seen by a particular user, tagged with their permission."""

    permission: Permission


class BillShare(BaseModel):
    """
    A grant of view or edit permission on a bill to another user.

    shared_with_user_email is a display cache only. Authorization always
    goes through shared_with_user_id.
    """

    id: str = Field(default_factory=new_id)
    bill_id: str
    owner_user_id: str
    shared_with_user_id: str
    shared_with_user_email: str = ""
    permission: SharePermission


class Category(BaseModel):
    """A transaction category scoped to one bill."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    bill_id: str
    user_id: str = Field(..., description="User who created the category")
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: str = Field(default="tag", max_length=50)
    color: str = Field(default="#6B7280", max_length=20)
    is_seed: bool = False
    parent_id: Optional[str] = None


class Transaction(BaseModel):
    """
    A single income or expense entry in a bill.

    asset_id is optional. When set, the linked asset's balance carries
    this transaction's signed amount.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    bill_id: str
    category_id: str
    user_id: str = Field(..., description="User who recorded the transaction")
    type: TransactionType
    amount: PositiveAmount
    date: Date = Field(default_factory=Date.today)
    notes: str = Field(default="", max_length=1000)
    asset_id: Optional[str] = None

    @property
    def signed_amount(self) -> Decimal:
        return signed_amount(self.type, self.amount)


class Asset(BaseModel):
    """
    An account owned by one user.

    INVARIANT:
        balance == initial_balance
                   + sum(amount of linked income transactions)
                   - sum(amount of linked expense transactions)

    The balance is maintained on every write, never recomputed on read.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    type: str = Field(default="", max_length=50, description="e.g. Bank Account, Cash")
    balance: Decimal = Field(default=Decimal("0"))
    initial_balance: Decimal = Field(default=Decimal("0"))


class Snapshot(BaseModel):
    """
    The full content of the persisted store.

    Every collection is a plain list, matching the on-disk db.json layout.
    """

    users: list[User] = Field(default_factory=list)
    bills: list[Bill] = Field(default_factory=list)
    bill_shares: list[BillShare] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    assets: list[Asset] = Field(default_factory=list)

    def find_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    def find_user_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        return next((u for u in self.users if u.email == email), None)

    def find_bill(self, bill_id: str) -> Optional[Bill]:
        return next((b for b in self.bills if b.id == bill_id), None)

    def find_share(self, share_id: str) -> Optional[BillShare]:
        return next((s for s in self.bill_shares if s.id == share_id), None)

    def find_share_for(self, bill_id: str, user_id: str) -> Optional[BillShare]:
        return next(
            (
                s for s in self.bill_shares
                if s.bill_id == bill_id and s.shared_with_user_id == user_id
            ),
            None,
        )

    def find_category(self, category_id: str) -> Optional[Category]:
        return next((c for c in self.categories if c.id == category_id), None)

    def find_transaction(self, tx_id: str) -> Optional[Transaction]:
        return next((t for t in self.transactions if t.id == tx_id), None)

    def find_asset(self, asset_id: str) -> Optional[Asset]:
        return next((a for a in self.assets if a.id == asset_id), None)


# =============================================================================
# OPERATION INPUTS
# =============================================================================

class BillCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)


class BillUpdate(BaseModel):
    """Partial bill update. Ownership and identity cannot change."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class CategoryCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    bill_id: str
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: str = Field(default="tag", max_length=50)
    color: str = Field(default="#6B7280", max_length=20)
    parent_id: Optional[str] = None


class CategoryUpdate(BaseModel):
    """Partial category update. bill_id is ignored if sent."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)
    parent_id: Optional[str] = None


class TransactionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    bill_id: str
    category_id: str
    type: TransactionType
    amount: PositiveAmount
    date: Date = Field(default_factory=Date.today)
    notes: str = Field(default="", max_length=1000)
    asset_id: Optional[str] = None


class TransactionUpdate(BaseModel):
    """
    Partial transaction update.

    Only fields that were explicitly sent are merged; sending
    asset_id=None unlinks the transaction from its asset.
    bill_id, user_id and id are ignored if sent.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    category_id: Optional[str] = None
    type: Optional[TransactionType] = None
    amount: Optional[PositiveAmount] = None
    date: Optional[Date] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    asset_id: Optional[str] = None


class AssetCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=100)
    type: str = Field(default="", max_length=50)
    balance: Decimal = Field(default=Decimal("0"), description="Opening balance")


class AssetUpdate(BaseModel):
    """
    Partial asset update.

    Setting balance directly is an opening-balance correction: the
    initial balance moves by the same delta.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[str] = Field(default=None, max_length=50)
    balance: Optional[Decimal] = None


class ShareCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    bill_id: str
    email: str = Field(..., min_length=3, max_length=254)
    permission: SharePermission


class ShareUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    permission: SharePermission


class UserRegistration(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=200, repr=False)
    name: Optional[str] = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError(f"Invalid email address: {v}")
        return v.lower()


# =============================================================================
# OPERATION RESULTS
# =============================================================================

class TransactionCreated(BaseModel):
    transaction: Transaction
    updated_asset: Optional[Asset] = None


class TransactionUpdated(BaseModel):
    """Updated transaction plus every distinct asset touched (0, 1 or 2)."""

    transaction: Transaction
    updated_assets: list[Asset] = Field(default_factory=list)


class TransactionDeleted(BaseModel):
    deleted_id: str
    updated_asset: Optional[Asset] = None


class BalanceCheck(BaseModel):
    """
    Read-only reconciliation report for one asset.

    expected_balance is recomputed from the linked transactions and
    compared against the stored balance.
    """

    asset_id: str
    stored_balance: Decimal
    initial_balance: Decimal
    linked_total: Decimal
    linked_transaction_count: int = Field(ge=0)

    @computed_field
    @property
    def expected_balance(self) -> Decimal:
        return self.initial_balance + self.linked_total

    @computed_field
    @property
    def is_consistent(self) -> bool:
        return self.stored_balance == self.expected_balance
