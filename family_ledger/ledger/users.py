"""
User Registration

Creates a user together with their default bill and the starter
categories, in one snapshot write.

Credentials are hashed with passlib. Verifying them (login, sessions) is
the job of whatever sits in front of the request layer; the core only
ever sees an opaque user id.
"""

from passlib.context import CryptContext

from family_ledger.errors import EmailTakenError
from family_ledger.models.ledger import (
    Bill,
    Category,
    Snapshot,
    TransactionType,
    User,
    UserRegistration,
)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# (name, type, icon, color)
SEED_CATEGORIES = [
    ("Salary", TransactionType.INCOME, "dollar-sign", "#10B981"),
    ("Groceries", TransactionType.EXPENSE, "shopping-cart", "#EF4444"),
    ("Rent", TransactionType.EXPENSE, "home", "#3B82F6"),
    ("Transport", TransactionType.EXPENSE, "truck", "#F97316"),
    ("Entertainment", TransactionType.EXPENSE, "film", "#8B5CF6"),
]


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Check a password against a stored hash; for an external login layer."""
    return pwd_context.verify(password, hashed)


def register_user(
    snapshot: Snapshot,
    data: UserRegistration,
    default_bill_name: str = "Personal",
    default_bill_description: str = "",
    seed_categories: bool = True,
) -> tuple[User, Bill]:
    """
    Add a user, their default bill and (optionally) the seed categories.

    Raises:
        EmailTakenError: a user with this email already exists
    """
    if snapshot.find_user_by_email(data.email) is not None:
        raise EmailTakenError(
            "User with this email already exists.",
            details={"email": data.email.lower()},
        )

    email = data.email
    user = User(
        email=email,
        name=data.name or email.split("@")[0],
        password_hash=hash_password(data.password),
    )
    bill = Bill(
        name=default_bill_name,
        description=default_bill_description,
        user_id=user.id,
    )
    snapshot.users.append(user)
    snapshot.bills.append(bill)

    if seed_categories:
        for name, tx_type, icon, color in SEED_CATEGORIES:
            snapshot.categories.append(Category(
                bill_id=bill.id,
                user_id=user.id,
                name=name,
                type=tx_type,
                icon=icon,
                color=color,
                is_seed=True,
            ))

    return user, bill
