"""
Ledger Error Taxonomy

Every failure a caller can observe is a LedgerError subclass carrying an
ErrorKind. The request layer maps the kind to a transport status; the core
never returns a partial result.

DESIGN DECISION: Errors are raised, never returned as sentinel values.
A write that raises has changed nothing.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ValidationError


class ErrorKind(str, Enum):
    """Caller-facing failure classes."""
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_INPUT = "invalid_input"


class LedgerError(Exception):
    """Base exception for all ledger operations."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT
    code: str = "ledger_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"message": self.message, "kind": self.kind.value, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class UnauthenticatedError(LedgerError):
    """No (or an unknown) user identifier was supplied."""
    kind = ErrorKind.UNAUTHENTICATED
    code = "unauthenticated"


class ForbiddenError(LedgerError):
    """Caller is authenticated but lacks permission."""
    kind = ErrorKind.FORBIDDEN
    code = "forbidden"


class NotOwnerError(ForbiddenError):
    """Operation is reserved to the owner of the bill or share."""
    code = "not_owner"


class NotFoundError(LedgerError):
    """Referenced entity does not exist."""
    kind = ErrorKind.NOT_FOUND
    code = "not_found"


class UnknownUserError(NotFoundError):
    """No user is registered with the requested email."""
    code = "unknown_user"


class ConflictError(LedgerError):
    """The write would violate a uniqueness rule."""
    kind = ErrorKind.CONFLICT
    code = "conflict"


class DuplicateShareError(ConflictError):
    """The bill is already shared with this user."""
    code = "duplicate_share"


class EmailTakenError(ConflictError):
    """A user with this email already exists."""
    code = "email_taken"


class CategoryInUseError(ConflictError):
    """The category is still referenced by transactions."""
    code = "category_in_use"


class InvalidInputError(LedgerError):
    """Malformed amount, date, type or other field."""
    kind = ErrorKind.INVALID_INPUT
    code = "invalid_input"


class InvalidAmountError(InvalidInputError):
    """Amount is missing, non-numeric or not strictly positive."""
    code = "invalid_amount"


class TypeCategoryMismatchError(InvalidInputError):
    """Category type does not match the transaction type."""
    code = "type_category_mismatch"


class SelfShareError(InvalidInputError):
    """Owner tried to share a bill with themselves."""
    code = "self_share"


def parse_input(model_cls: type[BaseModel], data) -> BaseModel:
    """
    Validate raw operation input into its model.

    Pydantic failures become InvalidInputError, or InvalidAmountError when
    only the amount field is at fault.
    """
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        issues = [
            {
                "field": ".".join(str(p) for p in err["loc"]),
                "message": err["msg"],
            }
            for err in e.errors()
        ]
        fields = {issue["field"] for issue in issues}
        if fields == {"amount"}:
            raise InvalidAmountError(
                "Amount must be a positive number with at most 2 decimal places",
                details={"issues": issues},
            ) from e
        raise InvalidInputError(
            f"Invalid {model_cls.__name__} input",
            details={"issues": issues},
        ) from e
