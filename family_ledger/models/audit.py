"""
Audit Models for Family Ledger

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of who changed which bill, transaction or asset
2. Debugging information when a balance looks wrong
3. A record of rejected writes (permission and validation failures)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
The audit log is NOT a ledger: balances are never recomputed from it.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from family_ledger.models.ledger import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Users
    USER_REGISTERED = "user_registered"

    # Bills
    BILL_CREATED = "bill_created"
    BILL_UPDATED = "bill_updated"
    BILL_DELETED = "bill_deleted"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Assets
    ASSET_CREATED = "asset_created"
    ASSET_UPDATED = "asset_updated"
    ASSET_DELETED = "asset_deleted"
    ASSET_BALANCE_ADJUSTED = "asset_balance_adjusted"

    # Categories
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"

    # Sharing
    SHARE_CREATED = "share_created"
    SHARE_UPDATED = "share_updated"
    SHARE_DELETED = "share_deleted"

    # Rejections
    PERMISSION_DENIED = "permission_denied"
    WRITE_REJECTED = "write_rejected"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who did it
    user_id: Optional[str] = Field(
        default=None,
        description="Caller that triggered the event"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'bill', 'transaction', 'asset')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate the events of one service call"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_code,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_changed(event_type, user_id, tx_id, ...)
        event = AuditEventBuilder.permission_denied(user_id, "create_share", ...)
    """

    @staticmethod
    def user_registered(
        user_id: str,
        email: str,
        default_bill_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"User registered: {email}",
            details={
                "email": email,
                "default_bill_id": default_bill_id,
            },
        )

    @staticmethod
    def entity_changed(
        event_type: AuditEventType,
        user_id: str,
        entity_type: str,
        entity_id: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        """Generic create/update/delete event for bills, categories, shares and assets."""
        action = event_type.value.rsplit("_", 1)[-1]
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {action}: {entity_id}",
            details=details or {},
        )

    @staticmethod
    def transaction_changed(
        event_type: AuditEventType,
        user_id: str,
        transaction_id: str,
        bill_id: str,
        asset_deltas: dict[str, Decimal],
        correlation_id: UUID,
    ) -> AuditEvent:
        """
        Transaction create/update/delete, with the balance delta applied
        to each touched asset.
        """
        action = event_type.value.rsplit("_", 1)[-1]
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=(
                f"Transaction {action} in bill {bill_id}"
                f" ({len(asset_deltas)} asset(s) reconciled)"
            ),
            details={
                "bill_id": bill_id,
                "asset_deltas": {k: str(v) for k, v in asset_deltas.items()},
            },
        )

    @staticmethod
    def asset_balance_adjusted(
        user_id: str,
        asset_id: str,
        old_balance: Decimal,
        new_balance: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSET_BALANCE_ADJUSTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="asset",
            entity_id=asset_id,
            correlation_id=correlation_id,
            description=f"Asset balance set manually: {old_balance} -> {new_balance}",
            details={
                "old_balance": str(old_balance),
                "new_balance": str(new_balance),
            },
        )

    @staticmethod
    def permission_denied(
        user_id: Optional[str],
        operation: str,
        entity_type: Optional[str],
        entity_id: Optional[str],
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERMISSION_DENIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Permission denied for {operation}",
            error_code="forbidden",
            error_message=reason,
            details={"operation": operation},
        )

    @staticmethod
    def write_rejected(
        user_id: Optional[str],
        operation: str,
        error_code: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{operation} rejected: {error_code}",
            error_code=error_code,
            error_message=reason,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
