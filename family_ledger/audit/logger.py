"""
Audit Logger

DESIGN DECISION: Every ledger write, and every rejected write, is logged.
This provides:
1. Traceability of who changed what
2. Debugging capability when a balance looks off
3. A visible record of permission denials

The audit logger:
- Is async so it fits the service flow
- Gracefully handles failures (a broken audit sink never fails a write
  that has already been committed)
- Supports correlation IDs to trace the events of one service call
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from family_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from family_ledger.services.storage import AuditStorageInterface


def configure_logging(log_level: str = "INFO") -> None:
    """Configure stdlib logging and structlog (JSON lines on stderr)."""
    logging.basicConfig(format="%(message)s", level=log_level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An AuditStorageInterface (for persistence), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_user_registered(
        self,
        user_id: str,
        email: str,
        default_bill_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.user_registered(
            user_id=user_id,
            email=email,
            default_bill_id=default_bill_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_changed(
        self,
        event_type: AuditEventType,
        user_id: str,
        entity_type: str,
        entity_id: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        """Log a bill/category/share/asset create, update or delete."""
        event = AuditEventBuilder.entity_changed(
            event_type=event_type,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            details=details,
        )
        await self.log(event)

    async def log_transaction_changed(
        self,
        event_type: AuditEventType,
        user_id: str,
        transaction_id: str,
        bill_id: str,
        asset_deltas: dict[str, Decimal],
        correlation_id: UUID,
    ) -> None:
        """Log a transaction write together with its asset reconciliation."""
        event = AuditEventBuilder.transaction_changed(
            event_type=event_type,
            user_id=user_id,
            transaction_id=transaction_id,
            bill_id=bill_id,
            asset_deltas=asset_deltas,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_asset_balance_adjusted(
        self,
        user_id: str,
        asset_id: str,
        old_balance: Decimal,
        new_balance: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.asset_balance_adjusted(
            user_id=user_id,
            asset_id=asset_id,
            old_balance=old_balance,
            new_balance=new_balance,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_permission_denied(
        self,
        user_id: Optional[str],
        operation: str,
        reason: str,
        correlation_id: UUID,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.permission_denied(
            user_id=user_id,
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_write_rejected(
        self,
        user_id: Optional[str],
        operation: str,
        error_code: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.write_rejected(
            user_id=user_id,
            operation=operation,
            error_code=error_code,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a service call and pass it through every
    audit event the call produces.
    """
    return uuid4()
