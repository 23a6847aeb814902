"""
Audit Logger

DESIGN DECISION: Every user command against a recurring series is logged.
A single command can write or delete hundreds of entries, so the trail
records the command, the series it touched and how many records changed.

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the command if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_ledger.models.audit import AuditEvent, AuditEventBuilder
from expense_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
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
    2. Audit storage (for persistence and user visibility)
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
        self._logger = structlog.get_logger()

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

    async def log_template_created(
        self,
        template_id: str,
        instances_created: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.template_created(
            template_id=template_id,
            instances_created=instances_created,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_template_regenerated(
        self,
        template_id: str,
        instances_updated: int,
        from_date: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.template_regenerated(
            template_id=template_id,
            instances_updated=instances_updated,
            from_date=from_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_series_terminated(
        self,
        template_id: str,
        mode: str,
        instances_deleted: int,
        correlation_id: UUID,
    ) -> None:
        """Log a stopped or deleted series."""
        event = AuditEventBuilder.series_terminated(
            template_id=template_id,
            mode=mode,
            instances_deleted=instances_deleted,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_instance_edited(
        self,
        entry_id: str,
        fields: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.instance_edited(
            entry_id=entry_id,
            fields=fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_instance_deleted(
        self,
        entry_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.instance_deleted(
            entry_id=entry_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rule_rejected(
        self,
        template_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log a template refused by validation."""
        event = AuditEventBuilder.rule_rejected(
            template_id=template_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        entity_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            entity_id=entity_id,
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

    Use this at the start of a new user command (e.g., creating a series).
    Pass it through all subsequent operations.
    """
    return uuid4()
