"""
Audit Models for Expense Ledger

Every user-triggered change to a recurring series is logged for audit
purposes. One user action can create or delete hundreds of entries, so the
trail records what was asked for and how many records were touched.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from expense_ledger.models.entry import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Series lifecycle
    TEMPLATE_CREATED = "template_created"
    TEMPLATE_REGENERATED = "template_regenerated"
    SERIES_STOPPED = "series_stopped"
    SERIES_DELETED = "series_deleted"

    # Individual instances
    INSTANCE_EDITED = "instance_edited"
    INSTANCE_DELETED = "instance_deleted"

    # Validation
    RULE_REJECTED = "rule_rejected"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


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
        default_factory=utc_now,
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

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'template', 'entry')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one command)"
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

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.template_created(template_id, 24, correlation_id)
        event = AuditEventBuilder.series_terminated(template_id, "stop", 3, correlation_id)
    """

    @staticmethod
    def template_created(
        template_id: str,
        instances_created: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_CREATED,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Recurring series created with {instances_created} entries",
            details={
                "instances_created": instances_created,
            },
            is_user_action=True,
        )

    @staticmethod
    def template_regenerated(
        template_id: str,
        instances_updated: int,
        from_date: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_REGENERATED,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Recurring series edited from {from_date}",
            details={
                "instances_updated": instances_updated,
                "from_date": from_date,
            },
            is_user_action=True,
        )

    @staticmethod
    def series_terminated(
        template_id: str,
        mode: str,
        instances_deleted: int,
        correlation_id: UUID
    ) -> AuditEvent:
        event_type = (
            AuditEventType.SERIES_STOPPED
            if mode == "stop"
            else AuditEventType.SERIES_DELETED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Recurring series {'stopped' if mode == 'stop' else 'deleted'}, "
                        f"{instances_deleted} entries removed",
            details={
                "mode": mode,
                "instances_deleted": instances_deleted,
            },
            is_user_action=True,
        )

    @staticmethod
    def instance_edited(
        entry_id: str,
        fields: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTANCE_EDITED,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description="Entry edited by user",
            details={
                "fields": fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def instance_deleted(
        entry_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTANCE_DELETED,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description="Entry deleted by user",
            is_user_action=True,
        )

    @staticmethod
    def rule_rejected(
        template_id: str,
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Recurrence rule rejected with {len(issues)} issues",
            details={
                "issues": issues,
            },
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        entity_id: Optional[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            entity_id=entity_id,
            description=f"Storage failure during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
            correlation_id=correlation_id,
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
