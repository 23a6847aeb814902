"""
Data Models Package

This package contains all Pydantic models used in the Expense Ledger system.
All data flowing through the system must conform to these schemas.
"""

from expense_ledger.models.entry import (
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    Entry,
    EntryCategory,
    EntryType,
    EntryUpdate,
    InstanceOwnership,
)
from expense_ledger.models.recurring import (
    RECURRENCE_LIMITS,
    EntryTemplate,
    Frequency,
    RecurrenceLimit,
    RecurrenceRule,
    RecurringTemplate,
    RecurringTemplateUpdate,
    TemplateSummary,
    default_end_date,
    max_end_date,
)
from expense_ledger.models.validation import (
    InvalidRuleError,
    ValidationIssue,
    ValidationResult,
)
from expense_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entry models
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "Entry",
    "EntryCategory",
    "EntryType",
    "EntryUpdate",
    "InstanceOwnership",
    # Recurring models
    "RECURRENCE_LIMITS",
    "EntryTemplate",
    "Frequency",
    "RecurrenceLimit",
    "RecurrenceRule",
    "RecurringTemplate",
    "RecurringTemplateUpdate",
    "TemplateSummary",
    "default_end_date",
    "max_end_date",
    # Validation models
    "InvalidRuleError",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
