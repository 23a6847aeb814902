"""
Recurring Template Models

A recurring template is a recurrence rule plus the blueprint of the
transaction it stamps out. The template itself never carries a date for
the transaction; every instance gets its date from the rule.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, NamedTuple, Optional

from pydantic import Field, field_validator, model_validator

from expense_ledger.models.entry import (
    EntryCategory,
    EntryType,
    LedgerModel,
    check_category,
    new_document_id,
    utc_now,
)


class Frequency(str, Enum):
    """Unit the recurrence interval is counted in."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurrenceLimit(NamedTuple):
    max_days: int
    default_days: int


# How far ahead a series may be materialized, per frequency.
RECURRENCE_LIMITS: dict[Frequency, RecurrenceLimit] = {
    Frequency.DAILY: RecurrenceLimit(max_days=365, default_days=90),
    Frequency.WEEKLY: RecurrenceLimit(max_days=728, default_days=182),
    Frequency.MONTHLY: RecurrenceLimit(max_days=730, default_days=365),
    Frequency.YEARLY: RecurrenceLimit(max_days=1826, default_days=730),
}


def default_end_date(frequency: Frequency, start_date: dt.date) -> dt.date:
    """End date offered for a new series of this frequency."""
    return start_date + dt.timedelta(days=RECURRENCE_LIMITS[frequency].default_days)


def max_end_date(frequency: Frequency, start_date: dt.date) -> dt.date:
    """Latest end date accepted for a series of this frequency."""
    return start_date + dt.timedelta(days=RECURRENCE_LIMITS[frequency].max_days)


Weekday = Annotated[int, Field(ge=0, le=6)]


class RecurrenceRule(LedgerModel):
    """
    When a series repeats.

    Weekdays use 0 = Sunday ... 6 = Saturday.
    """

    frequency: Frequency
    interval: int = Field(
        default=1,
        ge=1,
        description="Repeat every N frequency units"
    )
    end_date: dt.date = Field(
        ...,
        description="Last date an occurrence may fall on (inclusive)"
    )
    days_of_week: Optional[list[Weekday]] = Field(
        default=None,
        description="Weekday filter for daily and weekly rules"
    )
    day_of_month: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Target day for monthly rules, clamped to month length"
    )

    @field_validator("days_of_week")
    @classmethod
    def normalize_days_of_week(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        if v is None:
            return v
        return sorted(set(v))


class EntryTemplate(LedgerModel):
    """The transaction blueprint copied onto every instance."""

    type: EntryType
    original_amount: Decimal = Field(..., gt=0, decimal_places=2)
    currency: str = Field(..., pattern="^[A-Z]{3}$")
    category: EntryCategory
    description: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def validate_category(self) -> "EntryTemplate":
        check_category(self.type, self.category)
        return self


class RecurringTemplate(LedgerModel):
    """A stored recurring series."""

    id: str = Field(
        default_factory=new_document_id,
        description="Template identifier, immutable once allocated"
    )
    owner_id: str = Field(..., min_length=1)
    entry_template: EntryTemplate
    recurrence: RecurrenceRule
    start_date: dt.date = Field(
        ...,
        description="First candidate occurrence date"
    )

    instances_created: int = Field(
        default=0,
        ge=0,
        description="Entries written by the last (re)materialization"
    )

    created_by: str = Field(..., min_length=1)
    created_at: dt.datetime = Field(default_factory=utc_now)
    updated_at: Optional[dt.datetime] = None


class RecurringTemplateUpdate(LedgerModel):
    """A user's edit to a series, applied going forward."""

    entry_template: Optional[EntryTemplate] = None
    recurrence: Optional[RecurrenceRule] = None
    start_date: Optional[dt.date] = None

    def apply_to(self, template: RecurringTemplate) -> RecurringTemplate:
        changes: dict[str, Any] = {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }
        return template.model_copy(update=changes)


class TemplateSummary(LedgerModel):
    """A template with its ledger-derived aggregates."""

    template: RecurringTemplate
    next_occurrence: Optional[dt.date] = None
    remaining_count: int = Field(default=0, ge=0)
