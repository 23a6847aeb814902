"""
Ledger Entry Models

These models define the schema for every transaction stored in the ledger.
Recurring instances are a tagged subset of entries: they carry the id of
the template that produced them and the occurrence date they were
generated for.

DESIGN DECISION: Persisted documents use camelCase keys (ownerId,
originalAmount, isModified, ...). Models accept both the snake_case
attribute names and the camelCase aliases, and always dump with aliases
when talking to a store.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def utc_now() -> dt.datetime:
    """Current time as an aware UTC datetime."""
    return dt.datetime.now(dt.timezone.utc)


def utc_today() -> dt.date:
    """Current calendar date in UTC."""
    return utc_now().date()


def new_document_id() -> str:
    """Allocate an opaque document identifier."""
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntryType(str, Enum):
    """Direction of money flow."""
    EXPENSE = "expense"
    INCOME = "income"


class EntryCategory(str, Enum):
    """
    Supported entry categories.

    Some categories are valid for both expenses and income; use
    EXPENSE_CATEGORIES / INCOME_CATEGORIES to check an entry type.
    """
    FOOD_AND_DINING = "Food & Dining"
    FREELANCE = "Freelance"
    TRANSPORTATION = "Transportation"
    ACCOMMODATION = "Accommodation"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    HEALTH_AND_MEDICAL = "Health & Medical"
    UTILITIES = "Utilities"
    WORK_AND_BUSINESS = "Work & Business"
    INVESTMENT = "Investment"
    SALARY = "Salary"
    BUSINESS = "Business"
    GIFT = "Gift"
    OTHER = "Other"


EXPENSE_CATEGORIES = frozenset({
    EntryCategory.FOOD_AND_DINING,
    EntryCategory.FREELANCE,
    EntryCategory.TRANSPORTATION,
    EntryCategory.ACCOMMODATION,
    EntryCategory.ENTERTAINMENT,
    EntryCategory.SHOPPING,
    EntryCategory.HEALTH_AND_MEDICAL,
    EntryCategory.UTILITIES,
    EntryCategory.WORK_AND_BUSINESS,
    EntryCategory.INVESTMENT,
    EntryCategory.OTHER,
})

INCOME_CATEGORIES = frozenset({
    EntryCategory.SALARY,
    EntryCategory.FREELANCE,
    EntryCategory.BUSINESS,
    EntryCategory.INVESTMENT,
    EntryCategory.GIFT,
    EntryCategory.OTHER,
})


def check_category(entry_type: EntryType, category: EntryCategory) -> None:
    """Raise ValueError if the category does not belong to the entry type."""
    allowed = INCOME_CATEGORIES if entry_type == EntryType.INCOME else EXPENSE_CATEGORIES
    if category not in allowed:
        raise ValueError(
            f"Category '{category.value}' is not valid for {entry_type.value} entries"
        )


class InstanceOwnership(str, Enum):
    """
    Who controls a recurring instance.

    CRITICAL: The only transition is TEMPLATE_OWNED -> USER_OWNED, taken the
    moment a user edits the instance. A user-owned instance is never touched
    by regeneration or bulk deletion again.

    Stored on the wire as the boolean ``isModified``.
    """
    TEMPLATE_OWNED = "template_owned"
    USER_OWNED = "user_owned"


# =============================================================================
# ENTRY MODELS
# =============================================================================

class LedgerModel(BaseModel):
    """Base for models persisted as camelCase documents."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to the document shape stored in the ledger."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Entry(LedgerModel):
    """
    One concrete ledger transaction.

    For recurring instances ``id`` is derived from the template id and the
    occurrence date (see ``expense_ledger.recurrence.identity``).
    """

    id: str = Field(
        default_factory=new_document_id,
        description="Document key"
    )
    type: EntryType
    owner_id: str = Field(..., min_length=1)
    original_amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Amount in the entry's own currency"
    )
    currency: str = Field(
        ...,
        pattern="^[A-Z]{3}$",
        description="ISO 4217 currency code"
    )
    category: EntryCategory
    description: Optional[str] = Field(default=None, max_length=500)
    date: dt.date = Field(..., description="Calendar date of the entry (UTC)")

    # Recurring ancestry
    recurring_template_id: Optional[str] = None
    original_date: Optional[dt.date] = Field(
        default=None,
        description="Occurrence date this instance was generated for"
    )
    is_recurring_instance: bool = False
    ownership: InstanceOwnership = Field(
        default=InstanceOwnership.TEMPLATE_OWNED,
        alias="isModified",
    )

    created_by: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utc_now)
    updated_at: Optional[dt.datetime] = None
    updated_by: Optional[str] = None

    @field_validator("ownership", mode="before")
    @classmethod
    def ownership_from_flag(cls, v: Any) -> Any:
        """Accept the stored isModified boolean."""
        if isinstance(v, bool):
            return InstanceOwnership.USER_OWNED if v else InstanceOwnership.TEMPLATE_OWNED
        if v is None:
            return InstanceOwnership.TEMPLATE_OWNED
        return v

    @field_serializer("ownership")
    def ownership_to_flag(self, v: InstanceOwnership) -> bool:
        return v == InstanceOwnership.USER_OWNED

    @model_validator(mode="after")
    def validate_entry(self) -> "Entry":
        check_category(self.type, self.category)
        if self.is_recurring_instance and not self.recurring_template_id:
            raise ValueError("Recurring instance must reference its template")
        return self

    @property
    def is_modified(self) -> bool:
        return self.ownership == InstanceOwnership.USER_OWNED

    def claimed_by_user(self) -> "Entry":
        """Return a copy owned by the user. There is no way back."""
        return self.model_copy(update={"ownership": InstanceOwnership.USER_OWNED})


class EntryUpdate(LedgerModel):
    """Fields a user may change on an existing entry."""

    type: Optional[EntryType] = None
    original_amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    currency: Optional[str] = Field(default=None, pattern="^[A-Z]{3}$")
    category: Optional[EntryCategory] = None
    description: Optional[str] = Field(default=None, max_length=500)
    date: Optional[dt.date] = None

    def changed_fields(self) -> dict[str, Any]:
        """Document fields that were explicitly set on this update."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)
