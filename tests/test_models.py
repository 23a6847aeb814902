"""
Tests for Expense Ledger models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with the in-memory store)
3. No real API calls in tests (use mocks)
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from expense_ledger.models import (
    RECURRENCE_LIMITS,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    Entry,
    EntryCategory,
    EntryTemplate,
    EntryType,
    EntryUpdate,
    Frequency,
    InstanceOwnership,
    RecurrenceRule,
    RecurringTemplateUpdate,
    ValidationIssue,
    ValidationResult,
    default_end_date,
    max_end_date,
)

from tests.conftest import make_template


def make_entry(**overrides) -> Entry:
    fields = dict(
        type=EntryType.EXPENSE,
        owner_id="user-1",
        original_amount=Decimal("12.50"),
        currency="USD",
        category=EntryCategory.FOOD_AND_DINING,
        date=date(2026, 3, 1),
    )
    fields.update(overrides)
    return Entry(**fields)


class TestEntryModels:
    """Tests for ledger entry models."""

    def test_entry_document_uses_camel_case(self):
        """Test that stored documents use camelCase keys."""
        document = make_entry().to_document()
        assert document["ownerId"] == "user-1"
        assert document["originalAmount"] == "12.50"
        assert document["date"] == "2026-03-01"
        assert document["isModified"] is False
        assert "owner_id" not in document

    def test_entry_reads_stored_document(self):
        """Test that an entry loads back from its document."""
        entry = make_entry(description="  Lunch  ")
        loaded = Entry.model_validate(entry.to_document())
        assert loaded == entry
        assert loaded.description == "Lunch"

    def test_entry_rejects_lowercase_currency(self):
        with pytest.raises(ValidationError):
            make_entry(currency="usd")

    def test_entry_rejects_non_positive_amount(self):
        with pytest.raises(ValidationError):
            make_entry(original_amount=Decimal("0"))

    def test_entry_rejects_category_of_other_type(self):
        """Test that Salary is not accepted on an expense."""
        with pytest.raises(ValidationError):
            make_entry(category=EntryCategory.SALARY)

    def test_shared_category_valid_for_both_types(self):
        make_entry(type=EntryType.INCOME, category=EntryCategory.FREELANCE)
        make_entry(type=EntryType.EXPENSE, category=EntryCategory.FREELANCE)

    def test_recurring_instance_requires_template(self):
        with pytest.raises(ValidationError):
            make_entry(is_recurring_instance=True)

    def test_is_modified_flag_maps_to_ownership(self):
        """Test that the stored boolean becomes an ownership value."""
        entry = Entry.model_validate({**make_entry().to_document(), "isModified": True})
        assert entry.ownership == InstanceOwnership.USER_OWNED
        assert entry.is_modified is True

    def test_claimed_by_user(self):
        entry = make_entry(recurring_template_id="tpl1", is_recurring_instance=True)
        claimed = entry.claimed_by_user()
        assert claimed.is_modified is True
        assert entry.is_modified is False
        assert claimed.to_document()["isModified"] is True

    def test_entry_update_only_reports_set_fields(self):
        """Test that unset fields are not part of an edit."""
        update = EntryUpdate(original_amount=Decimal("20.00"))
        assert update.changed_fields() == {"originalAmount": "20.00"}


class TestRecurringModels:
    """Tests for recurring template models."""

    def test_days_of_week_sorted_and_deduplicated(self):
        rule = RecurrenceRule(
            frequency=Frequency.WEEKLY,
            end_date=date(2026, 6, 1),
            days_of_week=[5, 1, 3, 1],
        )
        assert rule.days_of_week == [1, 3, 5]

    def test_weekday_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(frequency=Frequency.WEEKLY, end_date=date(2026, 6, 1), days_of_week=[7])

    def test_interval_below_one_rejected(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(frequency=Frequency.DAILY, end_date=date(2026, 6, 1), interval=0)

    def test_day_of_month_bounds(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(frequency=Frequency.MONTHLY, end_date=date(2026, 6, 1), day_of_month=32)

    def test_entry_template_category_checked(self):
        with pytest.raises(ValidationError):
            EntryTemplate(
                type=EntryType.INCOME,
                original_amount=Decimal("100.00"),
                currency="EUR",
                category=EntryCategory.UTILITIES,
            )

    def test_template_document_round_trip(self):
        template = make_template()
        document = template.to_document()
        assert document["entryTemplate"]["originalAmount"] == "50.00"
        assert document["recurrence"]["endDate"] == "2026-06-30"
        assert document["startDate"] == "2026-01-15"

    def test_limits_per_frequency(self):
        assert RECURRENCE_LIMITS[Frequency.DAILY].max_days == 365
        assert RECURRENCE_LIMITS[Frequency.YEARLY].default_days == 730
        start = date(2026, 1, 1)
        assert default_end_date(Frequency.MONTHLY, start) == date(2027, 1, 1)
        assert max_end_date(Frequency.WEEKLY, start) == date(2027, 12, 30)

    def test_template_update_applies_only_given_fields(self):
        template = make_template()
        update = RecurringTemplateUpdate(start_date=date(2026, 2, 1))
        updated = update.apply_to(template)
        assert updated.start_date == date(2026, 2, 1)
        assert updated.recurrence == template.recurrence
        assert updated.id == template.id


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TEMPLATE_CREATED,
            description="Series created",
        )
        assert event.event_type == AuditEventType.TEMPLATE_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.SERIES_DELETED,
            description="Series deleted",
            details={"instances_deleted": 4},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "series_deleted"
        assert log_dict["details"]["instances_deleted"] == 4

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.INSTANCE_EDITED,
            description="Entry edited by user",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "instance_edited"  # event_type
        assert row[10] == "True"  # is_user_action

    def test_builder_template_created(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.template_created(
            template_id="tpl1",
            instances_created=6,
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.TEMPLATE_CREATED
        assert event.entity_id == "tpl1"
        assert event.details["instances_created"] == 6
        assert event.is_user_action is True

    def test_builder_series_terminated_picks_event_type(self):
        stopped = AuditEventBuilder.series_terminated("tpl1", "stop", 3, uuid4())
        deleted = AuditEventBuilder.series_terminated("tpl1", "delete_all", 5, uuid4())
        assert stopped.event_type == AuditEventType.SERIES_STOPPED
        assert deleted.event_type == AuditEventType.SERIES_DELETED

    def test_builder_rule_rejected_is_warning(self):
        event = AuditEventBuilder.rule_rejected(
            template_id="tpl1",
            issues=[{"field": "recurrence.end_date", "type": "before_start", "message": "x"}],
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.is_user_action is False


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            template_id="tpl1",
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="recurrence.end_date",
                    issue_type="before_start",
                    message="End date before start date",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            template_id="tpl1",
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="start_date",
                    issue_type="before_service_start",
                    message="Start before service start",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert len(result.warnings) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
