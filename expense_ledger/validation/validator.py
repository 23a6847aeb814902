"""
Recurring Template Validation

DESIGN DECISION: A recurring template is validated before anything is
written. A malformed rule can expand into hundreds of entries, so the
validator refuses it with a descriptive issue list instead of letting the
evaluator quietly produce an empty or surprising series.

Structural checks (interval >= 1, weekday numbers 0-6, day of month 1-31)
live on the models themselves. This validator checks how the fields fit
together:
- end date not before start date
- weekday filter only for daily/weekly rules, and not empty on weekly rules
- day of month only for monthly rules
- end date within the frequency's materialization limit
- start date not before the ledger's service start date (warning)

IMPORTANT: Validation NEVER silently fixes issues.
"""

from datetime import date
from typing import Optional

from expense_ledger.config import get_settings
from expense_ledger.models.recurring import (
    Frequency,
    RecurringTemplate,
    max_end_date,
)
from expense_ledger.models.validation import (
    InvalidRuleError,
    ValidationIssue,
    ValidationResult,
)


class RecurringTemplateValidator:
    """Checks a recurring template before it is materialized."""

    def __init__(self, service_start_date: Optional[date] = None):
        self._service_start_date = (
            service_start_date or get_settings().recurrence.service_start_date
        )

    def validate(self, template: RecurringTemplate) -> ValidationResult:
        issues: list[ValidationIssue] = []
        rule = template.recurrence

        if rule.interval < 1:
            issues.append(ValidationIssue(
                field="recurrence.interval",
                issue_type="invalid_range",
                message=f"Interval must be at least 1, got {rule.interval}",
                severity="error",
            ))

        if rule.end_date < template.start_date:
            issues.append(ValidationIssue(
                field="recurrence.end_date",
                issue_type="before_start",
                message=(
                    f"End date {rule.end_date.isoformat()} is before "
                    f"start date {template.start_date.isoformat()}"
                ),
                severity="error",
                suggested_fix="Pick an end date on or after the start date",
            ))
        else:
            limit = max_end_date(rule.frequency, template.start_date)
            if rule.end_date > limit:
                issues.append(ValidationIssue(
                    field="recurrence.end_date",
                    issue_type="too_far_ahead",
                    message=(
                        f"{rule.frequency.value.capitalize()} series can run until "
                        f"{limit.isoformat()} at most"
                    ),
                    severity="error",
                    suggested_fix=f"Pick an end date on or before {limit.isoformat()}",
                ))

        if rule.days_of_week is not None:
            if rule.frequency not in (Frequency.DAILY, Frequency.WEEKLY):
                issues.append(ValidationIssue(
                    field="recurrence.days_of_week",
                    issue_type="not_applicable",
                    message=f"Weekdays cannot be set on a {rule.frequency.value} rule",
                    severity="error",
                ))
            elif rule.frequency == Frequency.WEEKLY and not rule.days_of_week:
                issues.append(ValidationIssue(
                    field="recurrence.days_of_week",
                    issue_type="empty",
                    message="Weekly rule needs at least one weekday",
                    severity="error",
                    suggested_fix="Select a weekday or leave the weekday filter unset",
                ))

        if rule.day_of_month is not None and rule.frequency != Frequency.MONTHLY:
            issues.append(ValidationIssue(
                field="recurrence.day_of_month",
                issue_type="not_applicable",
                message=f"Day of month cannot be set on a {rule.frequency.value} rule",
                severity="error",
            ))

        if template.start_date < self._service_start_date:
            issues.append(ValidationIssue(
                field="start_date",
                issue_type="before_service_start",
                message=(
                    f"Entries before {self._service_start_date.isoformat()} "
                    "are not created"
                ),
                severity="warning",
            ))

        has_errors = any(issue.severity == "error" for issue in issues)
        return ValidationResult(
            template_id=template.id,
            is_valid=not has_errors,
            issues=issues,
        )

    def ensure_valid(self, template: RecurringTemplate) -> ValidationResult:
        """
        Validate and raise if there are errors.

        Raises:
            InvalidRuleError: Carrying every issue found
        """
        result = self.validate(template)
        if result.has_errors:
            messages = "; ".join(
                issue.message for issue in result.issues if issue.severity == "error"
            )
            raise InvalidRuleError(f"Invalid recurring template: {messages}", result.issues)
        return result
