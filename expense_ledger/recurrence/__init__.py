"""Recurring-entry engine package."""

from expense_ledger.recurrence.batching import BoundedBatchWriter
from expense_ledger.recurrence.engine import (
    RecurringSeriesService,
    build_instance,
    template_fields,
)
from expense_ledger.recurrence.identity import instance_id, occurrence_date_from_id
from expense_ledger.recurrence.rules import expand, iter_occurrences, weekday_number

__all__ = [
    "BoundedBatchWriter",
    "RecurringSeriesService",
    "build_instance",
    "expand",
    "instance_id",
    "iter_occurrences",
    "occurrence_date_from_id",
    "template_fields",
    "weekday_number",
]
