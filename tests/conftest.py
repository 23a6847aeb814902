"""Shared fixtures for the recurring-entry tests."""

from datetime import date
from decimal import Decimal

import pytest

from expense_ledger.config import RecurrenceSettings
from expense_ledger.models import (
    EntryCategory,
    EntryTemplate,
    EntryType,
    Frequency,
    RecurrenceRule,
    RecurringTemplate,
)
from expense_ledger.recurrence import RecurringSeriesService
from expense_ledger.services.storage import InMemoryLedgerStore


TODAY = date(2026, 3, 10)


def make_template(
    template_id: str = "tpl1",
    frequency: Frequency = Frequency.MONTHLY,
    start_date: date = date(2026, 1, 15),
    end_date: date = date(2026, 6, 30),
    amount: str = "50.00",
    owner_id: str = "user-1",
    **rule_fields,
) -> RecurringTemplate:
    return RecurringTemplate(
        id=template_id,
        owner_id=owner_id,
        created_by=owner_id,
        entry_template=EntryTemplate(
            type=EntryType.EXPENSE,
            original_amount=Decimal(amount),
            currency="EUR",
            category=EntryCategory.UTILITIES,
            description="Internet",
        ),
        recurrence=RecurrenceRule(frequency=frequency, end_date=end_date, **rule_fields),
        start_date=start_date,
    )


@pytest.fixture
def settings():
    return RecurrenceSettings(
        max_batch_writes=200,
        max_occurrences=1000,
        service_start_date=date(2025, 1, 1),
        member_query_chunk_size=10,
    )


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def service(store, settings):
    return RecurringSeriesService(store, settings=settings, today=lambda: TODAY)
