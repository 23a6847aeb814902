"""Tests for ledger-derived series aggregates."""

import pytest
from datetime import date, datetime, timezone

from expense_ledger.models import Frequency
from expense_ledger.queries import RecurringAggregates
from expense_ledger.services.storage import (
    InMemoryLedgerStore,
    StorageError,
    WriteOperation,
)

from tests.conftest import TODAY, make_template


@pytest.fixture
def aggregates(store):
    return RecurringAggregates(store, today=lambda: TODAY)


class TestNextAndRemaining:
    """Aggregates read the ledger, so out-of-band changes show up."""

    async def test_next_occurrence_and_remaining(self, service, aggregates):
        template = make_template()
        await service.create(template)

        assert await aggregates.next_occurrence(template) == date(2026, 3, 15)
        assert await aggregates.remaining_count(template) == 4

    async def test_reflects_deleted_instances(self, service, aggregates):
        template = make_template()
        await service.create(template)
        await service.delete_instance("rt_tpl1_20260315")
        await service.delete_instance("rt_tpl1_20260515")

        assert await aggregates.next_occurrence("tpl1") == date(2026, 4, 15)
        assert await aggregates.remaining_count("tpl1") == 2

    async def test_today_is_not_upcoming(self, service, store):
        template = make_template(
            frequency=Frequency.DAILY,
            start_date=date(2026, 3, 9),
            end_date=date(2026, 3, 12),
        )
        await service.create(template)
        aggregates = RecurringAggregates(store, today=lambda: date(2026, 3, 10))
        assert await aggregates.next_occurrence(template) == date(2026, 3, 11)
        assert await aggregates.remaining_count(template) == 2

    async def test_finished_series(self, service, aggregates):
        template = make_template(end_date=date(2026, 2, 28))
        await service.create(template)
        assert await aggregates.next_occurrence(template) is None
        assert await aggregates.remaining_count(template) == 0

    async def test_summarize(self, service, aggregates):
        first = make_template()
        second = make_template(template_id="tpl2", frequency=Frequency.WEEKLY,
                               start_date=date(2026, 3, 1), end_date=date(2026, 3, 31))
        await service.create(first)
        await service.create(second)

        summaries = await aggregates.summarize([first, second])

        assert [s.template.id for s in summaries] == ["tpl1", "tpl2"]
        assert summaries[1].next_occurrence == date(2026, 3, 15)
        assert summaries[1].remaining_count == 3


class TestMemberListing:

    async def test_chunks_owner_ids(self):
        store = InMemoryLedgerStore(max_in_values=2)
        aggregates = RecurringAggregates(store, today=lambda: TODAY)
        owners = [f"user-{i}" for i in range(5)]
        for i, owner in enumerate(owners):
            template = make_template(template_id=f"tpl{i}", owner_id=owner)
            template.created_at = datetime(2026, 1, i + 1, tzinfo=timezone.utc)
            await store.commit([WriteOperation.set_template(template)])

        templates = await aggregates.list_templates_for_members(owners + ["user-0"])

        assert [t.id for t in templates] == ["tpl4", "tpl3", "tpl2", "tpl1", "tpl0"]

    async def test_store_rejects_too_many_ids(self):
        store = InMemoryLedgerStore(max_in_values=2)
        with pytest.raises(StorageError):
            await store.list_templates(["a", "b", "c"])

    async def test_no_members(self, aggregates):
        assert await aggregates.list_templates_for_members([]) == []
