"""
Recurring Series Aggregates

DESIGN DECISION: "Next occurrence" and "remaining count" are read from the
ledger, never computed by replaying the recurrence rule. A user may have
deleted or moved individual future instances; only the stored entries
reflect that.

GUARANTEES:
- Only returns what is actually stored
- Never estimates from the rule
"""

import asyncio
from datetime import date
from typing import Callable, Optional, Union

import structlog

from expense_ledger.models.entry import utc_today
from expense_ledger.models.recurring import RecurringTemplate, TemplateSummary
from expense_ledger.services.storage import EntryQuery, LedgerStoreInterface

logger = structlog.get_logger(__name__)


class RecurringAggregates:
    """Ledger-derived facts about recurring series."""

    def __init__(
        self,
        storage: LedgerStoreInterface,
        today: Callable[[], date] = utc_today,
        member_chunk_size: Optional[int] = None,
    ):
        self._storage = storage
        self._today = today
        self._chunk_size = min(
            member_chunk_size or storage.max_in_values,
            storage.max_in_values,
        )

    def _upcoming(self, template: Union[RecurringTemplate, str], **extra) -> EntryQuery:
        if isinstance(template, RecurringTemplate):
            return EntryQuery(
                template_id=template.id,
                owner_id=template.owner_id,
                date_after=self._today(),
                **extra,
            )
        return EntryQuery(template_id=template, date_after=self._today(), **extra)

    async def next_occurrence(self, template: Union[RecurringTemplate, str]) -> Optional[date]:
        """Date of the earliest stored instance after today, if any."""
        entries = await self._storage.find_entries(self._upcoming(template, limit=1))
        return entries[0].date if entries else None

    async def remaining_count(self, template: Union[RecurringTemplate, str]) -> int:
        """Number of stored instances dated after today."""
        return await self._storage.count_entries(self._upcoming(template))

    async def summarize(self, templates: list[RecurringTemplate]) -> list[TemplateSummary]:
        """Next occurrence and remaining count for many templates at once."""

        async def one(template: RecurringTemplate) -> TemplateSummary:
            next_date, remaining = await asyncio.gather(
                self.next_occurrence(template),
                self.remaining_count(template),
            )
            return TemplateSummary(
                template=template,
                next_occurrence=next_date,
                remaining_count=remaining,
            )

        return list(await asyncio.gather(*(one(t) for t in templates)))

    async def list_templates_for_members(self, owner_ids: list[str]) -> list[RecurringTemplate]:
        """
        Templates owned by any of the given users, newest first.

        Owner ids are queried in chunks because the store limits how many
        values one "in" filter may hold.
        """
        unique_ids = list(dict.fromkeys(owner_ids))
        if not unique_ids:
            return []

        templates: list[RecurringTemplate] = []
        for start in range(0, len(unique_ids), self._chunk_size):
            chunk = unique_ids[start:start + self._chunk_size]
            templates.extend(await self._storage.list_templates(chunk))

        templates.sort(key=lambda t: t.created_at, reverse=True)
        logger.debug(
            "member_templates_listed",
            members=len(unique_ids),
            templates=len(templates),
        )
        return templates
