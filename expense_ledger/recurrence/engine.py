"""
Recurring Series Engine

Materializes, regenerates and terminates recurring series in the ledger.

Every write that touches a recurring instance is keyed by
``instance_id(template_id, occurrence_date)``. That single rule is what
makes the engine safe to retry:
- re-running ``create`` resumes after the last written instance instead of
  duplicating or overwriting anything
- regeneration only rewrites keys that still exist, so an occurrence the
  user deleted is never resurrected
- the ``isModified`` flag (InstanceOwnership) decides what automatic
  operations may touch; user-owned instances are never rewritten or
  bulk-deleted

Writes are chunked into atomic batches by BoundedBatchWriter. A failure
between chunks leaves a partially written series behind; re-running the
same operation completes it.
"""

from datetime import date
from typing import Callable, Optional

import structlog

from expense_ledger.config import RecurrenceSettings, get_settings
from expense_ledger.models.entry import Entry, EntryUpdate, utc_now, utc_today
from expense_ledger.models.recurring import RecurringTemplate
from expense_ledger.recurrence.batching import BoundedBatchWriter
from expense_ledger.recurrence.identity import instance_id, occurrence_date_from_id
from expense_ledger.recurrence.rules import expand
from expense_ledger.services.storage.interface import (
    EntryQuery,
    LedgerStoreInterface,
    NotFoundError,
    WriteOperation,
)
from expense_ledger.validation.validator import RecurringTemplateValidator

logger = structlog.get_logger(__name__)


# Entry fields that come from the template; regeneration rewrites only these.
TEMPLATE_SOURCED_FIELDS = frozenset({
    "type",
    "owner_id",
    "original_amount",
    "currency",
    "category",
    "description",
    "date",
    "original_date",
    "recurring_template_id",
    "is_recurring_instance",
    "ownership",
})


def build_instance(template: RecurringTemplate, occurrence: date) -> Entry:
    """The ledger entry a template produces for one occurrence date."""
    blueprint = template.entry_template
    return Entry(
        id=instance_id(template.id, occurrence),
        type=blueprint.type,
        owner_id=template.owner_id,
        original_amount=blueprint.original_amount,
        currency=blueprint.currency,
        category=blueprint.category,
        description=blueprint.description,
        date=occurrence,
        recurring_template_id=template.id,
        original_date=occurrence,
        is_recurring_instance=True,
        created_by=template.created_by,
    )


def template_fields(template: RecurringTemplate, occurrence: date) -> dict:
    """Template-sourced document fields for a merge write."""
    instance = build_instance(template, occurrence)
    return instance.model_dump(mode="json", by_alias=True, include=set(TEMPLATE_SOURCED_FIELDS))


def _is_complete(template: RecurringTemplate) -> bool:
    # create() writes instances_created=0 first and the real count last;
    # a regenerated template carries updated_at.
    return template.instances_created > 0 or template.updated_at is not None


class RecurringSeriesService:
    """
    Creates and maintains recurring series.

    Args:
        store: Ledger store the series lives in
        validator: Template validator; built from settings when omitted
        settings: Recurrence limits; loaded from the environment when omitted
        today: Clock returning the current UTC date
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        validator: Optional[RecurringTemplateValidator] = None,
        settings: Optional[RecurrenceSettings] = None,
        today: Callable[[], date] = utc_today,
    ):
        settings = settings or get_settings().recurrence
        self._store = store
        self._settings = settings
        self._validator = validator or RecurringTemplateValidator(settings.service_start_date)
        self._today = today

    def _writer(self) -> BoundedBatchWriter:
        return BoundedBatchWriter(self._store, self._settings.max_batch_writes)

    def today(self) -> date:
        return self._today()

    async def get_template(self, template_id: str) -> RecurringTemplate:
        template = await self._store.get_template(template_id)
        if template is None:
            raise NotFoundError(f"Recurring template not found: {template_id}")
        return template

    def occurrences(self, template: RecurringTemplate) -> list[date]:
        """Occurrence dates of a template's rule, from its start date."""
        cap = self._settings.max_occurrences
        # One past the cap tells a truncated expansion from one that ends there.
        dates = expand(
            template.recurrence,
            template.start_date,
            not_before=self._settings.service_start_date,
            max_occurrences=cap + 1,
        )
        if len(dates) > cap:
            dates = dates[:cap]
            logger.warning(
                "occurrence_cap_reached",
                template_id=template.id,
                cap=cap,
                last_date=dates[-1].isoformat(),
            )
        return dates

    # -------------------------------------------------------------------------
    # Materializer
    # -------------------------------------------------------------------------

    async def create(self, template: RecurringTemplate) -> str:
        """
        Persist a new series: the template plus one entry per occurrence.

        The template shares the first atomic batch with the first instances
        and is written with ``instances_created=0``. The last batch rewrites
        it with the final count, which marks the series as complete.

        Calling this again with the same template id resumes a series left
        partial by a failed chunk. Only occurrences after the last instance
        already in the ledger are written, so an instance the user edited or
        deleted is never overwritten or brought back. On a complete series
        the call writes nothing.

        Returns:
            The template id

        Raises:
            InvalidRuleError: Before any write, if the template is invalid
            StorageError: If a chunk fails; earlier chunks stay committed
        """
        self._validator.ensure_valid(template)
        dates = self.occurrences(template)

        previous = await self._store.get_template(template.id)
        if previous is not None and _is_complete(previous):
            logger.info("series_already_materialized", template_id=template.id)
            return template.id

        pending = dates
        if previous is not None:
            last_written = await self._last_written_occurrence(previous)
            if last_written is not None:
                # Chunks commit in date order, so every earlier key was written.
                pending = [occurrence for occurrence in dates if occurrence > last_written]

        async with self._writer() as writer:
            await writer.add(
                WriteOperation.set_template(template.model_copy(update={"instances_created": 0, "updated_at": None}))
            )
            for occurrence in pending:
                await writer.add(WriteOperation.set_entry(build_instance(template, occurrence)))
            await writer.add(
                WriteOperation.set_template(
                    template.model_copy(update={"instances_created": len(dates)})
                )
            )

        logger.info(
            "series_materialized",
            template_id=template.id,
            instances=len(dates),
            written=len(pending),
            resumed=previous is not None,
            batches=len(writer.committed_batches),
        )
        return template.id

    async def _last_written_occurrence(self, template: RecurringTemplate) -> Optional[date]:
        entries = await self._store.find_entries(
            EntryQuery(template_id=template.id, owner_id=template.owner_id)
        )
        occurrences = [occurrence_date_from_id(entry.id) for entry in entries]
        occurrences = [occurrence for occurrence in occurrences if occurrence is not None]
        return max(occurrences) if occurrences else None

    # -------------------------------------------------------------------------
    # Regenerator
    # -------------------------------------------------------------------------

    async def regenerate(
        self,
        template_id: str,
        updated: RecurringTemplate,
        from_date: Optional[date] = None,
    ) -> int:
        """
        Re-apply an edited template to the series from ``from_date`` on.

        Reconciliation against the persisted instances, per occurrence of
        the new rule:
        - instance exists and is template-owned: template fields rewritten
        - instance exists and is user-owned: left alone
        - no instance: left missing (the user deleted it)
        Template-owned instances on or after ``from_date`` that the new
        rule no longer produces are deleted. Nothing before ``from_date``
        is touched.

        Returns:
            Number of instances rewritten

        Raises:
            InvalidRuleError: If the updated template is invalid
            NotFoundError: If the template does not exist
        """
        from_date = from_date or self.today()
        current = await self.get_template(template_id)

        candidate = current.model_copy(update={
            "entry_template": updated.entry_template,
            "recurrence": updated.recurrence,
            "start_date": updated.start_date,
        })
        self._validator.ensure_valid(candidate)

        # Expand from the series start so weekly/monthly phase is kept.
        fresh = {
            instance_id(template_id, occurrence): occurrence
            for occurrence in self.occurrences(candidate)
            if occurrence >= from_date
        }

        # One bulk read, taken before any write.
        existing = {
            entry.id: entry
            for entry in await self._store.find_entries(
                EntryQuery(template_id=template_id, owner_id=current.owner_id)
            )
        }

        stale = [
            entry.id for entry in existing.values()
            if not entry.is_modified and entry.date >= from_date and entry.id not in fresh
        ]
        rewrite = [
            occurrence for key, occurrence in fresh.items()
            if key in existing and not existing[key].is_modified
        ]
        kept_by_user = sum(1 for key in fresh if key in existing and existing[key].is_modified)

        now = utc_now()
        stored = candidate.model_copy(update={
            "instances_created": len(rewrite),
            "updated_at": now,
        })

        async with self._writer() as writer:
            await writer.add(WriteOperation.set_template(stored))
            for key in stale:
                await writer.add(WriteOperation.delete_entry(key))
            for occurrence in rewrite:
                fields = template_fields(stored, occurrence)
                fields["updatedAt"] = now.isoformat()
                fields["updatedBy"] = stored.created_by
                await writer.add(
                    WriteOperation.merge_entry(instance_id(template_id, occurrence), fields)
                )

        logger.info(
            "series_regenerated",
            template_id=template_id,
            from_date=from_date.isoformat(),
            rewritten=len(rewrite),
            deleted=len(stale),
            kept_by_user=kept_by_user,
            missing=len(fresh) - len(rewrite) - kept_by_user,
        )
        return len(rewrite)

    # -------------------------------------------------------------------------
    # Terminator
    # -------------------------------------------------------------------------

    async def stop(self, template_id: str, today: Optional[date] = None) -> int:
        """
        End a series: delete the template and its template-owned instances
        dated today or later. History and user-owned instances remain.

        Returns:
            Number of instances deleted
        """
        today = today or self.today()
        query = EntryQuery(template_id=template_id, date_from=today, is_modified=False)
        return await self._terminate(template_id, query, mode="stop")

    async def delete_all(self, template_id: str) -> int:
        """
        Delete a series: the template and every template-owned instance,
        past and future. User-owned instances survive as ordinary entries.

        Returns:
            Number of instances deleted
        """
        query = EntryQuery(template_id=template_id, is_modified=False)
        return await self._terminate(template_id, query, mode="delete_all")

    async def _terminate(self, template_id: str, query: EntryQuery, mode: str) -> int:
        template = await self._store.get_template(template_id)
        if template is None:
            # A retried termination whose first batch already removed the template.
            logger.warning("terminate_without_template", template_id=template_id, mode=mode)
        else:
            query = query.model_copy(update={"owner_id": template.owner_id})

        doomed = await self._store.find_entries(query)

        async with self._writer() as writer:
            if template is not None:
                await writer.add(WriteOperation.delete_template(template_id))
            for entry in doomed:
                await writer.add(WriteOperation.delete_entry(entry.id))

        logger.info(
            "series_terminated",
            template_id=template_id,
            mode=mode,
            deleted=len(doomed),
            batches=len(writer.committed_batches),
        )
        return len(doomed)

    # -------------------------------------------------------------------------
    # Individual entries
    # -------------------------------------------------------------------------

    async def edit_instance(self, entry_id: str, update: EntryUpdate, edited_by: str) -> Entry:
        """
        Apply a user's edit to one entry.

        A recurring instance becomes user-owned, which permanently excludes
        it from regeneration and bulk deletion.

        Raises:
            NotFoundError: If the entry does not exist
            ValueError: If the edited entry is not valid
        """
        entry = await self._store.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry not found: {entry_id}")

        changes = update.changed_fields()
        now = utc_now()
        edited = Entry.model_validate({
            **entry.to_document(),
            **changes,
            "updatedAt": now.isoformat(),
            "updatedBy": edited_by,
        })
        if edited.is_recurring_instance:
            edited = edited.claimed_by_user()

        fields = {
            **changes,
            "updatedAt": now.isoformat(),
            "updatedBy": edited_by,
            "isModified": edited.is_modified,
        }
        await self._store.commit([WriteOperation.merge_entry(entry_id, fields)])

        logger.info(
            "entry_edited",
            entry_id=entry_id,
            fields=sorted(changes),
            recurring=edited.is_recurring_instance,
        )
        return edited

    async def delete_instance(self, entry_id: str) -> bool:
        """
        Delete one entry. A deleted recurring occurrence stays deleted:
        regeneration never re-creates a missing key.

        Returns:
            True if the entry existed
        """
        entry = await self._store.get_entry(entry_id)
        if entry is None:
            return False
        await self._store.commit([WriteOperation.delete_entry(entry_id)])
        logger.info("entry_deleted", entry_id=entry_id, template_id=entry.recurring_template_id)
        return True
