"""
Main Orchestrator for Expense Ledger

This module ties together all the components and defines the
user-facing commands on recurring series:
1. Create a series (validate → expand → materialize)
2. Edit a series going forward (validate → reconcile → rewrite)
3. Stop or delete a series
4. Edit or delete a single entry
5. List series with their upcoming occurrences

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written for an invalid rule
- A failed write is reported as a failure, never as a created series
- Every command is audited

Commands never raise for expected failures. They return a CommandResult
whose message can be shown to the user as-is.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field, ValidationError

from expense_ledger.audit import AuditLogger, create_correlation_id
from expense_ledger.config import Settings, get_settings
from expense_ledger.models.entry import EntryUpdate
from expense_ledger.models.recurring import (
    RecurringTemplate,
    RecurringTemplateUpdate,
    TemplateSummary,
)
from expense_ledger.models.validation import InvalidRuleError, ValidationIssue
from expense_ledger.queries import RecurringAggregates
from expense_ledger.recurrence import RecurringSeriesService
from expense_ledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
)

logger = structlog.get_logger(__name__)


FAILURE_MESSAGES = {
    "create": "Failed to create recurring entries",
    "regenerate": "Failed to update recurring entries",
    "stop": "Failed to stop recurring entries",
    "delete_all": "Failed to delete recurring entries",
    "edit_entry": "Failed to update entry",
    "delete_entry": "Failed to delete entry",
    "list": "Failed to load recurring entries",
}


class CommandResult(BaseModel):
    """Outcome of a command, ready to show to the user."""

    success: bool
    message: str
    template_id: Optional[str] = None
    entry_id: Optional[str] = None
    count: int = Field(default=0, description="Entries written or deleted")
    issues: list[ValidationIssue] = Field(default_factory=list)
    summaries: list[TemplateSummary] = Field(default_factory=list)


class RecurringCommands:
    """
    Orchestrates commands on recurring series.

    Each command gets its own correlation id so that all audit events it
    produces can be traced together.
    """

    def __init__(
        self,
        service: RecurringSeriesService,
        aggregates: RecurringAggregates,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._service = service
        self._aggregates = aggregates
        self._audit_logger = audit_logger or AuditLogger()

    async def _failure(
        self,
        operation: str,
        error: Exception,
        entity_id: Optional[str],
        correlation_id: UUID,
    ) -> CommandResult:
        """Turn an exception into a failed result and audit it."""
        base = FAILURE_MESSAGES[operation]

        if isinstance(error, InvalidRuleError):
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in error.issues
            ]
            await self._audit_logger.log_rule_rejected(
                template_id=entity_id or "",
                issues=issues,
                correlation_id=correlation_id,
            )
            return CommandResult(
                success=False,
                message=f"{base}: {error}",
                template_id=entity_id,
                issues=error.issues,
            )

        if isinstance(error, NotFoundError):
            return CommandResult(success=False, message=f"{base}: {error}")

        if isinstance(error, StorageError):
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                entity_id=entity_id,
                correlation_id=correlation_id,
            )
            return CommandResult(
                success=False,
                message=f"{base}. Please try again.",
                template_id=entity_id if operation != "edit_entry" else None,
            )

        # Invalid field values on an entry edit
        await self._audit_logger.log_error(
            error_type=type(error).__name__,
            error_message=str(error),
            details={"operation": operation, "entity_id": entity_id},
            correlation_id=correlation_id,
        )
        return CommandResult(success=False, message=f"{base}: {error}")

    async def create_series(self, template: RecurringTemplate) -> CommandResult:
        """
        Create a recurring series and all of its entries.

        On a storage failure the series may be partially written. Running
        the command again with the same template completes it.
        """
        correlation_id = create_correlation_id()
        try:
            template_id = await self._service.create(template)
            created = (await self._service.get_template(template_id)).instances_created
        except (InvalidRuleError, NotFoundError, StorageError) as e:
            return await self._failure("create", e, template.id, correlation_id)

        await self._audit_logger.log_template_created(
            template_id=template_id,
            instances_created=created,
            correlation_id=correlation_id,
        )
        return CommandResult(
            success=True,
            message=f"Created {created} recurring entries",
            template_id=template_id,
            count=created,
        )

    async def edit_series(
        self,
        template_id: str,
        update: RecurringTemplateUpdate,
        from_date: Optional[date] = None,
    ) -> CommandResult:
        """Apply an edit to a series from ``from_date`` (default today) on."""
        correlation_id = create_correlation_id()
        from_date = from_date or self._service.today()
        try:
            current = await self._service.get_template(template_id)
            updated = update.apply_to(current)
            rewritten = await self._service.regenerate(template_id, updated, from_date)
        except (InvalidRuleError, NotFoundError, StorageError) as e:
            return await self._failure("regenerate", e, template_id, correlation_id)

        await self._audit_logger.log_template_regenerated(
            template_id=template_id,
            instances_updated=rewritten,
            from_date=from_date.isoformat(),
            correlation_id=correlation_id,
        )
        return CommandResult(
            success=True,
            message=f"Updated {rewritten} upcoming entries",
            template_id=template_id,
            count=rewritten,
        )

    async def stop_series(self, template_id: str) -> CommandResult:
        """Stop a series: remove the template and its unmodified entries from today on."""
        return await self._terminate(template_id, "stop")

    async def delete_series(self, template_id: str) -> CommandResult:
        """Delete a series: remove the template and all of its unmodified entries."""
        return await self._terminate(template_id, "delete_all")

    async def _terminate(self, template_id: str, mode: str) -> CommandResult:
        correlation_id = create_correlation_id()
        try:
            if mode == "stop":
                deleted = await self._service.stop(template_id)
            else:
                deleted = await self._service.delete_all(template_id)
        except StorageError as e:
            return await self._failure(mode, e, template_id, correlation_id)

        await self._audit_logger.log_series_terminated(
            template_id=template_id,
            mode=mode,
            instances_deleted=deleted,
            correlation_id=correlation_id,
        )
        verb = "Stopped" if mode == "stop" else "Deleted"
        return CommandResult(
            success=True,
            message=f"{verb} recurring series, removed {deleted} entries",
            template_id=template_id,
            count=deleted,
        )

    async def edit_entry(
        self,
        entry_id: str,
        update: EntryUpdate,
        edited_by: str,
    ) -> CommandResult:
        """Edit one entry. A recurring entry is kept out of future series edits."""
        correlation_id = create_correlation_id()
        try:
            edited = await self._service.edit_instance(entry_id, update, edited_by)
        except (NotFoundError, StorageError, ValidationError) as e:
            return await self._failure("edit_entry", e, entry_id, correlation_id)

        fields = sorted(update.changed_fields())
        await self._audit_logger.log_instance_edited(
            entry_id=entry_id,
            fields=fields,
            correlation_id=correlation_id,
        )
        return CommandResult(
            success=True,
            message="Entry updated",
            entry_id=edited.id,
            template_id=edited.recurring_template_id,
            count=1,
        )

    async def delete_entry(self, entry_id: str) -> CommandResult:
        correlation_id = create_correlation_id()
        try:
            existed = await self._service.delete_instance(entry_id)
        except StorageError as e:
            return await self._failure("delete_entry", e, entry_id, correlation_id)

        if not existed:
            return CommandResult(
                success=False,
                message=f"{FAILURE_MESSAGES['delete_entry']}: entry not found",
                entry_id=entry_id,
            )

        await self._audit_logger.log_instance_deleted(
            entry_id=entry_id,
            correlation_id=correlation_id,
        )
        return CommandResult(success=True, message="Entry deleted", entry_id=entry_id, count=1)

    async def list_series(self, owner_ids: list[str]) -> CommandResult:
        """Series owned by any of the given users, with next date and remaining count."""
        correlation_id = create_correlation_id()
        try:
            templates = await self._aggregates.list_templates_for_members(owner_ids)
            summaries = await self._aggregates.summarize(templates)
        except StorageError as e:
            return await self._failure("list", e, None, correlation_id)

        return CommandResult(
            success=True,
            message=f"Found {len(summaries)} recurring series",
            count=len(summaries),
            summaries=summaries,
        )


def create_storage(
    settings: Settings,
) -> tuple[LedgerStoreInterface, AuditStorageInterface]:
    """
    Build the configured storage backends.

    Falls back to in-memory storage when Google Sheets is selected but
    cannot be reached.
    """
    recurrence = settings.recurrence

    if settings.app.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.get_spreadsheet()
            return (
                GoogleSheetsLedgerStore(sheets_client, recurrence.max_batch_writes),
                GoogleSheetsAuditStorage(sheets_client),
            )
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("sheets_storage_unavailable", error=str(e))

    return (
        InMemoryLedgerStore(
            max_batch_writes=recurrence.max_batch_writes,
            max_in_values=recurrence.member_query_chunk_size,
        ),
        InMemoryAuditStorage(),
    )


def create_app_components(
    settings: Optional[Settings] = None,
    store: Optional[LedgerStoreInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> RecurringCommands:
    """
    Factory function to create all application components.

    Args:
        settings: Application settings; loaded from the environment when omitted
        store: Ledger store to use instead of the configured backend
        audit_storage: Audit storage to use instead of the configured backend

    Returns:
        The command surface, wired to storage and audit logging
    """
    settings = settings or get_settings()
    app_settings = settings.app
    logging.getLogger().setLevel("DEBUG" if app_settings.debug_mode else app_settings.log_level)

    if store is None:
        store, configured_audit = create_storage(settings)
        audit_storage = audit_storage or configured_audit

    service = RecurringSeriesService(store, settings=settings.recurrence)
    aggregates = RecurringAggregates(
        store,
        member_chunk_size=settings.recurrence.member_query_chunk_size,
    )
    return RecurringCommands(
        service=service,
        aggregates=aggregates,
        audit_logger=AuditLogger(audit_storage),
    )
