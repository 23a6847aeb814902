"""Validation package."""

from expense_ledger.validation.validator import RecurringTemplateValidator

__all__ = ["RecurringTemplateValidator"]
