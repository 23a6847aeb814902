"""Ledger aggregate queries package."""

from expense_ledger.queries.aggregates import RecurringAggregates

__all__ = ["RecurringAggregates"]
