"""
Expense Ledger - Source Package

Recurring-entry scheduling and materialization for a multi-currency
expense tracker. A recurring template is expanded into concrete ledger
entries that users can then edit, delete, stop or regenerate.

DESIGN PRINCIPLES:
1. Deterministic instance keys make every write retry-safe
2. A user's edit always wins over the template
3. Aggregates come from the ledger, never from the rule
4. Every command must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Ledger Team"
