"""
Recurrence Rule Evaluator

Turns a recurrence rule plus an anchor date into the ordered list of
occurrence dates. Pure: no I/O, no clock, same inputs give the same output,
so it can be called freely during regeneration.

Candidates are computed as ``anchor + k * interval`` units rather than by
stepping from the previous occurrence. A monthly series anchored on the
31st therefore comes back to the 31st after a short month instead of
drifting to the 28th.
"""

from datetime import date, timedelta
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta

from expense_ledger.models.recurring import Frequency, RecurrenceRule
from expense_ledger.models.validation import InvalidRuleError


DEFAULT_MAX_OCCURRENCES = 1000


def weekday_number(day: date) -> int:
    """Weekday with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def week_start(day: date) -> date:
    """The Sunday that starts the week containing ``day``."""
    return day - timedelta(days=weekday_number(day))


def _nth_candidate(rule: RecurrenceRule, anchor: date, k: int) -> date:
    steps = k * rule.interval
    if rule.frequency == Frequency.DAILY:
        return anchor + timedelta(days=steps)
    if rule.frequency == Frequency.WEEKLY:
        return anchor + timedelta(weeks=steps)
    if rule.frequency == Frequency.MONTHLY:
        if rule.day_of_month:
            # relativedelta clamps day=31 to the last day of shorter months
            return anchor + relativedelta(months=steps, day=rule.day_of_month)
        return anchor + relativedelta(months=steps)
    if rule.frequency == Frequency.YEARLY:
        return anchor + relativedelta(years=steps)
    raise InvalidRuleError(f"Unknown frequency: {rule.frequency}")


def _qualifies(rule: RecurrenceRule, day: date) -> bool:
    if rule.frequency == Frequency.DAILY and rule.days_of_week:
        return weekday_number(day) in rule.days_of_week
    return True


def _iter_stepped(rule: RecurrenceRule, anchor: date) -> Iterator[date]:
    k = 0
    while True:
        candidate = _nth_candidate(rule, anchor, k)
        if candidate > rule.end_date:
            return
        if candidate >= anchor and _qualifies(rule, candidate):
            yield candidate
        k += 1


def _iter_week_blocks(rule: RecurrenceRule, anchor: date) -> Iterator[date]:
    block = week_start(anchor)
    step = timedelta(weeks=rule.interval)
    while block <= rule.end_date:
        for weekday in rule.days_of_week:
            occurrence = block + timedelta(days=weekday)
            if occurrence < anchor:
                continue
            if occurrence > rule.end_date:
                return
            yield occurrence
        block += step


def iter_occurrences(
    rule: RecurrenceRule,
    anchor: date,
    not_before: Optional[date] = None,
) -> Iterator[date]:
    """
    Lazily yield occurrence dates in ascending order.

    Args:
        rule: The recurrence rule
        anchor: First candidate date (the series start date)
        not_before: Earliest date the ledger accepts; earlier occurrences
            are skipped, the stepping still runs from ``anchor``

    Raises:
        InvalidRuleError: If the interval is below 1
    """
    if rule.interval < 1:
        raise InvalidRuleError(f"Interval must be at least 1, got {rule.interval}")

    if rule.end_date < anchor or (not_before and rule.end_date < not_before):
        return iter(())

    if rule.frequency == Frequency.WEEKLY and rule.days_of_week:
        occurrences = _iter_week_blocks(rule, anchor)
    else:
        occurrences = _iter_stepped(rule, anchor)

    if not_before and not_before > anchor:
        return (occurrence for occurrence in occurrences if occurrence >= not_before)
    return occurrences


def expand(
    rule: RecurrenceRule,
    anchor: date,
    *,
    not_before: Optional[date] = None,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> list[date]:
    """
    Expand a rule into its occurrence dates.

    Every returned date falls within [anchor, rule.end_date] and satisfies
    the rule's day filter. The result is truncated at ``max_occurrences``.
    """
    dates: list[date] = []
    for occurrence in iter_occurrences(rule, anchor, not_before=not_before):
        if len(dates) >= max_occurrences:
            break
        dates.append(occurrence)
    return dates
