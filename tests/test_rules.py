"""Tests for the recurrence rule evaluator and instance identity."""

import pytest
from datetime import date

from expense_ledger.models import Frequency, InvalidRuleError, RecurrenceRule
from expense_ledger.recurrence import (
    expand,
    instance_id,
    iter_occurrences,
    occurrence_date_from_id,
    weekday_number,
)


def rule(frequency: Frequency, end_date: date, **fields) -> RecurrenceRule:
    return RecurrenceRule(frequency=frequency, end_date=end_date, **fields)


class TestWeekdayNumbering:
    """Weekdays are numbered from Sunday."""

    def test_sunday_is_zero(self):
        assert weekday_number(date(2026, 3, 1)) == 0  # Sunday
        assert weekday_number(date(2026, 3, 2)) == 1  # Monday
        assert weekday_number(date(2026, 3, 7)) == 6  # Saturday


class TestDailyRules:

    def test_every_day(self):
        dates = expand(rule(Frequency.DAILY, date(2026, 3, 5)), date(2026, 3, 1))
        assert dates == [date(2026, 3, d) for d in range(1, 6)]

    def test_interval(self):
        dates = expand(rule(Frequency.DAILY, date(2026, 3, 10), interval=3), date(2026, 3, 1))
        assert dates == [date(2026, 3, 1), date(2026, 3, 4), date(2026, 3, 7), date(2026, 3, 10)]

    def test_weekday_filter(self):
        """Test that a daily rule with weekdays only keeps those days."""
        dates = expand(
            rule(Frequency.DAILY, date(2026, 3, 14), days_of_week=[1, 2, 3, 4, 5]),
            date(2026, 3, 1),
        )
        assert len(dates) == 10
        assert all(weekday_number(d) in {1, 2, 3, 4, 5} for d in dates)


class TestWeeklyRules:

    def test_weekly_with_weekdays(self):
        """Mon/Wed/Fri over two weeks gives six dates."""
        dates = expand(
            rule(Frequency.WEEKLY, date(2026, 3, 15), days_of_week=[1, 3, 5]),
            date(2026, 3, 2),
        )
        assert dates == [
            date(2026, 3, 2), date(2026, 3, 4), date(2026, 3, 6),
            date(2026, 3, 9), date(2026, 3, 11), date(2026, 3, 13),
        ]

    def test_weekly_without_weekdays_repeats_start_weekday(self):
        dates = expand(rule(Frequency.WEEKLY, date(2026, 3, 31)), date(2026, 3, 3))
        assert dates == [date(2026, 3, 3), date(2026, 3, 10), date(2026, 3, 17),
                         date(2026, 3, 24), date(2026, 3, 31)]

    def test_weekdays_before_anchor_skipped(self):
        """Weekdays earlier in the anchor's week are not produced."""
        dates = expand(
            rule(Frequency.WEEKLY, date(2026, 3, 14), days_of_week=[1, 5]),
            date(2026, 3, 4),  # Wednesday
        )
        assert dates == [date(2026, 3, 6), date(2026, 3, 9), date(2026, 3, 13)]

    def test_biweekly_blocks(self):
        dates = expand(
            rule(Frequency.WEEKLY, date(2026, 3, 31), interval=2, days_of_week=[2]),
            date(2026, 3, 1),
        )
        assert dates == [date(2026, 3, 3), date(2026, 3, 17), date(2026, 3, 31)]


class TestMonthlyRules:

    def test_day_of_month_clamped(self):
        """Day 31 falls on the last day of shorter months."""
        dates = expand(
            rule(Frequency.MONTHLY, date(2026, 7, 31), day_of_month=31),
            date(2026, 4, 1),
        )
        assert dates == [date(2026, 4, 30), date(2026, 5, 31), date(2026, 6, 30), date(2026, 7, 31)]

    def test_month_end_anchor_does_not_drift(self):
        """A series anchored on the 31st returns to the 31st after February."""
        dates = expand(rule(Frequency.MONTHLY, date(2026, 4, 30)), date(2026, 1, 31))
        assert dates == [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31), date(2026, 4, 30)]

    def test_day_of_month_before_anchor_skipped(self):
        dates = expand(
            rule(Frequency.MONTHLY, date(2026, 3, 31), day_of_month=5),
            date(2026, 1, 20),
        )
        assert dates == [date(2026, 2, 5), date(2026, 3, 5)]


class TestYearlyRules:

    def test_leap_day(self):
        dates = expand(rule(Frequency.YEARLY, date(2032, 12, 31)), date(2028, 2, 29))
        assert dates == [date(2028, 2, 29), date(2029, 2, 28), date(2030, 2, 28),
                         date(2031, 2, 28), date(2032, 2, 29)]


class TestExpansionBounds:
    """Range, cap and determinism of expansion."""

    def test_end_before_anchor_is_empty(self):
        assert expand(rule(Frequency.DAILY, date(2026, 1, 1)), date(2026, 2, 1)) == []

    def test_interval_below_one_rejected(self):
        bad = RecurrenceRule.model_construct(
            frequency=Frequency.DAILY,
            interval=0,
            end_date=date(2026, 2, 1),
            days_of_week=None,
            day_of_month=None,
        )
        with pytest.raises(InvalidRuleError):
            expand(bad, date(2026, 1, 1))

    def test_end_date_alone_changes_length(self):
        short = expand(rule(Frequency.MONTHLY, date(2026, 3, 31)), date(2026, 1, 1))
        longer = expand(rule(Frequency.MONTHLY, date(2026, 6, 30)), date(2026, 1, 1))
        assert len(short) == 3
        assert len(longer) == 6

    def test_cap_truncates(self):
        dates = expand(rule(Frequency.DAILY, date(2026, 12, 31)), date(2026, 1, 1), max_occurrences=10)
        assert len(dates) == 10
        assert dates[-1] == date(2026, 1, 10)

    def test_not_before_skips_early_dates(self):
        dates = expand(
            rule(Frequency.DAILY, date(2025, 1, 3)),
            date(2024, 12, 30),
            not_before=date(2025, 1, 1),
        )
        assert dates == [date(2025, 1, 1), date(2025, 1, 2), date(2025, 1, 3)]

    def test_not_before_keeps_weekly_phase(self):
        # Every other Tuesday from 2024-12-03
        dates = expand(
            rule(Frequency.WEEKLY, date(2025, 1, 31), interval=2),
            date(2024, 12, 3),
            not_before=date(2025, 1, 1),
        )
        assert dates == [date(2025, 1, 14), date(2025, 1, 28)]

    def test_not_before_keeps_day_of_month(self):
        dates = expand(
            rule(Frequency.MONTHLY, date(2025, 3, 31)),
            date(2024, 6, 15),
            not_before=date(2025, 1, 1),
        )
        assert dates == [date(2025, 1, 15), date(2025, 2, 15), date(2025, 3, 15)]

    def test_not_before_after_end_date(self):
        assert expand(
            rule(Frequency.DAILY, date(2024, 12, 31)),
            date(2024, 12, 1),
            not_before=date(2025, 1, 1),
        ) == []

    def test_deterministic(self):
        r = rule(Frequency.WEEKLY, date(2026, 9, 30), interval=3, days_of_week=[0, 6])
        assert expand(r, date(2026, 1, 7)) == expand(r, date(2026, 1, 7))

    def test_results_ascending_and_in_range(self):
        r = rule(Frequency.WEEKLY, date(2026, 6, 30), days_of_week=[0, 3, 6])
        anchor = date(2026, 2, 11)
        dates = list(iter_occurrences(r, anchor))
        assert dates == sorted(set(dates))
        assert all(anchor <= d <= r.end_date for d in dates)


class TestInstanceIdentity:

    def test_key_format(self):
        assert instance_id("abc", date(2026, 3, 5)) == "rt_abc_20260305"

    def test_same_inputs_same_key(self):
        assert instance_id("abc", date(2026, 3, 5)) == instance_id("abc", date(2026, 3, 5))
        assert instance_id("abc", date(2026, 3, 5)) != instance_id("abc", date(2026, 3, 6))

    def test_date_recovered_from_key(self):
        assert occurrence_date_from_id("rt_my_tpl_20260305") == date(2026, 3, 5)

    def test_non_recurring_key(self):
        assert occurrence_date_from_id("f3c9a1") is None
        assert occurrence_date_from_id("rt_abc_notadate") is None
