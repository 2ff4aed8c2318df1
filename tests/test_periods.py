from datetime import date

import pandas as pd
import pytest

from revops.quarterly_rollup.periods import (
    QuotaPeriod,
    make_period,
    period_for_date,
    periods_in_year,
    previous_period,
    sort_periods,
    to_date,
)


def test_start_after_end_rejected():
    with pytest.raises(ValueError):
        QuotaPeriod("bad", date(2025, 4, 1), date(2025, 3, 31))


def test_make_period_coerces_loose_values():
    period = make_period(7, "2025-01-01", pd.Timestamp("2025-03-31"), fiscal_year=2025, fiscal_quarter=1)
    assert period.period_id == "7"
    assert period.period_start == date(2025, 1, 1)
    assert period.period_end == date(2025, 3, 31)
    assert period.fiscal_year == "2025"
    assert period.label == "FY2025 Q1"

    with pytest.raises(ValueError):
        make_period("x", "not a date", "2025-03-31")


def test_to_date():
    assert to_date("2025-02-03") == date(2025, 2, 3)
    assert to_date(None) is None
    assert to_date("garbage") is None


def test_contains_is_inclusive(q1):
    assert q1.contains(date(2025, 1, 1))
    assert q1.contains(date(2025, 3, 31))
    assert not q1.contains(date(2025, 4, 1))
    assert not q1.contains(None)


def test_previous_period(periods, q4_2024, q1, q2):
    assert [p.period_id for p in sort_periods(periods)] == [q4_2024.period_id, q1.period_id, q2.period_id]
    assert previous_period(periods, q2) == q1
    assert previous_period(periods, q1) == q4_2024
    assert previous_period(periods, q4_2024) is None


def test_periods_in_year(periods, q1, q2):
    assert periods_in_year(periods, 2025) == [q1, q2]
    assert periods_in_year(periods, "2030") == []


def test_period_for_date(periods, q2):
    assert period_for_date(periods, "2025-05-17") == q2
    assert period_for_date(periods, date(2023, 1, 1)) is None
