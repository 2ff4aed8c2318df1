# revops/quarterly_rollup/periods.py
"""
Fiscal Period Helpers

VERSION: 1.0.0

Quota periods are supplied by the caller (fiscal calendars differ per org);
these helpers only order and look them up.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaPeriod:
    """One fiscal period with inclusive start/end dates."""
    period_id: str
    period_start: date
    period_end: date
    fiscal_year: Optional[str] = None
    fiscal_quarter: Optional[str] = None
    period_name: Optional[str] = None

    def __post_init__(self):
        if self.period_start > self.period_end:
            raise ValueError(
                f"Period {self.period_id}: start {self.period_start} is after end {self.period_end}"
            )

    def contains(self, day: Optional[date]) -> bool:
        if day is None:
            return False
        return self.period_start <= day <= self.period_end

    @property
    def label(self) -> str:
        if self.period_name:
            return self.period_name
        if self.fiscal_year and self.fiscal_quarter:
            return f"FY{self.fiscal_year} Q{self.fiscal_quarter}"
        return f"{self.period_start.isoformat()} - {self.period_end.isoformat()}"


def to_date(value) -> Optional[date]:
    """Coerce date-like input to a date (None when unparseable)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = pd.to_datetime(value, errors='coerce')
    if pd.isna(parsed):
        return None
    return parsed.date()


def make_period(
    period_id,
    period_start,
    period_end,
    fiscal_year=None,
    fiscal_quarter=None,
    period_name: Optional[str] = None
) -> QuotaPeriod:
    """Build a QuotaPeriod from loosely typed values (strings, timestamps)."""
    start = to_date(period_start)
    end = to_date(period_end)
    if start is None or end is None:
        raise ValueError(f"Period {period_id}: unparseable bounds {period_start!r}, {period_end!r}")
    return QuotaPeriod(
        period_id=str(period_id),
        period_start=start,
        period_end=end,
        fiscal_year=None if fiscal_year is None else str(fiscal_year),
        fiscal_quarter=None if fiscal_quarter is None else str(fiscal_quarter),
        period_name=period_name,
    )


def sort_periods(periods: Iterable[QuotaPeriod]) -> List[QuotaPeriod]:
    return sorted(periods, key=lambda p: (p.period_start, p.period_end, p.period_id))


def previous_period(
    periods: Iterable[QuotaPeriod],
    current: QuotaPeriod
) -> Optional[QuotaPeriod]:
    """
    Immediately prior period (latest start before the current start).

    Used for quarter-over-quarter comparisons. Returns None for the first
    period of the calendar.
    """
    earlier = [
        p for p in sort_periods(periods)
        if p.period_start < current.period_start and p.period_id != current.period_id
    ]
    if not earlier:
        logger.debug(f"No period before {current.label}")
        return None
    return earlier[-1]


def periods_in_year(periods: Iterable[QuotaPeriod], fiscal_year) -> List[QuotaPeriod]:
    """All periods of one fiscal year, ordered by start date."""
    wanted = str(fiscal_year)
    return [p for p in sort_periods(periods) if p.fiscal_year == wanted]


def period_for_date(periods: Iterable[QuotaPeriod], day) -> Optional[QuotaPeriod]:
    """The period containing ``day`` (first by start date when periods overlap)."""
    target = to_date(day)
    for period in sort_periods(periods):
        if period.contains(target):
            return period
    return None
