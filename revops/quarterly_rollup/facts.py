# revops/quarterly_rollup/facts.py
"""
Fact Normalizer - typed, classified view of raw deal records

VERSION: 1.2.0
CHANGELOG:
- v1.2.0: Single normalizer for both windowing modes (WindowMode flag)
- v1.1.0: Active-deal age measured to min(as_of, period end)
- v1.0.0: Initial Deal/Fact records

Windowing modes:
- CLOSED_IN_PERIOD: close date must fall inside the period; the bucket
  comes from the stage label.
- CREATED_IN_PERIOD: create date must fall inside the period. Deals whose
  label says won/lost AND whose close date also falls inside the period
  keep that outcome; every other deal is scored by its forecast bucket.

Malformed records never raise: non-finite amounts become 0 and
unparseable dates become absent (a warning is logged per record).
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Hashable, Iterable, List, Optional, Tuple

import pandas as pd

from .constants import (
    BUCKET_WON,
    BUCKET_LOST,
    SECONDS_PER_DAY,
    DEFAULT_HEALTH_SCALE,
)
from .periods import QuotaPeriod
from .stage_classifier import classify, forecast_bucket, is_active, is_closed

logger = logging.getLogger(__name__)


class WindowMode(str, Enum):
    """Which deal date places a deal inside a rollup period."""
    CLOSED_IN_PERIOD = 'closed'
    CREATED_IN_PERIOD = 'created'

    @classmethod
    def parse(cls, value) -> 'WindowMode':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown window mode {value!r}; expected one of {[m.value for m in cls]}"
            )


@dataclass(frozen=True)
class Deal:
    """One opportunity as supplied by the upstream record provider."""
    deal_id: Hashable
    rep_id: Optional[Hashable]
    amount: Any = None
    stage: Any = ''
    partner_name: Optional[str] = None
    create_date: Any = None
    close_date: Any = None
    health_score: Any = None


@dataclass(frozen=True)
class Fact:
    """Normalized, classified view of one Deal inside one period."""
    deal_id: Hashable
    rep_id: Optional[Hashable]
    period_id: Optional[str]
    bucket: str
    amount: float
    age_days: Optional[int] = None
    active_age_days: Optional[float] = None
    partner_name: Optional[str] = None
    health: Optional[float] = None
    created_in_period: bool = False

    @property
    def is_partner(self) -> bool:
        return self.partner_name is not None

    @property
    def is_closed(self) -> bool:
        return is_closed(self.bucket)

    @property
    def is_active(self) -> bool:
        return is_active(self.bucket)


# =============================================================================
# COERCION HELPERS
# =============================================================================

def coerce_amount(value: Any) -> Tuple[float, bool]:
    """
    Amount as a finite float.

    Returns:
        (amount, was_malformed): missing values (None, NaN, NA) map to 0
        silently; infinities and unparseable values map to 0 and are flagged.
    """
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return 0.0, False
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0, True
    if not math.isfinite(amount):
        return 0.0, True
    return amount, False


def coerce_timestamp(value: Any, tz: str = 'UTC') -> Tuple[Optional[pd.Timestamp], bool]:
    """
    Parse a timestamp to a tz-aware UTC pandas Timestamp.

    Naive values are read in ``tz``. Returns (timestamp, was_malformed).
    """
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return None, False
    if isinstance(value, str) and not value.strip():
        return None, False
    parsed = pd.to_datetime(value, errors='coerce')
    if parsed is None or pd.isna(parsed):
        return None, True
    if parsed.tzinfo is None:
        parsed = parsed.tz_localize(tz)
    return parsed.tz_convert('UTC'), False


def coerce_health(value: Any, scale: float = DEFAULT_HEALTH_SCALE) -> Optional[float]:
    """Raw 0..scale health score as a 0..1 fraction; 0 and below mean unscored."""
    if value is None:
        return None
    try:
        raw = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(raw) or raw <= 0:
        return None
    return min(1.0, max(0.0, raw / scale))


def normalize_partner(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    name = value.strip()
    return name or None


def _local_date(ts: Optional[pd.Timestamp], tz: str) -> Optional[date]:
    if ts is None:
        return None
    return ts.tz_convert(tz).date()


# =============================================================================
# NORMALIZER
# =============================================================================

class FactNormalizer:
    """
    Convert Deals into Facts for one period.

    Usage:
        normalizer = FactNormalizer(WindowMode.CLOSED_IN_PERIOD)
        facts = normalizer.build_facts(deals, period)
    """

    def __init__(
        self,
        mode: Any = WindowMode.CLOSED_IN_PERIOD,
        health_scale: float = DEFAULT_HEALTH_SCALE,
        tz: str = 'UTC',
        as_of: Optional[datetime] = None
    ):
        """
        Args:
            mode: WindowMode or its string value ('closed' / 'created')
            health_scale: Divisor turning raw health scores into fractions
            tz: Timezone for naive timestamps and period-date comparisons
            as_of: Reference time for the age of open deals (defaults to now)
        """
        if health_scale <= 0:
            raise ValueError(f"health_scale must be positive, got {health_scale}")
        self.mode = WindowMode.parse(mode)
        self.health_scale = float(health_scale)
        self.tz = tz
        as_of_ts = pd.Timestamp(as_of) if as_of is not None else pd.Timestamp(datetime.now(timezone.utc))
        if as_of_ts.tzinfo is None:
            as_of_ts = as_of_ts.tz_localize(tz)
        self.as_of = as_of_ts.tz_convert('UTC')

    def to_fact(
        self,
        deal: Deal,
        period_start: date,
        period_end: date,
        period_id: Optional[str] = None
    ) -> Optional[Fact]:
        """
        Normalize one deal for the window [period_start, period_end].

        Returns:
            Fact, or None when the deal falls outside the window.
        """
        amount, bad_amount = coerce_amount(deal.amount)
        created, bad_created = coerce_timestamp(deal.create_date, self.tz)
        closed, bad_closed = coerce_timestamp(deal.close_date, self.tz)
        if bad_amount or bad_created or bad_closed:
            logger.warning(
                f"Deal {deal.deal_id}: coerced malformed fields "
                f"(amount={bad_amount}, create_date={bad_created}, close_date={bad_closed})"
            )

        created_day = _local_date(created, self.tz)
        closed_day = _local_date(closed, self.tz)
        created_in = created_day is not None and period_start <= created_day <= period_end
        closed_in = closed_day is not None and period_start <= closed_day <= period_end

        label_bucket = classify(deal.stage)
        if self.mode is WindowMode.CLOSED_IN_PERIOD:
            if not closed_in:
                return None
            bucket = label_bucket
        else:
            if not created_in:
                return None
            if label_bucket in (BUCKET_WON, BUCKET_LOST) and closed_in:
                bucket = label_bucket
            else:
                bucket = forecast_bucket(deal.stage)

        age_days = None
        if created is not None and closed is not None and is_closed(bucket):
            seconds = (closed - created).total_seconds()
            age_days = max(0, int(round(seconds / SECONDS_PER_DAY)))

        active_age = None
        if created is not None and is_active(bucket):
            end_ts = pd.Timestamp(period_end).tz_localize(self.tz).tz_convert('UTC') + pd.Timedelta(days=1)
            horizon = min(self.as_of, end_ts)
            active_age = max(0.0, (horizon - created).total_seconds() / SECONDS_PER_DAY)

        return Fact(
            deal_id=deal.deal_id,
            rep_id=deal.rep_id,
            period_id=period_id,
            bucket=bucket,
            amount=amount,
            age_days=age_days,
            active_age_days=active_age,
            partner_name=normalize_partner(deal.partner_name),
            health=coerce_health(deal.health_score, self.health_scale),
            created_in_period=created_in,
        )

    def build_facts(self, deals: Iterable[Deal], period: QuotaPeriod) -> List[Fact]:
        """Normalize every deal for a period, dropping out-of-window deals."""
        facts = []
        excluded = 0
        for deal in deals:
            fact = self.to_fact(deal, period.period_start, period.period_end, period.period_id)
            if fact is None:
                excluded += 1
                continue
            facts.append(fact)
        logger.debug(
            f"[FactNormalizer] {period.label} ({self.mode.value}): "
            f"{len(facts):,} facts, {excluded:,} excluded"
        )
        return facts
