# revops/quarterly_rollup/metrics.py
"""
Attainment & KPI Calculations for Quarterly Rollups

VERSION: 2.1.0
CHANGELOG:
- v2.1.0: Company attainment (quarter + fiscal year), rep attainment ranking,
          top partner deals
- v2.0.0: Single KPI formula set for every rollup level. Parents are computed
          from summed totals, never from averaged child ratios
- v1.0.0: Initial attainment / win-rate / coverage

Every ratio uses safe_div(): an absent value (None) whenever the
denominator is zero or either operand is missing or non-finite.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Optional, Tuple

from .aggregator import RollupGroup
from .constants import (
    BUCKET_WON,
    BUCKET_LOST,
    MIX_BUCKETS,
    LEVEL_COMPANY,
    COMPANY_ID,
    ROLE_LEVEL_TO_ROLLUP,
    RANKING_DEFAULT_LIMIT,
    RANKING_MAX_LIMIT,
)
from .facts import Fact
from .periods import QuotaPeriod, periods_in_year

logger = logging.getLogger(__name__)


def safe_div(numerator, denominator) -> Optional[float]:
    """numerator / denominator, or None when undefined."""
    if numerator is None or denominator is None:
        return None
    try:
        n = float(numerator)
        d = float(denominator)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n) or not math.isfinite(d) or d == 0:
        return None
    return n / d


def _finite_or_zero(value, label: str) -> float:
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric {label} {value!r} treated as 0")
        return 0.0
    if not math.isfinite(number):
        logger.warning(f"Non-finite {label} {value!r} treated as 0")
        return 0.0
    return number


# =============================================================================
# QUOTAS
# =============================================================================

@dataclass(frozen=True)
class QuotaRecord:
    """One quota row for one entity and period."""
    period_id: str
    role_level: int
    quota_amount: float
    rep_id: Optional[Hashable] = None
    carry_forward: Optional[float] = None
    adjusted_amount: Optional[float] = None
    annual_target: Optional[float] = None

    @property
    def level(self) -> Optional[str]:
        return ROLE_LEVEL_TO_ROLLUP.get(self.role_level)

    @property
    def entity_id(self) -> Hashable:
        return COMPANY_ID if self.level == LEVEL_COMPANY else self.rep_id


@dataclass(frozen=True)
class QuotaTotal:
    """Summed quota rows for one (period, level, entity)."""
    quota_amount: float = 0.0
    carry_forward: float = 0.0
    adjusted_amount: Optional[float] = None
    row_count: int = 0

    @property
    def effective_quota(self) -> Optional[float]:
        """Adjusted amount when any row carries one, else quota + carry-forward."""
        if self.row_count == 0:
            return None
        if self.adjusted_amount is not None:
            return self.adjusted_amount
        return math.fsum((self.quota_amount, self.carry_forward))


def sum_quotas(quotas: Iterable[QuotaRecord]) -> QuotaTotal:
    """Sum quota rows (corrections stack as additional rows)."""
    amounts, carries, adjusted = [], [], []
    rows = 0
    for q in quotas:
        rows += 1
        amounts.append(_finite_or_zero(q.quota_amount, 'quota_amount'))
        carries.append(_finite_or_zero(q.carry_forward, 'carry_forward'))
        if q.adjusted_amount is not None:
            adjusted.append(_finite_or_zero(q.adjusted_amount, 'adjusted_amount'))
    return QuotaTotal(
        quota_amount=math.fsum(amounts),
        carry_forward=math.fsum(carries),
        adjusted_amount=math.fsum(adjusted) if adjusted else None,
        row_count=rows,
    )


def index_quotas(quotas: Iterable[QuotaRecord]) -> Dict[Tuple[str, str, Hashable], QuotaTotal]:
    """Quota totals keyed by (period_id, level, entity_id)."""
    buckets: Dict[Tuple[str, str, Hashable], List[QuotaRecord]] = {}
    for q in quotas:
        if q.level is None:
            logger.warning(f"Quota row with unknown role_level {q.role_level} ignored")
            continue
        buckets.setdefault((q.period_id, q.level, q.entity_id), []).append(q)
    return {key: sum_quotas(rows) for key, rows in buckets.items()}


# =============================================================================
# KPI ROW
# =============================================================================

@dataclass(frozen=True)
class KpiRow:
    """Rollup totals plus derived ratios for one (period, level, entity)."""
    period_id: Optional[str]
    level: str
    entity_id: Hashable

    # Totals
    quota_amount: float = 0.0
    effective_quota: Optional[float] = None
    won_amount: float = 0.0
    lost_amount: float = 0.0
    commit_amount: float = 0.0
    best_amount: float = 0.0
    pipeline_amount: float = 0.0
    active_amount: float = 0.0
    closed_amount: float = 0.0
    won_count: int = 0
    lost_count: int = 0
    active_count: int = 0
    total_count: int = 0
    partner_closed_amount: float = 0.0
    partner_won_amount: float = 0.0
    created_amount: float = 0.0
    created_count: int = 0

    # Ratios (None when undefined)
    attainment: Optional[float] = None
    gap_to_quota: Optional[float] = None
    win_rate: Optional[float] = None
    opp_to_win: Optional[float] = None
    commit_coverage: Optional[float] = None
    best_coverage: Optional[float] = None
    aov: Optional[float] = None
    mix_pipeline: Optional[float] = None
    mix_best: Optional[float] = None
    mix_commit: Optional[float] = None
    mix_won: Optional[float] = None
    partner_contribution: Optional[float] = None
    partner_win_rate: Optional[float] = None
    avg_days_won: Optional[float] = None
    avg_days_lost: Optional[float] = None
    avg_days_active: Optional[float] = None
    avg_health: Optional[float] = None

    @property
    def key(self) -> Tuple[Optional[str], str, Hashable]:
        return (self.period_id, self.level, self.entity_id)

    def average_cycle_days(self, outcome: str) -> Optional[float]:
        if outcome == BUCKET_WON:
            return self.avg_days_won
        if outcome == BUCKET_LOST:
            return self.avg_days_lost
        raise ValueError(f"outcome must be '{BUCKET_WON}' or '{BUCKET_LOST}', got {outcome!r}")


def compute_kpis(group: RollupGroup, quota: Optional[QuotaTotal] = None) -> KpiRow:
    """
    Derive the KPI row of one rollup group.

    Manager/VP/company groups already carry summed totals (and summed
    cycle-day sums/counts), so the same formulas give count-weighted
    averages at every level.
    """
    quota = quota or QuotaTotal()
    quota_amount = quota.quota_amount
    quota_denominator = quota_amount if quota.row_count else None

    mix_total = math.fsum(group.amount_for(b) for b in MIX_BUCKETS)

    return KpiRow(
        period_id=group.period_id,
        level=group.level,
        entity_id=group.entity_id,
        quota_amount=quota_amount,
        effective_quota=quota.effective_quota,
        won_amount=group.won_amount,
        lost_amount=group.lost_amount,
        commit_amount=group.commit_amount,
        best_amount=group.best_amount,
        pipeline_amount=group.pipeline_amount,
        active_amount=group.active_amount,
        closed_amount=group.closed_amount,
        won_count=group.won_count,
        lost_count=group.lost_count,
        active_count=group.active_count,
        total_count=group.total_count,
        partner_closed_amount=group.partner_closed_amount,
        partner_won_amount=group.partner_won_amount,
        created_amount=group.created_amount,
        created_count=group.created_count,
        attainment=safe_div(group.won_amount, quota_denominator),
        gap_to_quota=(quota_amount - group.won_amount) if quota.row_count else None,
        win_rate=safe_div(group.won_count, group.won_count + group.lost_count),
        opp_to_win=safe_div(group.won_count, group.total_count),
        commit_coverage=safe_div(group.commit_amount, quota_denominator),
        best_coverage=safe_div(group.best_amount, quota_denominator),
        aov=safe_div(group.won_amount, group.won_count),
        mix_pipeline=safe_div(group.pipeline_amount, mix_total),
        mix_best=safe_div(group.best_amount, mix_total),
        mix_commit=safe_div(group.commit_amount, mix_total),
        mix_won=safe_div(group.won_amount, mix_total),
        partner_contribution=safe_div(group.partner_closed_amount, group.closed_amount),
        partner_win_rate=safe_div(group.partner_won_count, group.partner_closed_count),
        avg_days_won=safe_div(group.won_age_sum, group.won_age_count),
        avg_days_lost=safe_div(group.lost_age_sum, group.lost_age_count),
        avg_days_active=safe_div(group.active_age_sum, group.active_age_count),
        avg_health=safe_div(group.health_sum, group.health_count),
    )


def weighted_mean(pairs: Iterable[Tuple[Optional[float], int]]) -> Optional[float]:
    """
    Count-weighted mean of per-child means.

    Children without a mean or with zero weight are skipped; None when no
    child contributes.
    """
    numerators, total = [], 0
    for mean, count in pairs:
        if mean is None or not count:
            continue
        numerators.append(mean * count)
        total += count
    return safe_div(math.fsum(numerators), total)


# =============================================================================
# CALCULATOR
# =============================================================================

class RollupMetrics:
    """
    KPI calculations for hierarchical rollups.

    Usage:
        metrics = RollupMetrics(quota_records)
        rows = metrics.kpi_rows(groups)
        company = metrics.company_attainment(period, periods, company_won_by_period)
    """

    def __init__(self, quotas: Optional[Iterable[QuotaRecord]] = None):
        """
        Args:
            quotas: Quota rows for every period/level in play (optional)
        """
        self.quotas: List[QuotaRecord] = list(quotas or [])
        self._quota_index = index_quotas(self.quotas)

    def quota_for(self, period_id: Optional[str], level: str, entity_id: Hashable) -> QuotaTotal:
        return self._quota_index.get((period_id, level, entity_id), QuotaTotal())

    def kpi_row(self, group: RollupGroup) -> KpiRow:
        return compute_kpis(group, self.quota_for(group.period_id, group.level, group.entity_id))

    def kpi_rows(self, groups: Iterable[RollupGroup]) -> List[KpiRow]:
        return [self.kpi_row(g) for g in groups]

    def kpi_rows_with_quota_only(
        self,
        groups: Iterable[RollupGroup],
        period_id: str,
        level: str
    ) -> List[KpiRow]:
        """
        KPI rows for a level, adding all-zero rows for entities that hold a
        quota in the period but have no facts.
        """
        rows = [self.kpi_row(g) for g in groups if g.level == level and g.period_id == period_id]
        seen = {r.entity_id for r in rows}
        for (q_period, q_level, entity_id), total in sorted(self._quota_index.items(), key=lambda kv: str(kv[0])):
            if q_period == period_id and q_level == level and entity_id not in seen:
                rows.append(compute_kpis(RollupGroup.empty(period_id, level, entity_id), total))
        return rows

    # =========================================================================
    # COMPANY ATTAINMENT
    # =========================================================================

    def company_attainment(
        self,
        period: QuotaPeriod,
        periods: Iterable[QuotaPeriod],
        won_by_period: Dict[str, float]
    ) -> Dict:
        """
        Quarterly and fiscal-year company attainment.

        Args:
            period: Current period
            periods: The org's fiscal calendar
            won_by_period: Company won amount per period id

        Returns:
            Dict with quarterly/annual actual, quota and attainment
        """
        quarterly_actual = _finite_or_zero(won_by_period.get(period.period_id), 'won_amount')
        quarterly_quota = self.quota_for(period.period_id, LEVEL_COMPANY, COMPANY_ID)

        year_periods = periods_in_year(periods, period.fiscal_year) if period.fiscal_year else [period]
        year_ids = [p.period_id for p in year_periods] or [period.period_id]
        annual_actual = math.fsum(
            _finite_or_zero(won_by_period.get(pid), 'won_amount') for pid in year_ids
        )
        annual_quota = math.fsum(
            self.quota_for(pid, LEVEL_COMPANY, COMPANY_ID).quota_amount for pid in year_ids
        )

        return {
            'fiscal_year': period.fiscal_year,
            'period_start': period.period_start,
            'period_end': period.period_end,
            'quarterly_actual_amount': quarterly_actual,
            'quarterly_company_quota_amount': quarterly_quota.quota_amount,
            'quarterly_attainment': safe_div(quarterly_actual, quarterly_quota.quota_amount),
            'annual_actual_amount': annual_actual,
            'annual_company_quota_amount': annual_quota,
            'annual_attainment': safe_div(annual_actual, annual_quota),
        }

    # =========================================================================
    # RANKINGS
    # =========================================================================

    @staticmethod
    def rank_by_attainment(rows: Iterable[KpiRow], limit: Optional[int] = None) -> List[KpiRow]:
        """
        Rows with a quota, best attainment first.

        Order: attainment desc (absent last), quota desc, entity id asc.
        ``limit`` is clamped to [1, 500].
        """
        limit = RANKING_DEFAULT_LIMIT if limit is None else max(1, min(RANKING_MAX_LIMIT, int(limit)))
        with_quota = [r for r in rows if r.effective_quota is not None]
        with_quota.sort(key=lambda r: (
            r.attainment is None,
            -(r.attainment or 0.0),
            -r.quota_amount,
            str(r.entity_id),
        ))
        return with_quota[:limit]


def top_partner_deals(facts: Iterable[Fact], outcome: str = BUCKET_WON, limit: int = 10) -> List[Fact]:
    """
    Largest partner deals with the given outcome.

    Order: amount desc, then deal id desc.
    """
    if outcome not in (BUCKET_WON, BUCKET_LOST):
        raise ValueError(f"outcome must be '{BUCKET_WON}' or '{BUCKET_LOST}', got {outcome!r}")
    limit = max(1, min(RANKING_MAX_LIMIT, int(limit)))
    matches = [f for f in facts if f.is_partner and f.bucket == outcome]
    matches.sort(key=lambda f: str(f.deal_id), reverse=True)
    matches.sort(key=lambda f: f.amount, reverse=True)
    return matches[:limit]
