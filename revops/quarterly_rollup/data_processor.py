# revops/quarterly_rollup/data_processor.py
"""
Rollup Processor - end-to-end pipeline for one or many periods

VERSION: 2.0.0
CHANGELOG:
- v2.0.0: process_many() fans independent periods out to a thread pool
- v1.1.0: Quarter-over-quarter deltas against the previous fiscal period
- v1.0.0: classify -> normalize -> aggregate -> KPIs -> scores

Load once, compute many: records are converted once in the constructor;
every process() call builds fresh facts, groups, KPI rows and scores for
its (period, scope) and shares no mutable state with other calls, so
calls may run concurrently.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from ..config import config
from .aggregator import ALL_REPS, RollupAggregator, RollupGroup, find_group
from .channel_scoring import ChannelScorer, ScoreRow
from .constants import (
    BUCKET_WON,
    BUCKET_LOST,
    LEVEL_REP,
    LEVEL_COMPANY,
    COMPANY_ID,
)
from .facts import Deal, Fact, FactNormalizer, WindowMode
from .hierarchy import HierarchyIndex, RepEntry, active_rep_ids, build_index
from .metrics import KpiRow, QuotaRecord, RollupMetrics, compute_kpis, top_partner_deals
from .period_comparison import delta_rows
from .periods import QuotaPeriod, previous_period, periods_in_year, sort_periods

logger = logging.getLogger(__name__)

Scope = Union[str, Tuple[Hashable, ...]]


@dataclass(frozen=True)
class RollupResult:
    """Everything computed for one (period, scope)."""
    period: QuotaPeriod
    scope: Scope
    facts: Tuple[Fact, ...] = ()
    groups: Tuple[RollupGroup, ...] = ()
    kpi_rows: Tuple[KpiRow, ...] = ()
    score_rows: Tuple[ScoreRow, ...] = ()
    scope_row: Optional[KpiRow] = None
    company_attainment: Dict = field(default_factory=dict)
    rep_ranking: Tuple[KpiRow, ...] = ()
    top_partner_won: Tuple[Fact, ...] = ()
    top_partner_lost: Tuple[Fact, ...] = ()

    def rows_at_level(self, level: str) -> List[KpiRow]:
        return [r for r in self.kpi_rows if r.level == level]


class RollupProcessor:
    """
    Run the rollup pipeline over in-memory records.

    Usage:
        processor = RollupProcessor(deals, quotas, reps, periods)
        result = processor.process(period)                    # whole company
        team = processor.process(period, scope=processor.scope_for_manager('m1'))
        by_period = processor.process_many(periods)
        qoq = processor.compare_to_previous(period)
    """

    def __init__(
        self,
        deals: Iterable[Deal],
        quotas: Iterable[QuotaRecord],
        reps: Iterable[RepEntry],
        periods: Iterable[QuotaPeriod],
        window_mode=None,
        health_scale: Optional[float] = None,
        tz: Optional[str] = None,
        as_of: Optional[datetime] = None,
        max_workers: Optional[int] = None,
        debug_timing: Optional[bool] = None,
        strict_hierarchy: bool = False
    ):
        """
        Args:
            deals: Deal records (any order)
            quotas: Quota rows for the periods in play
            reps: Rep directory (active and inactive)
            periods: Fiscal calendar
            window_mode: 'closed' / 'created' (default from config)
            health_scale, tz, max_workers, debug_timing: default from config
            as_of: Reference time for open-deal age (default now)
            strict_hierarchy: Raise on hierarchy cycles instead of routing
                              affected reps to "(unassigned)"
        """
        settings = config.get_rollup_settings()
        self.window_mode = WindowMode.parse(window_mode or settings.window_mode)
        self.health_scale = health_scale if health_scale is not None else settings.health_score_scale
        self.tz = tz or settings.timezone
        self.max_workers = max_workers if max_workers is not None else settings.max_workers
        self.debug_timing = settings.debug_timing if debug_timing is None else debug_timing
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

        self.deals: Tuple[Deal, ...] = tuple(deals)
        self.reps: Tuple[RepEntry, ...] = tuple(reps)
        self.periods: List[QuotaPeriod] = sort_periods(periods)
        self.hierarchy: HierarchyIndex = build_index(self.reps, strict=strict_hierarchy)
        self.metrics = RollupMetrics(quotas)

        # One as_of for every period so fan-out equals a sequential run
        self.as_of = as_of or datetime.now().astimezone()

    # =========================================================================
    # SCOPES
    # =========================================================================

    def scope_for_manager(self, manager_id: Hashable, active_only: bool = False) -> Tuple[Hashable, ...]:
        """Manager plus every report below them (optionally active reps only)."""
        team = self.hierarchy.descendants(manager_id, include_self=True)
        if active_only:
            active = set(active_rep_ids(self.reps))
            team = [rep_id for rep_id in team if rep_id in active]
        return tuple(team)

    def _normalizer(self, mode: Optional[WindowMode] = None) -> FactNormalizer:
        return FactNormalizer(
            mode=mode or self.window_mode,
            health_scale=self.health_scale,
            tz=self.tz,
            as_of=self.as_of,
        )

    # =========================================================================
    # MAIN ENTRY POINT
    # =========================================================================

    def process(self, period: QuotaPeriod, scope: Union[str, Sequence[Hashable]] = ALL_REPS) -> RollupResult:
        """
        Full pipeline for one period and scope.

        Args:
            period: Period to roll up
            scope: 'all' or rep ids (see scope_for_manager)

        Returns:
            RollupResult with groups, KPI rows, scores and rankings
        """
        start_time = time.perf_counter()
        scope_key: Scope = scope if isinstance(scope, str) else tuple(scope)

        # Step 1: facts
        facts = self._normalizer().build_facts(self.deals, period)
        created_facts = None
        if self.window_mode is WindowMode.CLOSED_IN_PERIOD:
            created_facts = self._normalizer(WindowMode.CREATED_IN_PERIOD).build_facts(self.deals, period)
        step1_time = time.perf_counter()

        # Step 2: rollup groups
        aggregator = RollupAggregator(self.hierarchy, debug_timing=self.debug_timing)
        groups = aggregator.aggregate(facts, scope_rep_ids=scope_key, created_facts=created_facts)
        step2_time = time.perf_counter()

        # Step 3: KPIs
        kpi_rows = self.metrics.kpi_rows(groups)
        company_group = find_group(groups, LEVEL_COMPANY, COMPANY_ID, period.period_id)
        if company_group is None:
            company_group = RollupGroup.empty(period.period_id, LEVEL_COMPANY, COMPANY_ID)
        scope_row = compute_kpis(
            company_group,
            self.metrics.quota_for(period.period_id, LEVEL_COMPANY, COMPANY_ID) if scope_key == ALL_REPS else None,
        )
        rep_rows = self.metrics.kpi_rows_with_quota_only(groups, period.period_id, LEVEL_REP)
        if scope_key != ALL_REPS:
            allowed = set(scope_key)
            rep_rows = [r for r in rep_rows if r.entity_id in allowed]
        step3_time = time.perf_counter()

        # Step 4: channel scores
        in_scope = self._in_scope(facts, scope_key)
        score_rows = ChannelScorer(period.period_id).score_facts(in_scope)
        step4_time = time.perf_counter()

        result = RollupResult(
            period=period,
            scope=scope_key,
            facts=tuple(facts),
            groups=tuple(groups),
            kpi_rows=tuple(kpi_rows),
            score_rows=tuple(score_rows),
            scope_row=scope_row,
            company_attainment=self._company_attainment(period, company_group if scope_key == ALL_REPS else None),
            rep_ranking=tuple(RollupMetrics.rank_by_attainment(rep_rows)),
            top_partner_won=tuple(top_partner_deals(in_scope, BUCKET_WON)),
            top_partner_lost=tuple(top_partner_deals(in_scope, BUCKET_LOST)),
        )

        if self.debug_timing:
            logger.info(
                f"[process] {period.label}: facts {step1_time - start_time:.3f}s, "
                f"aggregate {step2_time - step1_time:.3f}s, kpis {step3_time - step2_time:.3f}s, "
                f"scores {step4_time - step3_time:.3f}s, total {time.perf_counter() - start_time:.3f}s"
            )
        logger.debug(f"[process] {period.label}: {len(groups):,} groups, {len(score_rows)} motions")
        return result

    @staticmethod
    def _in_scope(facts: Sequence[Fact], scope_key: Scope) -> List[Fact]:
        if scope_key == ALL_REPS:
            return list(facts)
        allowed = set(scope_key)
        return [f for f in facts if f.rep_id in allowed]

    def _company_won(self, period: QuotaPeriod) -> float:
        """Company won amount for a period in the configured windowing mode."""
        facts = self._normalizer().build_facts(self.deals, period)
        groups = RollupAggregator(self.hierarchy).aggregate(facts)
        company = find_group(groups, LEVEL_COMPANY, COMPANY_ID, period.period_id)
        return company.won_amount if company is not None else 0.0

    def _company_attainment(self, period: QuotaPeriod, company_group: Optional[RollupGroup]) -> Dict:
        """Quarter and fiscal-year attainment (company scope only)."""
        if company_group is None:
            return {}
        won_by_period = {period.period_id: company_group.won_amount}
        if period.fiscal_year:
            for other in periods_in_year(self.periods, period.fiscal_year):
                if other.period_id not in won_by_period:
                    won_by_period[other.period_id] = self._company_won(other)
        return self.metrics.company_attainment(period, self.periods, won_by_period)

    # =========================================================================
    # MULTI-PERIOD
    # =========================================================================

    def process_many(
        self,
        periods: Optional[Iterable[QuotaPeriod]] = None,
        scope: Union[str, Sequence[Hashable]] = ALL_REPS
    ) -> Dict[str, RollupResult]:
        """
        Process independent periods concurrently.

        Returns:
            {period_id: RollupResult}, ordered by period start
        """
        start_time = time.perf_counter()
        targets = sort_periods(periods) if periods is not None else list(self.periods)
        if not targets:
            return {}

        workers = min(self.max_workers, len(targets))
        if workers == 1:
            results = [self.process(p, scope) for p in targets]
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(lambda p: self.process(p, scope), targets))

        if self.debug_timing:
            logger.info(
                f"[process_many] {len(targets)} periods on {workers} worker(s): "
                f"{time.perf_counter() - start_time:.3f}s"
            )
        return {r.period.period_id: r for r in results}

    def compare_to_previous(
        self,
        period: QuotaPeriod,
        scope: Union[str, Sequence[Hashable]] = ALL_REPS,
        level: str = LEVEL_REP
    ) -> Dict:
        """
        Quarter-over-quarter deltas against the immediately prior period.

        Returns:
            Dict with 'current', 'previous' (None for the first period),
            'kpi_deltas' (per entity at ``level``) and 'score_deltas'
            (per motion)
        """
        prior = previous_period(self.periods, period)
        if prior is None:
            current = self.process(period, scope)
            return {'current': current, 'previous': None, 'kpi_deltas': [], 'score_deltas': []}

        by_period = self.process_many([period, prior], scope)
        current, previous = by_period[period.period_id], by_period[prior.period_id]
        return {
            'current': current,
            'previous': previous,
            'kpi_deltas': delta_rows(current.rows_at_level(level), previous.rows_at_level(level)),
            'score_deltas': delta_rows(current.score_rows, previous.score_rows, key='motion'),
        }


# =============================================================================
# DATAFRAME VIEWS
# =============================================================================

def _rows_to_frame(rows: Sequence, empty_columns: Sequence[str]) -> pd.DataFrame:
    if not rows:
        return pd.DataFrame(columns=list(empty_columns))
    return pd.DataFrame([asdict(r) for r in rows])


def kpi_rows_to_frame(rows: Sequence[KpiRow]) -> pd.DataFrame:
    """KPI rows as a DataFrame, one row per (period, level, entity)."""
    return _rows_to_frame(rows, list(KpiRow.__dataclass_fields__))


def score_rows_to_frame(rows: Sequence[ScoreRow]) -> pd.DataFrame:
    """Score rows as a DataFrame, sorted by WIC (highest first)."""
    df = _rows_to_frame(rows, list(ScoreRow.__dataclass_fields__))
    if df.empty:
        return df
    return df.sort_values(['wic', 'motion'], ascending=[False, True]).reset_index(drop=True)
