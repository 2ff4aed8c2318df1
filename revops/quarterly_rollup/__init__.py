# revops/quarterly_rollup/__init__.py
"""
Quarterly Rollup Module

Quarterly performance rollup and channel scoring for revenue operations.

VERSION: 2.1.0
CHANGELOG:
- v2.1.0: Company attainment (quarter + fiscal year), rep ranking,
          top partner deals, QoQ deltas
- v2.0.0: Multi-period fan-out (RollupProcessor.process_many)
- v1.2.0: Channel scoring (WIC / PQS / CEI)
- v1.0.0: Stage classifier, fact normalizer, hierarchy, aggregator, KPIs

Components:
- classify / forecast_bucket: Stage label -> bucket
- FactNormalizer: Deal -> Fact for one period (closed or created window)
- build_index / HierarchyIndex: Rep directory lookups
- RollupAggregator: Facts -> rep / manager / VP / company groups
- RollupMetrics / compute_kpis: Attainment, win rate, coverage, mix
- ChannelScorer: WIC / PQS / CEI per motion
- delta: Period-over-period differences
- RecordLoader: Upstream DataFrames -> records
- RollupProcessor: End-to-end pipeline

Usage:
    from revops.quarterly_rollup import (
        RecordLoader,
        RollupProcessor,
        kpi_rows_to_frame,
    )

    loader = RecordLoader()
    processor = RollupProcessor(
        loader.load_deals(deals_df),
        loader.load_quotas(quotas_df),
        loader.load_reps(reps_df),
        loader.load_periods(periods_df),
    )
    result = processor.process(period)
    table = kpi_rows_to_frame(result.kpi_rows)
"""

# Errors
from .exceptions import (
    RollupError,
    HierarchyCycleError,
    DuplicateRepError,
)

# Stage classification
from .stage_classifier import (
    classify,
    classify_many,
    forecast_bucket,
    normalize_stage,
)

# Periods
from .periods import (
    QuotaPeriod,
    make_period,
    previous_period,
    periods_in_year,
    period_for_date,
)

# Facts
from .facts import (
    Deal,
    Fact,
    FactNormalizer,
    WindowMode,
)

# Hierarchy
from .hierarchy import (
    RepEntry,
    HierarchyIndex,
    build_index,
    active_rep_ids,
)

# Aggregation
from .aggregator import (
    RollupAggregator,
    RollupGroup,
    ALL_REPS,
)

# Metrics
from .metrics import (
    KpiRow,
    QuotaRecord,
    QuotaTotal,
    RollupMetrics,
    compute_kpis,
    safe_div,
    sum_quotas,
    top_partner_deals,
)

# Channel scoring
from .channel_scoring import (
    ChannelScorer,
    MotionInput,
    ScoreRow,
    as_finite,
    normalize,
    score_motions,
    wic_band,
    cei_status,
)

# Period comparison
from .period_comparison import (
    delta,
    delta_rows,
)

# Loading & processing
from .data_loader import RecordLoader
from .data_processor import (
    RollupProcessor,
    RollupResult,
    kpi_rows_to_frame,
    score_rows_to_frame,
)

__all__ = [
    # Errors
    'RollupError',
    'HierarchyCycleError',
    'DuplicateRepError',

    # Stage classification
    'classify',
    'classify_many',
    'forecast_bucket',
    'normalize_stage',

    # Periods
    'QuotaPeriod',
    'make_period',
    'previous_period',
    'periods_in_year',
    'period_for_date',

    # Facts
    'Deal',
    'Fact',
    'FactNormalizer',
    'WindowMode',

    # Hierarchy
    'RepEntry',
    'HierarchyIndex',
    'build_index',
    'active_rep_ids',

    # Aggregation
    'RollupAggregator',
    'RollupGroup',
    'ALL_REPS',

    # Metrics
    'KpiRow',
    'QuotaRecord',
    'QuotaTotal',
    'RollupMetrics',
    'compute_kpis',
    'safe_div',
    'sum_quotas',
    'top_partner_deals',

    # Channel scoring
    'ChannelScorer',
    'MotionInput',
    'ScoreRow',
    'as_finite',
    'normalize',
    'score_motions',
    'wic_band',
    'cei_status',

    # Period comparison
    'delta',
    'delta_rows',

    # Loading & processing
    'RecordLoader',
    'RollupProcessor',
    'RollupResult',
    'kpi_rows_to_frame',
    'score_rows_to_frame',
]

__version__ = '2.1.0'
