# revops/quarterly_rollup/data_loader.py
"""
Record Loader - upstream DataFrames to engine records

VERSION: 1.1.0
CHANGELOG:
- v1.1.0: Column aliases (stage / forecast_stage, manager_id / manager_rep_id)
- v1.0.0: Deals, quotas, reps, periods

The upstream record provider (SQL, CSV export, API) hands over pandas
DataFrames already filtered to one org and time window. This module only
converts them; it does no fetching and no caching.

Principles:
1. Vectorized coercion first (pd.to_numeric / pd.to_datetime, errors='coerce')
2. Ids become strings so "42" and 42 match across tables
3. Missing optional columns are tolerated; missing required columns raise
"""

import logging
import time
from typing import Dict, Hashable, List, Optional, Sequence

import pandas as pd

from .facts import Deal
from .hierarchy import RepEntry
from .metrics import QuotaRecord
from .periods import QuotaPeriod, make_period

logger = logging.getLogger(__name__)


DEAL_COLUMNS = {
    'deal_id': ('deal_id', 'id', 'opportunity_id'),
    'rep_id': ('rep_id', 'owner_rep_id'),
    'amount': ('amount',),
    'stage': ('forecast_stage', 'stage'),
    'partner_name': ('partner_name',),
    'create_date': ('create_date', 'created_at'),
    'close_date': ('close_date', 'closed_at'),
    'health_score': ('health_score',),
}

QUOTA_COLUMNS = {
    'period_id': ('quota_period_id', 'period_id'),
    'role_level': ('role_level',),
    'rep_id': ('rep_id',),
    'quota_amount': ('quota_amount',),
    'carry_forward': ('carry_forward',),
    'adjusted_amount': ('adjusted_quarterly_quota', 'adjusted_amount'),
    'annual_target': ('annual_target',),
}

REP_COLUMNS = {
    'rep_id': ('rep_id', 'id'),
    'manager_rep_id': ('manager_rep_id', 'manager_id'),
    'active': ('active',),
    'rep_name': ('rep_name', 'name'),
}

PERIOD_COLUMNS = {
    'period_id': ('period_id', 'id'),
    'period_start': ('period_start',),
    'period_end': ('period_end',),
    'fiscal_year': ('fiscal_year',),
    'fiscal_quarter': ('fiscal_quarter',),
    'period_name': ('period_name',),
}


def _resolve_columns(
    df: pd.DataFrame,
    columns: Dict[str, Sequence[str]],
    required: Sequence[str],
    table: str
) -> Dict[str, Optional[str]]:
    """Map canonical names to the first matching DataFrame column."""
    resolved = {}
    for name, aliases in columns.items():
        resolved[name] = next((a for a in aliases if a in df.columns), None)
    missing = [name for name in required if resolved[name] is None]
    if missing:
        raise ValueError(f"{table} frame is missing required column(s): {missing}")
    return resolved


def _id_or_none(value) -> Optional[Hashable]:
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _num_or_none(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _column(df: pd.DataFrame, column: Optional[str]) -> pd.Series:
    if column is None:
        return pd.Series([None] * len(df), index=df.index, dtype=object)
    return df[column]


class RecordLoader:
    """
    Convert upstream DataFrames into Deal / QuotaRecord / RepEntry / QuotaPeriod.

    Usage:
        loader = RecordLoader()
        deals = loader.load_deals(deals_df)
        quotas = loader.load_quotas(quotas_df)
        reps = loader.load_reps(reps_df)
        periods = loader.load_periods(periods_df)
    """

    def __init__(self, debug_timing: bool = False):
        self.debug_timing = debug_timing

    # =========================================================================
    # DEALS
    # =========================================================================

    def load_deals(self, df: pd.DataFrame) -> List[Deal]:
        """
        Deals from a frame with deal_id, rep_id, amount, forecast_stage,
        partner_name, create_date, close_date, health_score.

        Amount and health are coerced with pd.to_numeric(errors='coerce');
        dates are passed through so the normalizer can flag malformed values.
        """
        start_time = time.perf_counter()
        cols = _resolve_columns(df, DEAL_COLUMNS, ('deal_id', 'rep_id'), 'deals')

        amounts = pd.to_numeric(_column(df, cols['amount']), errors='coerce')
        health = pd.to_numeric(_column(df, cols['health_score']), errors='coerce')
        stages = _column(df, cols['stage'])
        partners = _column(df, cols['partner_name'])
        created = _column(df, cols['create_date'])
        closed = _column(df, cols['close_date'])

        deals = []
        for i, idx in enumerate(df.index):
            deal_id = _id_or_none(df.at[idx, cols['deal_id']])
            if deal_id is None:
                logger.warning(f"Deal row {i} has no deal_id; skipped")
                continue
            stage = stages.at[idx]
            partner = partners.at[idx]
            deals.append(Deal(
                deal_id=deal_id,
                rep_id=_id_or_none(df.at[idx, cols['rep_id']]),
                amount=_num_or_none(amounts.at[idx]),
                stage=stage if isinstance(stage, str) else '',
                partner_name=partner if isinstance(partner, str) else None,
                create_date=created.at[idx],
                close_date=closed.at[idx],
                health_score=_num_or_none(health.at[idx]),
            ))

        self._log_done('load_deals', len(deals), start_time)
        return deals

    # =========================================================================
    # QUOTAS
    # =========================================================================

    def load_quotas(self, df: pd.DataFrame) -> List[QuotaRecord]:
        start_time = time.perf_counter()
        cols = _resolve_columns(df, QUOTA_COLUMNS, ('period_id', 'role_level', 'quota_amount'), 'quotas')

        role_levels = pd.to_numeric(df[cols['role_level']], errors='coerce')
        amounts = pd.to_numeric(df[cols['quota_amount']], errors='coerce').fillna(0.0)
        carries = pd.to_numeric(_column(df, cols['carry_forward']), errors='coerce')
        adjusted = pd.to_numeric(_column(df, cols['adjusted_amount']), errors='coerce')
        annual = pd.to_numeric(_column(df, cols['annual_target']), errors='coerce')
        rep_ids = _column(df, cols['rep_id'])

        quotas = []
        for idx in df.index:
            role = role_levels.at[idx]
            if pd.isna(role):
                logger.warning(f"Quota row {idx} has no role_level; skipped")
                continue
            quotas.append(QuotaRecord(
                period_id=_id_or_none(df.at[idx, cols['period_id']]),
                role_level=int(role),
                quota_amount=float(amounts.at[idx]),
                rep_id=_id_or_none(rep_ids.at[idx]),
                carry_forward=_num_or_none(carries.at[idx]),
                adjusted_amount=_num_or_none(adjusted.at[idx]),
                annual_target=_num_or_none(annual.at[idx]),
            ))

        self._log_done('load_quotas', len(quotas), start_time)
        return quotas

    # =========================================================================
    # REP DIRECTORY
    # =========================================================================

    def load_reps(self, df: pd.DataFrame, active_only: bool = False) -> List[RepEntry]:
        """
        Rep directory rows. Inactive reps are kept unless ``active_only``
        (historical rollups need them).
        """
        start_time = time.perf_counter()
        cols = _resolve_columns(df, REP_COLUMNS, ('rep_id',), 'reps')

        managers = _column(df, cols['manager_rep_id'])
        names = _column(df, cols['rep_name'])
        if cols['active'] is None:
            actives = pd.Series(True, index=df.index)
        else:
            actives = df[cols['active']].fillna(True).astype(bool)

        reps = []
        for idx in df.index:
            rep_id = _id_or_none(df.at[idx, cols['rep_id']])
            if rep_id is None:
                continue
            active = bool(actives.at[idx])
            if active_only and not active:
                continue
            name = names.at[idx]
            reps.append(RepEntry(
                rep_id=rep_id,
                manager_rep_id=_id_or_none(managers.at[idx]),
                active=active,
                rep_name=name if isinstance(name, str) else None,
            ))

        self._log_done('load_reps', len(reps), start_time)
        return reps

    # =========================================================================
    # PERIODS
    # =========================================================================

    def load_periods(self, df: pd.DataFrame) -> List[QuotaPeriod]:
        cols = _resolve_columns(df, PERIOD_COLUMNS, ('period_id', 'period_start', 'period_end'), 'periods')
        starts = pd.to_datetime(df[cols['period_start']], errors='coerce')
        ends = pd.to_datetime(df[cols['period_end']], errors='coerce')
        years = _column(df, cols['fiscal_year'])
        quarters = _column(df, cols['fiscal_quarter'])
        names = _column(df, cols['period_name'])

        periods = []
        for idx in df.index:
            if pd.isna(starts.at[idx]) or pd.isna(ends.at[idx]):
                logger.warning(f"Period row {idx} has unparseable bounds; skipped")
                continue
            name = names.at[idx]
            periods.append(make_period(
                period_id=_id_or_none(df.at[idx, cols['period_id']]),
                period_start=starts.at[idx],
                period_end=ends.at[idx],
                fiscal_year=_id_or_none(years.at[idx]),
                fiscal_quarter=_id_or_none(quarters.at[idx]),
                period_name=name if isinstance(name, str) else None,
            ))
        return periods

    def _log_done(self, step: str, count: int, start_time: float):
        logger.debug(f"[{step}] {count:,} records")
        if self.debug_timing:
            logger.info(f"[{step}] {time.perf_counter() - start_time:.3f}s")
