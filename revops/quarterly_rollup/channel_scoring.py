# revops/quarterly_rollup/channel_scoring.py
"""
Channel Scoring - WIC / PQS / CEI per sales motion

VERSION: 1.2.0
CHANGELOG:
- v1.2.0: CEI reports a reason code when the index cannot be computed
- v1.1.0: PQS normalizes against partner-only ranges
- v1.0.0: Two-pass WIC (collect extrema, then score)

A "motion" is Direct (facts without a partner) or one named partner.
Scores are cross-sectional: every motion is normalized against the other
motions of the same period and scope, so the whole set is scored at once.

    WIC = 100 * (0.35 growth + 0.30 win quality + 0.20 velocity + 0.15 economics)
    PQS = 100 * (0.40 win rate + 0.25 deal size + 0.20 confidence - 0.15 velocity penalty)
    CEI = (revenue velocity * quality) indexed to Direct = 100
"""

import logging
import math
import numbers
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .aggregator import fold_facts
from .constants import (
    DIRECT_MOTION,
    WIC_WEIGHTS,
    PQS_WEIGHTS,
    WIC_BANDS,
    WIC_BAND_FLOOR,
    CEI_BANDS,
    CEI_BAND_FLOOR,
    CEI_DIRECT_INDEX,
    CEI_REASON_BASELINE_ZERO,
    CEI_REASON_MISSING_DIRECT,
    CONFIDENCE_LOG_BASE,
)
from .facts import Fact
from .metrics import compute_kpis

logger = logging.getLogger(__name__)

MOTION_LEVEL = 'motion'


# =============================================================================
# PRIMITIVES
# =============================================================================

def as_finite(value) -> Optional[float]:
    """float(value) for finite reals (numpy scalars included); None otherwise."""
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Real):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def normalize(value, lo, hi) -> float:
    """clamp01((value - lo) / (hi - lo)); 0.5 when the range is flat or any input is missing."""
    value, lo, hi = as_finite(value), as_finite(lo), as_finite(hi)
    if value is None or lo is None or hi is None or hi == lo:
        return 0.5
    return clamp01((value - lo) / (hi - lo))


def extrema(values: Iterable[Optional[float]]) -> Tuple[Optional[float], Optional[float]]:
    """(min, max) over the finite values; (None, None) when there are none."""
    arr = np.array([as_finite(v) for v in values], dtype=float)
    if arr.size == 0 or np.isnan(arr).all():
        return None, None
    return float(np.nanmin(arr)), float(np.nanmax(arr))


def confidence_factor(deal_count: int) -> float:
    """min(1, ln(n + 1) / ln(10)): 0 deals -> 0.0, 9 or more -> 1.0."""
    if deal_count <= 0:
        return 0.0
    return min(1.0, math.log(deal_count + 1) / math.log(CONFIDENCE_LOG_BASE))


def quality_multiplier(win_rate: Optional[float], health: Optional[float]) -> float:
    """win rate x health; win rate alone without health; 0 without win rate."""
    if win_rate is None:
        return 0.0
    if health is None:
        return win_rate
    return win_rate * health


def wic_band(score: Optional[float]) -> Optional[str]:
    if score is None:
        return None
    for threshold, label in WIC_BANDS:
        if score >= threshold:
            return label
    return WIC_BAND_FLOOR


def cei_status(index: Optional[float]) -> Optional[str]:
    if index is None:
        return None
    for threshold, label in CEI_BANDS:
        if index >= threshold:
            return label
    return CEI_BAND_FLOOR


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class MotionInput:
    """Per-motion inputs, taken from the motion's KPI row."""
    motion: str
    is_partner: bool
    open_pipeline: float = 0.0
    won_amount: float = 0.0
    win_rate: Optional[float] = None
    health: Optional[float] = None
    avg_days: Optional[float] = None
    aov: Optional[float] = None
    deal_count: int = 0


@dataclass(frozen=True)
class ScoreRow:
    """Scores for one motion in one period."""
    period_id: Optional[str]
    motion: str
    is_partner: bool

    # Inputs
    open_pipeline: float = 0.0
    won_amount: float = 0.0
    win_rate: Optional[float] = None
    health: Optional[float] = None
    avg_days: Optional[float] = None
    aov: Optional[float] = None
    deal_count: int = 0

    # WIC
    growth_capacity: float = 0.5
    win_quality: float = 0.0
    velocity_efficiency: float = 0.5
    deal_economics: float = 0.5
    wic: float = 0.0
    wic_band: Optional[str] = None

    # PQS (partners only)
    pqs: Optional[float] = None
    confidence: Optional[float] = None

    # CEI
    cei_raw: float = 0.0
    cei_index: Optional[float] = None
    cei_status: Optional[str] = None
    cei_reason: Optional[str] = None


# =============================================================================
# INPUTS FROM FACTS
# =============================================================================

def motion_of(fact: Fact) -> str:
    return fact.partner_name if fact.is_partner else DIRECT_MOTION


def build_motion_inputs(facts: Iterable[Fact], period_id: Optional[str] = None) -> List[MotionInput]:
    """
    Split facts into Direct + one motion per partner name and derive inputs.

    Cycle days are the mean age of won deals; deal count is closed deals.
    Direct comes first, partners follow in name order.
    """
    by_motion: Dict[str, List[Fact]] = {}
    for fact in facts:
        by_motion.setdefault(motion_of(fact), []).append(fact)

    names = sorted(n for n in by_motion if n != DIRECT_MOTION)
    if DIRECT_MOTION in by_motion:
        names.insert(0, DIRECT_MOTION)

    inputs = []
    for name in names:
        row = compute_kpis(fold_facts(by_motion[name], MOTION_LEVEL, name, period_id))
        inputs.append(MotionInput(
            motion=name,
            is_partner=name != DIRECT_MOTION,
            open_pipeline=row.active_amount,
            won_amount=row.won_amount,
            win_rate=row.win_rate,
            health=row.avg_health,
            avg_days=row.avg_days_won,
            aov=row.aov,
            deal_count=row.won_count + row.lost_count,
        ))
    return inputs


# =============================================================================
# SCORER
# =============================================================================

class ChannelScorer:
    """
    Score a full set of motions for one period/scope.

    Usage:
        scorer = ChannelScorer(period_id='2025-Q1')
        rows = scorer.score_facts(facts)
    """

    def __init__(self, period_id: Optional[str] = None):
        self.period_id = period_id

    def score_facts(self, facts: Iterable[Fact]) -> List[ScoreRow]:
        return self.score(build_motion_inputs(facts, self.period_id))

    def score(self, motions: Sequence[MotionInput]) -> List[ScoreRow]:
        """
        Two passes: collect extrema over the set, then score each motion.

        Args:
            motions: Direct and partner inputs (not modified)

        Returns:
            ScoreRows in input order
        """
        motions = tuple(motions)
        if not motions:
            return []

        # Pass 1: ranges
        pipe_range = extrema(m.open_pipeline for m in motions)
        days_range = extrema(m.avg_days for m in motions)
        aov_range = extrema(m.aov for m in motions)
        partners = [m for m in motions if m.is_partner]
        partner_days_range = extrema(m.avg_days for m in partners)
        partner_aov_range = extrema(m.aov for m in partners)

        direct = next((m for m in motions if not m.is_partner), None)
        direct_raw = self._cei_raw(direct) if direct is not None else None
        if direct is None and partners:
            logger.warning(f"[ChannelScorer] {self.period_id}: no Direct motion, CEI not indexed")
        elif direct_raw == 0 and partners:
            logger.warning(f"[ChannelScorer] {self.period_id}: Direct CEI baseline is zero, CEI not indexed")

        # Pass 2: scores
        rows = []
        for m in motions:
            growth = normalize(m.open_pipeline, *pipe_range)
            win_quality = quality_multiplier(m.win_rate, m.health)
            velocity = 1.0 - normalize(m.avg_days, *days_range)
            economics = normalize(m.aov, *aov_range)
            wic_raw = (
                WIC_WEIGHTS['growth_capacity'] * growth
                + WIC_WEIGHTS['win_quality'] * win_quality
                + WIC_WEIGHTS['velocity_efficiency'] * velocity
                + WIC_WEIGHTS['deal_economics'] * economics
            )
            wic = self._scale(wic_raw)

            pqs = confidence = None
            if m.is_partner:
                confidence = confidence_factor(m.deal_count)
                pqs_raw = (
                    PQS_WEIGHTS['win_rate'] * (m.win_rate or 0.0)
                    + PQS_WEIGHTS['deal_size'] * normalize(m.aov, *partner_aov_range)
                    + PQS_WEIGHTS['confidence'] * confidence
                    - PQS_WEIGHTS['velocity_penalty'] * normalize(m.avg_days, *partner_days_range)
                )
                pqs = self._scale(pqs_raw)

            cei_raw = self._cei_raw(m)
            cei_index, reason = self._cei_index(m, cei_raw, direct_raw)

            rows.append(ScoreRow(
                period_id=self.period_id,
                motion=m.motion,
                is_partner=m.is_partner,
                open_pipeline=m.open_pipeline,
                won_amount=m.won_amount,
                win_rate=m.win_rate,
                health=m.health,
                avg_days=m.avg_days,
                aov=m.aov,
                deal_count=m.deal_count,
                growth_capacity=growth,
                win_quality=win_quality,
                velocity_efficiency=velocity,
                deal_economics=economics,
                wic=wic,
                wic_band=wic_band(wic),
                pqs=pqs,
                confidence=confidence,
                cei_raw=cei_raw,
                cei_index=cei_index,
                cei_status=cei_status(cei_index),
                cei_reason=reason,
            ))

        logger.debug(f"[ChannelScorer] {self.period_id}: scored {len(rows)} motions")
        return rows

    @staticmethod
    def _scale(raw: float) -> float:
        return min(100.0, max(0.0, raw * 100.0))

    @staticmethod
    def _cei_raw(m: MotionInput) -> float:
        days = as_finite(m.avg_days)
        velocity = (as_finite(m.won_amount) or 0.0) / days if days else 0.0
        return velocity * quality_multiplier(m.win_rate, m.health)

    @staticmethod
    def _cei_index(
        m: MotionInput,
        cei_raw: float,
        direct_raw: Optional[float]
    ) -> Tuple[Optional[float], Optional[str]]:
        if not m.is_partner:
            return CEI_DIRECT_INDEX, None
        if direct_raw is None:
            return None, CEI_REASON_MISSING_DIRECT
        if direct_raw == 0:
            return None, CEI_REASON_BASELINE_ZERO
        return cei_raw / direct_raw * CEI_DIRECT_INDEX, None


def score_motions(facts: Iterable[Fact], period_id: Optional[str] = None) -> List[ScoreRow]:
    """Convenience wrapper: build motion inputs from facts and score them."""
    return ChannelScorer(period_id).score_facts(facts)
