# revops/quarterly_rollup/stage_classifier.py
"""
Stage Classifier - maps free-text forecast stage labels to buckets

VERSION: 1.1.0

Labels arrive exactly as typed in the CRM ("Closed Won", "commit - verbal",
"BEST CASE!!", ""). They are normalized to lower-case letter tokens and
matched against padded keywords:

    " won "              -> won
    " lost " / " loss "  -> lost
    " commit"            -> commit   (token prefix: "committed" matches)
    " best"              -> best     (token prefix: "bestcase" matches)
    anything else        -> pipeline

Precedence is fixed: outcome tokens (won, lost) beat forecast-category
tokens, so "Commit - Won" is won. A label carrying both "won" and "lost"
is won. Empty or letter-free labels are active pipeline.
"""

import re
from typing import Any, Dict

from .constants import (
    BUCKET_WON,
    BUCKET_LOST,
    BUCKET_COMMIT,
    BUCKET_BEST,
    BUCKET_PIPELINE,
    ACTIVE_BUCKETS,
    CLOSED_BUCKETS,
)

_NON_LETTERS = re.compile(r'[^a-z]+')

WON_TOKENS = (' won ',)
LOST_TOKENS = (' lost ', ' loss ')
COMMIT_PREFIX = ' commit'
BEST_PREFIX = ' best'


def normalize_stage(raw_label: Any) -> str:
    """
    Normalize a raw stage label to padded lower-case letter tokens.

    Every maximal run of non-letters becomes one space and the result is
    padded with a leading and trailing space, so "Closed-Won!" becomes
    " closed won ". Non-string input (None, NaN) normalizes like "".
    """
    if not isinstance(raw_label, str):
        raw_label = ''
    collapsed = _NON_LETTERS.sub(' ', raw_label.lower())
    return f" {collapsed.strip()} "


def classify(raw_label: Any) -> str:
    """
    Classify a raw stage label into exactly one bucket.

    Args:
        raw_label: Free-text stage label (may be empty, None or garbled)

    Returns:
        One of 'won', 'lost', 'commit', 'best', 'pipeline'
    """
    text = normalize_stage(raw_label)

    if any(token in text for token in WON_TOKENS):
        return BUCKET_WON
    if any(token in text for token in LOST_TOKENS):
        return BUCKET_LOST

    # Active deals: forecast category
    if COMMIT_PREFIX in text:
        return BUCKET_COMMIT
    if BEST_PREFIX in text:
        return BUCKET_BEST
    return BUCKET_PIPELINE


def is_closed(bucket: str) -> bool:
    return bucket in CLOSED_BUCKETS


def is_active(bucket: str) -> bool:
    return bucket in ACTIVE_BUCKETS


def forecast_bucket(raw_label: Any) -> str:
    """
    Forecast category of a label, ignoring outcome tokens.

    Used when a deal's outcome must be re-derived from its dates rather than
    its label (created-in-period windowing): an open deal labelled
    "Commit - Won" still forecasts as commit.
    """
    text = normalize_stage(raw_label)
    if COMMIT_PREFIX in text:
        return BUCKET_COMMIT
    if BEST_PREFIX in text:
        return BUCKET_BEST
    return BUCKET_PIPELINE


def classify_many(labels) -> Dict[str, int]:
    """Count labels per bucket (diagnostics for stage mapping reviews)."""
    counts: Dict[str, int] = {}
    for label in labels:
        bucket = classify(label)
        counts[bucket] = counts.get(bucket, 0) + 1
    return counts
