# revops/quarterly_rollup/period_comparison.py
"""
Period Comparison - signed deltas between two KPI / score snapshots

VERSION: 1.1.0
CHANGELOG:
- v1.1.0: Numeric fields declared per row type; identity fields never diffed
- v1.0.0: delta / delta_rows

delta(curr, prev) reports curr - prev for every numeric field. A field that
is absent (None) or non-finite on either side gives an absent delta; it is
never treated as zero. Whether a positive delta is good is for the caller.
"""

import logging
from dataclasses import fields, is_dataclass
from typing import Dict, Hashable, Iterable, List, Optional, Union

from .channel_scoring import ScoreRow, as_finite
from .metrics import KpiRow

logger = logging.getLogger(__name__)

# Pairing / labelling fields, never differenced even when they hold numbers
IDENTITY_FIELDS = frozenset({'period_id', 'level', 'entity_id', 'motion', 'member_rep_ids'})

NUMERIC_FIELDS = {
    KpiRow: tuple(f.name for f in fields(KpiRow) if f.name not in IDENTITY_FIELDS),
    ScoreRow: (
        'open_pipeline', 'won_amount', 'win_rate', 'health', 'avg_days', 'aov', 'deal_count',
        'growth_capacity', 'win_quality', 'velocity_efficiency', 'deal_economics', 'wic',
        'pqs', 'confidence',
        'cei_raw', 'cei_index',
    ),
}


def field_delta(curr, prev) -> Optional[float]:
    curr, prev = as_finite(curr), as_finite(prev)
    if curr is None or prev is None:
        return None
    return curr - prev


def _as_dict(row) -> Dict:
    if is_dataclass(row) and not isinstance(row, type):
        return {f.name: getattr(row, f.name) for f in fields(row)}
    if isinstance(row, dict):
        return dict(row)
    raise TypeError(f"Cannot compare {type(row).__name__}; expected a dataclass row or dict")


def _looks_numeric(curr, prev) -> bool:
    # Untyped rows: numeric when either side is a number and the other is a number or None
    values = (curr, prev)
    return (
        any(as_finite(v) is not None or _is_nan(v) for v in values)
        and all(v is None or as_finite(v) is not None or _is_nan(v) for v in values)
    )


def _is_nan(value) -> bool:
    return isinstance(value, float) and value != value


def delta(curr, prev, skip: Iterable[str] = ()) -> Dict[str, Optional[float]]:
    """
    Signed per-field difference of two rows of the same type.

    Args:
        curr: Current-period KpiRow / ScoreRow (or dict)
        prev: Prior-period row of the same kind
        skip: Extra field names to leave out (e.g. the pairing key)

    Returns:
        {field: curr - prev or None}. KpiRow and ScoreRow report every
        declared numeric field; other rows report the fields holding numbers.
        Identity fields (ids, labels, periods) are never included.
    """
    if type(curr) is not type(prev):
        raise TypeError(f"Cannot compare {type(curr).__name__} with {type(prev).__name__}")

    excluded = IDENTITY_FIELDS | frozenset(skip)
    current = _as_dict(curr)
    previous = _as_dict(prev)

    declared = NUMERIC_FIELDS.get(type(curr))
    if declared is not None:
        return {
            name: field_delta(current[name], previous[name])
            for name in declared if name not in excluded
        }

    result = {}
    for name, curr_value in current.items():
        if name in excluded:
            continue
        prev_value = previous.get(name)
        if _looks_numeric(curr_value, prev_value):
            result[name] = field_delta(curr_value, prev_value)
    return result


def delta_rows(
    current: Iterable,
    previous: Iterable,
    key: str = 'entity_id'
) -> List[Dict[str, Union[Hashable, Optional[float]]]]:
    """
    Pair rows by ``key`` and return one delta dict per current row.

    Rows without a prior counterpart get every delta absent.
    """
    prior = {getattr(r, key): r for r in previous}
    out = []
    for row in current:
        match = prior.get(getattr(row, key))
        if match is None:
            deltas = {name: None for name in delta(row, row, skip=(key,))}
        else:
            deltas = delta(row, match, skip=(key,))
        out.append({key: getattr(row, key), **deltas})
    logger.debug(f"[delta_rows] {len(out)} rows compared on {key}")
    return out
