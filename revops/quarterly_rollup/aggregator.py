# revops/quarterly_rollup/aggregator.py
"""
Rollup Aggregator - folds Facts into rep / manager / VP / company groups

VERSION: 1.2.0
CHANGELOG:
- v1.2.0: Created-pipeline totals folded alongside the main fact set
- v1.1.0: Sums use math.fsum so results do not depend on fact order
- v1.0.0: Initial rep-level fold with upward rollup

Grouping rules (per period):
- rep:     the fact's owning rep (facts without a rep go to "(unassigned)")
- manager: the rep's direct manager; reps missing from the directory, or
           whose chain hits a cycle, go to the "(unassigned)" manager
- vp:      the top of the rep's ancestor chain ("(unassigned)" as above)
- company: every fact in scope

Manager, VP and company totals are built from rep-level group totals, so a
manager's won amount is exactly fsum() of its direct reports' won amounts.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, Union

from .constants import (
    BUCKETS,
    BUCKET_WON,
    BUCKET_OTHER,
    ACTIVE_BUCKETS,
    CLOSED_BUCKETS,
    LEVEL_REP,
    LEVEL_MANAGER,
    LEVEL_VP,
    LEVEL_COMPANY,
    ROLLUP_LEVELS,
    UNASSIGNED_ID,
    COMPANY_ID,
)
from .exceptions import HierarchyCycleError
from .facts import Fact
from .hierarchy import HierarchyIndex

logger = logging.getLogger(__name__)

ALL_REPS = 'all'

# Float fields summed with fsum; int fields summed exactly
_SUM_FIELDS = (
    'won_amount', 'lost_amount', 'commit_amount', 'best_amount',
    'pipeline_amount', 'other_amount',
    'partner_closed_amount', 'partner_won_amount',
    'won_age_sum', 'lost_age_sum', 'active_age_sum', 'health_sum',
    'created_amount',
)
_COUNT_FIELDS = (
    'won_count', 'lost_count', 'commit_count', 'best_count',
    'pipeline_count', 'other_count', 'total_count',
    'partner_closed_count', 'partner_won_count',
    'won_age_count', 'lost_age_count', 'active_age_count', 'health_count',
    'created_count',
)


@dataclass(frozen=True)
class RollupGroup:
    """Accumulated totals for one (period, level, entity)."""
    period_id: Optional[str]
    level: str
    entity_id: Hashable
    member_rep_ids: Tuple[Hashable, ...] = ()

    won_amount: float = 0.0
    lost_amount: float = 0.0
    commit_amount: float = 0.0
    best_amount: float = 0.0
    pipeline_amount: float = 0.0
    other_amount: float = 0.0

    won_count: int = 0
    lost_count: int = 0
    commit_count: int = 0
    best_count: int = 0
    pipeline_count: int = 0
    other_count: int = 0
    total_count: int = 0

    partner_closed_amount: float = 0.0
    partner_won_amount: float = 0.0
    partner_closed_count: int = 0
    partner_won_count: int = 0

    won_age_sum: float = 0.0
    won_age_count: int = 0
    lost_age_sum: float = 0.0
    lost_age_count: int = 0
    active_age_sum: float = 0.0
    active_age_count: int = 0

    health_sum: float = 0.0
    health_count: int = 0

    created_amount: float = 0.0
    created_count: int = 0

    @property
    def key(self) -> Tuple[Optional[str], str, Hashable]:
        return (self.period_id, self.level, self.entity_id)

    @property
    def active_amount(self) -> float:
        return math.fsum((self.commit_amount, self.best_amount, self.pipeline_amount))

    @property
    def closed_amount(self) -> float:
        return math.fsum((self.won_amount, self.lost_amount))

    @property
    def active_count(self) -> int:
        return self.commit_count + self.best_count + self.pipeline_count

    @property
    def closed_count(self) -> int:
        return self.won_count + self.lost_count

    def amount_for(self, bucket: str) -> float:
        return getattr(self, f"{bucket}_amount")

    def count_for(self, bucket: str) -> int:
        return getattr(self, f"{bucket}_count")

    @classmethod
    def empty(cls, period_id: Optional[str], level: str, entity_id: Hashable) -> 'RollupGroup':
        """All-zero group ("no data" is a valid rollup)."""
        return cls(period_id=period_id, level=level, entity_id=entity_id)


class _Accumulator:
    """Mutable fold state for one group; frozen into a RollupGroup at the end."""

    def __init__(self):
        self.values: Dict[str, List[float]] = {name: [] for name in _SUM_FIELDS}
        self.counts: Dict[str, int] = {name: 0 for name in _COUNT_FIELDS}
        self.members = set()

    def add_fact(self, fact: Fact):
        bucket = fact.bucket if fact.bucket in BUCKETS else BUCKET_OTHER
        self.values[f"{bucket}_amount"].append(fact.amount)
        self.counts[f"{bucket}_count"] += 1
        self.counts['total_count'] += 1

        if bucket in CLOSED_BUCKETS:
            if fact.is_partner:
                self.values['partner_closed_amount'].append(fact.amount)
                self.counts['partner_closed_count'] += 1
                if bucket == BUCKET_WON:
                    self.values['partner_won_amount'].append(fact.amount)
                    self.counts['partner_won_count'] += 1
            if fact.age_days is not None:
                self.values[f"{bucket}_age_sum"].append(float(fact.age_days))
                self.counts[f"{bucket}_age_count"] += 1
        elif bucket in ACTIVE_BUCKETS and fact.active_age_days is not None:
            self.values['active_age_sum'].append(fact.active_age_days)
            self.counts['active_age_count'] += 1

        if fact.health is not None:
            self.values['health_sum'].append(fact.health)
            self.counts['health_count'] += 1

    def add_created(self, fact: Fact):
        self.values['created_amount'].append(fact.amount)
        self.counts['created_count'] += 1

    def add_group(self, group: RollupGroup):
        for name in _SUM_FIELDS:
            self.values[name].append(getattr(group, name))
        for name in _COUNT_FIELDS:
            self.counts[name] += getattr(group, name)
        self.members.update(group.member_rep_ids)

    def freeze(self, period_id: Optional[str], level: str, entity_id: Hashable) -> RollupGroup:
        totals = {name: math.fsum(vals) for name, vals in self.values.items()}
        return RollupGroup(
            period_id=period_id,
            level=level,
            entity_id=entity_id,
            member_rep_ids=tuple(sorted(self.members, key=str)),
            **totals,
            **self.counts,
        )


class RollupAggregator:
    """
    Fold Facts into hierarchical rollup groups.

    Usage:
        aggregator = RollupAggregator(hierarchy_index)
        groups = aggregator.aggregate(facts, scope_rep_ids='all')
        manager_groups = [g for g in groups if g.level == 'manager']
    """

    def __init__(self, hierarchy: HierarchyIndex, debug_timing: bool = False):
        self.hierarchy = hierarchy
        self.debug_timing = debug_timing

    # =========================================================================
    # ROUTING
    # =========================================================================

    def _route(self, rep_id: Hashable, warned: set) -> Tuple[Optional[Hashable], Hashable]:
        """
        (manager_id, vp_id) for a rep.

        manager_id is None for a root rep (no manager group). Unresolvable
        reps route to "(unassigned)" at both levels.
        """
        if rep_id is None or rep_id == UNASSIGNED_ID or rep_id not in self.hierarchy:
            if rep_id not in warned:
                warned.add(rep_id)
                logger.warning(f"Rep {rep_id} not in hierarchy; rolled up under {UNASSIGNED_ID}")
            return UNASSIGNED_ID, UNASSIGNED_ID
        try:
            chain = self.hierarchy.ancestors(rep_id)
        except HierarchyCycleError as exc:
            if rep_id not in warned:
                warned.add(rep_id)
                logger.warning(f"{exc}; rolled up under {UNASSIGNED_ID}")
            return UNASSIGNED_ID, UNASSIGNED_ID
        if not chain:
            return None, rep_id
        return chain[0], chain[-1]

    # =========================================================================
    # MAIN ENTRY POINT
    # =========================================================================

    def aggregate(
        self,
        facts: Iterable[Fact],
        scope_rep_ids: Union[str, Sequence[Hashable]] = ALL_REPS,
        created_facts: Optional[Iterable[Fact]] = None
    ) -> List[RollupGroup]:
        """
        Group facts per period at every rollup level.

        Args:
            facts: Facts from FactNormalizer (any order)
            scope_rep_ids: 'all' or the rep ids to include (e.g. a manager's
                           team from HierarchyIndex.descendants())
            created_facts: Facts of deals created in the period, used for
                           created-pipeline totals. Defaults to the facts
                           flagged created_in_period.

        Returns:
            RollupGroups ordered by level (rep, manager, vp, company), then
            period, then entity id.
        """
        start_time = time.perf_counter()

        in_scope = self._scope_filter(scope_rep_ids)

        rep_acc: Dict[Tuple[Optional[str], Hashable], _Accumulator] = {}
        fact_count = 0
        for fact in facts:
            if not in_scope(fact.rep_id):
                continue
            key = (fact.period_id, self._rep_key(fact.rep_id))
            acc = rep_acc.setdefault(key, _Accumulator())
            acc.members.add(key[1])
            acc.add_fact(fact)
            if created_facts is None and fact.created_in_period:
                acc.add_created(fact)
            fact_count += 1

        if created_facts is not None:
            for fact in created_facts:
                if not in_scope(fact.rep_id) or not fact.created_in_period:
                    continue
                key = (fact.period_id, self._rep_key(fact.rep_id))
                acc = rep_acc.setdefault(key, _Accumulator())
                acc.members.add(key[1])
                acc.add_created(fact)

        rep_groups = [
            acc.freeze(period_id, LEVEL_REP, rep_id)
            for (period_id, rep_id), acc in rep_acc.items()
        ]
        rep_groups.sort(key=lambda g: (str(g.period_id), str(g.entity_id)))

        upper: Dict[Tuple[str, Optional[str], Hashable], _Accumulator] = {}
        warned: set = set()
        for group in rep_groups:
            manager_id, vp_id = self._route(group.entity_id, warned)
            targets = [(LEVEL_VP, vp_id), (LEVEL_COMPANY, COMPANY_ID)]
            if manager_id is not None:
                targets.insert(0, (LEVEL_MANAGER, manager_id))
            for level, entity_id in targets:
                upper.setdefault((level, group.period_id, entity_id), _Accumulator()).add_group(group)

        upper_groups = [
            acc.freeze(period_id, level, entity_id)
            for (level, period_id, entity_id), acc in upper.items()
        ]

        level_order = {level: i for i, level in enumerate(ROLLUP_LEVELS)}
        groups = rep_groups + upper_groups
        groups.sort(key=lambda g: (level_order[g.level], str(g.period_id), str(g.entity_id)))

        logger.debug(f"[aggregate] {fact_count:,} facts -> {len(groups):,} groups")
        if self.debug_timing:
            logger.info(f"[aggregate] {time.perf_counter() - start_time:.3f}s")
        return groups

    @staticmethod
    def _rep_key(rep_id: Optional[Hashable]) -> Hashable:
        return UNASSIGNED_ID if rep_id is None else rep_id

    @staticmethod
    def _scope_filter(scope_rep_ids):
        if isinstance(scope_rep_ids, str):
            if scope_rep_ids != ALL_REPS:
                raise ValueError(f"scope_rep_ids must be '{ALL_REPS}' or a list of rep ids")
            return lambda rep_id: True
        allowed = set(scope_rep_ids)
        return lambda rep_id: rep_id in allowed


# =============================================================================
# LOOKUP HELPERS
# =============================================================================

def groups_by_key(groups: Iterable[RollupGroup]) -> Dict[Tuple[Optional[str], str, Hashable], RollupGroup]:
    return {g.key: g for g in groups}


def find_group(
    groups: Iterable[RollupGroup],
    level: str,
    entity_id: Hashable,
    period_id: Optional[str] = None
) -> Optional[RollupGroup]:
    for group in groups:
        if group.level == level and group.entity_id == entity_id and (
            period_id is None or group.period_id == period_id
        ):
            return group
    return None


def groups_at_level(groups: Iterable[RollupGroup], level: str) -> List[RollupGroup]:
    return [g for g in groups if g.level == level]


def fold_facts(
    facts: Iterable[Fact],
    level: str,
    entity_id: Hashable,
    period_id: Optional[str] = None
) -> RollupGroup:
    """Fold facts into one group without hierarchy routing (e.g. one sales motion)."""
    acc = _Accumulator()
    for fact in facts:
        acc.add_fact(fact)
        if fact.created_in_period:
            acc.add_created(fact)
        if fact.rep_id is not None:
            acc.members.add(fact.rep_id)
    return acc.freeze(period_id, level, entity_id)


def merge_groups(
    groups: Iterable[RollupGroup],
    level: str,
    entity_id: Hashable,
    period_id: Optional[str] = None
) -> RollupGroup:
    """Sum several groups into one (e.g. a custom team); empty input gives an empty group."""
    acc = _Accumulator()
    for group in groups:
        acc.add_group(group)
    return acc.freeze(period_id, level, entity_id)
