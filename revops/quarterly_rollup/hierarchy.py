# revops/quarterly_rollup/hierarchy.py
"""
Hierarchy Resolver - parent-pointer rep directory with children index

VERSION: 1.1.0
CHANGELOG:
- v1.1.0: Cycle members recorded at build time; ancestor lookups raise
          HierarchyCycleError only for reps whose chain enters a cycle
- v1.0.0: parent/children maps, BFS descendants

The directory is a flat list of reps, each optionally pointing at a
manager rep. It forms a forest; several roots are normal. Active-only
filtering is left to the caller (historical rollups need inactive reps).
"""

import logging
from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Optional, Set

import pandas as pd

from .exceptions import DuplicateRepError, HierarchyCycleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepEntry:
    """One rep directory row."""
    rep_id: Hashable
    manager_rep_id: Optional[Hashable] = None
    active: bool = True
    rep_name: Optional[str] = None


def active_rep_ids(entries: Iterable[RepEntry]) -> List[Hashable]:
    """Ids of active reps, in directory order."""
    return [e.rep_id for e in entries if e.active]


class HierarchyIndex:
    """
    Parent-of / children-of lookups over a rep directory.

    Usage:
        index = build_index(rep_entries)
        index.parent_of(rep_id)
        index.children_of(manager_id)
        index.ancestors(rep_id)          # nearest manager first
        index.descendants(manager_id)    # BFS, includes manager by default
    """

    def __init__(
        self,
        parents: Dict[Hashable, Optional[Hashable]],
        names: Optional[Dict[Hashable, str]] = None
    ):
        self._parents = dict(parents)
        self._names = dict(names or {})
        self._children: Dict[Hashable, List[Hashable]] = {}
        for rep_id, parent_id in self._parents.items():
            if parent_id is not None:
                self._children.setdefault(parent_id, []).append(rep_id)
        for child_ids in self._children.values():
            child_ids.sort(key=str)

        self._cycle_of: Dict[Hashable, List[Hashable]] = {}
        self._blocked: Dict[Hashable, List[Hashable]] = {}
        self._find_cycles()

    # =========================================================================
    # CYCLE DETECTION
    # =========================================================================

    def _find_cycles(self):
        """
        Walk each parent chain once (visited-state colouring).

        Every node ends up either resolvable or "blocked": its chain enters
        a cycle. Cycle members are blocked too.
        """
        state: Dict[Hashable, str] = {}

        for start in sorted(self._parents, key=str):
            if start in state:
                continue
            path: List[Hashable] = []
            on_path: Dict[Hashable, int] = {}
            node = start
            hit_cycle: Optional[List[Hashable]] = None

            while node is not None and node in self._parents:
                if node in on_path:
                    hit_cycle = path[on_path[node]:]
                    for member in hit_cycle:
                        self._cycle_of[member] = hit_cycle
                    break
                if node in state:
                    if state[node] == 'blocked':
                        hit_cycle = self._blocked[node]
                    break
                on_path[node] = len(path)
                path.append(node)
                node = self._parents[node]

            for member in path:
                if hit_cycle is not None:
                    state[member] = 'blocked'
                    self._blocked[member] = hit_cycle
                else:
                    state[member] = 'ok'

        if self._cycle_of:
            members = sorted({str(m) for m in self._cycle_of})
            logger.warning(f"Hierarchy contains cycle(s) through reps: {members}")

    @property
    def cycle_members(self) -> Set[Hashable]:
        """Reps that sit on a cycle."""
        return set(self._cycle_of)

    def is_resolvable(self, rep_id: Hashable) -> bool:
        """True when the rep's ancestor chain terminates."""
        return rep_id not in self._blocked

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def __contains__(self, rep_id: Hashable) -> bool:
        return rep_id in self._parents

    def __len__(self) -> int:
        return len(self._parents)

    @property
    def rep_ids(self) -> List[Hashable]:
        return sorted(self._parents, key=str)

    def name_of(self, rep_id: Hashable) -> str:
        return self._names.get(rep_id) or str(rep_id)

    def parent_of(self, rep_id: Hashable) -> Optional[Hashable]:
        return self._parents.get(rep_id)

    def children_of(self, rep_id: Hashable) -> List[Hashable]:
        return list(self._children.get(rep_id, []))

    def roots(self) -> List[Hashable]:
        """Reps without a manager entry in the directory."""
        return [
            rep_id for rep_id in self.rep_ids
            if self._parents[rep_id] is None or self._parents[rep_id] not in self._parents
        ]

    def ancestors(self, rep_id: Hashable) -> List[Hashable]:
        """
        Ancestor chain, nearest manager first.

        A manager id that has no directory entry of its own still appears
        (as the last element): the chain stops there.

        Raises:
            HierarchyCycleError: the rep's chain enters a cycle
        """
        if rep_id in self._blocked:
            raise HierarchyCycleError(rep_id, self._blocked[rep_id])
        chain = []
        node = self._parents.get(rep_id)
        while node is not None:
            chain.append(node)
            node = self._parents.get(node)
        return chain

    def top_of_chain(self, rep_id: Hashable) -> Hashable:
        """Topmost ancestor (the rep itself for a root)."""
        chain = self.ancestors(rep_id)
        return chain[-1] if chain else rep_id

    def depth(self, rep_id: Hashable) -> int:
        return len(self.ancestors(rep_id))

    def descendants(self, rep_id: Hashable, include_self: bool = True) -> List[Hashable]:
        """All reports below ``rep_id`` (BFS with a visited-set guard)."""
        result = [rep_id] if include_self else []
        visited = {rep_id}
        queue = [rep_id]
        while queue:
            current = queue.pop(0)
            for child in self._children.get(current, []):
                if child in visited:
                    continue
                visited.add(child)
                result.append(child)
                queue.append(child)
        return result


def build_index(reps: Iterable[RepEntry], strict: bool = False) -> HierarchyIndex:
    """
    Build the parent/children index from a rep directory.

    Args:
        reps: RepEntry rows (active and inactive)
        strict: Raise on the first cycle instead of recording it

    Raises:
        DuplicateRepError: same rep id with two different managers
        HierarchyCycleError: only with strict=True
    """
    parents: Dict[Hashable, Optional[Hashable]] = {}
    names: Dict[Hashable, str] = {}

    for entry in reps:
        manager = entry.manager_rep_id
        if manager is not None and pd.api.types.is_scalar(manager) and pd.isna(manager):
            manager = None
        if entry.rep_id in parents and parents[entry.rep_id] != manager:
            raise DuplicateRepError(entry.rep_id, [parents[entry.rep_id], manager])
        parents[entry.rep_id] = manager
        if entry.rep_name:
            names[entry.rep_id] = entry.rep_name

    index = HierarchyIndex(parents, names)
    if strict and index.cycle_members:
        first = sorted(index.cycle_members, key=str)[0]
        index.ancestors(first)

    logger.debug(f"[build_index] {len(index):,} reps, {len(index.roots()):,} roots")
    return index
