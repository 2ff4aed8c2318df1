# revops/quarterly_rollup/exceptions.py
"""Errors raised by the rollup engine."""

from typing import List


class RollupError(Exception):
    """Base class for rollup engine errors."""


class HierarchyCycleError(RollupError):
    """A rep is (transitively) its own manager."""

    def __init__(self, rep_id: str, cycle: List[str]):
        self.rep_id = rep_id
        self.cycle = list(cycle)
        path = ' -> '.join(str(r) for r in self.cycle + self.cycle[:1])
        super().__init__(f"Hierarchy cycle reached from rep {rep_id}: {path}")


class DuplicateRepError(RollupError):
    """The same rep id appears twice with different managers."""

    def __init__(self, rep_id: str, parents: List[str]):
        self.rep_id = rep_id
        self.parents = list(parents)
        super().__init__(
            f"Rep {rep_id} listed with conflicting managers: {self.parents}"
        )
