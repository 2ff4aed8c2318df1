import pytest

from revops.quarterly_rollup.exceptions import DuplicateRepError, HierarchyCycleError
from revops.quarterly_rollup.hierarchy import RepEntry, active_rep_ids, build_index


def test_parent_and_children(hierarchy):
    assert hierarchy.parent_of("r1") == "m1"
    assert hierarchy.parent_of("vp1") is None
    assert hierarchy.children_of("m1") == ["r1", "r2"]
    assert hierarchy.children_of("r1") == []
    assert hierarchy.roots() == ["vp1"]


def test_ancestors_nearest_first(hierarchy):
    assert hierarchy.ancestors("r3") == ["m2", "vp1"]
    assert hierarchy.ancestors("vp1") == []
    assert hierarchy.top_of_chain("r1") == "vp1"
    assert hierarchy.top_of_chain("vp1") == "vp1"
    assert hierarchy.depth("r2") == 2


def test_descendants_bfs(hierarchy):
    assert hierarchy.descendants("m1") == ["m1", "r1", "r2"]
    assert hierarchy.descendants("vp1", include_self=False) == ["m1", "m2", "r1", "r2", "r3", "r9"]
    assert hierarchy.descendants("unknown") == ["unknown"]


def test_active_filtering_left_to_caller(reps, hierarchy):
    assert "r9" in hierarchy
    assert "r9" not in active_rep_ids(reps)


def test_cycle_detected_without_blocking_other_reps():
    index = build_index([
        RepEntry("a", "b"),
        RepEntry("b", "a"),
        RepEntry("c", "a"),
        RepEntry("x", None),
        RepEntry("y", "x"),
    ])

    assert index.cycle_members == {"a", "b"}
    assert not index.is_resolvable("c")
    assert index.ancestors("y") == ["x"]

    with pytest.raises(HierarchyCycleError) as exc_info:
        index.ancestors("c")
    assert exc_info.value.rep_id == "c"
    assert set(exc_info.value.cycle) == {"a", "b"}


def test_self_managed_rep_is_a_cycle():
    index = build_index([RepEntry("solo", "solo")])
    assert index.cycle_members == {"solo"}
    with pytest.raises(HierarchyCycleError):
        index.top_of_chain("solo")


def test_descendants_terminate_on_cycles():
    index = build_index([RepEntry("a", "b"), RepEntry("b", "a")])
    assert sorted(index.descendants("a")) == ["a", "b"]


def test_strict_build_raises_on_cycle():
    with pytest.raises(HierarchyCycleError):
        build_index([RepEntry("a", "b"), RepEntry("b", "a")], strict=True)


def test_duplicate_rep_with_conflicting_manager():
    with pytest.raises(DuplicateRepError):
        build_index([RepEntry("r1", "m1"), RepEntry("r1", "m2")])
    # exact duplicates are harmless
    assert len(build_index([RepEntry("r1", "m1"), RepEntry("r1", "m1")])) == 1


def test_manager_outside_directory_ends_chain():
    index = build_index([RepEntry("r1", "ghost")])
    assert index.ancestors("r1") == ["ghost"]
    assert index.roots() == ["r1"]


def test_nan_manager_treated_as_root():
    index = build_index([RepEntry("r1", float("nan"))])
    assert index.parent_of("r1") is None
    assert index.name_of("r1") == "r1"
