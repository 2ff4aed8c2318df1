import math

import pytest

from revops.quarterly_rollup.aggregator import RollupAggregator, RollupGroup, find_group
from revops.quarterly_rollup.facts import Fact
from revops.quarterly_rollup.metrics import (
    KpiRow,
    QuotaRecord,
    QuotaTotal,
    RollupMetrics,
    compute_kpis,
    index_quotas,
    safe_div,
    sum_quotas,
    top_partner_deals,
    weighted_mean,
)


# =============================================================================
# SAFE DIVISION
# =============================================================================

def test_safe_div():
    assert safe_div(10, 4) == 2.5
    assert safe_div(10, 0) is None
    assert safe_div(float("nan"), 4) is None
    assert safe_div(10, float("nan")) is None
    assert safe_div(float("inf"), 4) is None
    assert safe_div(None, 4) is None
    assert safe_div(10, None) is None
    assert safe_div(0, 5) == 0.0


# =============================================================================
# QUOTAS
# =============================================================================

def test_sum_quotas_stacks_corrections():
    total = sum_quotas([
        QuotaRecord("p", 3, 1000.0, rep_id="r1", carry_forward=50.0),
        QuotaRecord("p", 3, 200.0, rep_id="r1"),
    ])
    assert total.quota_amount == 1200.0
    assert total.carry_forward == 50.0
    assert total.adjusted_amount is None
    assert total.effective_quota == 1250.0
    assert total.row_count == 2


def test_effective_quota_prefers_adjusted():
    total = sum_quotas([QuotaRecord("p", 3, 1000.0, rep_id="r1", adjusted_amount=900.0)])
    assert total.effective_quota == 900.0
    assert QuotaTotal().effective_quota is None


def test_index_quotas_maps_role_levels():
    index = index_quotas([
        QuotaRecord("p", 0, 5000.0),
        QuotaRecord("p", 2, 800.0, rep_id="m1"),
        QuotaRecord("p", 9, 1.0, rep_id="x"),
    ])
    assert index[("p", "company", "(company)")].quota_amount == 5000.0
    assert index[("p", "manager", "m1")].quota_amount == 800.0
    assert len(index) == 2


def test_non_finite_quota_treated_as_zero():
    total = sum_quotas([QuotaRecord("p", 3, float("inf"), rep_id="r1")])
    assert total.quota_amount == 0.0


# =============================================================================
# KPI FORMULAS
# =============================================================================

def test_scenario_won_lost_commit(hierarchy, closed_normalizer, scenario_deals, q1):
    facts = closed_normalizer.build_facts(scenario_deals, q1)
    groups = RollupAggregator(hierarchy).aggregate(facts)
    rep = find_group(groups, "rep", "r1", q1.period_id)

    row = compute_kpis(rep, sum_quotas([QuotaRecord(q1.period_id, 3, 100000.0, rep_id="r1")]))

    assert row.won_amount == 60000
    assert row.lost_amount == 20000
    assert row.commit_amount == 15000
    assert row.attainment == pytest.approx(0.6)
    assert row.win_rate == 0.5
    assert row.commit_coverage == pytest.approx(0.15)
    assert row.gap_to_quota == 40000
    # lost amounts stay out of the mix denominator
    assert row.mix_won == pytest.approx(60000 / 75000)
    assert row.mix_commit == pytest.approx(15000 / 75000)
    assert row.active_amount == 15000
    assert row.closed_amount == 80000


def test_win_rate_absent_without_closed_deals():
    group = RollupGroup("p", "rep", "r1", commit_amount=500.0, commit_count=1, total_count=1)
    row = compute_kpis(group)
    assert row.win_rate is None
    assert row.opp_to_win == 0.0
    assert row.aov is None
    assert row.attainment is None


def test_empty_scope_gives_null_row():
    row = compute_kpis(RollupGroup.empty("p", "company", "(company)"))
    assert row.won_amount == 0.0
    assert row.total_count == 0
    assert row.attainment is None
    assert row.win_rate is None
    assert row.mix_won is None
    assert row.avg_days_won is None
    assert row.gap_to_quota is None


def test_zero_quota_gives_absent_attainment():
    group = RollupGroup("p", "rep", "r1", won_amount=10.0, won_count=1, total_count=1)
    row = compute_kpis(group, sum_quotas([QuotaRecord("p", 3, 0.0, rep_id="r1")]))
    assert row.attainment is None
    assert row.gap_to_quota == -10.0


def test_partner_metrics():
    group = RollupGroup(
        "p", "rep", "r1",
        won_amount=300.0, won_count=3, lost_amount=100.0, lost_count=1, total_count=4,
        partner_closed_amount=200.0, partner_closed_count=2,
        partner_won_amount=150.0, partner_won_count=1,
    )
    row = compute_kpis(group)
    assert row.partner_contribution == 0.5
    assert row.partner_win_rate == 0.5
    assert row.aov == 100.0


def test_cycle_days_are_count_weighted_at_manager_level(hierarchy):
    facts = [Fact(f"a{i}", "r1", "p", "won", 1.0, age_days=100) for i in range(1)]
    facts += [Fact(f"b{i}", "r2", "p", "won", 1.0, age_days=10) for i in range(99)]
    groups = RollupAggregator(hierarchy).aggregate(facts)
    metrics = RollupMetrics()

    r1 = metrics.kpi_row(find_group(groups, "rep", "r1", "p"))
    r2 = metrics.kpi_row(find_group(groups, "rep", "r2", "p"))
    manager = metrics.kpi_row(find_group(groups, "manager", "m1", "p"))

    assert r1.avg_days_won == 100.0
    assert r2.avg_days_won == 10.0
    assert manager.avg_days_won == pytest.approx((100 + 99 * 10) / 100)
    assert manager.avg_days_won == pytest.approx(
        weighted_mean([(r1.avg_days_won, r1.won_count), (r2.avg_days_won, r2.won_count)])
    )
    assert manager.avg_days_won != pytest.approx((100.0 + 10.0) / 2)


def test_weighted_mean_skips_absent():
    assert weighted_mean([(None, 5), (4.0, 0)]) is None
    assert weighted_mean([(2.0, 1), (None, 3), (6.0, 3)]) == 5.0


def test_health_average():
    group = RollupGroup("p", "rep", "r1", health_sum=1.5, health_count=2)
    assert compute_kpis(group).avg_health == 0.75


def test_kpi_row_average_cycle_days_accessor():
    row = KpiRow("p", "rep", "r1", avg_days_won=3.0, avg_days_lost=7.0)
    assert row.average_cycle_days("won") == 3.0
    assert row.average_cycle_days("lost") == 7.0
    with pytest.raises(ValueError):
        row.average_cycle_days("commit")


# =============================================================================
# CALCULATOR
# =============================================================================

def test_kpi_rows_join_quota_by_level(hierarchy, closed_normalizer, scenario_deals, q1, quotas):
    facts = closed_normalizer.build_facts(scenario_deals, q1)
    groups = RollupAggregator(hierarchy).aggregate(facts)
    metrics = RollupMetrics(quotas)

    rows = {r.key: r for r in metrics.kpi_rows(groups)}
    assert rows[(q1.period_id, "rep", "r1")].attainment == pytest.approx(0.6)
    assert rows[(q1.period_id, "manager", "m1")].attainment == pytest.approx(0.4)
    assert rows[(q1.period_id, "company", "(company)")].attainment == pytest.approx(0.6)
    assert rows[(q1.period_id, "vp", "vp1")].attainment is None


def test_quota_only_entities_get_rows(hierarchy, closed_normalizer, scenario_deals, q1, quotas):
    facts = closed_normalizer.build_facts(scenario_deals, q1)
    groups = RollupAggregator(hierarchy).aggregate(facts)
    rows = RollupMetrics(quotas).kpi_rows_with_quota_only(groups, q1.period_id, "rep")

    by_rep = {r.entity_id: r for r in rows}
    assert set(by_rep) == {"r1", "r2", "r3"}
    assert by_rep["r2"].attainment == 0.0
    assert by_rep["r2"].total_count == 0


def test_company_attainment_quarter_and_year(q1, q2, q4_2024, quotas):
    metrics = RollupMetrics(quotas)
    result = metrics.company_attainment(
        q1, [q4_2024, q1, q2], {q1.period_id: 60000.0, q2.period_id: 48000.0}
    )
    assert result["quarterly_attainment"] == pytest.approx(0.6)
    assert result["annual_actual_amount"] == 108000.0
    assert result["annual_company_quota_amount"] == 220000.0
    assert result["annual_attainment"] == pytest.approx(108000.0 / 220000.0)


def test_company_attainment_without_quota(q4_2024):
    result = RollupMetrics([]).company_attainment(q4_2024, [q4_2024], {q4_2024.period_id: 10.0})
    assert result["quarterly_attainment"] is None
    assert result["annual_attainment"] is None


def test_rank_by_attainment_order_and_limit():
    rows = [
        KpiRow("p", "rep", "b", quota_amount=100.0, effective_quota=100.0, attainment=0.5),
        KpiRow("p", "rep", "a", quota_amount=100.0, effective_quota=100.0, attainment=0.5),
        KpiRow("p", "rep", "c", quota_amount=500.0, effective_quota=500.0, attainment=0.5),
        KpiRow("p", "rep", "z", quota_amount=0.0, effective_quota=0.0, attainment=None),
        KpiRow("p", "rep", "top", quota_amount=10.0, effective_quota=10.0, attainment=1.2),
        KpiRow("p", "rep", "noquota", attainment=None),
    ]
    ranked = RollupMetrics.rank_by_attainment(rows)
    assert [r.entity_id for r in ranked] == ["top", "c", "a", "b", "z"]
    assert len(RollupMetrics.rank_by_attainment(rows, limit=0)) == 1
    assert len(RollupMetrics.rank_by_attainment(rows, limit=10_000)) == 5


def test_top_partner_deals():
    facts = [
        Fact("d1", "r1", "p", "won", 500.0, partner_name="Acme"),
        Fact("d2", "r1", "p", "won", 900.0, partner_name="Globex"),
        Fact("d3", "r1", "p", "won", 500.0, partner_name="Acme"),
        Fact("d4", "r1", "p", "won", 5000.0),
        Fact("d5", "r1", "p", "lost", 700.0, partner_name="Acme"),
    ]
    won = top_partner_deals(facts, "won", limit=3)
    assert [f.deal_id for f in won] == ["d2", "d3", "d1"]
    assert [f.deal_id for f in top_partner_deals(facts, "lost")] == ["d5"]
    with pytest.raises(ValueError):
        top_partner_deals(facts, "commit")


def test_no_ratio_is_ever_nan_or_inf():
    group = RollupGroup("p", "rep", "r1", won_amount=float("nan"), won_count=0)
    row = compute_kpis(group, QuotaTotal(quota_amount=0.0, row_count=1))
    for name, value in vars(row).items():
        if isinstance(value, float):
            assert not math.isinf(value), name
