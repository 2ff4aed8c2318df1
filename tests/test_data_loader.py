import numpy as np
import pandas as pd
import pytest

from revops.quarterly_rollup.data_loader import RecordLoader


@pytest.fixture
def loader():
    return RecordLoader()


def test_load_deals(loader):
    df = pd.DataFrame({
        "deal_id": [101, 102, None],
        "rep_id": [7.0, np.nan, 8],
        "amount": ["1,000", 2500.0, 10],
        "forecast_stage": ["Closed Won", np.nan, "Commit"],
        "partner_name": ["Acme", None, "  "],
        "create_date": ["2025-01-02", "2025-01-03", None],
        "close_date": ["2025-02-01", None, None],
        "health_score": [12, "n/a", 0],
    })

    deals = loader.load_deals(df)

    assert [d.deal_id for d in deals] == ["101", "102"]
    first, second = deals
    assert first.rep_id == "7"
    assert first.amount is None  # "1,000" does not parse
    assert first.stage == "Closed Won"
    assert first.partner_name == "Acme"
    assert first.health_score == 12.0
    assert second.rep_id is None
    assert second.amount == 2500.0
    assert second.stage == ""
    assert second.health_score is None


def test_load_deals_accepts_stage_alias(loader):
    df = pd.DataFrame({"deal_id": ["a"], "rep_id": ["r1"], "stage": ["Best Case"]})
    deal = loader.load_deals(df)[0]
    assert deal.stage == "Best Case"
    assert deal.close_date is None


def test_missing_required_column(loader):
    with pytest.raises(ValueError, match="rep_id"):
        loader.load_deals(pd.DataFrame({"deal_id": [1]}))


def test_load_quotas(loader):
    df = pd.DataFrame({
        "quota_period_id": [1, 1, 1],
        "role_level": [0, 3, None],
        "rep_id": [None, "r1", "r2"],
        "quota_amount": [1000, "x", 5],
        "carry_forward": [None, 25.0, None],
        "adjusted_quarterly_quota": [None, 900.0, None],
    })

    quotas = loader.load_quotas(df)

    assert len(quotas) == 2
    company, rep = quotas
    assert company.period_id == "1"
    assert company.role_level == 0
    assert company.rep_id is None
    assert company.quota_amount == 1000.0
    assert rep.quota_amount == 0.0
    assert rep.carry_forward == 25.0
    assert rep.adjusted_amount == 900.0
    assert rep.annual_target is None


def test_load_reps(loader):
    df = pd.DataFrame({
        "rep_id": ["r1", "m1", "old"],
        "manager_rep_id": ["m1", None, "m1"],
        "active": [True, True, False],
        "rep_name": ["Ravi", "Mona", None],
    })

    reps = loader.load_reps(df)
    assert [r.rep_id for r in reps] == ["r1", "m1", "old"]
    assert reps[1].manager_rep_id is None
    assert reps[2].active is False

    assert [r.rep_id for r in loader.load_reps(df, active_only=True)] == ["r1", "m1"]


def test_load_reps_without_active_column(loader):
    reps = loader.load_reps(pd.DataFrame({"rep_id": [1, 2], "manager_id": [None, 1]}))
    assert all(r.active for r in reps)
    assert reps[1].manager_rep_id == "1"


def test_load_periods(loader):
    df = pd.DataFrame({
        "period_id": [1, 2],
        "period_start": ["2025-01-01", "bad"],
        "period_end": ["2025-03-31", "2025-06-30"],
        "fiscal_year": [2025, 2025],
        "fiscal_quarter": [1, 2],
    })

    periods = loader.load_periods(df)

    assert len(periods) == 1
    assert periods[0].period_id == "1"
    assert periods[0].fiscal_year == "2025"
    assert periods[0].label == "FY2025 Q1"
