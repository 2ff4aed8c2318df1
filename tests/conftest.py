import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from revops.quarterly_rollup.facts import Deal, FactNormalizer, WindowMode  # noqa: E402
from revops.quarterly_rollup.hierarchy import RepEntry, build_index  # noqa: E402
from revops.quarterly_rollup.metrics import QuotaRecord  # noqa: E402
from revops.quarterly_rollup.periods import QuotaPeriod  # noqa: E402

AS_OF = datetime(2025, 6, 30, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def q4_2024():
    return QuotaPeriod('p-2024-q4', date(2024, 10, 1), date(2024, 12, 31), fiscal_year='2024', fiscal_quarter='4')


@pytest.fixture
def q1():
    return QuotaPeriod('p-2025-q1', date(2025, 1, 1), date(2025, 3, 31), fiscal_year='2025', fiscal_quarter='1')


@pytest.fixture
def q2():
    return QuotaPeriod('p-2025-q2', date(2025, 4, 1), date(2025, 6, 30), fiscal_year='2025', fiscal_quarter='2')


@pytest.fixture
def periods(q4_2024, q1, q2):
    return [q2, q4_2024, q1]


@pytest.fixture
def reps():
    """vp1 -> m1 -> (r1, r2); vp1 -> m2 -> r3; r9 is inactive under m2."""
    return [
        RepEntry('vp1', None, rep_name='Vera'),
        RepEntry('m1', 'vp1', rep_name='Mona'),
        RepEntry('m2', 'vp1', rep_name='Max'),
        RepEntry('r1', 'm1', rep_name='Ravi'),
        RepEntry('r2', 'm1', rep_name='Rosa'),
        RepEntry('r3', 'm2', rep_name='Remy'),
        RepEntry('r9', 'm2', active=False, rep_name='Rita'),
    ]


@pytest.fixture
def hierarchy(reps):
    return build_index(reps)


@pytest.fixture
def make_deal():
    counter = {'n': 0}

    def _make(
        rep_id='r1',
        amount=1000.0,
        stage='Pipeline',
        partner_name=None,
        create_date='2025-01-05',
        close_date='2025-02-15',
        health_score=None,
        deal_id=None,
    ):
        counter['n'] += 1
        return Deal(
            deal_id=deal_id or f"d{counter['n']}",
            rep_id=rep_id,
            amount=amount,
            stage=stage,
            partner_name=partner_name,
            create_date=create_date,
            close_date=close_date,
            health_score=health_score,
        )

    return _make


@pytest.fixture
def closed_normalizer():
    return FactNormalizer(WindowMode.CLOSED_IN_PERIOD, as_of=AS_OF)


@pytest.fixture
def created_normalizer():
    return FactNormalizer(WindowMode.CREATED_IN_PERIOD, as_of=AS_OF)


@pytest.fixture
def scenario_deals(make_deal):
    """Quota 100,000: A won 60k, B lost 20k, C commit 15k."""
    return [
        make_deal(rep_id='r1', amount=60000, stage='Closed Won', deal_id='A'),
        make_deal(rep_id='r1', amount=20000, stage='Closed Lost', deal_id='B'),
        make_deal(rep_id='r1', amount=15000, stage='Commit', deal_id='C'),
    ]


@pytest.fixture
def quotas(q1, q2):
    return [
        QuotaRecord(q1.period_id, 0, 100000.0),
        QuotaRecord(q2.period_id, 0, 120000.0),
        QuotaRecord(q1.period_id, 3, 100000.0, rep_id='r1'),
        QuotaRecord(q1.period_id, 3, 50000.0, rep_id='r2'),
        QuotaRecord(q1.period_id, 3, 40000.0, rep_id='r3'),
        QuotaRecord(q1.period_id, 2, 150000.0, rep_id='m1'),
    ]
