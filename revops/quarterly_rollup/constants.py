# revops/quarterly_rollup/constants.py
"""
Constants for the Quarterly Rollup Engine

VERSION: 1.3.0
CHANGELOG:
- v1.3.0: Added CEI reason codes and partner-deal ranking limits
- v1.2.0: Added WIC/PQS weights and band thresholds
- v1.0.0: Buckets, rollup levels, quota role levels
"""

# =====================================================================
# FORECAST BUCKETS
# =====================================================================

BUCKET_WON = 'won'
BUCKET_LOST = 'lost'
BUCKET_COMMIT = 'commit'
BUCKET_BEST = 'best'
BUCKET_PIPELINE = 'pipeline'
BUCKET_OTHER = 'other'

BUCKETS = [
    BUCKET_WON,
    BUCKET_LOST,
    BUCKET_COMMIT,
    BUCKET_BEST,
    BUCKET_PIPELINE,
    BUCKET_OTHER,
]

# Forecast buckets of still-open deals
ACTIVE_BUCKETS = (BUCKET_COMMIT, BUCKET_BEST, BUCKET_PIPELINE)
CLOSED_BUCKETS = (BUCKET_WON, BUCKET_LOST)

# Denominator of the mix ratios
MIX_BUCKETS = (BUCKET_PIPELINE, BUCKET_BEST, BUCKET_COMMIT, BUCKET_WON)

# =====================================================================
# ROLLUP LEVELS
# =====================================================================

LEVEL_REP = 'rep'
LEVEL_MANAGER = 'manager'
LEVEL_VP = 'vp'
LEVEL_COMPANY = 'company'

ROLLUP_LEVELS = [LEVEL_REP, LEVEL_MANAGER, LEVEL_VP, LEVEL_COMPANY]

UNASSIGNED_ID = '(unassigned)'
COMPANY_ID = '(company)'

# Quota role_level values as stored upstream
ROLE_LEVEL_COMPANY = 0
ROLE_LEVEL_VP = 1
ROLE_LEVEL_MANAGER = 2
ROLE_LEVEL_REP = 3

ROLE_LEVEL_TO_ROLLUP = {
    ROLE_LEVEL_COMPANY: LEVEL_COMPANY,
    ROLE_LEVEL_VP: LEVEL_VP,
    ROLE_LEVEL_MANAGER: LEVEL_MANAGER,
    ROLE_LEVEL_REP: LEVEL_REP,
}

# =====================================================================
# FACT NORMALIZATION
# =====================================================================

SECONDS_PER_DAY = 86400.0
DEFAULT_HEALTH_SCALE = 30.0

# =====================================================================
# CHANNEL SCORING
# =====================================================================

DIRECT_MOTION = 'Direct'

WIC_WEIGHTS = {
    'growth_capacity': 0.35,
    'win_quality': 0.30,
    'velocity_efficiency': 0.20,
    'deal_economics': 0.15,
}

PQS_WEIGHTS = {
    'win_rate': 0.40,
    'deal_size': 0.25,
    'confidence': 0.20,
    'velocity_penalty': 0.15,
}

# (threshold, label), checked top-down
WIC_BANDS = [
    (80.0, 'Invest Aggressively'),
    (60.0, 'Scale Selectively'),
    (40.0, 'Maintain'),
]
WIC_BAND_FLOOR = 'Deprioritize'

CEI_BANDS = [
    (120.0, 'High'),
    (90.0, 'Medium'),
    (70.0, 'Low'),
]
CEI_BAND_FLOOR = 'Critical'

CEI_DIRECT_INDEX = 100.0

# Reasons reported when a CEI index is absent
CEI_REASON_BASELINE_ZERO = 'baseline_zero'
CEI_REASON_MISSING_DIRECT = 'missing_direct'

# ln(dealCount + 1) / ln(CONFIDENCE_LOG_BASE) saturates at 1.0
CONFIDENCE_LOG_BASE = 10.0

# =====================================================================
# RANKING LIMITS
# =====================================================================

RANKING_DEFAULT_LIMIT = 200
RANKING_MAX_LIMIT = 500
