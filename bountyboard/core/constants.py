"""
Constants
Centralised storage for bounty statuses, payload limits and anti-gaming thresholds.
All money amounts are integers in the smallest USDC unit (6 decimals).
All durations used against stored timestamps are in milliseconds.
"""
USDC_DECIMALS = 6
USDC_UNIT = 10 ** USDC_DECIMALS

# ---------------------------------------------------------------------------
# Bounty statuses
# ---------------------------------------------------------------------------
STATUS_OPEN = "open"
STATUS_CLAIMED = "claimed"
STATUS_SUBMITTED = "submitted"
STATUS_PAYMENT_PENDING = "payment_pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

# Statuses in which a bounty must carry a claimant
CLAIMANT_STATUSES = frozenset({
    STATUS_CLAIMED,
    STATUS_SUBMITTED,
    STATUS_PAYMENT_PENDING,
    STATUS_COMPLETED,
})

# Statuses in which a bounty must carry at least one submission
SUBMISSION_STATUSES = frozenset({
    STATUS_SUBMITTED,
    STATUS_PAYMENT_PENDING,
    STATUS_COMPLETED,
})

# ---------------------------------------------------------------------------
# Action kinds (rate limiter keys)
# ---------------------------------------------------------------------------
ACTION_CLAIM = "claim"
ACTION_SUBMIT = "submit"
ACTION_CREATE = "create"

# ---------------------------------------------------------------------------
# Payload limits
# ---------------------------------------------------------------------------
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 5000
MAX_REQUIREMENTS = 20
MAX_SUBMISSION_LENGTH = 5000
DEFAULT_DEADLINE_MS = 7 * 24 * 60 * 60 * 1000

# ---------------------------------------------------------------------------
# Anti-gaming thresholds
# ---------------------------------------------------------------------------
MIN_WORK_REWARD_THRESHOLD = 20 * USDC_UNIT
MIN_WORK_TIME_MS = 10 * 60 * 1000
PROOF_REWARD_THRESHOLD = 50 * USDC_UNIT
MIN_CONTENT_LENGTH = 10
SUSPICIOUS_SUBMIT_GAP_MS = 60 * 1000
PLACEHOLDER_HOSTS = frozenset({"example.com", "localhost"})
PLACEHOLDER_PATH_FRAGMENT = "/test/"

# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------
GRADE_PASS_SCORE = 90
AUTO_REJECT_SCORE = 20
WORD_COUNT_TOLERANCE = 0.8
KEYWORD_OVERLAP_RATIO = 0.5

# ---------------------------------------------------------------------------
# Payment and reputation
# ---------------------------------------------------------------------------
PLATFORM_FEE_PERCENT = 5
POSTING_FEE = 1 * USDC_UNIT
REPUTATION_AWARD = 10
REPUTATION_FEEDBACK_SCORE = 100
PAYMENT_TOKEN = "USDC"
PAYMENT_CHAIN = "base"
