"""Centralized constants for the scheduler.

All magic numbers and scheduling defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Time ----------
SECONDS_PER_DAY = 86400

# ---------- Queues ----------
QUEUE_LIMIT = 50  # max cards held in the new/review batch
REPORT_LIMIT = 1000  # max learning rows fetched or counted at once
COLLAPSE_TIME = 1200  # seconds a learning card may be shown early

# ---------- Ease factor ----------
MIN_FACTOR = 1300  # permille
LAPSE_FACTOR_PENALTY = 200
# Added to the factor for ease 2, 3, 4 (hard, good, easy)
FACTOR_ADDITION_VALUES = (-150, 0, 150)
HARD_INTERVAL_MULTIPLIER = 1.2

# ---------- Learning ----------
MAX_LEARN_JITTER = 25  # percent added to a learning delay when not collapsed

# ---------- Leeches ----------
LEECH_TAG = "leech"

# ---------- Reporting ----------
MATURE_INTERVAL = 21  # days

# ---------- Review log ----------
LOG_RETRY_ATTEMPTS = 5
LOG_RETRY_DELAY = 0.01  # seconds, doubled after every conflict
