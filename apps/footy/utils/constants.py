"""
Constants used across the reputation and matchmaking services.
"""

import os

# Skill scale, lowest to highest. "Any" disables the skill filter.
ANY_SKILL_LEVEL = "Any"
SKILL_LEVELS = ["Beginner", "Intermediate", "Advanced", "Semi-Pro", "Professional"]

# Players per team for each match format
FORMAT_TEAM_SIZE = {"5v5": 5, "7v7": 7, "11v11": 11}
# Minimum players per team before a match can be started
FORMAT_MIN_PLAYERS = {"5v5": 2, "7v7": 3, "11v11": 4}

DEFAULT_LATE_JOIN_DEADLINE_MINUTES = 15

# Reputation
NEUTRAL_REPUTATION = 3.0
MIN_REPUTATION = 1.0
MAX_REPUTATION = 5.0
MIN_RATING_WEIGHT = 0.1
MAX_RATING_WEIGHT = 2.0
REPUTATION_WEIGHT_FACTOR = 0.2  # weight gained per reputation point above neutral
SUSPICIOUS_CATEGORY_GAP = 1.5
LOW_REPUTATION_RATER_THRESHOLD = 2.0
RECENT_WINDOW_DAYS = 30
TOP_RATED_WINDOW_DAYS = 90
REPUTATION_PENALTY = 0.5

# Reports
SEVERITY_PRIORITY = {"low": 1, "medium": 2, "high": 4, "critical": 5}
MAX_REPORT_PRIORITY = 5
CRITICAL_CATEGORIES = ("physical_aggression", "harassment", "discrimination")
# Urgent queue: severity weight plus up to 2 points for age (one per day)
SEVERITY_URGENCY_WEIGHT = {"low": 1, "medium": 2, "high": 3, "critical": 4}
MAX_URGENCY_AGE_BONUS = 2.0
URGENT_PRIORITY_THRESHOLD = 4
URGENT_PENDING_AGE_HOURS = 24
ADMIN_NOTE_MAX_LENGTH = 1000

# Sanctions
CRITICAL_SUSPENSION_DAYS = 7
WARNING_REPORT_THRESHOLD = 3
SUSPENSION_REPORT_THRESHOLD = 5
MAX_VOLUME_SUSPENSION_DAYS = 14
DAYS_PER_REPORT = 2
PERMANENT_BAN_CRITICAL_THRESHOLD = 3

# Player requests
DEFAULT_REQUEST_TTL_MINUTES = int(os.getenv("DEFAULT_REQUEST_TTL_MINUTES", "60"))
MAX_ELIGIBLE_CANDIDATES = int(os.getenv("MAX_ELIGIBLE_CANDIDATES", "50"))
DEFAULT_MAX_DISTANCE_METERS = 25000
MIN_MAX_DISTANCE_METERS = 100
MAX_MAX_DISTANCE_METERS = 100000
MAX_REQUEST_SLOTS = 11
REQUEST_LIST_LIMIT = 50
