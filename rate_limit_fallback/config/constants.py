"""
Timing constants and defaults for fallback orchestration.

All durations are expressed in milliseconds to match the configuration
document format (``cooldownMs``, ``learningWindowMs``, ...).
"""

# Deduplication window for fallback processing
DEDUP_WINDOW_MS = 5000

# Inactivity timeout after which retry state is replaced by a fresh one
STATE_TIMEOUT_MS = 30000

# Interval between periodic maintenance sweeps
CLEANUP_INTERVAL_MS = 300000  # 5 minutes

# TTL for tracked session models, active fallbacks and hierarchies
SESSION_ENTRY_TTL_MS = 3600000  # 1 hour

DEFAULT_COOLDOWN_MS = 60 * 1000

DEFAULT_MAX_SUBAGENT_DEPTH = 10

# Metrics reset intervals
RESET_INTERVAL_MS = {
    "hourly": 60 * 60 * 1000,
    "daily": 24 * 60 * 60 * 1000,
    "weekly": 7 * 24 * 60 * 60 * 1000,
}

# Notification durations
TOAST_DURATION_MS = 3000
TOAST_ERROR_DURATION_MS = 5000

# Configuration file discovery
CONFIG_FILE_NAME = "rate-limit-fallback.json"
CONFIG_PATH_ENV_VAR = "RATE_LIMIT_FALLBACK_CONFIG"

# Learned pattern defaults
DEFAULT_MAX_LEARNED_PATTERNS = 20
PATTERN_MERGE_THRESHOLD = 0.8
MAX_TRACKED_SAMPLES = 10
