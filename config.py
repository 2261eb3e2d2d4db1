"""Configuration for the EcoFinance notification pipeline"""

# ============================================================
# NOTIFICATION STORE
# ============================================================
# Notifications kept in memory (newest first, oldest evicted)
MAX_NOTIFICATIONS = 100

# Notifications written to persistent storage
MAX_PERSISTED_NOTIFICATIONS = 50

# Offline / quiet-hours delivery queue size (last N kept)
MAX_QUEUED_NOTIFICATIONS = 50

# Persisted notifications older than this are pruned on load
NOTIFICATION_RETENTION_DAYS = 30

# Maximum notifications per category per calendar day
DAILY_CATEGORY_LIMITS = {
    "budget": 5,
    "goal": 3,
    "transaction": 10,
    "reminder": 5,
    "report": 1,
    "system": 3,
    "insight": 5,
    "achievement": 2,
}
DEFAULT_DAILY_LIMIT = 5

# Persistence keys
STORAGE_KEY_NOTIFICATIONS = "ecofinance-notifications"
STORAGE_KEY_QUEUE = "notification_queue"
STORAGE_KEY_COOLDOWNS = "rule_cooldowns"

# ============================================================
# RULE ENGINE
# ============================================================
# Minimum cooldown per category (minutes). Applied as a floor on top of
# each rule's own cooldown when the engine is built by create_pipeline().
MIN_COOLDOWN_MINUTES = {
    "budget": 30,
    "goal": 60,
    "transaction": 5,
    "reminder": 15,
    "report": 10080,  # 1 week
    "system": 10,
    "insight": 60,
    "achievement": 0,
}

# Default interval for "recurring" conditions
RECURRING_DEFAULT_INTERVAL_MINUTES = 7 * 24 * 60

# ============================================================
# TOASTS
# ============================================================
MAX_VISIBLE_TOASTS = 5
MAX_VISIBLE_TOASTS_MOBILE = 3
MOBILE_BREAKPOINT = 768  # px

TOAST_DEFAULT_DURATION_MS = 5000

# Near-duplicate requests inside this window refresh the existing toast
TOAST_DEBOUNCE_SECONDS = 3.0
TOAST_SIMILARITY_THRESHOLD = 0.85

# Exact duplicates (per source) inside this window are dropped
TOAST_DEDUP_WINDOW_SECONDS = 5.0

# Minimum spacing between two promotions from the wait queue
TOAST_PROMOTION_INTERVAL_SECONDS = 0.3

# Time a toast spends in the "exiting" state before removal
TOAST_EXIT_ANIMATION_SECONDS = 0.3

# Ticker resolution (progress bar refresh)
TOAST_TICK_SECONDS = 0.05

# Toast settings per notification priority: (type, duration ms)
PRIORITY_TOAST_STYLE = {
    "urgent": ("error", 10000),
    "high": ("warning", 7000),
    "normal": ("info", 5000),
    "low": ("info", 5000),
}

# ============================================================
# SYNC
# ============================================================
SYNC_INTERVAL_SECONDS = 300
SYNC_TIMEOUT_SECONDS = 10

# ============================================================
# WEB SERVER
# ============================================================
WEB_HOST = "0.0.0.0"
WEB_PORT = 8000
