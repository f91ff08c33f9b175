"""Centralized constants for the tag monitor.

Single source of truth for store key layout, sentinels and upstream defaults.
"""

from typing import FrozenSet

# =============================================================================
# STORE KEY LAYOUT
# =============================================================================

LATEST_TAG_KEY = 'latest_tag'
LAST_CHECK_KEY = 'last_check'

# Trigger event log keys: <prefix><monotonic id>
DEPLOY_LOG_PREFIX = 'deploy_'
MANUAL_LOG_PREFIX = 'manual_'

# Short-lived lease guarding concurrent checks (only when CHECK_LOCK_ENABLED)
CHECK_LOCK_KEY = 'check_lock'

# =============================================================================
# RESPONSE SENTINELS
# =============================================================================

NO_TAG = 'none'
NEVER_CHECKED = 'never'

# =============================================================================
# UPSTREAM / DOWNSTREAM DEFAULTS
# =============================================================================

DEFAULT_REPOSITORY = 'MoonTechLab/LunaTV'
DEFAULT_GITHUB_API_URL = 'https://api.github.com'
DEFAULT_USER_AGENT = 'GitHub-Tag-Monitor'
GITHUB_ACCEPT_HEADER = 'application/vnd.github.v3+json'

TRIGGER_REASON = 'github_tag_update'

# =============================================================================
# SCHEDULING / STATUS
# =============================================================================

DEFAULT_CHECK_SCHEDULE = '0 * * * *'  # hourly
CHECK_JOB_ID = 'check_updates'
DEFAULT_STATUS_HISTORY_LIMIT = 5

# Paths served even when no state store is bound
STORE_OPTIONAL_PATHS: FrozenSet[str] = frozenset([
    '/health',
    '/docs',
    '/openapi.json',
    '/redoc',
])
