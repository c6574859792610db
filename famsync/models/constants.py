"""Constants for famsync.

This module centralizes all magic numbers and default values used throughout the application.
"""

# Task validation
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

# Repeat expansion
MAX_OCCURRENCES_IN_RANGE = 365

# Outbox / sync
DEFAULT_MAX_RETRIES = 5
DEFAULT_SYNC_INTERVAL_SEC = 30
DEFAULT_OUTBOX_MAX_AGE_DAYS = 7
BACKOFF_BASE_MS = 1000
BACKOFF_MAX_MS = 30000

# Local cache retention
DEFAULT_HISTORY_RETENTION_DAYS = 7
DEFAULT_COMPLETED_RETENTION_DAYS = 7
DEFAULT_STALE_AFTER_SEC = 3600  # 1 hour

# Approvals
DEFAULT_APPROVAL_TTL_DAYS = 7
