"""Relay domain configuration - thread and conversation settings."""

from config import MAX_THREAD_HISTORY

# History
DEFAULT_MAX_HISTORY = MAX_THREAD_HISTORY
HISTORY_FETCH_LIMIT = 100

# Threads
THREAD_AUTO_ARCHIVE_MINUTES = 60
THREAD_NAME_PREFIX = "Conversation"
THREAD_NAME_MAX = 100  # Discord limit

# Trigger word for the status report
STATUS_KEYWORD = "status"

# Duplicate gateway deliveries inside this window are dropped
MESSAGE_DEDUP_SECONDS = 5
