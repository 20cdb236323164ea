"""Hard limits for the admin channel engine.

These values bound memory, time and routing per turn. They are read by the
orchestrator, the handlers and the services; settings loaded from the
environment may override a few of them (see ``settings.py``).
"""

# Lifetime of a proposed mutation awaiting confirmation.
# A pending action is valid while now <= expires_at.
PENDING_ACTION_TTL_SECONDS = 300

# Maximum internal transitions per turn before the loop guard forces the
# turn to end.
DEFAULT_MAX_ITERATIONS = 10

# Sliding window of (role, content) pairs kept in session state.
MAX_HISTORY_ENTRIES = 20

# Turns of history handed to the fallback classifier.
CLASSIFIER_HISTORY_TURNS = 6

# Executed-action log length kept per turn chain.
MAX_EXECUTED_ACTIONS = 50

# Per-operation timeouts (seconds).
DB_TIMEOUT_SECONDS = 10.0
CLASSIFIER_TIMEOUT_SECONDS = 15.0
TELEGRAM_TIMEOUT_SECONDS = 10.0

# Attempts per store read; writes run once. A store mutation may look a row
# up before writing, so its overall budget spans every attempt plus the write.
READ_ATTEMPTS = 3
READ_BACKOFF_SECONDS = 0.1

# Concurrent deliveries when fanning out a notification to several operators.
NOTIFICATION_MAX_WORKERS = 5

# Inbound rate limit per operator.
MAX_MESSAGES_PER_HOUR = 30
RATE_WINDOW_SECONDS = 3600
