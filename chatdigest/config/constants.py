"""
Default values shared across the bot.
"""

DEFAULT_PRIMARY_MODEL = "gemini-2.5-flash"
DEFAULT_SECONDARY_MODEL = "claude-3-5-haiku-latest"
DEFAULT_AZURE_API_VERSION = "2024-10-21"

# Summarization
MAX_TRANSCRIPT_LENGTH = 50_000
MAX_INPUT_TOKENS = 24_000
DEFAULT_SUMMARY_MAX_TOKENS = 4000
DEFAULT_SUMMARY_TEMPERATURE = 0.7
DEFAULT_SUMMARY_TOP_P = 0.95

# /summary command
DEFAULT_MESSAGE_COUNT = 100
MIN_MESSAGE_COUNT = 1
MAX_MESSAGE_COUNT = 1000
COMMAND_COOLDOWN_SECONDS = 5 * 60

# Job queue and caches
JOB_RETENTION_SECONDS = 10 * 60
SUMMARY_CACHE_TTL = 30 * 60

# Delivery
SEGMENT_THRESHOLD = 3500
SEGMENT_LIMIT = 3200
TRUNCATED_MESSAGE_LENGTH = 3400
SEGMENT_PACING_DELAY = 0.1
SEND_MAX_RETRIES = 3
SEND_RETRY_DELAY = 1.0
SEND_BACKOFF_MULTIPLIER = 2
SEND_RESTRICTION_TTL = 6 * 60 * 60
