"""Default values shared across nexusflow modules."""

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_ATTEMPT_TIMEOUT = 60.0
DEFAULT_BACKOFF_BASE = 1.5
DEFAULT_BACKOFF_JITTER = 0.5

DEFAULT_AGENT_MAX_ITERATIONS = 10
DEFAULT_SYSTEM_PROMPT = "You are helpful"

DEFAULT_WAIT_SECONDS = 5.0
