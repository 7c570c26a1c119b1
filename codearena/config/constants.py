# config constants
DEFAULT_ENV = "configs/.env"
DEFAULT_VIEW_CFG = "configs/watch.yml"

DEFAULT_TIMEOUT_MS = 10_000
RETRY_BACKOFF_MS = 300

LEADERBOARD_POLL_SEC = 30
BATTLES_POLL_SEC = 20
BATTLE_POLL_SEC = 5
CLOCK_TICK_SEC = 1.0

LEADERBOARD_PAGE_SIZE = 50
