# livequiz_bot/trivia/constants.py

OPTION_LABELS = ("A", "B", "C", "D")

TICK_INTERVAL_SECONDS = 1.0
REVEAL_DELAY_SECONDS = 2.0
FALLBACK_TIMEOUT_SECONDS = 7.0
DEMO_INTERVAL_SECONDS = 0.5

FIRST_RESPONDERS_CAP = 5

DEFAULT_TIMER_SECONDS = 30
MIN_TIMER_SECONDS = 10
MAX_TIMER_SECONDS = 120
TOP_PLAYER_CHOICES = (1, 3, 5, 10)
DEFAULT_TOP_PLAYERS = 3

LOCK_CAUSE_LOCAL = "local"
LOCK_CAUSE_TIMEOUT = "timeout"

ANONYMOUS_PARTICIPANT = "Anonymous"

DEMO_NAMES = ("Ali", "Ayse", "Can", "Deniz", "Ece", "Fatih", "Gul", "Hakan")
