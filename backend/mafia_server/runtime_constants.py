from __future__ import annotations

from .config import ROLE_CATALOG, settings
from .runtime_types import Phase

DEFAULT_MAX_PLAYERS = settings.default_max_players
MIN_MAX_PLAYERS = 3
MAX_MAX_PLAYERS = 20
MIN_PLAYERS_TO_START = 3
MIN_ENABLED_ROLES = 3
MAX_ROLE_COUNT = 50
FILLER_ROLE = "citizen"
PRIVILEGED_ROLES: frozenset[str] = frozenset(settings.privileged_roles)

PHASES: tuple[Phase, Phase, Phase] = ("lobby", "night", "day")
PRIVILEGED_CHAT_PHASE: Phase = "night"

# One countdown step per elapsed second of wall time.
TIMER_STEP_MS = 1000
TIMER_TICK_INTERVAL_MS = TIMER_STEP_MS
MAX_TIMER_MS = settings.max_timer_ms

PLAYER_NAME_MAX_LENGTH = 24
PRIVILEGED_CHAT_MAX_LENGTH = 400
DEFAULT_HOST_NAME = "Host"
DEFAULT_GUEST_NAME = "Guest"

ROOM_CODE_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
ROOM_CODE_LENGTH = settings.room_code_length
ROOM_CODE_ATTEMPTS = 24

STALE_CONNECTION_CLOSE_CODE = 4002
SERVER_SHUTDOWN_CLOSE_CODE = 1001
