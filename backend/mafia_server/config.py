from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

ROLE_CATALOG: tuple[str, ...] = (
    "pablo",
    "martinez",
    "blanco",
    "churchill",
    "doctor",
    "moreno",
    "benaparte",
    "citizen",
)
DEFAULT_PRIVILEGED_ROLES = "pablo,martinez,blanco"


def _csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings:
    def __init__(self) -> None:
        self.ws_port = int(os.getenv("WS_PORT", "3000"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
        self.default_max_players = min(
            20,
            max(3, int(os.getenv("DEFAULT_MAX_PLAYERS", "11"))),
        )
        self.room_code_length = max(4, int(os.getenv("ROOM_CODE_LENGTH", "6")))
        self.max_timer_ms = max(1000, int(os.getenv("MAX_TIMER_MS", "3600000")))
        self.cors_allow_origins = _csv(os.getenv("CORS_ALLOW_ORIGINS", "*")) or ["*"]

        privileged_raw = _csv(
            os.getenv("PRIVILEGED_ROLES", DEFAULT_PRIVILEGED_ROLES).lower()
        )
        self.privileged_roles = tuple(
            role for role in dict.fromkeys(privileged_raw) if role in ROLE_CATALOG
        )


settings = Settings()
