from __future__ import annotations

import hashlib
import json
import random
import re
import time
import uuid
from typing import Any, cast

from .runtime_constants import (
    MAX_MAX_PLAYERS,
    MIN_MAX_PLAYERS,
    PHASES,
    PLAYER_NAME_MAX_LENGTH,
    PRIVILEGED_CHAT_MAX_LENGTH,
    ROOM_CODE_CHARS,
    ROOM_CODE_LENGTH,
)
from .runtime_types import Phase


def now_ms() -> int:
    return int(time.time() * 1000)


def random_id() -> str:
    return str(uuid.uuid4())


def random_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return "".join(random.choice(ROOM_CODE_CHARS) for _ in range(max(4, length)))


def mask_key(key: str | None) -> str:
    if not key:
        return "none"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:10]


def sanitize_room_id(raw: Any) -> str:
    value = str(raw or "").upper()
    filtered = "".join(ch for ch in value if ch.isascii() and ch.isalnum())
    return filtered[:16]


def sanitize_player_name(raw: Any) -> str:
    value = str(raw or "").strip()
    if not value:
        return ""
    return re.sub(r"\s+", " ", value)[:PLAYER_NAME_MAX_LENGTH].strip()


def sanitize_chat_text(raw: Any) -> str:
    return str(raw or "").strip()[:PRIVILEGED_CHAT_MAX_LENGTH].strip()


def clamp_max_players(value: int) -> int:
    return max(MIN_MAX_PLAYERS, min(MAX_MAX_PLAYERS, int(value)))


def normalize_phase(value: Any) -> Phase | None:
    normalized = str(value or "").strip().lower()
    if normalized in PHASES:
        return cast(Phase, normalized)
    return None


def parse_envelope(raw: str | bytes | dict[str, Any]) -> tuple[str, dict[str, Any]] | None:
    """Decode one inbound frame into ``(type, payload)``; ``None`` means drop it."""
    if isinstance(raw, dict):
        data: Any = raw
    else:
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError):
            return None

    if not isinstance(data, dict):
        return None

    message_type = data.get("type")
    if not isinstance(message_type, str) or not message_type:
        return None

    payload = data.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return None

    return message_type, payload
