from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    AUTHORIZATION = "AUTHORIZATION"
    VALIDATION = "VALIDATION"
    STATE_CONFLICT = "STATE_CONFLICT"
    CAPACITY = "CAPACITY"


ERROR_CATEGORIES: dict[str, ErrorCategory] = {
    "ROOM_NOT_FOUND": ErrorCategory.NOT_FOUND,
    "PEER_NOT_FOUND": ErrorCategory.NOT_FOUND,
    "NOT_IN_ROOM": ErrorCategory.NOT_FOUND,
    "ONLY_HOST": ErrorCategory.AUTHORIZATION,
    "NOT_PRIVILEGED": ErrorCategory.AUTHORIZATION,
    "NEED_AT_LEAST_3_PLAYERS": ErrorCategory.VALIDATION,
    "ROLE_POOL_TOO_SMALL": ErrorCategory.VALIDATION,
    "INVALID_PHASE": ErrorCategory.VALIDATION,
    "INVALID_TIMER_DURATION": ErrorCategory.VALIDATION,
    "INVALID_PAYLOAD": ErrorCategory.VALIDATION,
    "EMPTY_MESSAGE": ErrorCategory.VALIDATION,
    "ALREADY_STARTED": ErrorCategory.STATE_CONFLICT,
    "ALREADY_IN_ROOM": ErrorCategory.STATE_CONFLICT,
    "CHAT_CLOSED": ErrorCategory.STATE_CONFLICT,
    "ROOM_FULL": ErrorCategory.CAPACITY,
}


class RoomError(Exception):
    """A request the coordinator refuses; reported to the sender as ERROR."""

    def __init__(self, code: str, detail: str | None = None) -> None:
        super().__init__(detail or code)
        self.code = code
        self.category = ERROR_CATEGORIES.get(code, ErrorCategory.VALIDATION)
        self.detail = detail

    def to_payload(self) -> dict[str, str]:
        return {"message": self.code, "category": self.category.value}
