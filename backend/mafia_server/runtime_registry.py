from __future__ import annotations

import logging
from typing import Callable

from .runtime_constants import ROOM_CODE_ATTEMPTS, ROOM_CODE_LENGTH
from .runtime_errors import RoomError
from .runtime_types import RoleConfig, RoomRuntime
from .runtime_utils import now_ms, random_room_code, sanitize_room_id

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Every live room of this process, keyed by room code."""

    def __init__(
        self,
        *,
        code_factory: Callable[[int], str] = random_room_code,
        code_length: int = ROOM_CODE_LENGTH,
        max_attempts: int = ROOM_CODE_ATTEMPTS,
    ) -> None:
        self.rooms: dict[str, RoomRuntime] = {}
        self._code_factory = code_factory
        self._code_length = code_length
        self._max_attempts = max(1, max_attempts)

    def __len__(self) -> int:
        return len(self.rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self.rooms

    def create(self, settings: RoleConfig, host_key: str = "") -> RoomRuntime:
        for _ in range(self._max_attempts):
            room_id = self._code_factory(self._code_length)
            if room_id in self.rooms:
                logger.debug("Room code collision on %s, retrying", room_id)
                continue
            room = RoomRuntime(
                room_id=room_id,
                settings=settings,
                host_key=host_key,
                created_at=now_ms(),
            )
            self.rooms[room_id] = room
            return room

        raise RuntimeError("Failed to allocate room code")

    def get(self, room_id: str | None) -> RoomRuntime | None:
        if not room_id:
            return None
        return self.rooms.get(sanitize_room_id(room_id))

    def lookup(self, room_id: str | None) -> RoomRuntime:
        room = self.get(room_id)
        if room is None:
            raise RoomError("ROOM_NOT_FOUND")
        return room

    def destroy_if_empty(self, room: RoomRuntime) -> bool:
        if room.connections:
            return False
        if self.rooms.get(room.room_id) is room:
            self.rooms.pop(room.room_id, None)
        room.peers.clear()
        room.privileged_chat.clear()
        room.timer = None
        return True
