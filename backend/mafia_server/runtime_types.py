from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Phase = Literal["lobby", "night", "day"]
TimerState = Literal["idle", "running", "paused", "expired"]
PauseAction = Literal["pause", "resume", "toggle"]


@dataclass
class RoleConfig:
    max_players: int
    role_catalog: tuple[str, ...]
    role_counts: dict[str, int]

    @property
    def enabled_roles(self) -> list[str]:
        return [role for role in self.role_catalog if self.role_counts.get(role, 0) > 0]


@dataclass
class Peer:
    key: str
    name: str
    # Non-owning: the transport owns the connection, the peer only remembers it.
    connection_id: str | None = None
    role: str | None = None
    alive: bool = False

    @property
    def connected(self) -> bool:
        return self.connection_id is not None


@dataclass
class PhaseTimer:
    phase: Phase
    remaining_ms: int = 0
    running: bool = False


@dataclass
class PrivilegedChatEntry:
    id: str
    from_key: str
    from_name: str
    text: str
    timestamp: int


@dataclass
class RoomRuntime:
    room_id: str
    settings: RoleConfig
    host_key: str = ""
    phase: Phase = "lobby"
    day: int = 0
    paused: bool = False
    peers: dict[str, Peer] = field(default_factory=dict)
    connections: set[str] = field(default_factory=set)
    timer: PhaseTimer | None = None
    privileged_chat: list[PrivilegedChatEntry] = field(default_factory=list)
    created_at: int = 0


@dataclass
class ConnectionBinding:
    connection_id: str
    name: str | None = None
    room_id: str | None = None
    peer_key: str | None = None


@dataclass(frozen=True)
class Outbound:
    connection_id: str
    type: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    close_code: int | None = None

    @property
    def is_close(self) -> bool:
        return self.close_code is not None

    def envelope(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}


@dataclass
class DispatchResult:
    room_id: str | None = None
    outbound: list[Outbound] = field(default_factory=list)
    error: str | None = None

    def messages_for(self, connection_id: str) -> list[dict[str, Any]]:
        return [
            item.envelope()
            for item in self.outbound
            if item.connection_id == connection_id and not item.is_close
        ]
