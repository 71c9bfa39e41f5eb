from __future__ import annotations

from typing import Any, Iterable

from .runtime_phase_timer import build_timer_payload
from .runtime_roles import is_privileged_role
from .runtime_types import Outbound, Peer, PrivilegedChatEntry, RoomRuntime


def build_peer_view(peer: Peer) -> dict[str, Any]:
    # Roles never appear here.
    return {
        "key": peer.key,
        "name": peer.name,
        "alive": bool(peer.alive),
        "connected": peer.connected,
    }


def build_room_state(room: RoomRuntime) -> dict[str, Any]:
    return {
        "roomId": room.room_id,
        "hostKey": room.host_key,
        "phase": room.phase,
        "day": room.day,
        "paused": room.paused,
        "settings": {
            "maxPlayers": room.settings.max_players,
            "roleCatalog": list(room.settings.role_catalog),
            "roleCounts": dict(room.settings.role_counts),
            "enabledRoles": room.settings.enabled_roles,
        },
        "peers": [build_peer_view(peer) for peer in room.peers.values()],
        "timer": build_timer_payload(room),
    }


def build_chat_entry(entry: PrivilegedChatEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "fromKey": entry.from_key,
        "fromName": entry.from_name,
        "text": entry.text,
        "timestamp": entry.timestamp,
    }


def privileged_recipients(room: RoomRuntime, privileged_roles: Iterable[str]) -> list[Peer]:
    roles = frozenset(privileged_roles)
    return [
        peer
        for peer in room.peers.values()
        if peer.connected and is_privileged_role(peer.role, roles)
    ]


class Outbox:
    """Collects outbound events in mutation order instead of sending inline."""

    def __init__(self) -> None:
        self.items: list[Outbound] = []

    def send(self, connection_id: str | None, message_type: str, payload: dict[str, Any] | None = None) -> None:
        if connection_id is None:
            return
        self.items.append(Outbound(connection_id, message_type, dict(payload or {})))

    def send_to_peer(self, peer: Peer, message_type: str, payload: dict[str, Any] | None = None) -> None:
        self.send(peer.connection_id, message_type, payload)

    def close(self, connection_id: str, code: int) -> None:
        self.items.append(Outbound(connection_id, close_code=code))

    def broadcast(self, room: RoomRuntime, message_type: str, payload: dict[str, Any] | None = None) -> None:
        for peer in room.peers.values():
            self.send_to_peer(peer, message_type, payload)

    def broadcast_room_state(self, room: RoomRuntime) -> None:
        self.broadcast(room, "ROOM_STATE", build_room_state(room))

    def broadcast_timer(self, room: RoomRuntime) -> None:
        payload = build_timer_payload(room)
        if payload is not None:
            self.broadcast(room, "TIMER", payload)

    def send_privileged(
        self,
        room: RoomRuntime,
        privileged_roles: Iterable[str],
        message_type: str,
        payload: dict[str, Any],
    ) -> int:
        recipients = privileged_recipients(room, privileged_roles)
        for peer in recipients:
            self.send_to_peer(peer, message_type, payload)
        return len(recipients)
