from __future__ import annotations

import json
import logging
import random
from typing import Any, Callable, Iterable

from .runtime_broadcast import Outbox
from .runtime_constants import DEFAULT_MAX_PLAYERS, PRIVILEGED_ROLES
from .runtime_errors import RoomError
from .runtime_host_reconnect import detach_connection, elect_host_if_needed
from .runtime_message_handlers import handle_message as handle_room_message
from .runtime_phase_timer import (
    AsyncioTickScheduler,
    TickScheduler,
    advance_phase_timer,
    start_phase_timer,
    timer_state,
)
from .runtime_registry import RoomRegistry
from .runtime_types import (
    ConnectionBinding,
    DispatchResult,
    Outbound,
    Peer,
    Phase,
    RoomRuntime,
)
from .runtime_utils import mask_key, now_ms, parse_envelope

logger = logging.getLogger(__name__)

OutboundSink = Callable[[list[Outbound]], None]


class RoomCoordinator:
    """Single entry point for everything that mutates room state.

    ``connect``, ``dispatch``, ``disconnect`` and ``tick`` are synchronous and
    run to completion on the event loop thread; none of them sends anything.
    Request-driven events are returned as a ``DispatchResult``; timer ticks,
    which have no caller, are pushed to ``sink``.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        *,
        scheduler: TickScheduler | None = None,
        sink: OutboundSink | None = None,
        privileged_roles: Iterable[str] | None = None,
        default_max_players: int = DEFAULT_MAX_PLAYERS,
        rng: random.Random | None = None,
    ) -> None:
        self.registry = registry
        self.scheduler: TickScheduler = scheduler if scheduler is not None else AsyncioTickScheduler()
        self.sink = sink
        self.privileged_roles = frozenset(PRIVILEGED_ROLES if privileged_roles is None else privileged_roles)
        self.default_max_players = default_max_players
        self.rng = rng
        self.bindings: dict[str, ConnectionBinding] = {}
        self._stats: dict[str, int] = {
            "connectionsOpened": 0,
            "activeConnections": 0,
            "peakConnections": 0,
            "disconnects": 0,
            "messagesReceived": 0,
            "messagesDropped": 0,
            "requestsRejected": 0,
            "roomsCreated": 0,
            "roomsDestroyed": 0,
            "reconnects": 0,
            "connectionHandoffs": 0,
            "hostReassigned": 0,
            "gamesStarted": 0,
            "timerTicks": 0,
            "sendFailures": 0,
        }

    @property
    def active_rooms_count(self) -> int:
        return len(self.registry)

    def _increment_stat(self, key: str, amount: int = 1) -> None:
        self._stats[key] = int(self._stats.get(key, 0)) + amount

    def _log_ws_event(self, event: str, level: int = logging.INFO, **fields: object) -> None:
        logger.log(
            level,
            "ws.%s %s",
            event,
            json.dumps(fields, ensure_ascii=False, separators=(",", ":")),
        )

    def get_stats(self) -> dict[str, Any]:
        room_summaries = [
            {
                "roomId": room.room_id,
                "connections": len(room.connections),
                "peers": len(room.peers),
                "phase": room.phase,
                "day": room.day,
                "paused": room.paused,
                "timer": timer_state(room),
            }
            for room in self.registry.rooms.values()
        ]
        room_summaries.sort(key=lambda item: int(item.get("connections", 0)), reverse=True)

        return {
            "generatedAt": now_ms(),
            "activeRooms": len(room_summaries),
            "stats": dict(self._stats),
            "rooms": room_summaries[:50],
        }

    def connect(self, connection_id: str) -> DispatchResult:
        if connection_id in self.bindings:
            return DispatchResult()

        self.bindings[connection_id] = ConnectionBinding(connection_id=connection_id)
        self._increment_stat("connectionsOpened")
        active_connections = int(self._stats.get("activeConnections", 0)) + 1
        self._stats["activeConnections"] = active_connections
        if active_connections > int(self._stats.get("peakConnections", 0)):
            self._stats["peakConnections"] = active_connections

        return DispatchResult(outbound=[Outbound(connection_id, "hello", {"id": connection_id})])

    def dispatch(self, connection_id: str, raw: str | bytes | dict[str, Any]) -> DispatchResult:
        self._increment_stat("messagesReceived")
        binding = self.bindings.get(connection_id)
        parsed = parse_envelope(raw)
        if binding is None or parsed is None:
            self._increment_stat("messagesDropped")
            return DispatchResult(room_id=binding.room_id if binding else None)

        message_type, payload = parsed
        return handle_room_message(self, binding, message_type, payload)

    def disconnect(self, connection_id: str, reason: str = "closed") -> DispatchResult:
        binding = self.bindings.pop(connection_id, None)
        if binding is None:
            return DispatchResult()

        self._increment_stat("disconnects")
        self._stats["activeConnections"] = max(0, int(self._stats.get("activeConnections", 0)) - 1)

        room_id = binding.room_id
        outbox = Outbox()
        self._leave_room(binding, outbox, reason=reason)
        return DispatchResult(room_id=room_id, outbound=outbox.items)

    def tick(self, room_id: str) -> bool:
        """Advance the room's timer by one step; ``False`` stops the ticker."""
        room = self.registry.get(room_id)
        if room is None or room.timer is None or not room.timer.running:
            return False
        if not advance_phase_timer(room):
            # Paused: the remaining time stays frozen until resumed.
            return True

        self._increment_stat("timerTicks")
        outbox = Outbox()
        outbox.broadcast_timer(room)
        self._emit(outbox.items)

        if not room.timer.running:
            self._log_ws_event("timer_expired", roomId=room.room_id, phase=room.timer.phase)
            return False
        return True

    def shutdown(self) -> None:
        self.scheduler.cancel_all()

    def _emit(self, outbound: list[Outbound]) -> None:
        if self.sink is not None and outbound:
            self.sink(outbound)

    def _find_room_peer(self, binding: ConnectionBinding) -> tuple[RoomRuntime, Peer] | None:
        room = self.registry.get(binding.room_id)
        if room is None or binding.peer_key is None:
            return None
        peer = room.peers.get(binding.peer_key)
        if peer is None or peer.connection_id != binding.connection_id:
            return None
        return room, peer

    def _require_peer(self, binding: ConnectionBinding) -> tuple[RoomRuntime, Peer]:
        located = self._find_room_peer(binding)
        if located is None:
            raise RoomError("NOT_IN_ROOM")
        return located

    def _require_host(self, binding: ConnectionBinding) -> tuple[RoomRuntime, Peer]:
        room, peer = self._require_peer(binding)
        if room.host_key != peer.key:
            raise RoomError("ONLY_HOST")
        return room, peer

    def _elect_host(self, room: RoomRuntime) -> Peer | None:
        new_host = elect_host_if_needed(room)
        if new_host is not None:
            self._increment_stat("hostReassigned")
            self._log_ws_event("host_reassigned", roomId=room.room_id, newHost=mask_key(new_host.key))
        return new_host

    def _release_connection(self, connection_id: str) -> None:
        # The socket is still open until the transport closes it; it just no
        # longer speaks for any peer.
        binding = self.bindings.get(connection_id)
        if binding is not None:
            binding.room_id = None
            binding.peer_key = None

    def _leave_room(
        self,
        binding: ConnectionBinding,
        outbox: Outbox,
        *,
        reason: str,
        keep_room_id: str | None = None,
    ) -> None:
        room_id, peer_key = binding.room_id, binding.peer_key
        binding.room_id = None
        binding.peer_key = None
        if room_id is None or peer_key is None:
            return

        room = self.registry.get(room_id)
        if room is None:
            return
        peer = room.peers.get(peer_key)
        if peer is None or peer.connection_id != binding.connection_id:
            return

        was_host = room.host_key == peer.key
        detach_connection(room, peer)
        self._log_ws_event(
            "disconnect",
            roomId=room.room_id,
            peer=mask_key(peer.key),
            wasHost=was_host,
            reason=reason,
            connections=len(room.connections),
        )

        # The caller is about to attach this connection to another peer of the
        # same room and broadcasts the result itself.
        if room.room_id == keep_room_id:
            outbox.broadcast(room, "PEER_LEFT", {"key": peer.key})
            return

        self._elect_host(room)
        if self.registry.destroy_if_empty(room):
            self.scheduler.cancel(room.room_id)
            self._increment_stat("roomsDestroyed")
            self._log_ws_event("room_empty", roomId=room.room_id)
            return

        outbox.broadcast(room, "PEER_LEFT", {"key": peer.key})
        outbox.broadcast_room_state(room)

    def _start_timer(self, room: RoomRuntime, duration_ms: int, phase: Phase) -> None:
        self.scheduler.cancel(room.room_id)
        start_phase_timer(room, duration_ms, phase)
        room_id = room.room_id
        self.scheduler.start(room_id, lambda: self.tick(room_id))
