from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ValidationError

from .runtime_broadcast import Outbox, build_chat_entry
from .runtime_constants import (
    DEFAULT_GUEST_NAME,
    DEFAULT_HOST_NAME,
    PRIVILEGED_CHAT_PHASE,
    STALE_CONNECTION_CLOSE_CODE,
)
from .runtime_errors import RoomError
from .runtime_host_reconnect import add_peer, attach_connection
from .runtime_phase_timer import build_timer_payload, validate_duration
from .runtime_roles import (
    apply_role_assignment,
    assign_roles,
    is_privileged_role,
    new_role_config,
    normalize_role_counts,
    reset_roles,
    role_counts_from_enabled,
)
from .runtime_types import ConnectionBinding, DispatchResult, Outbound, PrivilegedChatEntry
from .runtime_utils import (
    clamp_max_players,
    mask_key,
    normalize_phase,
    now_ms,
    random_id,
    sanitize_chat_text,
    sanitize_player_name,
)
from .schemas.messages import (
    EmptyPayload,
    JoinRoomPayload,
    PauseGamePayload,
    PrivilegedChatSendPayload,
    ReconnectPayload,
    SetNamePayload,
    SetPhasePayload,
    StartTimerPayload,
    UpdateRoleCountsPayload,
    UpdateRolePoolPayload,
    UpdateSettingsPayload,
)

if TYPE_CHECKING:
    from .runtime import RoomCoordinator

logger = logging.getLogger(__name__)

Handler = Callable[["RoomCoordinator", ConnectionBinding, Any, Outbox], None]


def handle_create_room(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: EmptyPayload,
    outbox: Outbox,
) -> None:
    room = runtime.registry.create(new_role_config(runtime.default_max_players))
    runtime._leave_room(binding, outbox, reason="create_room")

    peer = add_peer(room, binding.connection_id, binding.name or DEFAULT_HOST_NAME)
    room.host_key = peer.key
    binding.room_id = room.room_id
    binding.peer_key = peer.key
    runtime._increment_stat("roomsCreated")
    runtime._log_ws_event("room_created", roomId=room.room_id, host=mask_key(peer.key))

    outbox.send(
        binding.connection_id,
        "ROOM_CREATED",
        {"roomId": room.room_id, "hostKey": room.host_key, "peerKey": peer.key},
    )
    outbox.broadcast_room_state(room)


def handle_join_room(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: JoinRoomPayload,
    outbox: Outbox,
) -> None:
    room = runtime.registry.lookup(payload.roomId)
    if binding.room_id == room.room_id:
        raise RoomError("ALREADY_IN_ROOM")
    if len(room.connections) >= room.settings.max_players:
        raise RoomError("ROOM_FULL")

    runtime._leave_room(binding, outbox, reason="join_room")

    peer = add_peer(room, binding.connection_id, binding.name or DEFAULT_GUEST_NAME)
    binding.room_id = room.room_id
    binding.peer_key = peer.key
    runtime._log_ws_event(
        "peer_joined",
        roomId=room.room_id,
        peer=mask_key(peer.key),
        connections=len(room.connections),
    )

    outbox.send(
        binding.connection_id,
        "JOINED",
        {"roomId": room.room_id, "hostKey": room.host_key, "peerKey": peer.key},
    )
    outbox.broadcast(room, "PEER_JOINED", {"key": peer.key, "name": peer.name})
    outbox.broadcast_room_state(room)


def handle_reconnect(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: ReconnectPayload,
    outbox: Outbox,
) -> None:
    room = runtime.registry.lookup(payload.roomId)
    peer = room.peers.get(payload.peerKey)
    if peer is None:
        raise RoomError("PEER_NOT_FOUND")

    if binding.room_id != room.room_id or binding.peer_key != peer.key:
        runtime._leave_room(binding, outbox, reason="reconnect", keep_room_id=room.room_id)

    stale_connection_id = attach_connection(room, peer, binding.connection_id)
    if stale_connection_id is not None:
        runtime._release_connection(stale_connection_id)
        outbox.close(stale_connection_id, STALE_CONNECTION_CLOSE_CODE)
        runtime._increment_stat("connectionHandoffs")
        runtime._log_ws_event("connection_handoff", roomId=room.room_id, peer=mask_key(peer.key))

    binding.room_id = room.room_id
    binding.peer_key = peer.key
    binding.name = peer.name
    runtime._elect_host(room)
    runtime._increment_stat("reconnects")
    runtime._log_ws_event(
        "peer_reconnected",
        roomId=room.room_id,
        peer=mask_key(peer.key),
        hasRole=peer.role is not None,
    )

    outbox.send_to_peer(
        peer,
        "RECONNECTED",
        {
            "roomId": room.room_id,
            "hostKey": room.host_key,
            "peerKey": peer.key,
            "name": peer.name,
            "alive": peer.alive,
        },
    )
    if peer.role is not None:
        outbox.send_to_peer(peer, "PRIVATE_ROLE", {"role": peer.role})
        if is_privileged_role(peer.role, runtime.privileged_roles):
            outbox.send_to_peer(
                peer,
                "PRIVILEGED_CHAT_HISTORY",
                {"entries": [build_chat_entry(entry) for entry in room.privileged_chat]},
            )
    timer_payload = build_timer_payload(room)
    if timer_payload is not None:
        outbox.send_to_peer(peer, "TIMER", timer_payload)
    outbox.broadcast_room_state(room)


def handle_set_name(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: SetNamePayload,
    outbox: Outbox,
) -> None:
    name = sanitize_player_name(payload.name)
    located = runtime._find_room_peer(binding)
    if located is None:
        binding.name = name or binding.name
        outbox.send(binding.connection_id, "NAME_SET", {"name": binding.name or ""})
        return

    room, peer = located
    if name:
        peer.name = name
        binding.name = name
    outbox.broadcast_room_state(room)


def handle_update_settings(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: UpdateSettingsPayload,
    outbox: Outbox,
) -> None:
    room, _ = runtime._require_host(binding)
    room.settings.max_players = clamp_max_players(payload.maxPlayers)
    outbox.broadcast_room_state(room)


def handle_update_role_counts(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: UpdateRoleCountsPayload,
    outbox: Outbox,
) -> None:
    room, _ = runtime._require_host(binding)
    room.settings.role_counts = normalize_role_counts(room.settings.role_catalog, payload.counts)
    outbox.broadcast_room_state(room)


def handle_update_role_pool(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: UpdateRolePoolPayload,
    outbox: Outbox,
) -> None:
    room, _ = runtime._require_host(binding)
    room.settings.role_counts = role_counts_from_enabled(room.settings.role_catalog, payload.enabledRoles)
    outbox.broadcast_room_state(room)


def handle_start_game(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: EmptyPayload,
    outbox: Outbox,
) -> None:
    room, _ = runtime._require_host(binding)
    if room.phase != "lobby":
        raise RoomError("ALREADY_STARTED")

    assignment = assign_roles(list(room.peers.values()), room.settings, rng=runtime.rng)
    apply_role_assignment(room, assignment)
    room.privileged_chat = []
    room.phase = "night"
    room.day = 1
    runtime._increment_stat("gamesStarted")
    runtime._log_ws_event("game_started", roomId=room.room_id, players=len(assignment))

    for peer in room.peers.values():
        if peer.role is not None:
            outbox.send_to_peer(peer, "PRIVATE_ROLE", {"role": peer.role})
    outbox.broadcast_room_state(room)


def handle_set_phase(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: SetPhasePayload,
    outbox: Outbox,
) -> None:
    room, _ = runtime._require_host(binding)
    phase = normalize_phase(payload.phase)
    if phase is None:
        raise RoomError("INVALID_PHASE")

    previous_phase = room.phase
    if phase == "lobby":
        room.day = 0
        reset_roles(room)
        room.privileged_chat = []
    elif previous_phase == "day" and phase == "night":
        room.day += 1
    elif room.day == 0:
        room.day = 1
    room.phase = phase
    runtime._log_ws_event("phase_changed", roomId=room.room_id, previous=previous_phase, phase=phase, day=room.day)
    outbox.broadcast_room_state(room)


def handle_start_timer(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: StartTimerPayload,
    outbox: Outbox,
) -> None:
    room, _ = runtime._require_host(binding)
    duration_ms = validate_duration(payload.ms)
    phase = room.phase
    if payload.phase is not None:
        requested = normalize_phase(payload.phase)
        if requested is None:
            raise RoomError("INVALID_PHASE")
        phase = requested

    runtime._start_timer(room, duration_ms, phase)
    outbox.broadcast_timer(room)


def handle_pause_game(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: PauseGamePayload,
    outbox: Outbox,
) -> None:
    room, _ = runtime._require_host(binding)
    if payload.action == "toggle":
        paused = not room.paused
    else:
        paused = payload.action == "pause"
    if paused == room.paused:
        return

    room.paused = paused
    runtime._log_ws_event("pause_changed", roomId=room.room_id, paused=paused)
    outbox.broadcast(room, "PAUSED", {"paused": paused})
    outbox.broadcast_room_state(room)


def handle_privileged_chat_send(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: PrivilegedChatSendPayload,
    outbox: Outbox,
) -> None:
    room, peer = runtime._require_peer(binding)
    if not is_privileged_role(peer.role, runtime.privileged_roles):
        raise RoomError("NOT_PRIVILEGED")
    if room.phase != PRIVILEGED_CHAT_PHASE:
        raise RoomError("CHAT_CLOSED")
    text = sanitize_chat_text(payload.text)
    if not text:
        raise RoomError("EMPTY_MESSAGE")

    entry = PrivilegedChatEntry(
        id=random_id(),
        from_key=peer.key,
        from_name=peer.name,
        text=text,
        timestamp=now_ms(),
    )
    room.privileged_chat.append(entry)
    outbox.send_privileged(room, runtime.privileged_roles, "PRIVILEGED_CHAT", build_chat_entry(entry))


def handle_ping(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    payload: EmptyPayload,
    outbox: Outbox,
) -> None:
    outbox.send(binding.connection_id, "PONG", {"serverTime": now_ms()})


MESSAGE_HANDLERS: dict[str, tuple[type[BaseModel], Handler]] = {
    "CREATE_ROOM": (EmptyPayload, handle_create_room),
    "JOIN_ROOM": (JoinRoomPayload, handle_join_room),
    "RECONNECT": (ReconnectPayload, handle_reconnect),
    "SET_NAME": (SetNamePayload, handle_set_name),
    "UPDATE_SETTINGS": (UpdateSettingsPayload, handle_update_settings),
    "UPDATE_ROLE_COUNTS": (UpdateRoleCountsPayload, handle_update_role_counts),
    "UPDATE_ROLE_POOL": (UpdateRolePoolPayload, handle_update_role_pool),
    "START_GAME": (EmptyPayload, handle_start_game),
    "SET_PHASE": (SetPhasePayload, handle_set_phase),
    "START_TIMER": (StartTimerPayload, handle_start_timer),
    "PAUSE_GAME": (PauseGamePayload, handle_pause_game),
    "PRIVILEGED_CHAT_SEND": (PrivilegedChatSendPayload, handle_privileged_chat_send),
    "PING": (EmptyPayload, handle_ping),
}


def handle_message(
    runtime: "RoomCoordinator",
    binding: ConnectionBinding,
    message_type: str,
    data: dict[str, Any],
) -> DispatchResult:
    route = MESSAGE_HANDLERS.get(message_type)
    if route is None:
        runtime._increment_stat("messagesDropped")
        logger.debug("Dropping unknown message type %r from %s", message_type[:32], binding.connection_id)
        return DispatchResult(room_id=binding.room_id)

    schema, handler = route
    outbox = Outbox()
    try:
        try:
            payload = schema.model_validate(data)
        except ValidationError as exc:
            raise RoomError("INVALID_PAYLOAD", f"{exc.error_count()} invalid field(s)") from None
        handler(runtime, binding, payload, outbox)
    except RoomError as exc:
        runtime._increment_stat("requestsRejected")
        runtime._log_ws_event(
            "request_rejected",
            level=logging.INFO,
            roomId=binding.room_id or "-",
            type=message_type,
            code=exc.code,
            category=exc.category.value,
        )
        return DispatchResult(
            room_id=binding.room_id,
            outbound=[Outbound(binding.connection_id, "ERROR", exc.to_payload())],
            error=exc.code,
        )

    return DispatchResult(room_id=binding.room_id, outbound=outbox.items)
