from __future__ import annotations

import logging

from .runtime_types import Peer, RoomRuntime
from .runtime_utils import mask_key, random_id

logger = logging.getLogger(__name__)


def add_peer(room: RoomRuntime, connection_id: str, name: str) -> Peer:
    peer_key = random_id()
    while peer_key in room.peers:
        peer_key = random_id()
    peer = Peer(key=peer_key, name=name, connection_id=connection_id)
    room.peers[peer_key] = peer
    room.connections.add(connection_id)
    return peer


def detach_connection(room: RoomRuntime, peer: Peer) -> str | None:
    """Forget the peer's live connection; the peer record itself stays."""
    connection_id = peer.connection_id
    if connection_id is None:
        return None
    room.connections.discard(connection_id)
    peer.connection_id = None
    return connection_id


def attach_connection(room: RoomRuntime, peer: Peer, connection_id: str) -> str | None:
    """Bind ``connection_id`` to ``peer``; returns the stale connection, if any.

    The stale connection is detached before the new one is attached, so one
    identity is never represented by two live connections.
    """
    stale_connection_id: str | None = None
    if peer.connection_id is not None and peer.connection_id != connection_id:
        stale_connection_id = detach_connection(room, peer)

    peer.connection_id = connection_id
    room.connections.add(connection_id)
    return stale_connection_id


def elect_host_if_needed(room: RoomRuntime) -> Peer | None:
    """Move host rights to the first connected peer when the host is offline.

    Returns the new host, or ``None`` when nothing changed.
    """
    current = room.peers.get(room.host_key)
    if current is not None and current.connected:
        return None

    candidate = next((peer for peer in room.peers.values() if peer.connected), None)
    if candidate is None:
        return None

    old_host_key = room.host_key
    room.host_key = candidate.key
    logger.warning(
        "[HOST_REASSIGNED] room=%s old_host=%s new_host=%s phase=%s",
        room.room_id,
        mask_key(old_host_key),
        mask_key(candidate.key),
        room.phase,
    )
    return candidate
