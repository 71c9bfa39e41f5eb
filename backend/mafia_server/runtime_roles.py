from __future__ import annotations

import logging
import random
from typing import Any, Iterable, Mapping, Sequence

from .runtime_constants import (
    DEFAULT_MAX_PLAYERS,
    FILLER_ROLE,
    MAX_ROLE_COUNT,
    MIN_ENABLED_ROLES,
    MIN_PLAYERS_TO_START,
    ROLE_CATALOG,
)
from .runtime_errors import RoomError
from .runtime_types import Peer, RoleConfig, RoomRuntime
from .runtime_utils import clamp_max_players

logger = logging.getLogger(__name__)

# Role dealing draws from the OS CSPRNG.
_system_random = random.SystemRandom()


def new_role_config(max_players: int = DEFAULT_MAX_PLAYERS) -> RoleConfig:
    return RoleConfig(
        max_players=clamp_max_players(max_players),
        role_catalog=tuple(ROLE_CATALOG),
        role_counts={role: 1 for role in ROLE_CATALOG},
    )


def _clamp_count(value: Any) -> int:
    try:
        num = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, min(MAX_ROLE_COUNT, num))


def normalize_role_counts(
    catalog: Sequence[str],
    counts: Mapping[str, Any],
) -> dict[str, int]:
    """One clamped entry per catalog role; unknown roles are ignored."""
    return {role: _clamp_count(counts.get(role, 0)) for role in catalog}


def filter_enabled_roles(catalog: Sequence[str], enabled: Iterable[Any]) -> list[str]:
    known = set(catalog)
    filtered: list[str] = []
    for raw in enabled:
        role = str(raw)
        if role in known and role not in filtered:
            filtered.append(role)
    return filtered


def role_counts_from_enabled(catalog: Sequence[str], enabled: Iterable[Any]) -> dict[str, int]:
    filtered = filter_enabled_roles(catalog, enabled)
    if len(filtered) < MIN_ENABLED_ROLES:
        raise RoomError("ROLE_POOL_TOO_SMALL")
    return {role: 1 if role in filtered else 0 for role in catalog}


def build_role_pool(config: RoleConfig, player_count: int) -> list[str]:
    pool = [
        role
        for role in config.role_catalog
        for _ in range(max(0, int(config.role_counts.get(role, 0))))
    ]
    if not pool:
        pool.append(FILLER_ROLE)
    while len(pool) < player_count:
        pool.append(FILLER_ROLE)
    return pool


def assign_roles(
    peers: Sequence[Peer],
    config: RoleConfig,
    rng: random.Random | None = None,
) -> dict[str, str]:
    """Deal one role per peer; returns ``{peer_key: role}``.

    The pool is shuffled and truncated to the player count; the peer order
    is shuffled independently of it.
    """
    player_count = len(peers)
    if player_count < MIN_PLAYERS_TO_START:
        raise RoomError("NEED_AT_LEAST_3_PLAYERS")

    source = rng or _system_random
    pool = build_role_pool(config, player_count)
    source.shuffle(pool)
    roles = pool[:player_count]

    order = list(peers)
    source.shuffle(order)
    return {peer.key: role for peer, role in zip(order, roles)}


def apply_role_assignment(room: RoomRuntime, assignment: Mapping[str, str]) -> None:
    for peer_key, role in assignment.items():
        peer = room.peers.get(peer_key)
        if peer is None:
            continue
        peer.role = role
        peer.alive = True
    logger.info(
        "[ROLES_ASSIGNED] room=%s players=%d configured=%d",
        room.room_id,
        len(assignment),
        sum(room.settings.role_counts.values()),
    )


def reset_roles(room: RoomRuntime) -> None:
    for peer in room.peers.values():
        peer.role = None
        peer.alive = False


def is_privileged_role(role: str | None, privileged_roles: Iterable[str]) -> bool:
    return role is not None and role in set(privileged_roles)
