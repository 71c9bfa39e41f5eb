"""Tests for role pool construction and dealing."""

from __future__ import annotations

import logging
import random
from collections import Counter

import pytest

from mafia_server.config import ROLE_CATALOG
from mafia_server.runtime_errors import ErrorCategory, RoomError
from mafia_server.runtime_roles import (
    apply_role_assignment,
    assign_roles,
    build_role_pool,
    is_privileged_role,
    new_role_config,
    normalize_role_counts,
    role_counts_from_enabled,
)
from mafia_server.runtime_types import Peer, RoomRuntime


def _peers(count: int) -> list[Peer]:
    return [Peer(key=f"k{index}", name=f"P{index}") for index in range(count)]


def _config(**counts: int):
    config = new_role_config(11)
    config.role_counts = normalize_role_counts(config.role_catalog, counts)
    return config


def test_default_config_enables_whole_catalog():
    """A fresh room starts with one of every catalog role."""
    config = new_role_config()

    assert config.max_players == 11
    assert config.role_counts == {role: 1 for role in ROLE_CATALOG}
    assert config.enabled_roles == list(ROLE_CATALOG)


def test_pool_is_padded_with_filler():
    """Short pools are topped up with citizens up to the player count."""
    pool = build_role_pool(_config(pablo=1, doctor=1), 5)

    assert pool == ["pablo", "doctor", "citizen", "citizen", "citizen"]


def test_empty_pool_is_seeded_with_filler():
    """All-zero counts still produce a playable pool."""
    pool = build_role_pool(_config(), 3)

    assert pool == ["citizen", "citizen", "citizen"]


def test_pool_follows_catalog_order():
    pool = build_role_pool(_config(citizen=2, pablo=2, moreno=1), 3)

    assert pool == ["pablo", "pablo", "moreno", "citizen", "citizen"]


def test_oversized_pool_is_truncated_to_player_count():
    """Every catalog role enabled, three players: three distinct roles dealt."""
    assignment = assign_roles(_peers(3), new_role_config(), rng=random.Random(3))

    assert sorted(assignment) == ["k0", "k1", "k2"]
    assert len(set(assignment.values())) == 3
    assert set(assignment.values()) <= set(ROLE_CATALOG)


def test_assign_roles_needs_three_players():
    with pytest.raises(RoomError) as excinfo:
        assign_roles(_peers(2), new_role_config())

    assert excinfo.value.code == "NEED_AT_LEAST_3_PLAYERS"
    assert excinfo.value.category is ErrorCategory.VALIDATION


def test_normalize_role_counts_clamps_and_ignores_unknown():
    counts = normalize_role_counts(ROLE_CATALOG, {"pablo": 99, "doctor": -2, "ghost": 3, "moreno": "x"})

    assert list(counts) == list(ROLE_CATALOG)
    assert counts["pablo"] == 50
    assert counts["doctor"] == 0
    assert counts["moreno"] == 0
    assert "ghost" not in counts
    assert sum(counts.values()) == 50


def test_enabled_roles_whitelist_becomes_counts():
    counts = role_counts_from_enabled(ROLE_CATALOG, ["doctor", "pablo", "pablo", "citizen", "nobody"])

    assert counts == {role: 1 if role in {"doctor", "pablo", "citizen"} else 0 for role in ROLE_CATALOG}


def test_enabled_roles_whitelist_needs_three_roles():
    with pytest.raises(RoomError) as excinfo:
        role_counts_from_enabled(ROLE_CATALOG, ["pablo", "pablo", "unknown", "doctor"])

    assert excinfo.value.code == "ROLE_POOL_TOO_SMALL"


def test_is_privileged_role():
    assert is_privileged_role("pablo", ("pablo", "blanco"))
    assert not is_privileged_role("doctor", ("pablo", "blanco"))
    assert not is_privileged_role(None, ("pablo", "blanco"))


def test_dealing_is_uniform_across_seats():
    """With one pablo among four players each seat gets it about a quarter of the time."""
    config = _config(pablo=1, citizen=3)
    peers = _peers(4)
    deals = 4000
    hits: Counter[str] = Counter()

    for _ in range(deals):
        assignment = assign_roles(peers, config)
        assert sorted(assignment.values()) == ["citizen", "citizen", "citizen", "pablo"]
        hits.update(key for key, role in assignment.items() if role == "pablo")

    for peer in peers:
        assert 0.20 <= hits[peer.key] / deals <= 0.30


def test_truncated_roles_are_uniform():
    """Each of eight single roles reaches a seat about 3/8 of the time with three players."""
    config = new_role_config()
    deals = 4000
    dealt: Counter[str] = Counter()

    for _ in range(deals):
        dealt.update(assign_roles(_peers(3), config).values())

    for role in ROLE_CATALOG:
        assert 0.31 <= dealt[role] / deals <= 0.44


def test_role_assignment_log_reports_configured_count(caplog):
    room = RoomRuntime(room_id="LOG123", settings=_config(pablo=1, citizen=2))
    room.peers = {peer.key: peer for peer in _peers(3)}

    with caplog.at_level(logging.INFO, logger="mafia_server.runtime_roles"):
        apply_role_assignment(room, {"k0": "pablo", "k1": "citizen", "k2": "citizen"})

    assert "players=3 configured=3" in caplog.text
    assert all(peer.alive for peer in room.peers.values())
