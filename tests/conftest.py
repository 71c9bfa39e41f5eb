"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
import random
from collections import defaultdict
from typing import Any, Callable, Iterable

import pytest

from mafia_server.runtime import RoomCoordinator
from mafia_server.runtime_phase_timer import TickCallback
from mafia_server.runtime_registry import RoomRegistry
from mafia_server.runtime_types import DispatchResult, Outbound

PRIVILEGED = ("pablo", "martinez", "blanco")


class ManualTickScheduler:
    """Tick scheduler driven by the test instead of the event loop."""

    def __init__(self) -> None:
        self.callbacks: dict[str, TickCallback] = {}

    def start(self, key: str, callback: TickCallback) -> None:
        self.callbacks[key] = callback

    def cancel(self, key: str) -> None:
        self.callbacks.pop(key, None)

    def cancel_all(self) -> None:
        self.callbacks.clear()

    def is_active(self, key: str) -> bool:
        return key in self.callbacks

    def tick(self, key: str) -> bool:
        callback = self.callbacks.get(key)
        if callback is None:
            return False
        keep_going = callback()
        if not keep_going and self.callbacks.get(key) is callback:
            self.callbacks.pop(key, None)
        return keep_going


class FakeNetwork:
    """Records everything the coordinator emits, per connection."""

    def __init__(self, coordinator: RoomCoordinator) -> None:
        self.coordinator = coordinator
        self.inbox: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.closed: dict[str, int] = {}
        self._next_id = 0
        coordinator.sink = self.deliver

    def deliver(self, outbound: Iterable[Outbound]) -> None:
        for item in outbound:
            if item.connection_id in self.closed:
                continue
            if item.is_close:
                self.closed[item.connection_id] = item.close_code
            else:
                self.inbox[item.connection_id].append(item.envelope())

    def open(self) -> str:
        self._next_id += 1
        connection_id = f"conn-{self._next_id}"
        self.deliver(self.coordinator.connect(connection_id).outbound)
        return connection_id

    def send(self, connection_id: str, message_type: str, payload: dict[str, Any] | None = None) -> DispatchResult:
        raw = json.dumps({"type": message_type, "payload": payload or {}})
        return self.send_raw(connection_id, raw)

    def send_raw(self, connection_id: str, raw: Any) -> DispatchResult:
        result = self.coordinator.dispatch(connection_id, raw)
        self.deliver(result.outbound)
        return result

    def drop(self, connection_id: str) -> DispatchResult:
        result = self.coordinator.disconnect(connection_id)
        self.deliver(result.outbound)
        return result

    def messages(self, connection_id: str, message_type: str | None = None) -> list[dict[str, Any]]:
        return [
            message
            for message in self.inbox[connection_id]
            if message_type is None or message["type"] == message_type
        ]

    def last(self, connection_id: str, message_type: str) -> dict[str, Any]:
        matching = self.messages(connection_id, message_type)
        assert matching, f"{connection_id} never received {message_type}"
        return matching[-1]["payload"]

    def clear(self) -> None:
        self.inbox.clear()


@pytest.fixture
def scheduler():
    """Create a manual tick scheduler."""
    return ManualTickScheduler()


@pytest.fixture
def registry():
    """Create an empty room registry."""
    return RoomRegistry()


@pytest.fixture
def coordinator(registry, scheduler):
    """Create a coordinator with a seeded dealer."""
    return RoomCoordinator(
        registry,
        scheduler=scheduler,
        privileged_roles=PRIVILEGED,
        default_max_players=11,
        rng=random.Random(1234),
    )


@pytest.fixture
def network(coordinator):
    """Create a fake network wired to the coordinator."""
    return FakeNetwork(coordinator)


@pytest.fixture
def seat_players(network) -> Callable[..., tuple[str, list[str]]]:
    """Open a room with a host and guests; returns ``(room_id, [connection ids])``."""

    def _seat(count: int, names: list[str] | None = None) -> tuple[str, list[str]]:
        names = names or [f"Player{index + 1}" for index in range(count)]
        connections = [network.open() for _ in range(count)]
        for connection_id, name in zip(connections, names):
            network.send(connection_id, "SET_NAME", {"name": name})

        network.send(connections[0], "CREATE_ROOM")
        room_id = network.last(connections[0], "ROOM_CREATED")["roomId"]
        for connection_id in connections[1:]:
            network.send(connection_id, "JOIN_ROOM", {"roomId": room_id})
        return room_id, connections

    return _seat


@pytest.fixture
def peer_key_of(network) -> Callable[[str], str]:
    """Look up the peer key a connection was given on create/join."""

    def _peer_key(connection_id: str) -> str:
        for message_type in ("RECONNECTED", "JOINED", "ROOM_CREATED"):
            matching = network.messages(connection_id, message_type)
            if matching:
                return matching[-1]["payload"]["peerKey"]
        raise AssertionError(f"{connection_id} has no peer key")

    return _peer_key
