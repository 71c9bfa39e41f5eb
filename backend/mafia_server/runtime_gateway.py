from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from fastapi import WebSocket, WebSocketDisconnect

from .runtime import RoomCoordinator
from .runtime_constants import SERVER_SHUTDOWN_CLOSE_CODE
from .runtime_types import Outbound
from .runtime_utils import random_id

logger = logging.getLogger(__name__)


@dataclass
class ConnectionChannel:
    websocket: WebSocket
    queue: asyncio.Queue[Outbound] = field(default_factory=asyncio.Queue)
    writer: asyncio.Task[None] | None = None


class WebSocketGateway:
    """Owns the sockets. Feeds frames to the coordinator and writes its output.

    Every connection gets a FIFO queue drained by its own writer task, so a
    slow client never blocks a broadcast and each client sees events in the
    order the coordinator produced them.
    """

    def __init__(self, coordinator: RoomCoordinator) -> None:
        self.coordinator = coordinator
        self._channels: dict[str, ConnectionChannel] = {}

    @property
    def open_connections(self) -> int:
        return len(self._channels)

    def deliver(self, outbound: Iterable[Outbound]) -> None:
        for item in outbound:
            channel = self._channels.get(item.connection_id)
            if channel is None:
                continue
            channel.queue.put_nowait(item)

    async def handle_websocket(self, websocket: WebSocket) -> None:
        await websocket.accept()

        connection_id = random_id()
        channel = ConnectionChannel(websocket=websocket)
        self._channels[connection_id] = channel
        channel.writer = asyncio.create_task(
            self._writer(connection_id, channel),
            name=f"ws-writer:{connection_id}",
        )
        self.deliver(self.coordinator.connect(connection_id).outbound)

        disconnect_reason = "closed"
        disconnect_code: int | None = None
        try:
            while True:
                message = await websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    disconnect_code = message.get("code")
                    break
                raw: Any = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is None:
                    continue
                self.deliver(self.coordinator.dispatch(connection_id, raw).outbound)
        except WebSocketDisconnect as exc:
            disconnect_code = exc.code
        except Exception:
            disconnect_reason = "server_error"
            logger.exception("Unexpected websocket error for connection %s", connection_id)
        finally:
            self._drop_channel(connection_id)
            result = self.coordinator.disconnect(connection_id, reason=disconnect_reason)
            self.deliver(result.outbound)
            logger.debug(
                "[WS_CLOSED] connection=%s room=%s code=%s reason=%s",
                connection_id,
                result.room_id or "-",
                disconnect_code,
                disconnect_reason,
            )

    async def shutdown(self) -> None:
        self.coordinator.shutdown()
        for connection_id, channel in list(self._channels.items()):
            self._drop_channel(connection_id)
            await self._close_safe(channel.websocket, SERVER_SHUTDOWN_CLOSE_CODE, connection_id)

    def _drop_channel(self, connection_id: str) -> None:
        channel = self._channels.pop(connection_id, None)
        if channel is not None and channel.writer is not None and not channel.writer.done():
            channel.writer.cancel()

    async def _writer(self, connection_id: str, channel: ConnectionChannel) -> None:
        while True:
            item = await channel.queue.get()
            if item.is_close:
                await self._close_safe(channel.websocket, item.close_code or 1000, connection_id)
                return
            await self._send_safe(channel.websocket, item.envelope(), connection_id)

    async def _send_safe(
        self,
        websocket: WebSocket,
        data: dict[str, Any],
        connection_id: str | None = None,
    ) -> None:
        try:
            await websocket.send_json(data)
        except Exception as exc:
            # Connection may already be closed.
            self.coordinator._increment_stat("sendFailures")
            logger.debug(
                "[SEND_FAIL] connection=%s type=%s reason=%s ws_client_state=%s",
                connection_id or "-",
                data.get("type"),
                repr(exc),
                getattr(websocket, "client_state", None),
            )

    async def _close_safe(self, websocket: WebSocket, code: int, connection_id: str) -> None:
        try:
            await websocket.close(code=code)
        except Exception as exc:
            logger.debug("[CLOSE_FAIL] connection=%s code=%s reason=%s", connection_id, code, repr(exc))
