from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["system"])


@router.get("/", response_class=PlainTextResponse)
async def liveness() -> str:
    return "Mafia WS OK"


@router.get("/api/health")
async def health(request: Request) -> dict[str, object]:
    coordinator = request.app.state.coordinator
    ws_stats = coordinator.get_stats()
    ws_summary = {
        "activeConnections": ws_stats["stats"].get("activeConnections", 0),
        "peakConnections": ws_stats["stats"].get("peakConnections", 0),
        "connectionsOpened": ws_stats["stats"].get("connectionsOpened", 0),
        "sendFailures": ws_stats["stats"].get("sendFailures", 0),
        "openSockets": request.app.state.gateway.open_connections,
    }
    return {
        "ok": True,
        "activeRooms": coordinator.active_rooms_count,
        "websocket": ws_summary,
    }


@router.get("/api/ws-stats")
async def websocket_stats(request: Request) -> dict[str, object]:
    return request.app.state.coordinator.get_stats()
