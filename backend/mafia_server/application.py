from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mafia_server.api.router import api_router
from mafia_server.config import settings
from mafia_server.runtime import RoomCoordinator
from mafia_server.runtime_gateway import WebSocketGateway
from mafia_server.runtime_phase_timer import AsyncioTickScheduler
from mafia_server.runtime_registry import RoomRegistry


def build_coordinator() -> RoomCoordinator:
    return RoomCoordinator(
        RoomRegistry(code_length=settings.room_code_length),
        scheduler=AsyncioTickScheduler(),
        privileged_roles=settings.privileged_roles,
        default_max_players=settings.default_max_players,
    )


def create_app(coordinator: RoomCoordinator | None = None) -> FastAPI:
    app = FastAPI(title="Mafia Rooms Backend", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials="*" not in settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    coordinator = coordinator if coordinator is not None else build_coordinator()
    gateway = WebSocketGateway(coordinator)
    coordinator.sink = gateway.deliver
    app.state.coordinator = coordinator
    app.state.gateway = gateway

    app.include_router(api_router)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await gateway.shutdown()

    return app
