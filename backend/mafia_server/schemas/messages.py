from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ..runtime_types import PauseAction


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class EmptyPayload(_Payload):
    pass


class JoinRoomPayload(_Payload):
    roomId: str = Field(min_length=1, max_length=32)


class ReconnectPayload(_Payload):
    roomId: str = Field(min_length=1, max_length=32)
    peerKey: str = Field(min_length=1, max_length=128)


class SetNamePayload(_Payload):
    name: str | None = Field(default=None, max_length=256)


class UpdateSettingsPayload(_Payload):
    maxPlayers: int


class UpdateRoleCountsPayload(_Payload):
    counts: dict[str, int] = Field(default_factory=dict)


class UpdateRolePoolPayload(_Payload):
    enabledRoles: list[str] = Field(default_factory=list, max_length=64)


class SetPhasePayload(_Payload):
    phase: str = Field(max_length=16)


class StartTimerPayload(_Payload):
    ms: int
    phase: str | None = Field(default=None, max_length=16)


class PauseGamePayload(_Payload):
    action: PauseAction


class PrivilegedChatSendPayload(_Payload):
    text: str = Field(default="", max_length=4000)
