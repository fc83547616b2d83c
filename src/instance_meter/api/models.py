"""Pydantic models for API request payloads."""

from pydantic import BaseModel, ConfigDict, Field


class SessionSnapshotPayload(BaseModel):
    """Client-side snapshot submitted for manual persistence."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    boss_name: str | None = None
    started_at: int | None = None
    ended_at: int | None = None
    players: list[dict[str, object]] = Field(default_factory=list)


class RestartRequest(BaseModel):
    """Manual session restart options."""

    reason: str = "manual_restart"
    map_name: str | None = None
    to: int | None = None
