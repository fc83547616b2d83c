"""Domain models for measurement sessions."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class OpenSession:
    """The in-memory session currently collecting data."""

    id: str
    name: str
    started_at: int
    reason_start: str
    sequence: int | None
    instance_id: int | None
    from_instance: int | None


@dataclass(frozen=True)
class SessionRecord:
    """A finalized session as persisted in the store."""

    id: str
    name: str
    started_at: int
    ended_at: int
    duration_ms: int
    reason_start: str | None
    reason_end: str | None
    sequence: int | None
    instance_id: int | None
    from_instance: int | None
    party_size: int
    snapshot: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionSummary:
    """Session metadata for list views, without the snapshot payload."""

    id: str
    name: str
    started_at: int
    ended_at: int | None
    duration_ms: int | None
    reason_start: str | None
    reason_end: str | None
    sequence: int | None
    instance_id: int | None
    from_instance: int | None
    party_size: int
