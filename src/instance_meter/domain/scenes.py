"""Domain models for scene tracking and instance transitions."""

from dataclasses import dataclass, field, fields
from enum import Enum, StrEnum


class Reason(StrEnum):
    """Reasons raised by the transition detector."""

    IDENTITY_CHANGED = "identity-changed"
    SCENE_ID_CHANGED = "scene-id-changed"
    LINE_ID_CHANGED = "line-id-changed"
    ENTERED_SUB_INSTANCE = "entered-sub-instance"
    AOI_WIPE = "aoi-wipe"
    SELF_APPEARED_IN_AOI = "self-appeared-in-aoi"
    SELF_DISAPPEARED_FROM_AOI = "self-disappeared-from-aoi"


class TrackerPhase(Enum):
    """Whether player identity has been established yet."""

    AWAITING_IDENTITY = "awaiting_identity"
    TRACKING = "tracking"


# (phase, reason) -> next phase for triggering reasons; unlisted pairs are
# diagnostic-only.
TRIGGER_TABLE: dict[tuple[TrackerPhase, Reason], TrackerPhase] = {
    (TrackerPhase.AWAITING_IDENTITY, Reason.IDENTITY_CHANGED): TrackerPhase.TRACKING,
    (TrackerPhase.TRACKING, Reason.SCENE_ID_CHANGED): TrackerPhase.TRACKING,
    (TrackerPhase.TRACKING, Reason.LINE_ID_CHANGED): TrackerPhase.TRACKING,
    (TrackerPhase.TRACKING, Reason.ENTERED_SUB_INSTANCE): TrackerPhase.TRACKING,
}


@dataclass(frozen=True)
class SceneDescriptor:
    """Normalized snapshot of where the player currently is."""

    dungeon_guid: str | None = None
    level_uuid: str | None = None
    scene_guid: str | None = None
    record_id: str | None = None
    level_map_id: int | None = None
    last_scene_id: int | None = None
    line_id: int | None = None

    def changed_fields(self, previous: "SceneDescriptor | None") -> list[str]:
        """Return the names of fields that differ from a previous descriptor."""
        if previous is None:
            previous = SceneDescriptor()
        return [
            item.name
            for item in fields(self)
            if getattr(self, item.name) != getattr(previous, item.name)
        ]


@dataclass(frozen=True)
class PendingTransition:
    """A staged scene change awaiting confirmation."""

    source_scene_id: int | None
    target_scene_id: int | None
    source_line_id: int | None


@dataclass(frozen=True)
class InstanceChange:
    """Notification emitted when the detector raises a reason."""

    sequence: int
    reason: Reason
    extra: dict[str, object] = field(default_factory=dict)
    triggered: bool = False


@dataclass
class InstanceState:
    """Committed view of the detector."""

    current_map_id: int | None = None
    current_map_name: str | None = None
    current_scene_id: int | None = None
    current_line_id: int | None = None
    current_player_uuid: int | None = None
    current_player_uid: int | None = None
    instance_sequence: int = 0
    phase: TrackerPhase = TrackerPhase.AWAITING_IDENTITY
    last_change_ms: float | None = None
    last_uid_change_ms: float | None = None
    last_aoi_wipe_ms: float | None = None
    last_self_appeared_ms: float | None = None
    aoi_population: int = 0

    @property
    def first_instance_locked(self) -> bool:
        """Return whether player identity has been established once."""
        return self.phase is TrackerPhase.TRACKING
