"""Normalization helpers for heterogeneous telemetry records."""

import math
from collections.abc import Mapping

from instance_meter.domain.scenes import SceneDescriptor

_U64_MASK = (1 << 64) - 1
_UID_SHIFT = 16

_DISPLAY_NAME_PATHS: tuple[tuple[str, ...], ...] = (
    ("SceneName",),
    ("MapName",),
    ("LevelName",),
    ("SceneInfo", "Name"),
    ("SceneInfo", "InstanceName"),
    ("LevelInfo", "Name"),
)


def read_field(record: object, name: str) -> object | None:
    """Return a field by wire name or snake_case alias, tolerating any shape."""
    if record is None:
        return None
    for key in (name, _snake_case(name)):
        if isinstance(record, Mapping):
            if key in record:
                return record[key]
        else:
            value = getattr(record, key, None)
            if value is not None:
                return value
    return None


def to_finite_int(value: object) -> int | None:
    """Convert numbers and numeric strings to int; anything else is absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            return int(cleaned)
        except ValueError:
            pass
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return int(number) if math.isfinite(number) else None
    return None


def u64_to_string(value: object) -> str | None:
    """Render an unsigned 64-bit identifier as a decimal string."""
    if not value:
        return None
    high = read_field(value, "high")
    low = read_field(value, "low")
    if high is not None and low is not None:
        high_int = to_finite_int(high)
        low_int = to_finite_int(low)
        if high_int is not None and low_int is not None:
            combined = ((high_int & 0xFFFFFFFF) << 32) | (low_int & 0xFFFFFFFF)
            return str(combined)
    return str(value)


def to_unsigned_u64(raw: object) -> int | None:
    """Interpret a raw identity as an unsigned 64-bit integer."""
    if read_field(raw, "high") is not None and read_field(raw, "low") is not None:
        rendered = u64_to_string(raw)
        return int(rendered) if rendered and rendered.isdigit() else None
    number = to_finite_int(raw)
    if number is None:
        return None
    return number & _U64_MASK


def short_uid(raw_identity: object) -> int | None:
    """Derive the short player uid from a raw identity value."""
    unsigned = to_unsigned_u64(raw_identity)
    if not unsigned:
        return None
    return unsigned >> _UID_SHIFT


def scene_record_of(record: object) -> object | None:
    """Return the scene sub-record carried by a telemetry record."""
    return read_field(record, "SceneData")


def normalize_scene(scene_record: object) -> SceneDescriptor | None:
    """Build a scene descriptor from a scene sub-record."""
    if scene_record is None or isinstance(scene_record, str | bytes | int | float):
        return None
    return SceneDescriptor(
        dungeon_guid=u64_to_string(read_field(scene_record, "DungeonGuid")),
        level_uuid=u64_to_string(read_field(scene_record, "LevelUuid")),
        scene_guid=u64_to_string(read_field(scene_record, "SceneGuid")),
        record_id=u64_to_string(read_field(scene_record, "RecordId")),
        level_map_id=to_finite_int(read_field(scene_record, "LevelMapId")),
        last_scene_id=to_finite_int(
            read_field(read_field(scene_record, "LastSceneData"), "SceneId")
        ),
        line_id=to_finite_int(read_field(scene_record, "LineId")),
    )


def derive_scene_id(record: object) -> int | None:
    """Derive the authoritative scene id from a telemetry record."""
    return to_finite_int(read_field(scene_record_of(record), "LevelMapId"))


def derive_line_id(record: object) -> int | None:
    """Derive the line (channel) id from a telemetry record."""
    return to_finite_int(read_field(scene_record_of(record), "LineId"))


def resolve_display_name(record: object) -> str | None:
    """Return the first display name found in a telemetry record."""
    for path in _DISPLAY_NAME_PATHS:
        value: object | None = record
        for part in path:
            value = read_field(value, part)
            if value is None:
                break
        if isinstance(value, str):
            return value
    return None


def is_instanced(descriptor: SceneDescriptor) -> bool:
    """Return whether a descriptor carries dungeon or raid identifiers."""
    return bool(
        descriptor.dungeon_guid
        or descriptor.level_uuid
        or descriptor.scene_guid
        or descriptor.record_id
    )


def scene_key(
    descriptor: SceneDescriptor | None,
    scene_id: int | None = None,
    map_id: int | None = None,
) -> str:
    """Return the global instance key: GUID/UUID > scene id > map id."""
    if descriptor is not None:
        for value in (
            descriptor.level_uuid,
            descriptor.scene_guid,
            descriptor.record_id,
        ):
            if value:
                return value
    if scene_id is not None:
        return f"scene:{scene_id}"
    if map_id is not None:
        return f"map:{map_id}"
    return "unknown"


def _snake_case(name: str) -> str:
    chars: list[str] = []
    for index, char in enumerate(name):
        if char.isupper() and index > 0:
            chars.append("_")
        chars.append(char.lower())
    return "".join(chars)
