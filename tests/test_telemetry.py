from types import SimpleNamespace

from instance_meter.domain.scenes import SceneDescriptor
from instance_meter.services.telemetry import (
    derive_line_id,
    derive_scene_id,
    is_instanced,
    normalize_scene,
    read_field,
    resolve_display_name,
    scene_key,
    short_uid,
    to_finite_int,
    to_unsigned_u64,
    u64_to_string,
)


def test_read_field_accepts_wire_and_snake_case_names() -> None:
    assert read_field({"LevelMapId": 3}, "LevelMapId") == 3
    assert read_field({"level_map_id": 4}, "LevelMapId") == 4
    assert read_field(SimpleNamespace(level_map_id=5), "LevelMapId") == 5
    assert read_field(None, "LevelMapId") is None


def test_to_finite_int() -> None:
    assert to_finite_int(7) == 7
    assert to_finite_int(7.9) == 7
    assert to_finite_int(" 12 ") == 12
    assert to_finite_int("12.7") == 12
    assert to_finite_int("abc") is None
    assert to_finite_int("") is None
    assert to_finite_int(float("inf")) is None
    assert to_finite_int(True) is None
    assert to_finite_int(None) is None


def test_u64_to_string_combines_high_and_low_words() -> None:
    assert u64_to_string({"high": 1, "low": 2}) == str((1 << 32) | 2)
    assert u64_to_string(SimpleNamespace(high=0, low=99)) == "99"
    assert u64_to_string(12345) == "12345"
    assert u64_to_string(0) is None
    assert u64_to_string(None) is None


def test_short_uid_drops_low_sixteen_bits() -> None:
    assert short_uid((42 << 16) | 0x1234) == 42
    assert short_uid({"high": 0, "low": 7 << 16}) == 7
    assert short_uid(-1) == (1 << 48) - 1
    assert short_uid(0) is None
    assert short_uid("not a number") is None


def test_wide_decimal_string_identity_keeps_exact_value() -> None:
    raw = (1 << 63) + 65535

    assert to_finite_int(str(raw)) == raw
    assert to_unsigned_u64(str(raw)) == raw
    assert short_uid(str(raw)) == short_uid(raw) == raw >> 16


def test_normalize_scene_from_mapping() -> None:
    descriptor = normalize_scene(
        {
            "LevelMapId": "100",
            "LineId": 3,
            "LevelUuid": {"high": 0, "low": 555},
            "LastSceneData": {"SceneId": 42},
        }
    )

    assert descriptor == SceneDescriptor(
        level_uuid="555", level_map_id=100, last_scene_id=42, line_id=3
    )
    assert is_instanced(descriptor)


def test_normalize_scene_from_attributes() -> None:
    descriptor = normalize_scene(SimpleNamespace(level_map_id=5, line_id=2))

    assert descriptor is not None
    assert descriptor.level_map_id == 5
    assert descriptor.line_id == 2
    assert not is_instanced(descriptor)


def test_normalize_scene_rejects_scalars() -> None:
    assert normalize_scene(None) is None
    assert normalize_scene("SceneData") is None
    assert normalize_scene(17) is None


def test_derive_ids_from_snapshot() -> None:
    record = {"SceneData": {"LevelMapId": 8, "LineId": 2}}

    assert derive_scene_id(record) == 8
    assert derive_line_id(record) == 2
    assert derive_scene_id({}) is None
    assert derive_line_id({"SceneData": {}}) is None


def test_resolve_display_name_search_order() -> None:
    assert resolve_display_name({"SceneName": "A", "MapName": "B"}) == "A"
    assert resolve_display_name({"SceneInfo": {"InstanceName": "Raid"}}) == "Raid"
    assert resolve_display_name({"LevelInfo": {"Name": "Level"}}) == "Level"
    assert resolve_display_name({"MapName": 5}) is None
    assert resolve_display_name(None) is None


def test_scene_key_priority() -> None:
    descriptor = SceneDescriptor(scene_guid="g-1", record_id="r-1")

    assert scene_key(descriptor, 3, 4) == "g-1"
    assert scene_key(SceneDescriptor(), 3, 4) == "scene:3"
    assert scene_key(None, None, 4) == "map:4"
    assert scene_key(None) == "unknown"
