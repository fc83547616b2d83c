"""Tests for the map-name loader and event broadcaster."""

import json
from pathlib import Path

from instance_meter.adapters.event_broadcaster import EventBroadcaster
from instance_meter.adapters.map_names_file import load_map_names


def test_load_map_names_reads_table(tmp_path: Path) -> None:
    path = tmp_path / "maps.json"
    path.write_text(json.dumps({"100": "Asterleeds", 200: "Dragon Lair"}), "utf-8")

    assert load_map_names(path) == {"100": "Asterleeds", "200": "Dragon Lair"}


def test_load_map_names_degrades_to_empty(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("[1, 2", encoding="utf-8")
    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]", encoding="utf-8")

    assert load_map_names(None) == {}
    assert load_map_names(tmp_path / "missing.json") == {}
    assert load_map_names(broken) == {}
    assert load_map_names(listing) == {}


def test_broadcaster_isolates_failing_listener() -> None:
    broadcaster = EventBroadcaster()
    received: list[tuple[str, dict[str, object]]] = []

    def failing(event: str, payload: dict[str, object]) -> None:
        raise RuntimeError("listener crashed")

    broadcaster.subscribe(failing)
    broadcaster.subscribe(lambda event, payload: received.append((event, payload)))

    broadcaster.emit("dps_cleared", {"at": 1})

    assert received == [("dps_cleared", {"at": 1})]


def test_broadcaster_unsubscribe() -> None:
    broadcaster = EventBroadcaster()
    received: list[str] = []

    def listener(event: str, payload: dict[str, object]) -> None:
        received.append(event)

    broadcaster.subscribe(listener)
    broadcaster.unsubscribe(listener)
    broadcaster.emit("session_started", {})

    assert received == []
