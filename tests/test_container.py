"""Tests for container wiring."""

from instance_meter.config import Settings, resolve_sessions_path
from instance_meter.containers import build_container


def test_build_container_creates_services(settings: Settings) -> None:
    container = build_container(settings)

    assert container.session_manager is not None
    assert resolve_sessions_path(settings).exists()


def test_detector_changes_reach_session_manager(settings: Settings) -> None:
    container = build_container(settings)
    events: list[str] = []
    container.broadcaster.subscribe(lambda name, _payload: events.append(name))

    container.detector.set_player_identity(7 << 16)

    current = container.session_manager.current_session
    assert current is not None
    assert current.reason_start == "identity-changed"
    assert events == ["session_started", "dps_cleared", "session_changed"]


def test_shutdown_is_idempotent(settings: Settings) -> None:
    container = build_container(settings)
    container.session_manager.restart_session()

    container.shutdown()
    container.shutdown()

    assert container.session_manager.current_session is None
    assert container.session_repository.list_sessions() == []
