from pathlib import Path

from instance_meter.config import Settings, resolve_sessions_path


def test_relative_sessions_file_is_under_data_dir(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path, sessions_file="runs.json")

    assert resolve_sessions_path(settings) == tmp_path / "runs.json"


def test_absolute_sessions_file_is_kept(tmp_path: Path) -> None:
    target = tmp_path / "elsewhere" / "sessions.json"
    settings = Settings(data_dir=Path("data"), sessions_file=str(target))

    assert resolve_sessions_path(settings) == target
