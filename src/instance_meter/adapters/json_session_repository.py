"""JSON file backed session repository."""

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path

from instance_meter.domain.sessions import SessionRecord, SessionSummary
from instance_meter.services.sessions import SessionRepository

_logger = logging.getLogger(__name__)


@dataclass
class JsonFileSessionRepository(SessionRepository):
    """Append-only session collection stored as one JSON array.

    Every mutation re-reads and rewrites the whole file. Missing or corrupt
    content is treated as an empty collection and rewritten as ``[]``.
    Single process, serialized by a lock per repository.
    """

    path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._save_all([])

    def list_sessions(self) -> list[SessionSummary]:
        """Return all sessions, most recent first, without snapshots."""
        with self._lock:
            rows = self._load_all()
        summaries = [_summary_from_row(row) for row in rows]
        summaries.sort(key=lambda summary: summary.started_at or 0, reverse=True)
        return summaries

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Return a full session by id, if present."""
        with self._lock:
            rows = self._load_all()
        for row in rows:
            if row.get("id") == session_id:
                return _record_from_row(row)
        return None

    def add_session(self, session: SessionRecord) -> str:
        """Append a session and return its id."""
        with self._lock:
            rows = self._load_all()
            rows.append(asdict(session))
            self._save_all(rows)
        return session.id

    def delete_session(self, session_id: str) -> bool:
        """Delete a session; return whether anything changed."""
        with self._lock:
            rows = self._load_all()
            remaining = [row for row in rows if row.get("id") != session_id]
            changed = len(remaining) != len(rows)
            if changed:
                self._save_all(remaining)
        return changed

    def clear_sessions(self) -> None:
        """Remove every session."""
        with self._lock:
            self._save_all([])

    def _load_all(self) -> list[dict[str, object]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.warning("Session file unreadable, resetting: %s", self.path)
            self._save_all([])
            return []
        if not isinstance(data, list):
            _logger.warning("Session file is not a list, resetting: %s", self.path)
            self._save_all([])
            return []
        return [row for row in data if isinstance(row, dict)]

    def _save_all(self, rows: list[dict[str, object]]) -> None:
        try:
            self.path.write_text(
                json.dumps(rows, indent=2, ensure_ascii=False), encoding="utf-8"
            )
        except OSError:
            _logger.exception("Failed to write session file: %s", self.path)
            raise


def derive_party_size(row: dict[str, object]) -> int:
    """Return party size: explicit field > snapshot players > legacy count > 0."""
    explicit = row.get("party_size")
    if isinstance(explicit, int) and not isinstance(explicit, bool) and explicit > 0:
        return explicit
    snapshot = row.get("snapshot")
    if isinstance(snapshot, dict) and isinstance(snapshot.get("players"), list):
        return len(snapshot["players"])
    legacy = row.get("players_count")
    if isinstance(legacy, int) and not isinstance(legacy, bool):
        return legacy
    return 0


def _summary_from_row(row: dict[str, object]) -> SessionSummary:
    return SessionSummary(
        id=str(row.get("id", "")),
        name=str(row.get("name", "")),
        started_at=_optional_int(row.get("started_at")) or 0,
        ended_at=_optional_int(row.get("ended_at")),
        duration_ms=_optional_int(row.get("duration_ms")),
        reason_start=_optional_str(row.get("reason_start")),
        reason_end=_optional_str(row.get("reason_end")),
        sequence=_optional_int(row.get("sequence")),
        instance_id=_optional_int(row.get("instance_id")),
        from_instance=_optional_int(row.get("from_instance")),
        party_size=derive_party_size(row),
    )


def _record_from_row(row: dict[str, object]) -> SessionRecord:
    snapshot = row.get("snapshot")
    summary = _summary_from_row(row)
    return SessionRecord(
        id=summary.id,
        name=summary.name,
        started_at=summary.started_at,
        ended_at=summary.ended_at or summary.started_at,
        duration_ms=summary.duration_ms or 0,
        reason_start=summary.reason_start,
        reason_end=summary.reason_end,
        sequence=summary.sequence,
        instance_id=summary.instance_id,
        from_instance=summary.from_instance,
        party_size=summary.party_size,
        snapshot=snapshot if isinstance(snapshot, dict) else {},
    )


def _optional_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return int(value)
    return None


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None
