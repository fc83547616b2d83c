"""Session lifecycle driven by instance changes."""

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import uuid4

from instance_meter.domain.scenes import InstanceChange
from instance_meter.domain.sessions import OpenSession, SessionRecord, SessionSummary

_logger = logging.getLogger(__name__)

_NAME_SEPARATOR = " — "
_TOP_SKILLS = 3


class SessionRepository(Protocol):
    """Persistence interface for finalized sessions."""

    def list_sessions(self) -> list[SessionSummary]:
        """Return all sessions, most recent first, without snapshots."""

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Return a full session by id, if present."""

    def add_session(self, session: SessionRecord) -> str:
        """Append a session and return its id."""

    def delete_session(self, session_id: str) -> bool:
        """Delete a session; return whether anything changed."""

    def clear_sessions(self) -> None:
        """Remove every session."""


class UserAggregate(Protocol):
    """Read/reset interface over the per-user combat aggregate."""

    def list_user_ids(self) -> list[int]:
        """Return the uids currently tracked."""

    def get_user_summary(self, uid: int) -> dict[str, object] | None:
        """Return the summary of one user, if tracked."""

    def get_skill_summary(self, uid: int) -> dict[str, dict[str, object]]:
        """Return per-skill summaries for one user."""

    def get_all_users_data(self) -> dict[str, dict[str, object]]:
        """Return summaries for every tracked user keyed by uid."""

    def reset(self) -> None:
        """Clear all counters."""


class InstanceCaches(Protocol):
    """Caches scoped to a single instance."""

    def clear_enemy_cache(self) -> None:
        """Forget names and hp of transient in-world entities."""

    def clear_live_logs(self) -> None:
        """Empty the rolling log buffer."""


class SessionNotifier(Protocol):
    """Outbound notifications for the UI layer."""

    def emit(self, event: str, payload: dict[str, object]) -> None:
        """Publish an event with its payload."""


def _now_ms() -> float:
    return time.time() * 1000


def _new_session_id() -> str:
    return str(uuid4())


@dataclass
class SessionLifecycleManager:
    """Close and open measurement sessions as instances change.

    At most one session is open. Finalizing snapshots the aggregate, drops
    the session when no player did damage or healing, and otherwise persists
    it. A failed persist is logged and never blocks opening the next session.
    """

    repository: SessionRepository
    aggregate: UserAggregate
    caches: InstanceCaches
    notifier: SessionNotifier
    map_names: Mapping[str, str] = field(default_factory=dict)
    clock: Callable[[], float] = _now_ms
    id_factory: Callable[[], str] = _new_session_id
    _current: OpenSession | None = field(default=None, init=False, repr=False)
    _lock: threading.RLock = field(
        default_factory=threading.RLock, init=False, repr=False
    )

    @property
    def current_session(self) -> OpenSession | None:
        """Return the open session, if any."""
        return self._current

    def on_instance_changed(self, change: InstanceChange) -> OpenSession | None:
        """Finalize the open session and start a new one for the instance."""
        if not change.triggered:
            return None
        reason = str(change.reason)
        to_id = change.extra.get("to")
        _logger.info(
            "Instance change detected: reason=%s seq=%s to=%s",
            reason,
            change.sequence,
            to_id,
        )
        with self._lock:
            self._finalize(reason)
            self.caches.clear_enemy_cache()
            self.caches.clear_live_logs()
            self.aggregate.reset()
            session = self._open(
                base_name=self._instance_name(
                    to_id if to_id is not None else change.sequence
                ),
                reason=reason,
                sequence=change.sequence,
                instance_id=_as_int(to_id),
                from_instance=_as_int(change.extra.get("from")),
            )
        self._announce(session)
        self.notifier.emit(
            "session_changed",
            {"sequence": change.sequence, "reason": reason, **change.extra},
        )
        return session

    def restart_session(
        self,
        reason: str = "manual_restart",
        extra: Mapping[str, object] | None = None,
    ) -> OpenSession:
        """Start a fresh session outside of instance detection."""
        extra = extra or {}
        to_id = extra.get("to")
        base_name = (
            extra.get("map_name_base")
            or extra.get("map_name")
            or (self._instance_name(to_id) if to_id is not None else None)
            or "Manual Restart"
        )
        with self._lock:
            self._finalize(reason)
            self.aggregate.reset()
            session = self._open(
                base_name=str(base_name),
                reason=reason,
                sequence=_as_int(extra.get("sequence")),
                instance_id=_as_int(to_id),
                from_instance=_as_int(extra.get("from")),
            )
        self._announce(session)
        return session

    def finalize_current_session(
        self, reason_end: str = "instance_change"
    ) -> SessionRecord | None:
        """Finalize the open session once; later calls are no-ops."""
        with self._lock:
            return self._finalize(reason_end)

    def _finalize(self, reason_end: str) -> SessionRecord | None:
        current = self._current
        if current is None:
            return None
        self._current = None

        ended_at = int(self.clock())
        players = self._player_snapshots()
        if not players:
            _logger.info("Skip persist: empty session %s", current.name)
            return None

        record = SessionRecord(
            id=current.id,
            name=current.name,
            started_at=current.started_at,
            ended_at=ended_at,
            duration_ms=max(0, ended_at - current.started_at),
            reason_start=current.reason_start,
            reason_end=reason_end,
            sequence=current.sequence,
            instance_id=current.instance_id,
            from_instance=current.from_instance,
            party_size=len(players),
            snapshot={
                "players": players,
                "users_agg": self.aggregate.get_all_users_data(),
            },
        )
        try:
            self.repository.add_session(record)
        except Exception:
            _logger.exception("Failed to persist session %s", record.id)
            return None
        _logger.info(
            "Persisted session %s (%s players)", record.name, record.party_size
        )
        return record

    def _open(  # noqa: PLR0913
        self,
        base_name: str,
        reason: str,
        sequence: int | None,
        instance_id: int | None,
        from_instance: int | None,
    ) -> OpenSession:
        started_at = int(self.clock())
        stamp = datetime.fromtimestamp(started_at / 1000).strftime("%Y-%m-%d %H:%M:%S")
        session = OpenSession(
            id=self.id_factory(),
            name=f"{base_name}{_NAME_SEPARATOR}{stamp}",
            started_at=started_at,
            reason_start=reason,
            sequence=sequence,
            instance_id=instance_id,
            from_instance=from_instance,
        )
        self._current = session
        _logger.info("Started new session: %s", session.name)
        return session

    def _announce(self, session: OpenSession) -> None:
        self.notifier.emit(
            "session_started",
            {
                "id": session.id,
                "name": session.name,
                "started_at": session.started_at,
                "instance_id": session.instance_id,
                "from_instance": session.from_instance,
                "sequence": session.sequence,
                "reason_start": session.reason_start,
            },
        )
        self.notifier.emit("dps_cleared", {"at": int(self.clock())})

    def _instance_name(self, instance_id: object) -> str:
        return self.map_names.get(str(instance_id), f"Instance {instance_id}")

    def _player_snapshots(self) -> list[dict[str, object]]:
        players = []
        for uid in self.aggregate.list_user_ids():
            summary = self.aggregate.get_user_summary(uid)
            if summary is None:
                continue
            player = build_player_snapshot(
                uid, summary, self.aggregate.get_skill_summary(uid)
            )
            if player is not None:
                players.append(player)
        return players


def build_player_snapshot(
    uid: int,
    summary: Mapping[str, object],
    skills: Mapping[str, Mapping[str, object]] | None = None,
) -> dict[str, object] | None:
    """Build the persisted player entry; None when the player contributed nothing."""
    total_damage = _number(_total(summary.get("total_damage")))
    total_heal = _number(_total(summary.get("total_healing")))
    if total_damage <= 0 and total_heal <= 0:
        return None

    skill_list = list((skills or {}).values())
    profession = str(summary.get("profession") or "")
    sub_profession = summary.get("sub_profession")
    if sub_profession:
        profession = f"{profession} {sub_profession}"

    return {
        "uid": uid,
        "name": summary.get("name") or str(uid),
        "profession": profession,
        "fight_point": summary.get("fight_point"),
        "dps": _number(summary.get("total_dps")),
        "hps": _number(summary.get("total_hps")),
        "totals": {"damage": total_damage, "heal": total_heal},
        "top_damage_spells": _top_skills(skill_list, "damage", "total_damage"),
        "top_heal_spells": _top_skills(skill_list, "healing", "total_healing"),
        "attr": dict(summary.get("attr") or {}),
    }


def _top_skills(
    skills: list[Mapping[str, object]], kind: str, total_key: str
) -> list[dict[str, object]]:
    value_key = "damage" if kind == "damage" else "heal"
    entries = []
    for skill in skills:
        if str(skill.get("type") or "").lower() != kind:
            continue
        skill_id = skill.get("id") or skill.get("skill_id") or skill.get("display_name")
        entries.append(
            {
                "id": skill_id,
                "name": skill.get("display_name") or str(skill_id or "Skill"),
                value_key: _number(skill.get(total_key) or skill.get("total")),
            }
        )
    entries.sort(key=lambda entry: entry[value_key], reverse=True)
    return entries[:_TOP_SKILLS]


def _total(value: object) -> object:
    if isinstance(value, Mapping):
        return value.get("total")
    return value


def _number(value: object) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    try:
        return float(str(value)) if value is not None else 0.0
    except ValueError:
        return 0.0


def _as_int(value: object) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value))
    except ValueError:
        return None
