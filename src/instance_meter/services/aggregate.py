"""In-memory holder for per-user aggregates and instance caches."""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime

from instance_meter.services.sessions import InstanceCaches, UserAggregate


@dataclass
class EnemyCache:
    """Names and hit points of transient in-world entities."""

    name: dict[int, str] = field(default_factory=dict)
    hp: dict[int, int] = field(default_factory=dict)
    max_hp: dict[int, int] = field(default_factory=dict)

    def clear(self) -> None:
        """Forget every entity."""
        self.name.clear()
        self.hp.clear()
        self.max_hp.clear()


@dataclass
class InMemoryUserAggregate(UserAggregate, InstanceCaches):
    """Keeps whatever the aggregation layer reports, until reset."""

    live_log_limit: int = 500
    enemy_cache: EnemyCache = field(default_factory=EnemyCache)
    _users: dict[int, dict[str, object]] = field(default_factory=dict, repr=False)
    _skills: dict[int, dict[str, dict[str, object]]] = field(
        default_factory=dict, repr=False
    )
    _live_logs: deque[str] = field(init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self._live_logs = deque(maxlen=self.live_log_limit)

    def record_user(
        self,
        uid: int,
        summary: dict[str, object],
        skills: dict[str, dict[str, object]] | None = None,
    ) -> None:
        """Store the latest summary (and skill breakdown) for a user."""
        with self._lock:
            self._users[uid] = dict(summary)
            if skills is not None:
                self._skills[uid] = dict(skills)

    def list_user_ids(self) -> list[int]:
        """Return the uids currently tracked."""
        with self._lock:
            return list(self._users)

    def get_user_summary(self, uid: int) -> dict[str, object] | None:
        """Return the summary of one user, if tracked."""
        with self._lock:
            summary = self._users.get(uid)
            return dict(summary) if summary is not None else None

    def get_skill_summary(self, uid: int) -> dict[str, dict[str, object]]:
        """Return per-skill summaries for one user."""
        with self._lock:
            return dict(self._skills.get(uid, {}))

    def get_all_users_data(self) -> dict[str, dict[str, object]]:
        """Return summaries for every tracked user keyed by uid."""
        with self._lock:
            return {str(uid): dict(summary) for uid, summary in self._users.items()}

    def reset(self) -> None:
        """Clear all counters."""
        with self._lock:
            self._users.clear()
            self._skills.clear()

    def add_log(self, line: str) -> None:
        """Append a timestamped line to the live log buffer."""
        stamp = datetime.now(tz=UTC).isoformat()
        with self._lock:
            self._live_logs.append(f"[{stamp}] {line}")

    def live_logs(self) -> list[str]:
        """Return the buffered live log lines, oldest first."""
        with self._lock:
            return list(self._live_logs)

    def clear_enemy_cache(self) -> None:
        """Forget names and hp of transient in-world entities."""
        with self._lock:
            self.enemy_cache.clear()

    def clear_live_logs(self) -> None:
        """Empty the rolling log buffer."""
        with self._lock:
            self._live_logs.clear()
