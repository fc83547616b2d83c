"""Shared test fixtures."""

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from instance_meter.config import Settings
from instance_meter.domain.scenes import InstanceChange
from instance_meter.domain.sessions import SessionRecord, SessionSummary
from instance_meter.services.aggregate import InMemoryUserAggregate
from instance_meter.services.sessions import (
    SessionLifecycleManager,
    SessionNotifier,
    SessionRepository,
)
from instance_meter.services.transitions import TransitionDetector

START_MS = 1_700_000_000_000.0


@dataclass
class FakeClock:
    """Manually advanced millisecond clock."""

    now: float = START_MS

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository for tests."""

    sessions: list[SessionRecord] = field(default_factory=list)
    fail_writes: bool = False
    add_calls: int = 0

    def list_sessions(self) -> list[SessionSummary]:
        ordered = sorted(self.sessions, key=lambda s: s.started_at, reverse=True)
        return [
            SessionSummary(
                id=s.id,
                name=s.name,
                started_at=s.started_at,
                ended_at=s.ended_at,
                duration_ms=s.duration_ms,
                reason_start=s.reason_start,
                reason_end=s.reason_end,
                sequence=s.sequence,
                instance_id=s.instance_id,
                from_instance=s.from_instance,
                party_size=s.party_size,
            )
            for s in ordered
        ]

    def get_session(self, session_id: str) -> SessionRecord | None:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def add_session(self, session: SessionRecord) -> str:
        self.add_calls += 1
        if self.fail_writes:
            raise OSError("disk full")
        self.sessions.append(session)
        return session.id

    def delete_session(self, session_id: str) -> bool:
        before = len(self.sessions)
        self.sessions = [s for s in self.sessions if s.id != session_id]
        return len(self.sessions) != before

    def clear_sessions(self) -> None:
        self.sessions = []


@dataclass
class RecordingNotifier(SessionNotifier):
    """Notifier that records emitted events."""

    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def emit(self, event: str, payload: dict[str, object]) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@dataclass
class ChangeRecorder:
    """Collects instance changes delivered by a detector."""

    changes: list[InstanceChange] = field(default_factory=list)

    def __call__(self, change: InstanceChange) -> None:
        self.changes.append(change)

    def reasons(self) -> list[str]:
        return [str(change.reason) for change in self.changes]


def player_summary(
    name: str, damage: float = 0, healing: float = 0
) -> dict[str, object]:
    """Build a user summary in the aggregate's shape."""
    return {
        "name": name,
        "profession": "Stormblade",
        "total_damage": {"total": damage},
        "total_healing": {"total": healing},
        "total_dps": damage / 10,
        "total_hps": healing / 10,
        "fight_point": 12000,
        "attr": {"max_hp": 50000},
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> ChangeRecorder:
    return ChangeRecorder()


@pytest.fixture
def detector(clock: FakeClock, recorder: ChangeRecorder) -> TransitionDetector:
    tracker = TransitionDetector(clock=clock, map_names={"100": "Asterleeds"})
    tracker.subscribe(recorder)
    return tracker


@pytest.fixture
def session_repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def aggregate() -> InMemoryUserAggregate:
    return InMemoryUserAggregate()


@pytest.fixture
def session_manager(
    session_repository: InMemorySessionRepository,
    aggregate: InMemoryUserAggregate,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> SessionLifecycleManager:
    counter = iter(range(1, 1000))
    return SessionLifecycleManager(
        repository=session_repository,
        aggregate=aggregate,
        caches=aggregate,
        notifier=notifier,
        map_names={"100": "Asterleeds"},
        clock=clock,
        id_factory=lambda: f"session-{next(counter)}",
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(data_dir=tmp_path / "data", environment="test")
