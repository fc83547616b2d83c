"""Dependency container wiring for the application."""

from dataclasses import dataclass

from instance_meter.adapters.event_broadcaster import EventBroadcaster
from instance_meter.adapters.json_session_repository import JsonFileSessionRepository
from instance_meter.adapters.map_names_file import load_map_names
from instance_meter.config import Settings, resolve_sessions_path
from instance_meter.services.aggregate import InMemoryUserAggregate
from instance_meter.services.sessions import SessionLifecycleManager, SessionRepository
from instance_meter.services.transitions import TransitionDetector


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_repository: SessionRepository
    aggregate: InMemoryUserAggregate
    broadcaster: EventBroadcaster
    session_manager: SessionLifecycleManager
    detector: TransitionDetector

    def shutdown(self, reason: str = "shutdown") -> None:
        """Finalize the open session; safe to call more than once."""
        self.session_manager.finalize_current_session(reason)


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    map_names = load_map_names(resolved_settings.map_names_path)
    session_repository = JsonFileSessionRepository(
        resolve_sessions_path(resolved_settings)
    )
    aggregate = InMemoryUserAggregate(live_log_limit=resolved_settings.live_log_limit)
    broadcaster = EventBroadcaster()
    session_manager = SessionLifecycleManager(
        repository=session_repository,
        aggregate=aggregate,
        caches=aggregate,
        notifier=broadcaster,
        map_names=map_names,
    )
    detector = TransitionDetector(
        debounce_ms=resolved_settings.debounce_ms,
        identity_debounce_ms=resolved_settings.identity_debounce_ms,
        sub_instance_window_ms=resolved_settings.sub_instance_window_ms,
        map_names=map_names,
        verbose_identity_logging=resolved_settings.verbose_identity_logging,
    )
    detector.subscribe(session_manager.on_instance_changed)
    detector.subscribe_diagnostics(aggregate.add_log)

    return AppContainer(
        settings=resolved_settings,
        session_repository=session_repository,
        aggregate=aggregate,
        broadcaster=broadcaster,
        session_manager=session_manager,
        detector=detector,
    )
