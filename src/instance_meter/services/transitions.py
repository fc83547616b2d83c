"""Instance transition detection driven by scene and AOI telemetry."""

import logging
import threading
import time
from collections.abc import Callable, Mapping

from instance_meter.domain.scenes import (
    TRIGGER_TABLE,
    InstanceChange,
    InstanceState,
    PendingTransition,
    Reason,
    SceneDescriptor,
)
from instance_meter.services.telemetry import (
    derive_line_id,
    derive_scene_id,
    is_instanced,
    normalize_scene,
    resolve_display_name,
    scene_key,
    scene_record_of,
    short_uid,
    to_unsigned_u64,
)

_logger = logging.getLogger(__name__)

InstanceListener = Callable[[InstanceChange], None]
DiagnosticSink = Callable[[str], None]


def _now_ms() -> float:
    return time.time() * 1000


class TransitionDetector:
    """Decide when the player has entered a new instance.

    Declared scene changes are staged and only committed once a confirming
    signal arrives: an AOI wipe, the player re-appearing in the AOI, or an
    independent scene id derivation from an identity snapshot. Every raised
    reason advances the sequence (subject to debounce); only reasons listed in
    ``TRIGGER_TABLE`` for the current phase are delivered to listeners.

    Callers may invoke the detector from several threads. Mutation happens
    under one lock and listeners run after it is released. Delivery is
    serialized by a second lock, so listeners see changes in raise order.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        debounce_ms: float = 0,
        identity_debounce_ms: float = 0,
        sub_instance_window_ms: float = 3000,
        map_names: Mapping[str, str] | None = None,
        verbose_identity_logging: bool = False,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self.debounce_ms = max(0.0, float(debounce_ms))
        self.identity_debounce_ms = max(0.0, float(identity_debounce_ms))
        self.sub_instance_window_ms = float(sub_instance_window_ms)
        self.map_names: Mapping[str, str] = map_names or {}
        self.verbose_identity_logging = verbose_identity_logging
        self.state = InstanceState()
        self._clock = clock
        self._scene = SceneDescriptor()
        self._pending: PendingTransition | None = None
        self._lock = threading.RLock()
        self._dispatch_lock = threading.RLock()
        self._listeners: list[InstanceListener] = []
        self._diagnostic_sinks: list[DiagnosticSink] = []
        self._outbox: list[tuple[str, InstanceChange | None]] = []

    # -------- observers --------

    def subscribe(self, listener: InstanceListener) -> None:
        """Register a listener for trigger-worthy instance changes."""
        self._listeners.append(listener)

    def subscribe_diagnostics(self, sink: DiagnosticSink) -> None:
        """Register a sink for one-line diagnostic messages."""
        self._diagnostic_sinks.append(sink)

    # -------- read access --------

    @property
    def pending(self) -> PendingTransition | None:
        """Return the staged, uncommitted transition, if any."""
        return self._pending

    @property
    def scene(self) -> SceneDescriptor:
        """Return the last seen scene descriptor."""
        return self._scene

    def scene_key(self) -> str:
        """Return the global key of the current instance."""
        return scene_key(
            self._scene, self.state.current_scene_id, self.state.current_map_id
        )

    def resolve_map_name(self, record: object, map_id: int | None) -> str:
        """Return a display name from the record, the map table, or the id."""
        name = resolve_display_name(record)
        if name is not None:
            return name
        if map_id is None:
            return "Unknown Map"
        return self.map_names.get(str(map_id), f"Map {map_id}")

    # -------- identity --------

    def set_player_identity(
        self, raw_identity: object, debounce_ms: float | None = None
    ) -> bool:
        """Record a new player identity; return whether it was accepted."""
        window = self.identity_debounce_ms if debounce_ms is None else debounce_ms
        with self._lock:
            accepted = self._set_player_identity(raw_identity, window)
        self._flush()
        return accepted

    def _set_player_identity(self, raw_identity: object, window: float) -> bool:
        unsigned = to_unsigned_u64(raw_identity)
        new_uid = short_uid(raw_identity)
        if not unsigned or new_uid is None:
            return False
        state = self.state
        if state.current_player_uid is not None and state.current_player_uid == new_uid:
            return False

        now = self._clock()
        last = state.last_uid_change_ms
        if window > 0 and last is not None and now - last < window:
            return False

        previous = state.current_player_uuid
        state.current_player_uuid = unsigned
        state.current_player_uid = new_uid
        state.last_uid_change_ms = now

        if self.verbose_identity_logging:
            _logger.info(
                "Player identity changed: seq=%s prev=%s new=%s uid=%s "
                "debounce_ms=%s map_id=%s scene_id=%s scene_key=%s",
                state.instance_sequence + 1,
                previous,
                unsigned,
                new_uid,
                window,
                state.current_map_id,
                state.current_scene_id,
                self.scene_key(),
            )

        self._raise(
            Reason.IDENTITY_CHANGED,
            {
                "prev_uuid": str(previous) if previous is not None else None,
                "new_uuid": str(unsigned),
                "uid": str(new_uid),
                "map_name": state.current_map_name,
                "to": state.current_map_id,
            },
        )
        return True

    # -------- scene staging / commit --------

    def ingest_scene_descriptor(
        self, descriptor: SceneDescriptor | None
    ) -> PendingTransition | None:
        """Stage a declared scene change without committing it."""
        with self._lock:
            pending = self._stage(descriptor)
        self._flush()
        return pending

    def _stage(self, descriptor: SceneDescriptor | None) -> PendingTransition | None:
        if descriptor is None:
            return None
        changed = descriptor.changed_fields(self._scene)
        if not changed:
            return None

        self._scene = descriptor
        target = descriptor.level_map_id
        if target is None or target == self.state.current_scene_id:
            self._pending = None
            return None

        self._pending = PendingTransition(
            source_scene_id=descriptor.last_scene_id,
            target_scene_id=target,
            source_line_id=descriptor.line_id,
        )
        kind = "dungeonOrRaid" if is_instanced(descriptor) else "openWorld"
        message = f"[INSTANCE] staged scene ({kind})"
        _logger.info(
            "%s changed=%s key=%s src_scene_id=%s staged_scene_id=%s "
            "staged_line_id=%s",
            message,
            changed,
            scene_key(descriptor, target),
            descriptor.last_scene_id,
            target,
            descriptor.line_id,
        )
        self._outbox.append((message, None))
        return self._pending

    def commit_pending(self, via: str = "commit") -> bool:
        """Apply the staged transition; return whether the scene changed."""
        with self._lock:
            committed = self._commit(via)
        self._flush()
        return committed

    def _commit(self, via: str, record: object = None) -> bool:
        staged = self._pending
        if staged is None:
            return False
        self._pending = None
        target = staged.target_scene_id
        if target is None or target == self.state.current_scene_id:
            return False

        previous = self.state.current_scene_id
        self._apply_scene(target, staged.source_line_id, record)
        self._raise(
            Reason.SCENE_ID_CHANGED,
            {
                "from": previous if previous is not None else staged.source_scene_id,
                "to": target,
                "via": via,
            },
        )
        return True

    def _apply_scene(
        self, scene_id: int, line_id: int | None, record: object = None
    ) -> None:
        state = self.state
        state.current_scene_id = scene_id
        state.current_map_id = scene_id
        state.current_map_name = self.resolve_map_name(record, scene_id)
        state.current_line_id = line_id

    def ingest_identity_snapshot(self, record: object) -> None:
        """Reconcile an identity snapshot that may carry scene data."""
        if record is None:
            return
        with self._lock:
            self._ingest_identity_snapshot(record)
        self._flush()

    def _ingest_identity_snapshot(self, record: object) -> None:
        self._stage(normalize_scene(scene_record_of(record)))

        state = self.state
        derived_scene_id = derive_scene_id(record)
        derived_line_id = derive_line_id(record)

        if derived_scene_id is not None and derived_scene_id != state.current_scene_id:
            if self._pending is not None:
                self._commit("map-or-dungeon-changed", record)
                return
            # Unreached while staging reads the same scene block: a differing
            # derived id always leaves a pending transition. Kept so a record
            # that fails to stage still moves the scene.
            previous = state.current_scene_id
            line_id = self._scene.line_id
            self._apply_scene(
                derived_scene_id,
                line_id if line_id is not None else derived_line_id,
                record,
            )
            self._raise(
                Reason.SCENE_ID_CHANGED,
                {"from": previous, "to": derived_scene_id, "via": "derived"},
            )
            return

        next_line = self._scene.line_id
        if next_line is None:
            next_line = derived_line_id
        if next_line is None:
            return
        previous_line = state.current_line_id
        if previous_line is None:
            state.current_line_id = next_line
            return
        if previous_line != next_line:
            state.current_line_id = next_line
            self._raise(
                Reason.LINE_ID_CHANGED,
                {
                    "scene_id": state.current_scene_id,
                    "from_line": previous_line,
                    "to_line": next_line,
                    "to": state.current_map_id,
                    "map_name": state.current_map_name,
                },
            )

    # -------- AOI hooks --------

    def on_area_population_wipe(self, disappear_count: int) -> None:
        """Handle a mass AOI removal, the strongest "landed" signal."""
        with self._lock:
            state = self.state
            state.last_aoi_wipe_ms = self._clock()
            self._raise(
                Reason.AOI_WIPE,
                {
                    "disappear_count": disappear_count,
                    "last_aoi_population": state.aoi_population,
                    "map_name": state.current_map_name,
                    "to": state.current_map_id,
                },
            )
            self._commit("aoi-wipe")
        self._flush()

    def on_self_appeared(self, identity: object) -> None:
        """Handle the player appearing in their own AOI."""
        with self._lock:
            state = self.state
            now = self._clock()
            state.last_self_appeared_ms = now
            self._raise(Reason.SELF_APPEARED_IN_AOI, {"uuid": _render(identity)})
            self._commit("self-appeared-in-aoi")
            last_wipe = state.last_aoi_wipe_ms
            if last_wipe is not None and now - last_wipe < self.sub_instance_window_ms:
                self._raise(
                    Reason.ENTERED_SUB_INSTANCE,
                    {
                        "map_id": state.current_map_id,
                        "map_name": state.current_map_name,
                        "to": state.current_map_id,
                    },
                )
        self._flush()

    def on_self_disappeared(self, identity: object) -> None:
        """Handle the player leaving their own AOI."""
        with self._lock:
            self._raise(Reason.SELF_DISAPPEARED_FROM_AOI, {"uuid": _render(identity)})
        self._flush()

    def on_population_delta(self, delta: int) -> None:
        """Adjust the AOI population estimate."""
        if not delta:
            return
        with self._lock:
            self.state.aoi_population = max(0, self.state.aoi_population + delta)

    # -------- sequencing --------

    def _raise(self, reason: Reason, extra: dict[str, object]) -> InstanceChange | None:
        state = self.state
        now = self._clock()
        last = state.last_change_ms
        if self.debounce_ms > 0 and last is not None and now - last < self.debounce_ms:
            _logger.debug("Debounced %s (%.0f ms since last)", reason, now - last)
            return None

        state.instance_sequence += 1
        state.last_change_ms = now

        to_id = extra.get("to")
        if to_id is None:
            to_id = state.current_map_id if state.current_map_id is not None else "??"
        message = f"[INSTANCE] #{state.instance_sequence} - (id={to_id}) - {reason}"
        _logger.info("%s %s", message, extra)

        next_phase = TRIGGER_TABLE.get((state.phase, reason))
        triggered = next_phase is not None
        if next_phase is not None:
            state.phase = next_phase
        change = InstanceChange(
            sequence=state.instance_sequence,
            reason=reason,
            extra=dict(extra),
            triggered=triggered,
        )
        self._outbox.append((message, change if triggered else None))
        return change

    def _flush(self) -> None:
        # Dispatch lock is taken before the outbox swap and never while
        # holding the state lock.
        with self._dispatch_lock:
            with self._lock:
                outbox = self._outbox
                self._outbox = []
            for message, change in outbox:
                for sink in self._diagnostic_sinks:
                    sink(message)
                if change is not None:
                    for listener in self._listeners:
                        listener(change)


def _render(identity: object) -> str | None:
    return None if identity is None else str(identity)
