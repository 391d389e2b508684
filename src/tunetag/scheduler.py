from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from tunetag import config
from tunetag import logger as logger_mod

from .errors import SaveFailed
from .models import TagFields, TrackHandle

log = logger_mod.get_logger()

WriteFn = Callable[[str, TagFields], None]
TimerFactory = Callable[..., Any]


class SaveState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    SCHEDULED = "scheduled"
    SAVING = "saving"


@dataclass(frozen=True)
class SaveTask:
    track: TrackHandle
    scheduled_at: float
    generation: int


@dataclass(frozen=True)
class SaveOutcome:
    path: str
    saved: bool
    error: Optional[SaveFailed] = None

    @property
    def ok(self) -> bool:
        return self.error is None


StateListener = Callable[[TrackHandle, SaveState], None]
FailureListener = Callable[[SaveOutcome], None]


class _Slot:
    def __init__(self, track: TrackHandle):
        self.track = track
        self.state = SaveState.CLEAN
        self.generation = 0
        self.timer: Any = None
        self.task: Optional[SaveTask] = None
        self.released = False
        # Held for the whole duration of a write.
        self.write_lock = threading.Lock()


class SaveScheduler:
    """Debounced, per-track serialized persistence of edited tags.

    Each edit re-arms a short timer for its track; only the newest timer
    writes. Writes of the same track never overlap, different tracks save
    independently. A failed write leaves the track dirty and is not retried
    until the next edit or an explicit `save_all_now`.
    """

    def __init__(
        self,
        write_fn: WriteFn,
        *,
        debounce_s: float = config.DEBOUNCE_S,
        timer_factory: TimerFactory = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._write = write_fn
        self.debounce_s = float(debounce_s)
        self._timer_factory = timer_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._slots: Dict[str, _Slot] = {}
        self._state_listeners: List[StateListener] = []
        self._failure_listeners: List[FailureListener] = []

    # ------------------------------------------------------------------
    # listeners
    # ------------------------------------------------------------------

    def on_state_change(self, listener: StateListener) -> None:
        with self._lock:
            self._state_listeners.append(listener)

    def on_failure(self, listener: FailureListener) -> None:
        with self._lock:
            self._failure_listeners.append(listener)

    def _emit(self, transitions: Iterable[Tuple[TrackHandle, SaveState]]) -> None:
        with self._lock:
            listeners = list(self._state_listeners)
        for track, state in transitions:
            for listener in listeners:
                listener(track, state)

    def _emit_failure(self, outcome: SaveOutcome) -> None:
        with self._lock:
            listeners = list(self._failure_listeners)
        for listener in listeners:
            listener(outcome)

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    def _slot_for(self, track: TrackHandle) -> _Slot:
        # caller holds self._lock
        slot = self._slots.get(track.path)
        if slot is None or slot.track is not track:
            slot = _Slot(track)
            self._slots[track.path] = slot
        return slot

    def state(self, track: TrackHandle) -> SaveState:
        with self._lock:
            slot = self._slots.get(track.path)
            return slot.state if slot is not None else SaveState.CLEAN

    def _arm(self, slot: _Slot) -> None:
        # caller holds self._lock
        if slot.timer is not None:
            slot.timer.cancel()
        task = SaveTask(track=slot.track, scheduled_at=self._clock(), generation=slot.generation)
        timer = self._timer_factory(self.debounce_s, self._fire, args=(task,))
        timer.daemon = True
        slot.timer = timer
        slot.task = task
        slot.state = SaveState.SCHEDULED
        timer.start()

    def _disarm(self, slot: _Slot) -> None:
        # caller holds self._lock
        if slot.timer is not None:
            slot.timer.cancel()
        slot.timer = None
        slot.task = None

    # ------------------------------------------------------------------
    # edits and timers
    # ------------------------------------------------------------------

    def notify_edit(self, track: TrackHandle) -> None:
        """Record an edit of `track` and (re-)start its debounce window."""
        transitions: List[Tuple[TrackHandle, SaveState]] = []
        with self._lock:
            slot = self._slot_for(track)
            slot.released = False
            slot.generation += 1
            if slot.state is SaveState.SAVING:
                # picked up when the running write finishes
                return
            if slot.state is SaveState.CLEAN:
                transitions.append((track, SaveState.DIRTY))
            self._arm(slot)
            transitions.append((track, SaveState.SCHEDULED))
        self._emit(transitions)

    def _fire(self, task: SaveTask) -> None:
        with self._lock:
            slot = self._slots.get(task.track.path)
            if (
                slot is None
                or slot.task is not task
                or slot.generation != task.generation
                or slot.state is not SaveState.SCHEDULED
            ):
                return
            slot.timer = None
            slot.task = None
        self._save(slot)

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def _save(self, slot: _Slot) -> SaveOutcome:
        track = slot.track
        with slot.write_lock:
            with self._lock:
                if slot.released:
                    return SaveOutcome(track.path, saved=False)
                self._disarm(slot)
                with track.lock:
                    dirty = track.dirty
                    fields = track.fields.copy()
                if not dirty:
                    previous, slot.state = slot.state, SaveState.CLEAN
                    transitions = [] if previous is SaveState.CLEAN else [(track, SaveState.CLEAN)]
                    generation = None
                else:
                    generation = slot.generation
                    slot.state = SaveState.SAVING
                    transitions = [(track, SaveState.SAVING)]
            self._emit(transitions)
            if generation is None:
                return SaveOutcome(track.path, saved=False)

            error: Optional[SaveFailed] = None
            try:
                self._write(track.path, fields)
            except SaveFailed as e:
                error = e
            except Exception as e:
                error = SaveFailed(track.path, str(e) or type(e).__name__, cause=e)

            with self._lock:
                with track.lock:
                    # an edit may land before its notify_edit call does
                    changed = track.fields != fields
                    edited = (slot.generation != generation or changed) and not slot.released
                    if error is None:
                        track.snapshot = fields
                        if not edited:
                            track.dirty = False
                if edited:
                    self._arm(slot)
                    transitions = [(track, SaveState.SCHEDULED)]
                elif error is None:
                    slot.state = SaveState.CLEAN
                    transitions = [(track, SaveState.CLEAN)]
                else:
                    slot.state = SaveState.DIRTY
                    transitions = [(track, SaveState.DIRTY)]

        outcome = SaveOutcome(track.path, saved=error is None, error=error)
        if error is None:
            log.info(f"[SAVE] {track.name} saved")
        else:
            log.error(f"❌ [SAVE] {track.name}: {error.reason}")
        self._emit(transitions)
        if error is not None:
            self._emit_failure(outcome)
        return outcome

    def save_all_now(self, tracks: Optional[Iterable[TrackHandle]] = None) -> List[SaveOutcome]:
        """Write every pending track immediately (manual "save all", folder close)."""
        with self._lock:
            if tracks is None:
                slots = [s for s in self._slots.values() if s.state is not SaveState.CLEAN]
            else:
                slots = [self._slot_for(t) for t in tracks]
        outcomes = []
        for slot in slots:
            if slot.state is SaveState.CLEAN and not slot.track.dirty:
                continue
            outcomes.append(self._save(slot))
        failed = sum(1 for o in outcomes if not o.ok)
        if outcomes:
            log.info(f"[SAVE] save all: {len(outcomes) - failed} saved, {failed} failed")
        return outcomes

    def release(self, tracks: Iterable[TrackHandle]) -> None:
        """Cancel pending timers, wait for running writes, then forget the tracks."""
        slots = []
        with self._lock:
            for track in tracks:
                slot = self._slots.get(track.path)
                if slot is None or slot.track is not track:
                    continue
                slot.released = True
                self._disarm(slot)
                slots.append(slot)
        for slot in slots:
            with slot.write_lock:
                pass
            with self._lock:
                if self._slots.get(slot.track.path) is slot and slot.released:
                    del self._slots[slot.track.path]

    def pending(self) -> List[TrackHandle]:
        with self._lock:
            return [s.track for s in self._slots.values() if s.state is not SaveState.CLEAN]
