"""
Scrobble engine: ties the BluOS player, the playback tracker and Last.fm together.

Two timers drive it:
- refresh (REFRESH_INTERVAL) pulls a fresh status from the player and detects track changes
- tick (TICK_INTERVAL, only while playing) counts listened seconds

All tracker/current-track reads and writes happen under one lock. Player events are posted to a
queue and applied under that same lock. Submissions run on a detached thread, guarded by a busy
flag, so a slow Last.fm never holds up polling.
"""

from __future__ import annotations
import logging
import queue
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from bluos import PlaybackSnapshot, PlayerStatusSource
from config import EngineConfig
from scheduler import PeriodicTimer
from state import PlaybackTracker
from submitter import OutcomeKind, ScrobbleRecord, ScrobbleSubmitter, SubmissionOutcome

log = logging.getLogger("engine")

_ANY = object()


@dataclass(frozen=True)
class StatusUpdate:
    level: str      # 'INFO', 'WARNING', 'ERROR'
    message: str


StatusListener = Callable[[StatusUpdate], None]
TimerFactory = Callable[[float, Callable[[], None], str], PeriodicTimer]


class ScrobbleEngine:
    """Disconnected -> Connecting -> Connected -> Disconnected."""

    def __init__(self, player: PlayerStatusSource, submitter: ScrobbleSubmitter,
                 config: EngineConfig | None = None,
                 timer_factory: TimerFactory = PeriodicTimer,
                 clock: Callable[[], float] = time.time):
        self.player = player
        self.submitter = submitter
        self.config = config or EngineConfig()
        self.tracker = PlaybackTracker(self.config.percentage_to_scrobble,
                                       self.config.max_scrobble_seconds)
        self._clock = clock

        self._lock = threading.RLock()
        self._busy = threading.Lock()
        self._pending_lock = threading.Lock()
        self._pending: list[ScrobbleRecord] = []
        self._play_events: queue.SimpleQueue[bool] = queue.SimpleQueue()
        self._status_listeners: list[StatusListener] = []

        self._refresh_timer = timer_factory(self.config.refresh_interval, self.refresh, "refresh")
        self._tick_timer = timer_factory(self.config.tick_interval, self.tick, "tick")

        self._current: PlaybackSnapshot | None = None
        self._connected = False
        self._submission: threading.Thread | None = None
        self.engine_state = "disconnected"
        self.controls_enabled = True

    # -------- observable surface --------
    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def percentage_to_scrobble(self) -> float:
        return self.tracker.percentage_to_scrobble

    @property
    def current_track_name(self) -> str | None:
        return self._current.title if self._current else None

    @property
    def current_artist_name(self) -> str | None:
        return self._current.artist if self._current else None

    @property
    def current_album_name(self) -> str | None:
        return self._current.album if self._current else None

    @property
    def current_track_length(self) -> int:
        return self._current.duration_seconds if self._current else 0

    @property
    def counted_seconds(self) -> int:
        return self.tracker.counted_seconds

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        if listener in self._status_listeners:
            self._status_listeners.remove(listener)

    # -------- lifecycle --------
    def start(self) -> bool:
        """Connect right away when auto_connect is configured."""
        if self.config.auto_connect:
            return self.connect()
        return False

    def connect(self) -> bool:
        self.controls_enabled = False
        try:
            if self._connected:
                self.disconnect()
            self.engine_state = "connecting"

            if not self.player.is_process_running():
                self._report("ERROR", "Error connecting to BluOS: Player not reachable")
                return False
            if not self.player.is_control_helper_running():
                self._report("ERROR", "Error connecting to BluOS: Status API not responding")
                return False
            if not self.player.connect():
                self._report("ERROR", "Error connecting to BluOS: Unknown error")
                return False

            snapshot = self.player.get_status()
            if snapshot is None:
                self.player.disconnect()
                self._report("ERROR", "Error connecting to BluOS: No status received")
                return False

            with self._lock:
                self._discard_play_events()
                self.player.add_play_state_listener(self._on_play_state_changed)
                self._current = snapshot
                self.tracker.on_connect(snapshot)
                self._connected = True
                self.engine_state = "connected"
                self._refresh_timer.start()
                self._sync_tick_timer()

            self._report("INFO", "Successfully connected to BluOS")
            self._now_playing(snapshot)
            return True
        except Exception as e:
            log.exception("Connect failed")
            self._teardown(release_player=True)
            self._report("ERROR", f"Fatal error connecting to BluOS: {e}")
            return False
        finally:
            if self.engine_state == "connecting":
                self.engine_state = "disconnected"
            self.controls_enabled = True

    def disconnect(self) -> None:
        was_connected = self._connected
        self._teardown(release_player=was_connected)
        if was_connected:
            log.info("Disconnected from BluOS")

    def shutdown(self, timeout: float | None = 10) -> None:
        self.disconnect()
        self.wait_for_submission(timeout)

    def _teardown(self, release_player: bool) -> None:
        with self._lock:
            self._connected = False
            self.engine_state = "disconnected"
        # outside the lock: stop() waits for a callback in flight, which takes the lock
        self._refresh_timer.stop()
        self._tick_timer.stop()
        self.player.remove_play_state_listener(self._on_play_state_changed)
        if release_player:
            self.player.disconnect()
        with self._lock:
            self._current = None
            self.tracker.on_disconnect()
            self._discard_play_events()

    # -------- timer callbacks --------
    def refresh(self) -> None:
        if not self._connected:
            return
        snapshot = self.player.get_status()
        if snapshot is None:
            # missed poll; keep counting against the last known track
            return

        with self._lock:
            if not self._connected:
                return
            self._apply_play_events()
            changed = self.tracker.on_refresh(snapshot)
            self._current = snapshot
            self._sync_tick_timer()
            threshold = self.tracker.threshold

        if changed:
            log.info("Track changed: %s - %s (scrobble after %ss)",
                     snapshot.artist, snapshot.title, threshold)
            self._now_playing(snapshot)

    def tick(self) -> None:
        with self._lock:
            if not self._connected:
                return
            self._apply_play_events()
            crossed = self.tracker.on_tick()
            identity = self.tracker.state.last_identity
            if crossed:
                self._sync_tick_timer()
        if crossed:
            self._scrobble(expected_identity=identity)

    def _on_play_state_changed(self, playing: bool) -> None:
        self._play_events.put(playing)
        with self._lock:
            if self._connected:
                self._apply_play_events()

    def _apply_play_events(self) -> None:
        latest = None
        while True:
            try:
                latest = self._play_events.get_nowait()
            except queue.Empty:
                break
        if latest is not None:
            self.tracker.set_playing(latest)
            self._sync_tick_timer()

    def _discard_play_events(self) -> None:
        while True:
            try:
                self._play_events.get_nowait()
            except queue.Empty:
                return

    def _sync_tick_timer(self) -> None:
        if self._connected and self.tracker.phase == "playing" and not self.tracker.fired:
            self._tick_timer.start()
        else:
            # called under the lock: don't wait for a tick in flight
            self._tick_timer.stop(timeout=0)

    # -------- scrobbling --------
    def scrobble_now(self) -> bool:
        """Scrobble the current track now. Returns True when a submission was started."""
        return self._scrobble()

    def _scrobble(self, expected_identity=_ANY) -> bool:
        record = self._build_record(expected_identity)
        if record is None:
            return False

        with self._pending_lock:
            if not self._busy.acquire(blocking=False):
                if expected_identity is _ANY:
                    log.debug("Scrobble already in progress; ignoring")
                    return False
                # threshold crossings are never dropped: submitted after the one in flight
                self._pending.append(record)
                queued = True
            else:
                queued = False
        if queued:
            self._report("WARNING", f"Scrobble of '{record.track}' waits for the previous submission")
            return True

        started = False
        try:
            self.controls_enabled = False
            self._report("INFO", f"Trying to scrobble '{record.track}'...")
            thread = threading.Thread(target=self._submit, args=(record,), daemon=True, name="scrobble")
            self._submission = thread
            thread.start()
            started = True
            return True
        finally:
            if not started:
                self.controls_enabled = True
                self._busy.release()

    def _build_record(self, expected_identity) -> ScrobbleRecord | None:
        with self._lock:
            current = self._current
            if not self._connected or current is None or current.identity is None:
                return None
            if expected_identity is not _ANY and current.identity != expected_identity:
                return None
            if current.is_advertisement:
                log.info("Not scrobbling advertisement '%s'", current.title)
                return None
            if not current.artist or not current.title:
                log.info("Not scrobbling track without artist/title")
                return None
            started_at = self._clock() - self.tracker.counted_seconds
            return ScrobbleRecord(
                artist=current.artist,
                album=current.album,
                track=current.title,
                album_artist=current.album_artist,
                played_at=datetime.fromtimestamp(started_at, tz=timezone.utc),
                duration_seconds=current.duration_seconds,
            )

    def _submit(self, record: ScrobbleRecord) -> None:
        while record is not None:
            try:
                outcome = self.submitter.submit(record)
                self._report_outcome(record, outcome)
            except Exception as e:
                log.exception("Scrobble submission raised")
                self._report("ERROR", f"Fatal error while trying to scrobble '{record.track}': {e}")
            finally:
                with self._pending_lock:
                    record = self._pending.pop(0) if self._pending else None
                    if record is None:
                        self.controls_enabled = True
                        self._busy.release()
            if record is not None:
                self._report("INFO", f"Trying to scrobble '{record.track}'...")

    def _report_outcome(self, record: ScrobbleRecord, outcome: SubmissionOutcome) -> None:
        if outcome.kind is OutcomeKind.SUCCESS:
            self._report("INFO", f"Successfully scrobbled '{record.track}'")
        elif outcome.kind is OutcomeKind.CACHED:
            self._report("WARNING", f"Scrobbling '{record.track}' failed. Scrobble has been cached")
        elif outcome.kind is OutcomeKind.REJECTED:
            self._report("ERROR", f"Error while scrobbling '{record.track}': {outcome.reason}")
        else:
            self._report("ERROR", f"Fatal error while trying to scrobble '{record.track}': {outcome.reason}")

    def wait_for_submission(self, timeout: float | None = None) -> None:
        thread = self._submission
        if thread is not None:
            thread.join(timeout)

    # -------- misc --------
    def _now_playing(self, snapshot: PlaybackSnapshot) -> None:
        if not self.config.update_now_playing:
            return
        if snapshot.is_advertisement or not snapshot.artist or not snapshot.title:
            return
        threading.Thread(
            target=self._push_now_playing, args=(snapshot,), daemon=True, name="now-playing"
        ).start()

    def _push_now_playing(self, snapshot: PlaybackSnapshot) -> None:
        try:
            self.submitter.update_now_playing(
                artist=snapshot.artist, title=snapshot.title, album=snapshot.album,
                duration=snapshot.duration_seconds or None,
            )
        except Exception as e:
            # update_now_playing is best-effort
            log.debug("Now playing update failed: %s", e)

    def _report(self, level: str, message: str) -> None:
        log.log(getattr(logging, level, logging.INFO), message)
        update = StatusUpdate(level, message)
        for listener in list(self._status_listeners):
            try:
                listener(update)
            except Exception:
                log.exception("Status listener failed")
