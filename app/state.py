"""
Playback tracking state machine.

Owns the "counted seconds" for the track the player currently reports and
decides when that track has been listened to long enough to scrobble.

Not thread-safe on its own: the engine serializes every call through its
state lock.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Hashable

# Last.fm will not accept a scrobble threshold above 4 minutes
DEFAULT_MAX_SCROBBLE_SECONDS = 240
DEFAULT_PERCENTAGE_TO_SCROBBLE = 0.5


def scrobble_threshold(duration: int, percentage: float,
                       max_seconds: int = DEFAULT_MAX_SCROBBLE_SECONDS) -> int:
    """Seconds a track must be played before it may be scrobbled.

    Half-up rounding of ``duration * percentage``, never more than the track
    itself or ``max_seconds``, never less than one second.
    """
    duration = max(0, int(duration or 0))
    wanted = int(math.floor(duration * percentage + 0.5))
    return max(1, min(duration, wanted, max_seconds))


@dataclass
class TrackingState:
    last_identity: Hashable | None = None
    counted_seconds: int = 0
    scrobble_threshold_seconds: int = 1
    connected: bool = False


class PlaybackTracker:
    """Disconnected -> Connected{Idle, Playing, Paused} state machine.

    Idle means connected without a track; Playing/Paused follow the last
    snapshot's (or play-state event's) playing flag.
    """

    def __init__(self, percentage_to_scrobble: float = DEFAULT_PERCENTAGE_TO_SCROBBLE,
                 max_scrobble_seconds: int = DEFAULT_MAX_SCROBBLE_SECONDS):
        self.percentage_to_scrobble = percentage_to_scrobble
        self.max_scrobble_seconds = max_scrobble_seconds
        self.state = TrackingState()
        self.playing: bool = False
        self.fired: bool = False

    # -------- queries --------
    @property
    def connected(self) -> bool:
        return self.state.connected

    @property
    def counted_seconds(self) -> int:
        return self.state.counted_seconds

    @property
    def threshold(self) -> int:
        return self.state.scrobble_threshold_seconds

    @property
    def phase(self) -> str:
        if not self.state.connected:
            return "disconnected"
        if self.state.last_identity is None:
            return "idle"
        return "playing" if self.playing else "paused"

    # -------- transitions --------
    def on_connect(self, snapshot) -> None:
        self.state = TrackingState(connected=True)
        self._start_track(snapshot)

    def on_refresh(self, snapshot) -> bool:
        """Apply a fresh poll. Returns True when the track identity changed."""
        if not self.state.connected:
            return False

        if snapshot.identity != self.state.last_identity:
            self._start_track(snapshot)
            return True

        # same occurrence: pause freezes, resume continues from the frozen value
        self.playing = bool(snapshot.is_playing)
        return False

    def set_playing(self, playing: bool) -> None:
        if self.state.connected:
            self.playing = bool(playing)

    def on_tick(self) -> bool:
        """Count one played second. Returns True exactly once per occurrence,
        on the tick that reaches the threshold."""
        if not self.state.connected or not self.playing or self.fired:
            return False
        if self.state.last_identity is None:
            return False

        self.state.counted_seconds += 1
        if self.state.counted_seconds >= self.state.scrobble_threshold_seconds:
            self.fired = True
            return True
        return False

    def on_disconnect(self) -> None:
        self.state = TrackingState()
        self.playing = False
        self.fired = False

    def _start_track(self, snapshot) -> None:
        identity = snapshot.identity if snapshot is not None else None
        duration = snapshot.duration_seconds if identity is not None else 0
        self.state.last_identity = identity
        self.state.counted_seconds = 0
        self.state.scrobble_threshold_seconds = scrobble_threshold(
            duration, self.percentage_to_scrobble, self.max_scrobble_seconds)
        self.playing = bool(snapshot.is_playing) if snapshot is not None else False
        self.fired = False
