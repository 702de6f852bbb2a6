import logging
import socket
import threading
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Callable, Hashable, Protocol

import requests

log = logging.getLogger("bluos")

PlayStateListener = Callable[[bool], None]

# BluOS reports 'stream' for live radio, which is still playing
_PLAYING_STATES = ("play", "stream")

# A position at or below this after a longer one means the track restarted
_RESTART_WINDOW = 3


@dataclass(frozen=True)
class PlaybackSnapshot:
    """One poll's worth of player status. ``identity`` is None when no track is loaded."""
    identity: Hashable | None
    title: str | None
    artist: str | None
    album: str | None
    album_artist: str | None
    duration_seconds: int
    is_playing: bool
    is_advertisement: bool = False
    elapsed_seconds: int | None = None


class PlayerStatusSource(Protocol):
    """What the engine needs from a local media player."""

    def is_process_running(self) -> bool: ...

    def is_control_helper_running(self) -> bool: ...

    def connect(self) -> bool: ...

    def get_status(self) -> PlaybackSnapshot | None: ...

    def add_play_state_listener(self, listener: PlayStateListener) -> None: ...

    def remove_play_state_listener(self, listener: PlayStateListener) -> None: ...

    def disconnect(self) -> None: ...


@dataclass
class _RawStatus:
    title: str | None
    artist: str | None
    album: str | None
    album_artist: str | None
    duration: int | None
    secs: int | None
    state: str | None
    song: str | None
    pid: str | None
    ad: bool
    etag: str | None


class BluOSPlayer:
    """
    BluOS player reached over its local HTTP API (port 11000).
    /Status is parsed with recursive lookup + tag fallbacks (name/title1, artist, album, secs, totlen, state).
    Play-state changes are picked up by long-polling /Status with the etag the device hands back.
    """
    def __init__(self, host: str, port: int = 11000, timeout: int = 5,
                 listen_for_events: bool = True, long_poll_timeout: int = 30):
        self.host = host
        self.port = port
        self.base = f"http://{host}:{port}"
        self.timeout = timeout
        self.listen_for_events = listen_for_events
        self.long_poll_timeout = long_poll_timeout

        self._listeners: list[PlayStateListener] = []
        self._listeners_lock = threading.Lock()
        self._listen_thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._connected = False

        # occurrence bookkeeping for identity
        self._last_key: tuple | None = None
        self._last_secs: int | None = None
        self._occurrence = 0

    # -------- parsing --------
    def _findtext_any(self, root: ET.Element, *tags: str):
        for t in tags:
            el = root.find(f".//{t}")
            if el is not None and el.text:
                return el.text.strip()
        return None

    def _to_int(self, s):
        if s is None: return None
        try:
            return int(float(s))
        except ValueError:
            return None

    def _parse(self, text: str) -> _RawStatus:
        root = ET.fromstring(text)
        state = self._findtext_any(root, "state", "status", "mode")
        ad = self._findtext_any(root, "isAd", "ad", "advertisement")
        return _RawStatus(
            title=self._findtext_any(root, "name", "title1", "title", "song_title"),
            artist=self._findtext_any(root, "artist", "title2"),
            album=self._findtext_any(root, "album", "title3"),
            album_artist=self._findtext_any(root, "albumArtist", "albumartist"),
            duration=self._to_int(self._findtext_any(root, "totlen", "duration", "total", "trackLength", "length")),
            secs=self._to_int(self._findtext_any(root, "secs", "elapsed", "position", "time")),
            state=state.lower() if state else None,
            song=self._findtext_any(root, "song"),
            pid=self._findtext_any(root, "pid"),
            ad=(ad or "").lower() in ("1", "true", "yes"),
            etag=root.get("etag"),
        )

    def _identity(self, raw: _RawStatus) -> Hashable | None:
        if not raw.title and not raw.artist:
            self._last_key = None
            self._last_secs = None
            return None

        key = (raw.pid, raw.song, raw.artist, raw.title, raw.album)
        if key != self._last_key:
            self._occurrence = 0
        elif (raw.secs is not None and self._last_secs is not None
              and raw.secs <= _RESTART_WINDOW < self._last_secs):
            # same track started over (repeat-one, replay)
            self._occurrence += 1
        self._last_key = key
        if raw.secs is not None:
            self._last_secs = raw.secs
        return key + (self._occurrence,)

    # -------- PlayerStatusSource --------
    def is_process_running(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError:
            return False

    def is_control_helper_running(self) -> bool:
        try:
            resp = requests.get(f"{self.base}/Status", timeout=self.timeout)
            resp.raise_for_status()
            self._parse(resp.text)
            return True
        except (requests.RequestException, ET.ParseError) as e:
            log.debug("BluOS /Status not answering: %s", e)
            return False

    def connect(self) -> bool:
        self.disconnect()
        self._stop = threading.Event()
        self._last_key = None
        self._last_secs = None
        self._occurrence = 0
        self._connected = True
        if self.get_status() is None:
            self._connected = False
            return False

        if self.listen_for_events:
            self._listen_thread = threading.Thread(
                target=self._listen_loop, args=(self._stop,), daemon=True, name="bluos-events"
            )
            self._listen_thread.start()
        log.info("Connected to BluOS player at %s", self.base)
        return True

    def get_status(self) -> PlaybackSnapshot | None:
        if not self._connected:
            return None
        try:
            resp = requests.get(f"{self.base}/Status", timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            log.warning("BluOS status fetch failed: %s", e)
            return None

        try:
            raw = self._parse(resp.text)
        except ET.ParseError as e:
            log.warning("BluOS status XML unreadable: %s", e)
            return None

        log.debug("Parsed: state=%s artist=%s title=%s album=%s elapsed=%s duration=%s",
                  raw.state, raw.artist, raw.title, raw.album, raw.secs, raw.duration)
        return PlaybackSnapshot(
            identity=self._identity(raw),
            title=raw.title,
            artist=raw.artist,
            album=raw.album,
            album_artist=raw.album_artist,
            duration_seconds=raw.duration or 0,
            is_playing=raw.state in _PLAYING_STATES,
            is_advertisement=raw.ad,
            elapsed_seconds=raw.secs,
        )

    def add_play_state_listener(self, listener: PlayStateListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_play_state_listener(self, listener: PlayStateListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def disconnect(self) -> None:
        self._connected = False
        self._stop.set()
        # a long poll in flight may take up to long_poll_timeout to return;
        # the thread exits on its own once it sees the stop flag
        self._listen_thread = None

    # -------- events --------
    def _listen_loop(self, stop: threading.Event):
        etag = None
        playing = None
        while not stop.is_set():
            params = {"timeout": self.long_poll_timeout}
            if etag:
                params["etag"] = etag
            try:
                resp = requests.get(f"{self.base}/Status", params=params,
                                    timeout=self.long_poll_timeout + self.timeout)
                resp.raise_for_status()
                raw = self._parse(resp.text)
            except (requests.RequestException, ET.ParseError) as e:
                log.debug("BluOS long poll failed: %s", e)
                stop.wait(1)
                continue

            etag = raw.etag
            now_playing = raw.state in _PLAYING_STATES
            if playing is not None and now_playing != playing and not stop.is_set():
                self._fire(now_playing)
            playing = now_playing

    def _fire(self, playing: bool):
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(playing)
            except Exception:
                log.exception("Play-state listener failed")
