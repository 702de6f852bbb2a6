"""Configuration via environment variables."""

from __future__ import annotations
import os
from dataclasses import dataclass, field

from state import DEFAULT_MAX_SCROBBLE_SECONDS, DEFAULT_PERCENTAGE_TO_SCROBBLE

_TRUE = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE


@dataclass
class EngineConfig:
    """Values the ScrobbleEngine is constructed with."""

    percentage_to_scrobble: float = DEFAULT_PERCENTAGE_TO_SCROBBLE
    max_scrobble_seconds: int = DEFAULT_MAX_SCROBBLE_SECONDS
    refresh_interval: float = 1.0
    tick_interval: float = 1.0
    auto_connect: bool = True
    update_now_playing: bool = True

    def __post_init__(self):
        if not 0 < self.percentage_to_scrobble <= 1:
            raise ValueError("percentage_to_scrobble must be in (0, 1]")
        if self.max_scrobble_seconds < 1:
            raise ValueError("max_scrobble_seconds must be >= 1")
        if self.refresh_interval <= 0 or self.tick_interval <= 0:
            raise ValueError("refresh_interval and tick_interval must be > 0")


@dataclass
class Settings:
    bluos_host: str = "127.0.0.1"
    bluos_port: int = 11000
    bluos_timeout: int = 5
    bluos_listen_for_events: bool = True
    bluos_long_poll_timeout: int = 30

    lastfm_api_key: str | None = None
    lastfm_api_secret: str | None = None
    lastfm_session_key: str | None = None
    lastfm_username: str | None = None
    lastfm_password_md5: str | None = None

    scrobble_cache_path: str = "/data/scrobble_queue.json"
    scrobble_cache_limit: int = 500
    reconnect_interval: float = 30.0
    log_level: str = "INFO"

    engine: EngineConfig = field(default_factory=EngineConfig)

    def __post_init__(self):
        if self.scrobble_cache_limit < 1:
            raise ValueError("SCROBBLE_CACHE_LIMIT must be >= 1")
        if self.reconnect_interval < 0:
            raise ValueError("RECONNECT_INTERVAL must be >= 0")
        self.log_level = self.log_level.upper()

    @classmethod
    def from_env(cls) -> "Settings":
        engine = EngineConfig(
            percentage_to_scrobble=float(os.getenv("PERCENTAGE_TO_SCROBBLE", str(DEFAULT_PERCENTAGE_TO_SCROBBLE))),
            max_scrobble_seconds=int(os.getenv("MAX_SCROBBLE_SECONDS", str(DEFAULT_MAX_SCROBBLE_SECONDS))),
            refresh_interval=float(os.getenv("REFRESH_INTERVAL", "1")),
            tick_interval=float(os.getenv("TICK_INTERVAL", "1")),
            auto_connect=_env_bool("AUTO_CONNECT", True),
            update_now_playing=_env_bool("UPDATE_NOW_PLAYING", True),
        )
        return cls(
            bluos_host=os.getenv("BLUOS_HOST", "127.0.0.1"),
            bluos_port=int(os.getenv("BLUOS_PORT", "11000")),
            bluos_timeout=int(os.getenv("BLUOS_TIMEOUT", "5")),
            bluos_listen_for_events=_env_bool("BLUOS_LISTEN_FOR_EVENTS", True),
            bluos_long_poll_timeout=int(os.getenv("BLUOS_LONG_POLL_TIMEOUT", "30")),
            lastfm_api_key=os.getenv("LASTFM_API_KEY"),
            lastfm_api_secret=os.getenv("LASTFM_API_SECRET"),
            lastfm_session_key=os.getenv("LASTFM_SESSION_KEY"),
            lastfm_username=os.getenv("LASTFM_USERNAME"),
            lastfm_password_md5=os.getenv("LASTFM_PASSWORD_MD5"),
            scrobble_cache_path=os.getenv("SCROBBLE_CACHE_PATH", "/data/scrobble_queue.json"),
            scrobble_cache_limit=int(os.getenv("SCROBBLE_CACHE_LIMIT", "500")),
            reconnect_interval=float(os.getenv("RECONNECT_INTERVAL", "30")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            engine=engine,
        )

    def check_lastfm(self) -> None:
        """Raise SystemExit with a clear message when Last.fm credentials are incomplete."""
        if not self.lastfm_api_key or not self.lastfm_api_secret:
            raise SystemExit("LASTFM_API_KEY and LASTFM_API_SECRET are required")
        if not (self.lastfm_session_key or (self.lastfm_username and self.lastfm_password_md5)):
            raise SystemExit("Provide LASTFM_SESSION_KEY or LASTFM_USERNAME + LASTFM_PASSWORD_MD5")
