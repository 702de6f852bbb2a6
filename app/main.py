import logging
import threading

from bluos import BluOSPlayer
from config import Settings
from engine import ScrobbleEngine
from lastfm_client import LastFMClient
from notifier import from_env as notifiers_from_env
from scrobble_queue import ScrobbleQueue
from submitter import CachingSubmitter

log = logging.getLogger("bluos-lastfm")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,  # ensure our config is used even if libs pre-configure logging
    )


def build_engine(settings: Settings) -> ScrobbleEngine:
    player = BluOSPlayer(
        settings.bluos_host,
        settings.bluos_port,
        timeout=settings.bluos_timeout,
        listen_for_events=settings.bluos_listen_for_events,
        long_poll_timeout=settings.bluos_long_poll_timeout,
    )
    client = LastFMClient(
        api_key=settings.lastfm_api_key,
        api_secret=settings.lastfm_api_secret,
        session_key=settings.lastfm_session_key,
        username=settings.lastfm_username,
        password_md5=settings.lastfm_password_md5,
    )
    queue = ScrobbleQueue(settings.scrobble_cache_path, settings.scrobble_cache_limit)
    engine = ScrobbleEngine(player, CachingSubmitter(client, queue), settings.engine)
    for notifier in notifiers_from_env():
        engine.add_status_listener(notifier)

    log.info("BluOS device: %s:%s | Cache: %s (limit=%s, size=%s)",
             settings.bluos_host, settings.bluos_port, settings.scrobble_cache_path,
             settings.scrobble_cache_limit, queue.size())
    return engine


def run(engine: ScrobbleEngine, reconnect_interval: float, stop: threading.Event) -> None:
    """Keep the engine connected until ``stop`` is set."""
    if not engine.start():
        log.info("Not connected yet; %s", f"retrying every {reconnect_interval:g}s"
                 if reconnect_interval else "reconnect disabled")

    wait = reconnect_interval or None
    while not stop.wait(wait):
        if not engine.is_connected:
            engine.connect()


def main():
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    # Validate Last.fm configuration up-front for clear errors
    settings.check_lastfm()

    engine = build_engine(settings)
    log.info("Starting BluOS → Last.fm bridge. Refresh interval: %ss, scrobble at %s%% (max %ss)",
             settings.engine.refresh_interval, int(settings.engine.percentage_to_scrobble * 100),
             settings.engine.max_scrobble_seconds)

    stop = threading.Event()
    try:
        run(engine, settings.reconnect_interval, stop)
    except KeyboardInterrupt:
        log.info("Shutting down…")
    finally:
        engine.shutdown()


if __name__ == "__main__":
    main()
