import pylast
import logging

log = logging.getLogger("lastfm")

# Custom error classes so callers can branch
class LastFMError(Exception): ...
class LastFMAuthError(LastFMError): ...
class LastFMRateLimitError(LastFMError): ...
class LastFMServiceError(LastFMError): ...
class LastFMRejectedError(LastFMError): ...
class LastFMNetworkError(LastFMError): ...

# Last.fm API error codes
_AUTH_CODES = {4, 9, 14, 26}      # auth failed, invalid session, unauthorized token, suspended key
_RATE_LIMIT_CODES = {29}
_UNAVAILABLE_CODES = {11, 16}     # service offline, temporarily unavailable


def _error_code(e: pylast.WSError) -> int | None:
    try:
        return int(e.get_id())
    except (TypeError, ValueError):
        return None


class LastFMClient:
    """Thin wrapper over pylast for update-now-playing + scrobbling."""

    def __init__(self, api_key: str, api_secret: str, session_key: str | None,
                 username: str | None, password_md5: str | None):
        if session_key:
            log.info("Using Last.fm session key auth")
            self.network = pylast.LastFMNetwork(
                api_key=api_key,
                api_secret=api_secret,
                session_key=session_key,
            )
        elif username and password_md5:
            log.info("Using Last.fm username + MD5 password auth")
            self.network = pylast.LastFMNetwork(
                api_key=api_key,
                api_secret=api_secret,
                username=username,
                password_hash=password_md5,
            )
        else:
            raise ValueError("Missing Last.fm credentials")

    def update_now_playing(self, *, artist: str, title: str, album: str | None, duration: int | None):
        """Push a Now Playing update. Non-fatal on failure."""
        try:
            self.network.update_now_playing(
                artist=artist, title=title, album=album, duration=duration
            )
        except pylast.WSError as e:
            # NOW PLAYING failures aren't critical; log at DEBUG
            log.debug("update_now_playing failed: code=%s msg=%s", _error_code(e), e)
        except Exception as e:
            log.debug("update_now_playing network error: %s", e)

    def scrobble(self, *, artist: str, title: str, album: str | None, duration: int | None,
                 timestamp: int, album_artist: str | None = None):
        """Submit a scrobble to Last.fm with a start timestamp (unix seconds)."""
        try:
            self.network.scrobble(
                artist=artist, title=title, album=album, album_artist=album_artist,
                duration=duration, timestamp=timestamp,
            )
        except pylast.WSError as e:
            code = _error_code(e)
            msg = str(e)
            if code in _AUTH_CODES:
                raise LastFMAuthError(msg)
            elif code in _RATE_LIMIT_CODES:
                raise LastFMRateLimitError(msg)
            elif code in _UNAVAILABLE_CODES:
                raise LastFMServiceError(f"Last.fm unavailable ({code}): {msg}")
            else:
                raise LastFMRejectedError(f"Last.fm API error {code}: {msg}")
        except Exception as e:
            raise LastFMNetworkError(str(e))
