"""
Scrobble submission with a local retry cache.

CachingSubmitter.submit() never raises; every result comes back as a SubmissionOutcome:
- SUCCESS            Last.fm accepted it (and the cache was drained as far as possible)
- CACHED             transient trouble (network, rate limit, service down); stored for later
- REJECTED           Last.fm refused it (auth, invalid data); not cached, the user must act
- TRANSPORT_FAILURE  anything else, including failing to write the cache
"""

from __future__ import annotations
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from lastfm_client import (
    LastFMClient, LastFMAuthError, LastFMNetworkError, LastFMRateLimitError,
    LastFMRejectedError, LastFMServiceError,
)
from scrobble_queue import ScrobbleQueue

log = logging.getLogger("submitter")


@dataclass(frozen=True)
class ScrobbleRecord:
    artist: str
    album: str | None
    track: str
    album_artist: str | None
    played_at: datetime
    duration_seconds: int

    def to_payload(self) -> dict:
        """Keyword arguments for LastFMClient.scrobble (also the cache format)."""
        return dict(
            artist=self.artist,
            title=self.track,
            album=self.album,
            album_artist=self.album_artist,
            duration=self.duration_seconds or None,
            timestamp=int(self.played_at.timestamp()),
        )


class OutcomeKind(enum.Enum):
    SUCCESS = "success"
    CACHED = "cached"
    REJECTED = "rejected"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass(frozen=True)
class SubmissionOutcome:
    kind: OutcomeKind
    reason: str | None = None

    @classmethod
    def success(cls) -> "SubmissionOutcome":
        return cls(OutcomeKind.SUCCESS)

    @classmethod
    def cached(cls, reason: str | None = None) -> "SubmissionOutcome":
        return cls(OutcomeKind.CACHED, reason)

    @classmethod
    def rejected(cls, reason: str) -> "SubmissionOutcome":
        return cls(OutcomeKind.REJECTED, reason)

    @classmethod
    def transport_failure(cls, reason: str) -> "SubmissionOutcome":
        return cls(OutcomeKind.TRANSPORT_FAILURE, reason)


class ScrobbleSubmitter(Protocol):
    def submit(self, record: ScrobbleRecord) -> SubmissionOutcome: ...

    def update_now_playing(self, *, artist: str, title: str, album: str | None,
                           duration: int | None) -> None: ...


class CachingSubmitter:
    """Submits through LastFMClient, falling back to a ScrobbleQueue on transient errors."""

    def __init__(self, client: LastFMClient, queue: ScrobbleQueue):
        self.client = client
        self.queue = queue

    def update_now_playing(self, *, artist: str, title: str, album: str | None, duration: int | None) -> None:
        self.client.update_now_playing(artist=artist, title=title, album=album, duration=duration)

    def submit(self, record: ScrobbleRecord) -> SubmissionOutcome:
        payload = record.to_payload()
        try:
            try:
                self.client.scrobble(**payload)
            except LastFMAuthError as e:
                # Auth issue: do NOT cache, the user must re-auth
                log.error("Scrobble failed (auth): %s", e)
                return SubmissionOutcome.rejected(f"authentication failed: {e}")
            except LastFMRejectedError as e:
                log.error("Scrobble rejected: %s", e)
                return SubmissionOutcome.rejected(str(e))
            except (LastFMNetworkError, LastFMRateLimitError, LastFMServiceError) as e:
                self.queue.enqueue(payload)
                log.info("%s; cached scrobble. queue=%s", type(e).__name__, self.queue.size())
                return SubmissionOutcome.cached(str(e))
        except Exception as e:
            log.exception("Scrobble submission failed unexpectedly")
            return SubmissionOutcome.transport_failure(str(e))

        log.info("Scrobbled: %s - %s%s", record.artist, record.track,
                 f" [{record.album}]" if record.album else "")
        try:
            self.drain()
        except Exception:
            # the live scrobble went through; the backlog waits for the next one
            log.exception("Draining scrobble cache failed")
        return SubmissionOutcome.success()

    def drain(self) -> int:
        """Resubmit cached scrobbles oldest-first; stops at the first failure."""
        drained = 0
        for pending in self.queue.drain_iter():
            try:
                self.client.scrobble(**pending)
                drained += 1
            except (LastFMNetworkError, LastFMRateLimitError, LastFMServiceError) as e:
                # Put it back and stop draining; try later
                self.queue.requeue(pending)
                log.info("Draining paused due to error: %s; queue size=%s", e, self.queue.size())
                break
            except LastFMAuthError as e:
                self.queue.requeue(pending)
                log.error("Last.fm auth error while draining: %s; queue size=%s", e, self.queue.size())
                break
            except LastFMRejectedError as e:
                # would fail forever; drop it
                log.warning("Dropping cached scrobble Last.fm refuses: %s - %s (%s)",
                            pending.get("artist"), pending.get("title"), e)
        if drained:
            log.info("Drained %s cached scrobbles. Queue size now %s", drained, self.queue.size())
        return drained
