"""Test the caching submitter's outcome mapping and cache draining."""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from lastfm_client import (
    LastFMAuthError, LastFMNetworkError, LastFMRateLimitError, LastFMRejectedError, LastFMServiceError,
)
from scrobble_queue import ScrobbleQueue
from submitter import CachingSubmitter, OutcomeKind, ScrobbleRecord

RECORD = ScrobbleRecord(
    artist="Artist",
    album="Album",
    track="Track",
    album_artist=None,
    played_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    duration_seconds=200,
)


@pytest.fixture
def queue(tmp_path):
    return ScrobbleQueue(str(tmp_path / "cache" / "queue.json"), maxlen=10)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def submitter(client, queue):
    return CachingSubmitter(client, queue)


def test_payload():
    assert RECORD.to_payload() == dict(
        artist="Artist", title="Track", album="Album", album_artist=None,
        duration=200, timestamp=1704110400,
    )


def test_success(submitter, client, queue):
    outcome = submitter.submit(RECORD)
    assert outcome.kind is OutcomeKind.SUCCESS
    client.scrobble.assert_called_once_with(**RECORD.to_payload())
    assert queue.size() == 0


@pytest.mark.parametrize("error", [
    LastFMNetworkError("timeout"), LastFMRateLimitError("slow down"), LastFMServiceError("offline"),
])
def test_transient_errors_are_cached(submitter, client, queue, error):
    client.scrobble.side_effect = error
    outcome = submitter.submit(RECORD)
    assert outcome.kind is OutcomeKind.CACHED
    assert queue.size() == 1


@pytest.mark.parametrize("error", [LastFMAuthError("Invalid session key"), LastFMRejectedError("bad track")])
def test_refusals_are_rejected_and_not_cached(submitter, client, queue, error):
    client.scrobble.side_effect = error
    outcome = submitter.submit(RECORD)
    assert outcome.kind is OutcomeKind.REJECTED
    assert str(error) in outcome.reason
    assert queue.size() == 0


def test_cache_write_failure_is_transport_failure(submitter, client, queue, monkeypatch):
    client.scrobble.side_effect = LastFMNetworkError("timeout")
    monkeypatch.setattr(queue, "enqueue", MagicMock(side_effect=OSError("disk full")))
    outcome = submitter.submit(RECORD)
    assert outcome.kind is OutcomeKind.TRANSPORT_FAILURE
    assert outcome.reason == "disk full"


def test_success_drains_cache(submitter, client, queue):
    queue.enqueue({"artist": "Old", "title": "One", "timestamp": 1})
    queue.enqueue({"artist": "Old", "title": "Two", "timestamp": 2})
    assert submitter.submit(RECORD).kind is OutcomeKind.SUCCESS
    assert client.scrobble.call_count == 3
    assert queue.size() == 0


def test_drain_stops_on_transient_error(submitter, client, queue):
    queue.enqueue({"artist": "Old", "title": "One", "timestamp": 1})
    queue.enqueue({"artist": "Old", "title": "Two", "timestamp": 2})
    client.scrobble.side_effect = [None, LastFMNetworkError("down again")]

    submitter.submit(RECORD)
    assert queue.size() == 2
    assert next(queue.drain_iter())["title"] == "One"


def test_drain_drops_refused_items(submitter, client, queue):
    queue.enqueue({"artist": "Old", "title": "Bad", "timestamp": 1})
    queue.enqueue({"artist": "Old", "title": "Good", "timestamp": 2})
    client.scrobble.side_effect = [LastFMRejectedError("bad"), None]
    assert submitter.drain() == 1
    assert queue.size() == 0


def test_drain_failure_still_reports_success(submitter, client, queue, monkeypatch):
    queue.enqueue({"artist": "Old", "title": "One", "timestamp": 1})
    monkeypatch.setattr(queue, "_save", MagicMock(side_effect=OSError("disk full")))
    outcome = submitter.submit(RECORD)
    assert outcome.kind is OutcomeKind.SUCCESS
    client.scrobble.assert_called_once_with(**RECORD.to_payload())
