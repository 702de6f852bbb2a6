"""Test the pylast wrapper's error mapping."""
from unittest.mock import MagicMock

import pylast
import pytest

import lastfm_client
from lastfm_client import (
    LastFMAuthError, LastFMClient, LastFMNetworkError, LastFMRateLimitError,
    LastFMRejectedError, LastFMServiceError,
)

SCROBBLE = dict(artist="Artist", title="Track", album="Album", duration=200, timestamp=1_700_000_000)


@pytest.fixture
def network(monkeypatch):
    net = MagicMock()
    monkeypatch.setattr(lastfm_client.pylast, "LastFMNetwork", MagicMock(return_value=net))
    return net


@pytest.fixture
def client(network):
    return LastFMClient("key", "secret", session_key="sk", username=None, password_md5=None)


def test_requires_credentials(network):
    with pytest.raises(ValueError):
        LastFMClient("key", "secret", session_key=None, username="bob", password_md5=None)


def test_password_auth(monkeypatch):
    factory = MagicMock()
    monkeypatch.setattr(lastfm_client.pylast, "LastFMNetwork", factory)
    LastFMClient("key", "secret", session_key=None, username="bob", password_md5="abc")
    factory.assert_called_once_with(api_key="key", api_secret="secret", username="bob", password_hash="abc")


def test_scrobble_passes_fields(client, network):
    client.scrobble(album_artist="Various", **SCROBBLE)
    network.scrobble.assert_called_once_with(
        artist="Artist", title="Track", album="Album", album_artist="Various",
        duration=200, timestamp=1_700_000_000,
    )


@pytest.mark.parametrize("code,error", [
    ("9", LastFMAuthError),
    ("4", LastFMAuthError),
    ("29", LastFMRateLimitError),
    ("11", LastFMServiceError),
    ("16", LastFMServiceError),
    ("6", LastFMRejectedError),
    ("oops", LastFMRejectedError),
])
def test_ws_errors_are_mapped(client, network, code, error):
    network.scrobble.side_effect = pylast.WSError(None, code, "details")
    with pytest.raises(error):
        client.scrobble(**SCROBBLE)


def test_transport_errors_become_network_errors(client, network):
    network.scrobble.side_effect = ConnectionError("no route to host")
    with pytest.raises(LastFMNetworkError, match="no route to host"):
        client.scrobble(**SCROBBLE)


def test_now_playing_failures_are_swallowed(client, network):
    network.update_now_playing.side_effect = pylast.WSError(None, "9", "Invalid session key")
    client.update_now_playing(artist="Artist", title="Track", album=None, duration=None)
    network.update_now_playing.side_effect = ConnectionError("down")
    client.update_now_playing(artist="Artist", title="Track", album=None, duration=None)
    assert network.update_now_playing.call_count == 2
