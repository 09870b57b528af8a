"""Test configuration and fixtures"""

import io
import tempfile
import threading
from pathlib import Path
from unittest.mock import Mock

import pytest

from spot_fetcher.core.cancellation import CancellationToken
from spot_fetcher.core.config import (
    Config,
    DownloadConfig,
    OutputConfig,
    ServerConfig,
    SpotifyConfig,
)
from spot_fetcher.spotify.models import TrackDescriptor


PLAYLIST_URL = "https://open.example/playlist/ABC123"


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def config(temp_dir):
    """Config pointing every location into temp_dir, with no pacing"""
    return Config(
        spotify=SpotifyConfig(client_id="test_id", client_secret="test_secret"),
        output=OutputConfig(
            directory=temp_dir / "downloads",
            ledger_file=temp_dir / "downloaded_songs.json",
            log_directory=temp_dir / "logs",
        ),
        download=DownloadConfig(
            batch_delay_seconds=0.0,
            serve_delay_seconds=0.0,
            search_filter="videos",
            retries=0,
            cookie_file=None,
        ),
        server=ServerConfig(host="127.0.0.1", port=3000, static_directory=None),
    )


@pytest.fixture
def sample_tracks():
    """The two-track playlist used across tests"""
    return [
        TrackDescriptor(title="Song A", artist="Artist1"),
        TrackDescriptor(title="Song B", artist="Artist2"),
    ]


@pytest.fixture
def sample_playlist_items():
    """Raw Spotify playlist items for sample_tracks"""
    return [
        {"track": {"name": "Song A", "artists": [{"name": "Artist1"}]}},
        {"track": {"name": "Song B", "artists": [{"name": "Artist2"}]}},
    ]


class FakeYTMusic:
    """ytmusicapi stand-in: query -> list of results"""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []

    def search(self, query, filter=None, limit=None):
        self.calls.append((query, filter))
        result = self.results.get(query, [])
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_ytmusic():
    """Search backend matching only 'Song A Artist1'"""
    return FakeYTMusic({
        "Song A Artist1": [
            {"videoId": "vidA", "resultType": "video", "title": "Artist1 - Song A (Official)"},
        ],
    })


class FakeSource:
    """Audio source yielding fixed chunks, optionally failing"""

    def __init__(self, chunks=(b"audio-", b"bytes"), error=None, fail_after=None):
        self.chunks = list(chunks)
        self.error = error
        self.fail_after = fail_after
        self.opened = []

    def open(self, url):
        self.opened.append(url)
        if self.error is not None and self.fail_after is None:
            raise self.error
        return self._iterate()

    def _iterate(self):
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise self.error
            yield chunk


class FakeStdin:
    def __init__(self):
        self.buffer = bytearray()
        self.closed = threading.Event()

    def write(self, data):
        self.buffer.extend(data)
        return len(data)

    def close(self):
        self.closed.set()


class FakeProcess:
    """ffmpeg stand-in: writes the collected input to the output on exit"""

    def __init__(self, output_path, returncode=0, stderr=b""):
        self.output_path = output_path
        self.returncode = None
        self._exit_code = returncode
        self.stdin = FakeStdin()
        self.stderr = io.BytesIO(stderr)

    def wait(self):
        self.stdin.closed.wait(5)
        if self.returncode is None:
            if self._exit_code == 0:
                self.output_path.write_bytes(b"ID3" + bytes(self.stdin.buffer))
            self.returncode = self._exit_code
        return self.returncode

    def poll(self):
        return self.returncode

    def kill(self):
        self.stdin.closed.set()
        self.returncode = -9


class FakeTranscoder:
    def __init__(self, returncode=0, stderr=b""):
        self.returncode = returncode
        self.stderr = stderr
        self.spawned = []

    def spawn(self, output_path):
        self.spawned.append(output_path)
        return FakeProcess(output_path, self.returncode, self.stderr)


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def fake_transcoder():
    return FakeTranscoder()


class RecordingToken(CancellationToken):
    """Token that records pacing waits instead of sleeping"""

    def __init__(self):
        super().__init__()
        self.waits = []

    def wait(self, timeout):
        self.waits.append(timeout)
        return self.is_cancelled()


@pytest.fixture
def recording_token():
    return RecordingToken()


@pytest.fixture
def fake_session(sample_playlist_items):
    """SpotifySession stand-in returning sample_playlist_items"""
    session = Mock()
    session.authenticate.return_value = Mock(access_token="token", expires_at=None)
    session.playlist_tracks.return_value = sample_playlist_items
    return session
