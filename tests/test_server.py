"""Test the HTTP delivery server"""

import io
import json
import logging
import zipfile
from unittest.mock import patch

import pytest

from spot_fetcher.core.config import load_config
from spot_fetcher.core.exceptions import AuthFailure
from spot_fetcher.core.logger import setup_logging, shutdown_logging
from spot_fetcher.server import create_app
from spot_fetcher.spotify.resolver import PlaylistResolver
from spot_fetcher.youtube.locator import SourceLocator

from tests.conftest import PLAYLIST_URL, FakeSource, FakeTranscoder


@pytest.fixture
def resolver(fake_session):
    return PlaylistResolver(fake_session)


@pytest.fixture
def app(config, resolver, fake_ytmusic):
    app = create_app(
        config,
        resolver_factory=lambda c: resolver,
        locator=SourceLocator(ytmusic=fake_ytmusic),
        source=FakeSource(),
        transcoder=FakeTranscoder(),
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


class TestDownload:
    """Test POST /download"""

    def test_streams_zip(self, client, config):
        response = client.post("/download", json={"playlistUrl": PLAYLIST_URL})

        assert response.status_code == 200
        assert response.mimetype == "application/zip"
        assert response.headers["Content-Disposition"] == 'attachment; filename="playlist.zip"'

        archive = zipfile.ZipFile(io.BytesIO(response.data))
        assert archive.namelist() == ["Artist1 - Song A.mp3"]
        assert json.loads(config.output.ledger_file.read_text(encoding="utf-8")) == ["Artist1 - Song A"]

    def test_second_request_archives_skipped_tracks(self, client):
        client.post("/download", json={"playlistUrl": PLAYLIST_URL}).get_data()

        response = client.post("/download", json={"playlistUrl": PLAYLIST_URL})

        archive = zipfile.ZipFile(io.BytesIO(response.data))
        assert archive.namelist() == ["Artist1 - Song A.mp3"]

    def test_missing_url(self, client):
        response = client.post("/download", json={})

        assert response.status_code == 400
        assert response.get_json() == {"error": "Playlist URL is required"}

    def test_non_json_body(self, client):
        response = client.post("/download", data="playlistUrl=x")
        assert response.status_code == 400

    def test_invalid_url(self, client, fake_session):
        response = client.post("/download", json={"playlistUrl": "https://open.spotify.com/track/abc"})

        assert response.status_code == 400
        assert "error" in response.get_json()
        fake_session.authenticate.assert_not_called()

    def test_empty_playlist_never_opens_archive(self, client, fake_session):
        fake_session.playlist_tracks.return_value = []

        with patch("spot_fetcher.server.ArchiveSink") as mock_sink:
            response = client.post("/download", json={"playlistUrl": PLAYLIST_URL})

        assert response.status_code == 404
        assert response.get_json() == {"error": "No tracks found in the playlist."}
        mock_sink.assert_not_called()

    def test_auth_failure(self, client, fake_session):
        fake_session.authenticate.side_effect = AuthFailure("invalid_client")

        response = client.post("/download", json={"playlistUrl": PLAYLIST_URL})

        assert response.status_code == 500
        assert response.get_json() == {"error": "Failed to process the playlist."}

    def test_corrupt_ledger(self, client, config):
        config.output.ledger_file.write_text("{not json", encoding="utf-8")

        response = client.post("/download", json={"playlistUrl": PLAYLIST_URL})

        assert response.status_code == 500


class TestFiles:
    """Test GET /files and GET /files/<filename>"""

    def test_no_directory(self, client):
        response = client.get("/files")

        assert response.status_code == 404
        assert response.get_json() == {"error": "No downloaded files found."}

    def test_logging_setup_does_not_create_download_dir(self, temp_dir, monkeypatch, resolver):
        monkeypatch.chdir(temp_dir)
        monkeypatch.setenv("SPOTIFY_CLIENT_ID", "id")
        monkeypatch.setenv("SPOTIFY_CLIENT_SECRET", "secret")
        with patch("spot_fetcher.core.config.load_dotenv"):
            config = load_config()

        setup_logging(config.output.log_directory, console_level=logging.CRITICAL)
        try:
            app = create_app(config, resolver_factory=lambda c: resolver)
            response = app.test_client().get("/files")
        finally:
            shutdown_logging()

        assert response.status_code == 404
        assert not config.output.directory.exists()
        assert config.output.log_directory.is_dir()

    def test_list_and_fetch(self, client, config):
        config.output.directory.mkdir(parents=True)
        (config.output.directory / "Artist1 - Song A.mp3").write_bytes(b"ID3data")
        (config.output.directory / "Artist2 - Song B.mp3.part").write_bytes(b"partial")

        listing = client.get("/files")
        assert listing.status_code == 200
        assert listing.get_json() == {"files": ["Artist1 - Song A.mp3"]}

        response = client.get("/files/Artist1%20-%20Song%20A.mp3")
        assert response.status_code == 200
        assert response.data == b"ID3data"
        assert "attachment" in response.headers["Content-Disposition"]

    def test_missing_file(self, client, config):
        config.output.directory.mkdir(parents=True)

        response = client.get("/files/nope.mp3")

        assert response.status_code == 404
        assert response.get_json() == {"error": "File not found."}

    def test_path_traversal_rejected(self, client, config):
        config.output.directory.mkdir(parents=True)

        response = client.get("/files/../downloaded_songs.json")

        assert response.status_code == 404
