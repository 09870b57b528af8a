"""Test configuration loading"""

from pathlib import Path
from unittest.mock import patch

import pytest

from spot_fetcher.core.config import (
    DEFAULT_BATCH_DELAY_SECONDS,
    DEFAULT_SERVE_DELAY_SECONDS,
    load_config,
)
from spot_fetcher.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, temp_dir):
    """No .env loading, no credentials from the environment, cwd in temp_dir"""
    for name in ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "PORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(temp_dir)
    with patch("spot_fetcher.core.config.load_dotenv"):
        yield


def write_config(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


MINIMAL = """
spotify:
  client_id: "abc"
  client_secret: "def"
"""


class TestLoadConfig:
    """Test load_config defaults and validation"""

    def test_defaults(self, temp_dir):
        write_config(temp_dir / "config.yaml", MINIMAL)

        config = load_config()
        base = temp_dir.resolve()

        assert config.spotify.client_id == "abc"
        assert config.output.directory == base / "downloads"
        assert config.output.ledger_file == base / "downloaded_songs.json"
        assert config.output.log_directory == base / "logs"
        assert config.output.directory not in config.output.log_directory.parents
        assert config.download.batch_delay_seconds == DEFAULT_BATCH_DELAY_SECONDS
        assert config.download.serve_delay_seconds == DEFAULT_SERVE_DELAY_SECONDS
        assert config.download.search_filter == "videos"
        assert config.download.retries == 0
        assert config.download.cookie_file is None
        assert config.server.port == 3000
        assert config.server.static_directory is None

    def test_does_not_create_directories(self, temp_dir):
        write_config(temp_dir / "config.yaml", MINIMAL)
        load_config()
        assert not (temp_dir / "downloads").exists()

    def test_full_file(self, temp_dir):
        path = write_config(temp_dir / "custom.yaml", MINIMAL + """
output:
  directory: music
  ledger_file: state/ledger.json
download:
  batch_delay_seconds: 2
  serve_delay_seconds: 0
  search_filter: songs
  retries: 3
server:
  host: 0.0.0.0
  port: 8080
""")
        config = load_config(path)
        base = temp_dir.resolve()

        assert config.output.directory == base / "music"
        assert config.output.ledger_file == base / "state" / "ledger.json"
        assert config.download.batch_delay_seconds == 2.0
        assert config.download.serve_delay_seconds == 0.0
        assert config.download.search_filter == "songs"
        assert config.download.retries == 3
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 8080

    def test_missing_default_file_uses_environment(self, monkeypatch):
        monkeypatch.setenv("SPOTIFY_CLIENT_ID", "env_id")
        monkeypatch.setenv("SPOTIFY_CLIENT_SECRET", "env_secret")
        monkeypatch.setenv("PORT", "5000")

        config = load_config()

        assert config.spotify.client_id == "env_id"
        assert config.spotify.client_secret == "env_secret"
        assert config.server.port == 5000

    def test_environment_overrides_file(self, temp_dir, monkeypatch):
        write_config(temp_dir / "config.yaml", MINIMAL)
        monkeypatch.setenv("SPOTIFY_CLIENT_ID", "env_id")

        config = load_config()

        assert config.spotify.client_id == "env_id"
        assert config.spotify.client_secret == "def"

    def test_missing_explicit_file(self, temp_dir):
        with pytest.raises(ConfigError):
            load_config(temp_dir / "nope.yaml")

    def test_missing_credentials(self, temp_dir):
        write_config(temp_dir / "config.yaml", "output:\n  directory: music\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config()
        assert exc_info.value.details["field"] == "spotify.client_id"

    @pytest.mark.parametrize("snippet", [
        "download:\n  batch_delay_seconds: -1\n",
        "download:\n  retries: 1.5\n",
        "download:\n  search_filter: albums\n",
        "download:\n  cookie_file: missing_cookies.txt\n",
        "server:\n  port: 70000\n",
        "server: [1, 2]\n",
    ])
    def test_invalid_values(self, temp_dir, snippet):
        write_config(temp_dir / "config.yaml", MINIMAL + snippet)
        with pytest.raises(ConfigError):
            load_config()

    def test_invalid_yaml(self, temp_dir):
        write_config(temp_dir / "config.yaml", "spotify: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config()
