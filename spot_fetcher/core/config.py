"""
Configuration management for spot-fetcher.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml, with secrets and the
server port overridable from the environment (or a .env file).

The configuration file contains:
    - Spotify API credentials (client_id, client_secret)
    - Download directory and dedup ledger location
    - Pacing delays for batch and server mode
    - Search filter and retry count
    - HTTP server settings for the request-driven mode

Configuration File Location:
    config.yaml in the current working directory, unless an explicit path
    is passed. When the default file is absent, defaults plus environment
    variables are used.

Environment Overrides:
    SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, PORT

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"
      client_secret: "your_client_secret_here"

    output:
      directory: "./downloads"
      ledger_file: "./downloaded_songs.json"

    download:
      batch_delay_seconds: 10
      serve_delay_seconds: 0.01
      search_filter: videos
      retries: 0
      cookie_file: null

    server:
      host: 127.0.0.1
      port: 3000
      static_directory: ./public
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from spot_fetcher.core.exceptions import ConfigError


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_OUTPUT_DIRECTORY = "downloads"
DEFAULT_LEDGER_FILENAME = "downloaded_songs.json"
DEFAULT_LOG_DIRECTORY = "logs"

# Pacing between tracks. The batch value is 10 seconds; the server value
# keeps the 10 ms the request-driven mode has always used.
DEFAULT_BATCH_DELAY_SECONDS = 10.0
DEFAULT_SERVE_DELAY_SECONDS = 0.01

SEARCH_FILTERS = ("videos", "songs")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify API credentials configuration.

    Attributes:
        client_id: The Spotify application client ID.
        client_secret: The Spotify application client secret.
    """
    client_id: str
    client_secret: str


@dataclass(frozen=True)
class OutputConfig:
    """
    Output locations.

    Attributes:
        directory: Directory where the .mp3 artifacts are written.
                   Created lazily before the first write.
        ledger_file: JSON file holding the track keys already acquired.
        log_directory: Directory for the per-run log files. Defaults to
                       ./logs, outside directory.
    """
    directory: Path
    ledger_file: Path
    log_directory: Path


@dataclass(frozen=True)
class DownloadConfig:
    """
    Acquisition behavior configuration.

    Attributes:
        batch_delay_seconds: Pause after each fetch attempt in batch mode.
        serve_delay_seconds: Pause after each fetch attempt in server mode.
        search_filter: ytmusicapi search filter ('videos' or 'songs').
        retries: Extra attempts for search and fetch before giving up.
                 0 disables retrying.
        cookie_file: Optional cookies.txt passed to yt-dlp.
    """
    batch_delay_seconds: float
    serve_delay_seconds: float
    search_filter: str
    retries: int
    cookie_file: Path | None


@dataclass(frozen=True)
class ServerConfig:
    """
    HTTP server configuration for the request-driven mode.

    Attributes:
        host: Interface to bind.
        port: TCP port (PORT environment variable wins).
        static_directory: Optional directory served as static files.
    """
    host: str
    port: int
    static_directory: Path | None


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Saving to: {config.output.directory}")
        print(f"Batch pacing: {config.download.batch_delay_seconds}s")
    """
    spotify: SpotifyConfig
    output: OutputConfig
    download: DownloadConfig
    server: ServerConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml and the environment.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory
                     and falls back to defaults when it does not exist.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is missing, the YAML is invalid,
                     credentials are missing, or a value has the wrong type.

    Behavior:
        1. Load .env into the process environment (existing variables win)
        2. Locate and parse the YAML file, if any
        3. Validate each section and apply defaults
        4. Apply environment overrides for credentials and port
    """
    load_dotenv()

    explicit = config_path is not None
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    raw_config: dict[str, Any] = {}
    if config_path.exists():
        raw_config = _read_yaml(config_path)
    elif explicit:
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    for section in ("spotify", "output", "download", "server"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )

    return Config(
        spotify=_parse_spotify_config(raw_config.get("spotify") or {}),
        output=_parse_output_config(raw_config.get("output") or {}),
        download=_parse_download_config(raw_config.get("download") or {}),
        server=_parse_server_config(raw_config.get("server") or {}),
    )


def _read_yaml(config_path: Path) -> dict[str, Any]:
    """Read and parse the YAML file into a dictionary."""
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if raw_config is None:
        return {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return raw_config


def _parse_spotify_config(spotify_section: dict[str, Any]) -> SpotifyConfig:
    """
    Parse the Spotify section, letting the environment override it.

    Raises:
        ConfigError: If client_id or client_secret ends up empty.
    """
    client_id = os.environ.get("SPOTIFY_CLIENT_ID") or spotify_section.get("client_id", "")
    client_secret = os.environ.get("SPOTIFY_CLIENT_SECRET") or spotify_section.get("client_secret", "")

    if not isinstance(client_id, str) or not client_id.strip():
        raise ConfigError(
            "'spotify.client_id' must be a non-empty string "
            "(or set SPOTIFY_CLIENT_ID)",
            details={"field": "spotify.client_id"}
        )

    if not isinstance(client_secret, str) or not client_secret.strip():
        raise ConfigError(
            "'spotify.client_secret' must be a non-empty string "
            "(or set SPOTIFY_CLIENT_SECRET)",
            details={"field": "spotify.client_secret"}
        )

    return SpotifyConfig(
        client_id=client_id.strip(),
        client_secret=client_secret.strip()
    )


def _parse_path(section: dict[str, Any], field: str, default: str | None) -> Path | None:
    """Read an optional path field, expanding ~ and resolving it."""
    raw = section.get(field, default)
    if raw is None:
        return None
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigError(
            f"'{field}' must be a non-empty string path",
            details={"field": field}
        )
    return Path(raw.strip()).expanduser().resolve()


def _parse_output_config(output_section: dict[str, Any]) -> OutputConfig:
    """
    Parse the output section.

    Does NOT create any directory (that happens right before the first write).
    """
    directory = _parse_path(output_section, "directory", DEFAULT_OUTPUT_DIRECTORY)
    ledger_file = _parse_path(output_section, "ledger_file", DEFAULT_LEDGER_FILENAME)
    log_directory = _parse_path(output_section, "log_directory", DEFAULT_LOG_DIRECTORY)

    return OutputConfig(
        directory=directory,
        ledger_file=ledger_file,
        log_directory=log_directory
    )


def _parse_delay(section: dict[str, Any], field: str, default: float) -> float:
    raw = section.get(field)
    if raw is None:
        return default
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
        raise ConfigError(
            f"'download.{field}' must be a non-negative number",
            details={"field": f"download.{field}", "value": raw}
        )
    return float(raw)


def _parse_download_config(download_section: dict[str, Any]) -> DownloadConfig:
    """
    Parse the download section, applying defaults for missing fields.

    Raises:
        ConfigError: If a delay is negative, retries is not a non-negative
                     integer, the search filter is unknown, or cookie_file
                     does not exist.
    """
    batch_delay = _parse_delay(download_section, "batch_delay_seconds", DEFAULT_BATCH_DELAY_SECONDS)
    serve_delay = _parse_delay(download_section, "serve_delay_seconds", DEFAULT_SERVE_DELAY_SECONDS)

    search_filter = download_section.get("search_filter", "videos")
    if search_filter not in SEARCH_FILTERS:
        raise ConfigError(
            f"'download.search_filter' must be one of {', '.join(SEARCH_FILTERS)}",
            details={"field": "download.search_filter", "value": search_filter}
        )

    retries = download_section.get("retries", 0)
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
        raise ConfigError(
            "'download.retries' must be a non-negative integer",
            details={"field": "download.retries", "value": retries}
        )

    cookie_file = _parse_path(download_section, "cookie_file", None)
    if cookie_file is not None and not cookie_file.exists():
        raise ConfigError(
            f"Cookie file not found: {cookie_file}",
            details={"field": "download.cookie_file", "path": str(cookie_file)}
        )

    return DownloadConfig(
        batch_delay_seconds=batch_delay,
        serve_delay_seconds=serve_delay,
        search_filter=search_filter,
        retries=retries,
        cookie_file=cookie_file
    )


def _parse_server_config(server_section: dict[str, Any]) -> ServerConfig:
    """Parse the server section; PORT from the environment wins."""
    host = server_section.get("host", DEFAULT_HOST)
    if not isinstance(host, str) or not host.strip():
        raise ConfigError(
            "'server.host' must be a non-empty string",
            details={"field": "server.host"}
        )

    raw_port = os.environ.get("PORT") or server_section.get("port", DEFAULT_PORT)
    try:
        port = int(raw_port)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            "'server.port' must be an integer",
            details={"field": "server.port", "value": raw_port}
        ) from e
    if not 0 < port < 65536:
        raise ConfigError(
            "'server.port' must be between 1 and 65535",
            details={"field": "server.port", "value": port}
        )

    return ServerConfig(
        host=host.strip(),
        port=port,
        static_directory=_parse_path(server_section, "static_directory", None)
    )
