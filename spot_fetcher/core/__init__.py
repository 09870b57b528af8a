"""
Core module for spot-fetcher.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - ledger: JSON dedup ledger of acquired tracks
    - logger: Logging system with multiple outputs
    - cancellation: Cooperative cancellation token

Usage:
    from spot_fetcher.core import (
        Config, load_config,
        DedupLedger,
        setup_logging, get_logger,
        SpotFetcherError, ConfigError, CorruptLedgerError
    )
"""

from spot_fetcher.core.cancellation import CancellationToken
from spot_fetcher.core.config import (
    Config,
    DownloadConfig,
    OutputConfig,
    ServerConfig,
    SpotifyConfig,
    load_config,
)
from spot_fetcher.core.exceptions import (
    AuthFailure,
    ConfigError,
    CorruptLedgerError,
    FetchTranscodeFailure,
    InvalidPlaylistReference,
    LedgerError,
    LedgerWriteError,
    PlaylistFetchFailure,
    SearchFailure,
    SpotFetcherError,
    SpotifyError,
)
from spot_fetcher.core.ledger import DedupLedger
from spot_fetcher.core.logger import (
    get_logger,
    log_download_failure,
    log_no_match,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "OutputConfig",
    "DownloadConfig",
    "ServerConfig",
    "load_config",
    # Ledger
    "DedupLedger",
    # Cancellation
    "CancellationToken",
    # Exceptions
    "SpotFetcherError",
    "ConfigError",
    "InvalidPlaylistReference",
    "SpotifyError",
    "AuthFailure",
    "PlaylistFetchFailure",
    "SearchFailure",
    "FetchTranscodeFailure",
    "LedgerError",
    "CorruptLedgerError",
    "LedgerWriteError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_download_failure",
    "log_no_match",
    "shutdown_logging",
]
