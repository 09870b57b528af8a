"""
Logging configuration for spot-fetcher.

This module sets up the logging system with multiple outputs:
    - Console: Real-time messages with tqdm-compatible formatting
    - log_full.log: Complete log of all events (DEBUG and above)
    - log_errors.log: Only ERROR and CRITICAL level messages
    - download_failures.log: Tracks whose fetch/transcode failed, with source URL
    - no_match.log: Tracks for which YouTube returned nothing

The logging system follows the principle: everything to screen is also saved
to file, then filtered into specialized files.

Usage:
    from spot_fetcher.core.logger import setup_logging, get_logger

    setup_logging(log_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Starting download")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attribute prefixes recognised by the report handlers
DOWNLOAD_FAILED_PREFIX = "download_failed"
NO_MATCH_PREFIX = "no_match"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that colors the level name for console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        return f"{color}{record.levelname}{Colors.RESET}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking progress bars.

    Uses tqdm.write(), which prints above any active bar instead of
    tearing through it.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class TrackReportHandler(logging.Handler):
    """
    Handler that copies selected track records into a plain report file.

    Only records carrying a '<prefix>_track_key' attribute are written;
    everything else is ignored. Each entry is the track key followed by
    an optional URL line and reason line:

        Queen - Bohemian Rhapsody
        https://www.youtube.com/watch?v=fJ9rUzIMcZQ
        ffmpeg exited with code 1

    Attributes recognised (for prefix 'download_failed'):
        - download_failed_track_key: "{artist} - {title}"
        - download_failed_url: source URL (optional)
        - download_failed_reason: failure description (optional)

    Attributes:
        report_path: Path to the report file.
        prefix: Attribute prefix this handler listens for.
        report_file: Open file handle (set by open()).
    """

    def __init__(self, report_path: Path, prefix: str) -> None:
        super().__init__()
        self.report_path = report_path
        self.prefix = prefix
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        track_key = getattr(record, f"{self.prefix}_track_key", None)
        if track_key is None or self.report_file is None:
            return

        try:
            self.report_file.write(f"{track_key}\n")
            for suffix in ("url", "reason"):
                value = getattr(record, f"{self.prefix}_{suffix}", None)
                if value:
                    self.report_file.write(f"{value}\n")
            self.report_file.write("\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path, console_level: int = logging.INFO) -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        log_dir: Directory where the log files are created.
        console_level: Minimum level shown on the console.

    Behavior:
        1. Create log_dir if it doesn't exist
        2. Generate timestamp for this run's log files
        3. Configure root logger level to DEBUG, replacing existing handlers
        4. Console handler (TqdmLoggingHandler, colored, console_level+)
        5. log_full_{timestamp}.log (DEBUG+)
        6. log_errors_{timestamp}.log (ERROR+ via ErrorOnlyFilter)
        7. download_failures_{timestamp}.log report
        8. no_match_{timestamp}.log report

    Thread Safety:
        NOT thread-safe. Call it once from the main thread before any
        worker or server thread starts.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_handler = logging.FileHandler(log_dir / f"log_full_{timestamp}.log", mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_handler = logging.FileHandler(log_dir / f"log_errors_{timestamp}.log", mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    for prefix, filename in (
        (DOWNLOAD_FAILED_PREFIX, f"download_failures_{timestamp}.log"),
        (NO_MATCH_PREFIX, f"no_match_{timestamp}.log"),
    ):
        report_handler = TrackReportHandler(log_dir / filename, prefix)
        report_handler.open()
        root_logger.addHandler(report_handler)

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Note:
        Loggers obtained before setup_logging() is called propagate to a
        root logger without handlers. Always call setup_logging() first
        during application startup.
    """
    return logging.getLogger(name)


def log_download_failure(
    logger: logging.Logger,
    track_key: str,
    source_url: str | None,
    error_message: str
) -> None:
    """
    Log a track whose fetch/transcode failed.

    Logs at ERROR level and attaches the extra fields that the
    download_failures report handler picks up.

    Example:
        log_download_failure(
            logger,
            track_key="Queen - Bohemian Rhapsody",
            source_url="https://www.youtube.com/watch?v=fJ9rUzIMcZQ",
            error_message="ffmpeg exited with code 1"
        )
    """
    logger.error(
        f"Error downloading {track_key}: {error_message}",
        extra={
            f"{DOWNLOAD_FAILED_PREFIX}_track_key": track_key,
            f"{DOWNLOAD_FAILED_PREFIX}_url": source_url,
            f"{DOWNLOAD_FAILED_PREFIX}_reason": error_message,
        }
    )


def log_no_match(logger: logging.Logger, track_key: str, query: str) -> None:
    """Log a track for which the search returned nothing usable."""
    logger.info(
        f"No results found for: {query}",
        extra={
            f"{NO_MATCH_PREFIX}_track_key": track_key,
            f"{NO_MATCH_PREFIX}_reason": f"query: {query}",
        }
    )


def format_summary_message(fetched: int, skipped: int, no_match: int, failed: int) -> str:
    """Format the end-of-run summary line with colors."""
    return (
        f"Fetched: {Colors.GREEN}{fetched}{Colors.RESET}, "
        f"skipped: {Colors.YELLOW}{skipped}{Colors.RESET}, "
        f"no match: {Colors.CYAN}{no_match}{Colors.RESET}, "
        f"failed: {Colors.RED}{failed}{Colors.RESET}"
    )


def shutdown_logging() -> None:
    """
    Flush, close and remove all root handlers.

    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except Exception:
            pass
        root_logger.removeHandler(handler)
