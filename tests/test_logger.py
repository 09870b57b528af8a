"""Test logging setup and report files"""

import logging

from spot_fetcher.core.logger import (
    format_summary_message,
    get_logger,
    log_download_failure,
    log_no_match,
    setup_logging,
    shutdown_logging,
)


def read_report(log_dir, prefix):
    matches = list(log_dir.glob(f"{prefix}_*.log"))
    assert len(matches) == 1
    return matches[0].read_text(encoding="utf-8")


class TestLogging:
    """Test the handlers installed by setup_logging"""

    def test_report_files(self, temp_dir):
        log_dir = temp_dir / "logs"
        setup_logging(log_dir, console_level=logging.CRITICAL)
        try:
            logger = get_logger("spot_fetcher.test")
            log_download_failure(
                logger,
                track_key="Artist1 - Song A",
                source_url="https://www.youtube.com/watch?v=vidA",
                error_message="ffmpeg exited with code 1",
            )
            log_no_match(logger, "Artist2 - Song B", "Song B Artist2")
            logger.info("plain message")
        finally:
            shutdown_logging()

        failures = read_report(log_dir, "download_failures")
        assert "Artist1 - Song A" in failures
        assert "https://www.youtube.com/watch?v=vidA" in failures
        assert "Artist2 - Song B" not in failures

        no_match = read_report(log_dir, "no_match")
        assert "Artist2 - Song B" in no_match
        assert "plain message" not in no_match

        errors = read_report(log_dir, "log_errors")
        assert "Error downloading Artist1 - Song A" in errors
        assert "No results found" not in errors

        full = read_report(log_dir, "log_full")
        assert "plain message" in full

    def test_shutdown_removes_handlers(self, temp_dir):
        setup_logging(temp_dir / "logs", console_level=logging.CRITICAL)
        shutdown_logging()
        assert logging.getLogger().handlers == []

    def test_summary_message(self):
        message = format_summary_message(1, 2, 3, 4)
        for count in ("1", "2", "3", "4"):
            assert count in message
