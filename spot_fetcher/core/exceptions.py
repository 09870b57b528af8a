"""
Exception classes for spot-fetcher.

This module defines all custom exceptions used throughout the application.
Each exception carries a human-readable message plus an optional details
dictionary, and the hierarchy encodes which failures abort a run and which
only cost a single track.

Exception Hierarchy:
    SpotFetcherError (base)
        ConfigError - Configuration file / environment issues (fatal)
        InvalidPlaylistReference - Unparsable playlist URL (fatal, user-correctable)
        SpotifyError - Spotify API issues
            AuthFailure - Client credentials rejected (fatal)
            PlaylistFetchFailure - Playlist could not be read (fatal)
        SearchFailure - YouTube search issues (downgraded to "no match")
        FetchTranscodeFailure - Stream or ffmpeg failure (per-track)
        LedgerError - Dedup ledger issues
            CorruptLedgerError - Ledger file unparsable (fatal)
            LedgerWriteError - Ledger could not be persisted
"""


class SpotFetcherError(Exception):
    """
    Base exception for all spot-fetcher errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all spot-fetcher errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., track key, URLs).
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'track_key': "{artist} - {title}" of the track involved
                     - 'url': URL that caused the error
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(SpotFetcherError):
    """
    Raised when there's an issue with the configuration.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - Explicit --config file not found
        - config.yaml has invalid YAML syntax
        - Spotify credentials missing from both config.yaml and environment
        - Invalid field values (e.g., negative delay)
    """
    pass


class InvalidPlaylistReference(SpotFetcherError):
    """
    Raised when a playlist reference has no 'playlist/<id>' segment.

    This is a CRITICAL, user-correctable error. It is raised before any
    network call is made, so nothing is searched or downloaded.

    Example:
        raise InvalidPlaylistReference(
            "Not a playlist URL: https://open.spotify.com/track/xyz",
            details={'reference': 'https://open.spotify.com/track/xyz'}
        )
    """
    pass


class SpotifyError(SpotFetcherError):
    """
    Raised when there's an issue with the Spotify API.

    Attributes:
        is_auth_error: True if this is an authentication error.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        is_auth_error: bool = False
    ) -> None:
        """
        Initialize Spotify error with the authentication flag.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context.
            is_auth_error: Set to True if this is an authentication failure.
        """
        super().__init__(message, details)
        self.is_auth_error = is_auth_error


class AuthFailure(SpotifyError):
    """
    Raised when Spotify rejects the client credentials.

    This is a pipeline precondition, not a per-track problem: the whole
    run is aborted.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message, details, is_auth_error=True)


class PlaylistFetchFailure(SpotifyError):
    """
    Raised when the playlist items cannot be fetched (not found, private,
    network error). Fatal for the run.
    """
    pass


class SearchFailure(SpotFetcherError):
    """
    Raised by the search collaborator when a YouTube search fails.

    This is a NON-CRITICAL error: the Source Locator downgrades it to
    "no match" so one bad track never aborts the run.
    """
    pass


class FetchTranscodeFailure(SpotFetcherError):
    """
    Raised when streaming the source or transcoding it fails.

    This is a NON-CRITICAL error - the orchestrator logs it with the track
    identity and moves on to the next track.

    Attributes:
        stage: Which edge of the pipeline failed:
               'source' (stream resolution / download),
               'transcode' (ffmpeg) or 'filesystem' (final rename).
        cause: The underlying exception, if any.

    Example:
        raise FetchTranscodeFailure(
            "ffmpeg exited with code 1",
            stage="transcode",
            details={'track_key': 'Queen - Bohemian Rhapsody', 'stderr': '...'}
        )
    """

    def __init__(
        self,
        message: str,
        stage: str,
        cause: BaseException | None = None,
        details: dict | None = None
    ) -> None:
        super().__init__(message, details)
        self.stage = stage
        self.cause = cause


class LedgerError(SpotFetcherError):
    """
    Raised when there's an issue with the dedup ledger file.

    The ledger records which tracks were already acquired, so losing it
    silently would cause every track to be fetched again.
    """
    pass


class CorruptLedgerError(LedgerError):
    """
    Raised when the ledger file exists but is not a JSON array of strings.

    This is a CRITICAL error raised at startup. The file is never reset
    automatically; the user must inspect or remove it.
    """
    pass


class LedgerWriteError(LedgerError):
    """
    Raised when the ledger cannot be persisted after a successful track.

    The artifact exists but the next run would fetch it again, so this is
    always logged loudly.
    """
    pass
