"""
Utility functions for spot-fetcher.

This module provides common utility functions used across the application:
    - Filename sanitization for track keys
    - Playlist id extraction from Spotify URLs
    - Directory creation
    - Retry backoff calculation

Usage:
    from spot_fetcher.utils import (
        sanitize_filename,
        extract_playlist_id,
        ensure_directory
    )
"""

import random
import re
from pathlib import Path


# Characters that are replaced with '-' in filenames
_RESERVED_CHARS_PATTERN = re.compile(r'[/\\?%*:|"<>]')

# "playlist/<alphanumeric id>" anywhere in the reference
_PLAYLIST_ID_PATTERN = re.compile(r"playlist/([a-zA-Z0-9]+)")

# Retry backoff
BASE_DELAY = 1.5  # seconds
MAX_DELAY = 15.0  # seconds
JITTER_FACTOR = 0.3


def sanitize_filename(name: str) -> str:
    """
    Sanitize a track key for use as a filename stem.

    Each of / \\ ? % * : | " < > is replaced with '-', then surrounding
    whitespace is trimmed. Nothing else is touched, so the stem stays
    readable and matches the track key wherever possible.

    Note:
        The mapping is not injective ("AC/DC" and "AC:DC" both become
        "AC-DC"). Collisions are resolved by the Fetch-Transcode Unit,
        not here.

    Examples:
        sanitize_filename("Artist/Name: Song?")  # "Artist-Name- Song-"
        sanitize_filename("  AC/DC - Hells Bells ")  # "AC-DC - Hells Bells"
    """
    return _RESERVED_CHARS_PATTERN.sub("-", name).strip()


def extract_playlist_id(reference: str) -> str | None:
    """
    Extract the playlist id following 'playlist/' in a reference string.

    Args:
        reference: Typically a Spotify playlist URL.

    Returns:
        The alphanumeric id, or None when the reference has no
        'playlist/<id>' segment.

    Examples:
        extract_playlist_id("https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M?si=x")
        # Returns: "37i9dQZF1DXcBWIGoYBM5M"

        extract_playlist_id("https://open.spotify.com/track/abc")
        # Returns: None
    """
    match = _PLAYLIST_ID_PATTERN.search(reference)
    return match.group(1) if match else None


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Returns:
        The same path (for chaining).

    Raises:
        OSError: If directory cannot be created (permissions, etc.)
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def calculate_backoff(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed).
        base_delay: Base delay in seconds.

    Returns:
        Delay in seconds with jitter applied, never below 0.5.
    """
    delay = min(base_delay * (2 ** attempt), MAX_DELAY)
    jitter = delay * JITTER_FACTOR * (2 * random.random() - 1)
    return max(0.5, delay + jitter)
