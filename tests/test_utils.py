"""Test utility functions"""

from spot_fetcher.utils import (
    MAX_DELAY,
    calculate_backoff,
    ensure_directory,
    extract_playlist_id,
    sanitize_filename,
)


class TestSanitizeFilename:
    """Test filename sanitization"""

    def test_reserved_characters_replaced(self):
        result = sanitize_filename("Artist/Name: Song?")
        assert result == "Artist-Name- Song-"
        for char in '/\\?%*:|"<>':
            assert char not in result

    def test_all_reserved_characters(self):
        assert sanitize_filename('a/b\\c?d%e*f:g|h"i<j>k') == "a-b-c-d-e-f-g-h-i-j-k"

    def test_whitespace_trimmed(self):
        assert sanitize_filename("  AC/DC - Hells Bells  ") == "AC-DC - Hells Bells"

    def test_plain_key_unchanged(self):
        assert sanitize_filename("Artist1 - Song A") == "Artist1 - Song A"

    def test_not_injective(self):
        assert sanitize_filename("AC/DC - X") == sanitize_filename("AC:DC - X")


class TestExtractPlaylistId:
    """Test playlist id extraction"""

    def test_spotify_url(self):
        url = "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M?si=abc"
        assert extract_playlist_id(url) == "37i9dQZF1DXcBWIGoYBM5M"

    def test_any_host(self):
        assert extract_playlist_id("https://open.example/playlist/ABC123") == "ABC123"

    def test_no_playlist_segment(self):
        assert extract_playlist_id("https://open.spotify.com/track/abc") is None
        assert extract_playlist_id("not a url") is None
        assert extract_playlist_id("") is None

    def test_empty_id(self):
        assert extract_playlist_id("https://open.spotify.com/playlist/") is None


class TestHelpers:
    """Test directory and backoff helpers"""

    def test_ensure_directory_idempotent(self, temp_dir):
        target = temp_dir / "a" / "b"
        assert ensure_directory(target) == target
        assert ensure_directory(target) == target
        assert target.is_dir()

    def test_backoff_bounds(self):
        for attempt in range(10):
            delay = calculate_backoff(attempt)
            assert 0.5 <= delay <= MAX_DELAY * 1.3
