"""
Data models for Spotify entities.

Design Decisions:
    - All dataclasses are frozen (immutable) to prevent accidental modification
    - TrackDescriptor carries only what the pipeline needs: title and artist
    - The track key is derived, never stored, so it cannot drift

Usage:
    from spot_fetcher.spotify.models import TrackDescriptor

    track = TrackDescriptor(title="Song A", artist="Artist1")
    track.key           # "Artist1 - Song A"
    track.search_query  # "Song A Artist1"
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TrackDescriptor:
    """
    Immutable representation of one playlist entry.

    Attributes:
        title: Track title as it appears on Spotify.
               Example: "Bohemian Rhapsody"
        artist: All artist names joined with a single space.
                Example: "Calvin Harris Dua Lipa"

    Derived:
        key: "{artist} - {title}". Primary key of the dedup ledger and the
             stem of the output filename, so it must be composed exactly
             this way everywhere.
        search_query: "{title} {artist}", the text sent to YouTube search.
    """
    title: str
    artist: str

    @property
    def key(self) -> str:
        return f"{self.artist} - {self.title}"

    @property
    def search_query(self) -> str:
        return f"{self.title} {self.artist}"

    @classmethod
    def from_spotify_api(cls, track_data: dict[str, Any]) -> "TrackDescriptor":
        """
        Create a TrackDescriptor from a Spotify track object.

        Args:
            track_data: The 'track' member of a playlist item.

        Example:
            item = {"track": {"name": "Song A", "artists": [{"name": "Artist1"}]}}
            TrackDescriptor.from_spotify_api(item["track"])
        """
        artists = [a.get("name", "") for a in track_data.get("artists") or []]
        return cls(
            title=track_data.get("name", ""),
            artist=" ".join(artists),
        )


@dataclass(frozen=True)
class Credential:
    """
    Short-lived Spotify access token from the client-credentials grant.

    Attributes:
        access_token: Bearer token.
        expires_at: Unix timestamp after which the token is invalid,
                    or None if the provider did not say.
    """
    access_token: str
    expires_at: int | None = None
