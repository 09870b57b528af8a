"""
Playlist resolver for spot-fetcher.

Turns a playlist reference (usually a Spotify URL) into the ordered list
of TrackDescriptors the orchestrator iterates over.

Workflow:
    1. Extract the playlist id from the reference (no network)
    2. Authenticate the session (client credentials)
    3. Fetch the playlist items with a single API call
    4. Convert each item to a TrackDescriptor, skipping empty items

Failure Policy:
    Every failure here is fatal for the run:
        - InvalidPlaylistReference: no 'playlist/<id>' in the reference.
          Raised before any network call.
        - AuthFailure: Spotify rejected the credentials.
        - PlaylistFetchFailure: the playlist could not be fetched.
"""

from typing import Any

from spot_fetcher.core.exceptions import InvalidPlaylistReference
from spot_fetcher.core.logger import get_logger
from spot_fetcher.spotify.client import SpotifySession
from spot_fetcher.spotify.models import Credential, TrackDescriptor
from spot_fetcher.utils import extract_playlist_id

logger = get_logger(__name__)


class PlaylistResolver:
    """
    Resolves playlist references through one SpotifySession.

    The session is injected, so a run owns its session and tests can
    substitute a fake with the same two methods.
    """

    def __init__(self, session: SpotifySession) -> None:
        self._session = session

    @staticmethod
    def extract_id(reference: str) -> str | None:
        return extract_playlist_id(reference)

    def authenticate(self) -> Credential:
        return self._session.authenticate()

    def fetch_tracks(self, playlist_id: str) -> list[TrackDescriptor]:
        """
        Fetch the playlist and convert its items to TrackDescriptors.

        Args:
            playlist_id: Bare Spotify playlist ID.

        Returns:
            TrackDescriptors in playlist order. Items without a track
            object (removed or unavailable tracks) are left out.

        Raises:
            PlaylistFetchFailure: Propagated from the session.
        """
        items = self._session.playlist_tracks(playlist_id)
        logger.info(f"Found {len(items)} track items")

        tracks: list[TrackDescriptor] = []
        for position, item in enumerate(items, start=1):
            track_data = self._track_data(item)
            if track_data is None:
                logger.warning(f"Skipping playlist item {position}: no track data")
                continue
            tracks.append(TrackDescriptor.from_spotify_api(track_data))

        return tracks

    def resolve(self, reference: str) -> list[TrackDescriptor]:
        """
        Run the whole resolution for one reference.

        Raises:
            InvalidPlaylistReference: If no playlist id can be extracted.
            AuthFailure: If authentication fails.
            PlaylistFetchFailure: If the playlist fetch fails.
        """
        playlist_id = self.extract_id(reference)
        if playlist_id is None:
            raise InvalidPlaylistReference(
                f"Invalid playlist URL: {reference}",
                details={"reference": reference}
            )

        logger.info(f"Fetching playlist: {playlist_id}")
        self.authenticate()
        tracks = self.fetch_tracks(playlist_id)
        logger.info(f"Resolved {len(tracks)} tracks")
        return tracks

    @staticmethod
    def _track_data(item: Any) -> dict[str, Any] | None:
        if not isinstance(item, dict):
            return None
        track = item.get("track")
        if not isinstance(track, dict):
            return None
        return track


# =========================================================================
# Convenience Functions (called by CLI and server)
# =========================================================================

def resolve_playlist(client_id: str, client_secret: str, reference: str) -> list[TrackDescriptor]:
    """
    Resolve a playlist reference with a fresh session.

    Args:
        client_id: Spotify application client ID.
        client_secret: Spotify application client secret.
        reference: Playlist URL.

    Returns:
        Ordered list of TrackDescriptors.
    """
    resolver = PlaylistResolver(SpotifySession(client_id, client_secret))
    return resolver.resolve(reference)
