"""
Spotify API session for spot-fetcher.

This module wraps the spotipy library in an explicit, per-run session
object. Nothing is kept at module level: every run (a CLI invocation or
one HTTP request) builds its own SpotifySession, authenticates it, and
drops it afterwards, so credentials never leak from one run into the next
and tests can pass a fake session instead.

Authentication:
    Client Credentials only (client_id + client_secret, no end-user login).
    This is enough for public playlists and track metadata.

Usage:
    session = SpotifySession(client_id, client_secret)
    credential = session.authenticate()
    items = session.playlist_tracks("37i9dQZF1DXcBWIGoYBM5M")
"""

from typing import Any, Callable

import requests
import spotipy
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOauthError

from spot_fetcher.core.exceptions import AuthFailure, PlaylistFetchFailure, SpotifyError
from spot_fetcher.core.logger import get_logger
from spot_fetcher.spotify.models import Credential

logger = get_logger(__name__)


# Seconds before a Spotify API request is abandoned
REQUESTS_TIMEOUT = 15


class SpotifySession:
    """
    One authenticated conversation with the Spotify Web API.

    Attributes:
        _client_id: Spotify application client ID.
        _client_secret: Spotify application client secret.
        _spotify: spotipy.Spotify instance, set by authenticate().
        _credential: The token obtained by authenticate().

    Rate Limiting:
        spotipy retries 429 responses itself; anything it gives up on
        surfaces as PlaylistFetchFailure.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        auth_manager_factory: Callable[..., Any] = SpotifyClientCredentials,
        spotify_factory: Callable[..., Any] = spotipy.Spotify
    ) -> None:
        """
        Args:
            client_id: Spotify application client ID from Developer Dashboard.
            client_secret: Spotify application client secret.
            auth_manager_factory: Builds the client-credentials auth manager.
            spotify_factory: Builds the spotipy client from an access token.
        """
        self._client_id = client_id
        self._client_secret = client_secret
        self._auth_manager_factory = auth_manager_factory
        self._spotify_factory = spotify_factory
        self._spotify: spotipy.Spotify | None = None
        self._credential: Credential | None = None

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def authenticate(self) -> Credential:
        """
        Acquire an access token with the client-credentials grant.

        Returns:
            The Credential for this session.

        Raises:
            AuthFailure: If Spotify rejects the credentials or cannot be
                         reached. Fatal for the run.
        """
        try:
            auth_manager = self._auth_manager_factory(
                client_id=self._client_id,
                client_secret=self._client_secret
            )
            access_token = auth_manager.get_access_token(as_dict=False)
        except SpotifyOauthError as e:
            raise AuthFailure(
                f"Spotify authentication failed: {e}",
                details={"original_error": str(e)}
            ) from e
        except requests.RequestException as e:
            raise AuthFailure(
                f"Spotify authentication failed (network): {e}",
                details={"original_error": str(e)}
            ) from e

        if not access_token:
            raise AuthFailure("Spotify authentication returned no access token")

        expires_at = None
        cache_handler = getattr(auth_manager, "cache_handler", None)
        if cache_handler is not None:
            token_info = cache_handler.get_cached_token() or {}
            expires_at = token_info.get("expires_at")

        self._credential = Credential(access_token=access_token, expires_at=expires_at)
        self._spotify = self._spotify_factory(auth=access_token, requests_timeout=REQUESTS_TIMEOUT)
        logger.debug("Spotify session authenticated")

        return self._credential

    def playlist_tracks(self, playlist_id: str) -> list[dict[str, Any]]:
        """
        Get the items of a playlist with a single API call.

        Only the first page Spotify returns by default (up to 100 items)
        is fetched; longer playlists are truncated.

        Args:
            playlist_id: Bare Spotify playlist ID.

        Returns:
            The raw playlist item objects, in playlist order.

        Raises:
            SpotifyError: If authenticate() has not been called.
            PlaylistFetchFailure: If the playlist is missing, private, or
                                  the request fails.
        """
        if self._spotify is None:
            raise SpotifyError(
                "Spotify session not authenticated. Call authenticate() first.",
                is_auth_error=True
            )

        try:
            result = self._spotify.playlist_items(playlist_id, additional_types=("track",))
        except spotipy.SpotifyException as e:
            raise PlaylistFetchFailure(
                f"Failed to fetch Spotify playlist tracks: {e.msg}",
                details={"playlist_id": playlist_id, "http_status": e.http_status}
            ) from e
        except requests.RequestException as e:
            raise PlaylistFetchFailure(
                f"Failed to fetch Spotify playlist tracks: {e}",
                details={"playlist_id": playlist_id, "original_error": str(e)}
            ) from e

        if result is None:
            raise PlaylistFetchFailure(
                f"Playlist not found: {playlist_id}",
                details={"playlist_id": playlist_id}
            )

        items = result.get("items") or []
        if result.get("next"):
            logger.warning(
                f"Playlist has {result.get('total', '?')} tracks; "
                f"only the first {len(items)} are processed"
            )
        return items
