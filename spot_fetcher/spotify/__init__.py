"""
Spotify integration module for spot-fetcher.

This module handles all interactions with the Spotify Web API:
    - client: Per-run SpotifySession (client-credentials auth)
    - models: TrackDescriptor and Credential data classes
    - resolver: PlaylistResolver, playlist reference -> track list

Usage:
    from spot_fetcher.spotify import PlaylistResolver, SpotifySession

    resolver = PlaylistResolver(SpotifySession(client_id, client_secret))
    tracks = resolver.resolve("https://open.spotify.com/playlist/...")
"""

from spot_fetcher.spotify.client import SpotifySession
from spot_fetcher.spotify.models import Credential, TrackDescriptor
from spot_fetcher.spotify.resolver import PlaylistResolver, resolve_playlist

__all__ = [
    "SpotifySession",
    "PlaylistResolver",
    "resolve_playlist",
    "TrackDescriptor",
    "Credential",
]
