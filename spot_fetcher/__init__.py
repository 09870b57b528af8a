"""
spot-fetcher: Download Spotify playlists as 320 kbps MP3s via YouTube.

This package resolves a Spotify playlist, finds each track on YouTube,
transcodes the best available audio to a 320 kbps MP3 with ffmpeg, and
remembers what it already fetched in a JSON ledger so repeated runs only
fetch new tracks.

Architecture:
    One pipeline, two delivery modes:

    spotify/    Playlist Resolver
        - Authenticate with client credentials
        - Fetch the playlist items (single request)
        - Build TrackDescriptors ("{artist} - {title}" keys)

    youtube/    Source Locator
        - Search "{title} {artist}" with ytmusicapi
        - Take the first result

    download/   Fetch-Transcode Unit and Orchestrator
        - Stream best audio (yt-dlp + requests) into ffmpeg
        - Write {sanitized key}.mp3, record the key in the ledger
        - Pace between tracks, isolate per-track failures

    Batch mode (cli.py) leaves the files on disk; server mode (server.py)
    streams them to the client as a zip archive.

Modules:
    core/       - Configuration, ledger, logging, progress, exceptions, cancellation
    spotify/    - Spotify session, models and playlist resolver
    youtube/    - Source locator
    download/   - Audio source, transcoder, sinks, orchestrator
    utils/      - Filename sanitization, playlist id parsing, backoff
    cli.py      - Command-line interface
    server.py   - Flask delivery server

Usage:
    Command Line:
        spot-fetch --url "https://open.spotify.com/playlist/..."
        spot-fetch --serve --port 3000

    Python API:
        from spot_fetcher.core import DedupLedger, load_config, setup_logging
        from spot_fetcher.download import DiskSink, create_orchestrator
        from spot_fetcher.spotify import PlaylistResolver, SpotifySession

        config = load_config()
        setup_logging(config.output.log_directory)

        ledger = DedupLedger(config.output.ledger_file)
        ledger.load()

        session = SpotifySession(config.spotify.client_id, config.spotify.client_secret)
        tracks = PlaylistResolver(session).resolve(playlist_url)

        orchestrator = create_orchestrator(
            config, ledger, DiskSink(), config.download.batch_delay_seconds
        )
        summary = orchestrator.run(tracks)

Dependencies:
    - spotipy: Spotify API client
    - ytmusicapi: YouTube search
    - yt-dlp: Audio stream extraction
    - requests: Audio stream download
    - ffmpeg-python: MP3 transcoding (ffmpeg must be installed)
    - flask: Delivery server
    - rich-click: CLI colors
    - rich: Progress bar
    - tqdm: Log output that does not break progress bars
    - pyyaml, python-dotenv: Configuration
"""

__version__ = "0.1.0"
__author__ = "spot-fetcher"
__license__ = "MIT"
