"""
HTTP delivery mode for spot-fetcher.

Runs the same acquisition pipeline as the CLI, but streams the resulting
MP3s back to the caller as one zip archive while the run progresses.

Endpoints:
    POST /download            {"playlistUrl": "..."} -> application/zip stream
    GET  /files               {"files": [...]} listing the download directory
    GET  /files/<filename>    one artifact as an attachment

Status Codes (POST /download):
    400  playlistUrl missing, or not a playlist URL
    404  the playlist resolved to zero tracks (no archive is opened)
    500  authentication, playlist fetch or ledger failure
    200  archive stream; per-track failures only shrink the archive

Cancellation:
    When the client disconnects, the response generator is closed and the
    run's CancellationToken is set, so no further tracks are fetched.

Usage:
    from spot_fetcher.server import create_app

    app = create_app(load_config())
    app.run(host="127.0.0.1", port=3000)
"""

from pathlib import Path
from typing import Any, Callable, Iterator

from flask import Flask, Response, jsonify, request, send_from_directory
from werkzeug.exceptions import NotFound

from spot_fetcher.core.cancellation import CancellationToken
from spot_fetcher.core.config import Config
from spot_fetcher.core.exceptions import InvalidPlaylistReference, SpotFetcherError
from spot_fetcher.core.ledger import DedupLedger
from spot_fetcher.core.logger import format_summary_message, get_logger
from spot_fetcher.download.orchestrator import RunSummary, create_orchestrator
from spot_fetcher.download.sinks import ArchiveSink
from spot_fetcher.spotify.client import SpotifySession
from spot_fetcher.spotify.models import TrackDescriptor
from spot_fetcher.spotify.resolver import PlaylistResolver

logger = get_logger(__name__)


ARCHIVE_FILENAME = "playlist.zip"


def _default_resolver_factory(config: Config) -> PlaylistResolver:
    return PlaylistResolver(
        SpotifySession(config.spotify.client_id, config.spotify.client_secret)
    )


def create_app(
    config: Config,
    resolver_factory: Callable[[Config], Any] = _default_resolver_factory,
    locator: Any = None,
    source: Any = None,
    transcoder: Any = None
) -> Flask:
    """
    Build the Flask application.

    Args:
        config: Application configuration.
        resolver_factory: Builds a fresh PlaylistResolver per request.
        locator, source, transcoder: Collaborator overrides passed to
                                     create_orchestrator (tests).

    Returns:
        Configured Flask app. The ledger is shared by all requests and
        reloaded from disk at the start of each one.
    """
    static_directory = config.server.static_directory
    app = Flask(
        __name__,
        static_folder=str(static_directory) if static_directory else None,
        static_url_path="",
    )

    download_dir = config.output.directory
    ledger = DedupLedger(config.output.ledger_file)

    @app.route("/download", methods=["POST"])
    def download() -> Any:
        payload = request.get_json(silent=True) or {}
        playlist_url = payload.get("playlistUrl") if isinstance(payload, dict) else None
        if not playlist_url or not isinstance(playlist_url, str):
            return jsonify({"error": "Playlist URL is required"}), 400

        try:
            tracks = resolver_factory(config).resolve(playlist_url)
            if not tracks:
                return jsonify({"error": "No tracks found in the playlist."}), 404
            ledger.load()
        except InvalidPlaylistReference as e:
            logger.warning(e.message)
            return jsonify({"error": e.message}), 400
        except SpotFetcherError as e:
            logger.error(f"Failed to process {playlist_url}: {e.message}", exc_info=True)
            return jsonify({"error": "Failed to process the playlist."}), 500

        logger.info(f"Streaming {len(tracks)} tracks for {playlist_url}")
        return Response(
            _stream_archive(tracks),
            mimetype="application/zip",
            headers={"Content-Disposition": f'attachment; filename="{ARCHIVE_FILENAME}"'},
        )

    def _stream_archive(tracks: list[TrackDescriptor]) -> Iterator[bytes]:
        cancel_token = CancellationToken()
        sink = ArchiveSink()
        orchestrator = create_orchestrator(
            config,
            ledger,
            sink,
            pacing_seconds=config.download.serve_delay_seconds,
            cancel_token=cancel_token,
            locator=locator,
            source=source,
            transcoder=transcoder,
        )
        summary = RunSummary(total=len(tracks))

        try:
            for outcome in orchestrator.iter_run(tracks):
                summary.add(outcome)
                chunk = sink.drain()
                if chunk:
                    yield chunk

            sink.close()
            yield sink.drain()
            logger.info(
                format_summary_message(
                    summary.fetched, summary.skipped, summary.no_match, summary.failed
                )
            )
        except GeneratorExit:
            cancel_token.cancel()
            logger.warning(
                f"Client disconnected after {len(summary.outcomes)}/{summary.total} tracks"
            )
            raise
        finally:
            sink.close()

    @app.route("/files", methods=["GET"])
    def list_files() -> Any:
        if not download_dir.is_dir():
            return jsonify({"error": "No downloaded files found."}), 404
        files = sorted(p.name for p in download_dir.iterdir() if _is_artifact(p))
        return jsonify({"files": files})

    @app.route("/files/<path:filename>", methods=["GET"])
    def get_file(filename: str) -> Any:
        try:
            return send_from_directory(download_dir, filename, as_attachment=True)
        except NotFound:
            return jsonify({"error": "File not found."}), 404

    return app


def _is_artifact(path: Path) -> bool:
    return path.is_file() and not path.name.endswith(".part")


def run_server(config: Config, host: str | None = None, port: int | None = None) -> None:
    """Serve the app with Flask's threaded development server."""
    app = create_app(config)
    host = host or config.server.host
    port = port or config.server.port
    logger.info(f"Listening on http://{host}:{port}")
    app.run(host=host, port=port, threaded=True)
