"""
Command-line interface for spot-fetcher.

This module implements the CLI using Click, providing the batch entry
point and the command that starts the HTTP delivery server.
rich-click is used for the output colors.

Commands:
    spot-fetch --url <playlist_url>     Download a playlist to the download directory
    spot-fetch --serve                  Start the HTTP server (POST /download)

Options:
    --host / --port                     Override server.host / server.port
    --config <path>                     Use a config file other than ./config.yaml

Usage:
    # Download a playlist as 320 kbps MP3s
    spot-fetch --url "https://open.spotify.com/playlist/..."

    # Run it again later: tracks already in the ledger are skipped
    spot-fetch --url "https://open.spotify.com/playlist/..."

    # Serve playlists as zip archives
    spot-fetch --serve --port 3000

Interrupting:
    The first Ctrl+C lets the current track finish and stops before the
    next one. A second Ctrl+C aborts immediately.

Exit Codes:
    0 success, 1 configuration or input error, 2 ledger error,
    3 Spotify error, 4 other error, 130 interrupted.
"""

import signal
import sys
from pathlib import Path
from typing import Any, Optional

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "cli": [
        {
            "name": "Batch Mode",
            "options": ["--url"],
        },
        {
            "name": "Server Mode",
            "options": ["--serve", "--host", "--port"],
        },
        {
            "name": "Info",
            "options": ["--config", "--version", "--help"],
        },
    ],
}

from spot_fetcher import __version__
from spot_fetcher.core import (
    CancellationToken,
    Config,
    ConfigError,
    DedupLedger,
    InvalidPlaylistReference,
    LedgerError,
    SpotFetcherError,
    SpotifyError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from spot_fetcher.core.logger import format_summary_message
from spot_fetcher.core.progress import AcquisitionProgressBar
from spot_fetcher.download import DiskSink, RunSummary, create_orchestrator
from spot_fetcher.spotify import PlaylistResolver, SpotifySession, TrackDescriptor

logger = get_logger(__name__)


@click.command()
@click.option(
    "--url",
    type=str,
    default=None,
    metavar="<spotify-url>",
    help="Spotify playlist URL"
)
@click.option(
    "--serve",
    is_flag=True,
    help="Start the HTTP server instead of downloading"
)
@click.option(
    "--host",
    type=str,
    default=None,
    help="Server host (default: server.host)"
)
@click.option(
    "--port",
    type=int,
    default=None,
    help="Server port (default: server.port or $PORT)"
)
@click.option(
    "--config", "config_path",
    type=click.Path(path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file"
)
@click.option(
    "--version",
    is_flag=True,
    help="Show version and exit."
)
@click.pass_context
def cli(
    ctx: click.Context,
    url: Optional[str],
    serve: bool,
    host: Optional[str],
    port: Optional[int],
    config_path: Optional[Path],
    version: bool
) -> None:
    """
    spot-fetcher: Download Spotify playlists as 320 kbps MP3s via YouTube.

    \b
    BASIC USAGE:
        spot-fetch --url "https://open.spotify.com/playlist/..."
        spot-fetch --serve --port 3000
    """
    if version:
        click.echo(f"spot-fetcher {__version__}")
        ctx.exit(0)

    if not url and not serve:
        click.echo(ctx.get_help())
        ctx.exit(0)

    if url and serve:
        raise click.UsageError("Cannot use both --url and --serve")

    if (host or port) and not serve:
        raise click.UsageError("--host and --port can only be used with --serve")

    if serve:
        _run_server(config_path, host, port)
    else:
        _run_download(url, config_path)


def _run_download(url: str, config_path: Path | None) -> None:
    """
    Execute the batch workflow.

    1. Loads configuration
    2. Sets up logging
    3. Loads the ledger (fails on a corrupt file)
    4. Resolves the playlist
    5. Runs the orchestrator with a DiskSink and the batch pacing delay
    6. Reports results

    Raises:
        SystemExit: On fatal errors (with appropriate exit code).
    """
    cancel_token = CancellationToken()
    previous_handler = signal.getsignal(signal.SIGINT)

    try:
        config = load_config(config_path)

        setup_logging(config.output.log_directory)
        logger.info("spot-fetcher starting")

        ledger = DedupLedger(config.output.ledger_file)
        ledger.load()
        logger.info(f"Ledger: {len(ledger)} tracks already downloaded")

        resolver = PlaylistResolver(
            SpotifySession(config.spotify.client_id, config.spotify.client_secret)
        )
        tracks = resolver.resolve(url)

        if not tracks:
            logger.warning("No tracks found in the playlist.")
            return

        signal.signal(signal.SIGINT, _make_interrupt_handler(cancel_token))

        summary = _acquire(config, ledger, tracks, cancel_token)
        _print_summary(summary)

        if summary.cancelled:
            click.echo("\nInterrupted by user", err=True)
            sys.exit(130)

        logger.info("spot-fetcher completed successfully")

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except InvalidPlaylistReference as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    except LedgerError as e:
        click.echo(f"Ledger error: {e.message}", err=True)
        logger.error(f"Ledger error: {e.message}", exc_info=True)
        sys.exit(2)

    except SpotifyError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        if e.is_auth_error:
            click.echo("Check your client_id and client_secret in config.yaml", err=True)
        logger.error(f"Spotify error: {e.message}", exc_info=True)
        sys.exit(3)

    except SpotFetcherError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    finally:
        signal.signal(signal.SIGINT, previous_handler)
        shutdown_logging()


def _acquire(
    config: Config,
    ledger: DedupLedger,
    tracks: list[TrackDescriptor],
    cancel_token: CancellationToken
) -> RunSummary:
    orchestrator = create_orchestrator(
        config,
        ledger,
        DiskSink(),
        pacing_seconds=config.download.batch_delay_seconds,
        cancel_token=cancel_token,
    )

    with AcquisitionProgressBar(total=len(tracks)) as progress:
        return orchestrator.run(tracks, progress=progress)


def _make_interrupt_handler(cancel_token: CancellationToken) -> Any:
    """First SIGINT cancels cooperatively, the second one aborts."""

    def handler(signum: int, frame: Any) -> None:
        if cancel_token.is_cancelled():
            raise KeyboardInterrupt
        cancel_token.cancel()
        logger.warning("Stopping after the current track (Ctrl+C again to abort)")

    return handler


def _print_summary(summary: RunSummary) -> None:
    logger.info(
        format_summary_message(
            summary.fetched, summary.skipped, summary.no_match, summary.failed
        )
    )


def _run_server(config_path: Path | None, host: str | None, port: int | None) -> None:
    """Load configuration and serve until interrupted."""
    from spot_fetcher.server import run_server

    try:
        config = load_config(config_path)
        setup_logging(config.output.log_directory)
        run_server(config, host=host, port=port)

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Server stopped")

    finally:
        shutdown_logging()


if __name__ == "__main__":
    cli()
