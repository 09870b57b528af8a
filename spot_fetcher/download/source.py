"""
Audio source for spot-fetcher.

Opens an audio-only byte stream for a YouTube URL. yt-dlp is used only
to resolve the direct stream URL of the best audio format (no download,
no postprocessing); the bytes themselves are streamed with requests so
they can be piped straight into ffmpeg.

Audio Quality:
    - Free YouTube: up to ~160 kbps opus / 128 kbps AAC
    - YouTube Premium (with cookies): up to 256 kbps
    The transcoder always writes 320 kbps MP3 regardless of input.
"""

from pathlib import Path
from typing import Any, Iterator

import requests
from yt_dlp import YoutubeDL

from spot_fetcher.core.exceptions import FetchTranscodeFailure
from spot_fetcher.core.logger import get_logger

logger = get_logger(__name__)


# Bytes read from the HTTP stream per chunk
CHUNK_SIZE = 64 * 1024

# Seconds to wait for the media server (connect and between chunks)
STREAM_TIMEOUT = 30

# Prefer formats served over plain HTTP(S) so they can be streamed directly
AUDIO_FORMAT = "bestaudio[protocol^=http]/bestaudio/best"


class YtDlpSilentLogger:
    """
    Logger for yt-dlp that routes its output through our logging.

    yt-dlp ignores quiet=True for certain errors and prints directly to
    stderr. This logger intercepts those messages and keeps the last error
    so it can be attached to the failure.
    """

    def __init__(self) -> None:
        self.last_error: str | None = None

    def debug(self, msg: str) -> None:
        pass

    def info(self, msg: str) -> None:
        pass

    def warning(self, msg: str) -> None:
        logger.debug(f"yt-dlp: {msg}")

    def error(self, msg: str) -> None:
        self.last_error = msg


class YtDlpAudioSource:
    """
    Opens audio streams for YouTube watch URLs.

    Attributes:
        _cookie_file: Optional Netscape cookie file for yt-dlp
                      (Premium quality, age-restricted videos).
        _http: requests session used for the stream.
    """

    def __init__(
        self,
        cookie_file: Path | None = None,
        http: requests.Session | None = None,
        chunk_size: int = CHUNK_SIZE
    ) -> None:
        self._cookie_file = cookie_file
        self._http = http or requests.Session()
        self._chunk_size = chunk_size

    def open(self, url: str) -> Iterator[bytes]:
        """
        Open the best audio stream of a video.

        Args:
            url: YouTube or YouTube Music watch URL.

        Returns:
            Iterator of raw audio chunks. Closing it releases the HTTP
            connection.

        Raises:
            FetchTranscodeFailure: stage "source", if the stream cannot
                                   be resolved or opened. Errors while
                                   iterating are raised the same way.
        """
        stream_url, headers = self._resolve_stream(url)

        try:
            response = self._http.get(
                stream_url, headers=headers, stream=True, timeout=STREAM_TIMEOUT
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchTranscodeFailure(
                f"Failed to open audio stream: {e}",
                stage="source",
                cause=e,
                details={"url": url}
            ) from e

        return self._iter_chunks(response, url)

    def _resolve_stream(self, url: str) -> tuple[str, dict[str, str]]:
        yt_logger = YtDlpSilentLogger()

        try:
            with YoutubeDL(self._get_yt_dlp_options(yt_logger)) as ydl:
                info = ydl.extract_info(url, download=False)
        except Exception as e:
            error_msg = str(e)
            if yt_logger.last_error and yt_logger.last_error not in error_msg:
                error_msg = f"{error_msg} | {yt_logger.last_error}"
            raise FetchTranscodeFailure(
                f"yt-dlp error: {error_msg}",
                stage="source",
                cause=e,
                details={"url": url}
            ) from e

        if not info or not info.get("url"):
            raise FetchTranscodeFailure(
                "yt-dlp returned no audio stream",
                stage="source",
                details={"url": url}
            )

        logger.debug(
            f"Audio format {info.get('format_id')} "
            f"({info.get('acodec')}, {info.get('abr')} kbps) for {url}"
        )
        return info["url"], dict(info.get("http_headers") or {})

    def _iter_chunks(self, response: requests.Response, url: str) -> Iterator[bytes]:
        try:
            for chunk in response.iter_content(chunk_size=self._chunk_size):
                if chunk:
                    yield chunk
        except requests.RequestException as e:
            raise FetchTranscodeFailure(
                f"Audio stream interrupted: {e}",
                stage="source",
                cause=e,
                details={"url": url}
            ) from e
        finally:
            response.close()

    def _get_yt_dlp_options(self, yt_logger: YtDlpSilentLogger) -> dict[str, Any]:
        """
        Build yt-dlp options dictionary.

        Returns:
            Dictionary of yt-dlp options.
        """
        options: dict[str, Any] = {
            "format": AUDIO_FORMAT,

            # Quiet mode (we handle our own logging)
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
            "logger": yt_logger,

            "encoding": "UTF-8",
            "noplaylist": True,

            # Try multiple YouTube player clients (fixes "format not available")
            "extractor_args": {
                "youtube": {
                    "player_client": ["web", "android", "default"],
                }
            },
        }

        if self._cookie_file is not None:
            options["cookiefile"] = str(self._cookie_file)

        return options
