"""
Fetch-Transcode Unit for spot-fetcher.

Produces one 320 kbps MP3 per track in the download directory.

Pipeline:
    YtDlpAudioSource ──chunks──> [producer thread] ──stdin──> ffmpeg ──> NAME.mp3.<random>.part

    - The producer thread copies source chunks into ffmpeg's stdin and
      closes it at the end of the stream (or on error).
    - The calling thread drains ffmpeg's stderr and waits for it to exit.
    - Both stages are joined before the outcome is decided; either one
      failing yields a single FetchTranscodeFailure.
    - Every attempt gets its own .part file (tempfile.mkstemp), so two
      fetches of the same track never write through one file.
    - On success the .part file is fsynced and renamed to NAME.mp3. The
      rename is the completion signal: a file with the final name is
      always complete.

File Naming:
    NAME = sanitize_filename(track_key). When two different track keys
    sanitize to the same NAME, the later one gets " (2)", " (3)", ...
    Claims are seeded from the ledger in ledger order, so the mapping is
    stable across runs.

Usage:
    unit = FetchTranscodeUnit(Path("downloads"), claimed_keys=ledger.keys)
    path = unit.fetch_and_transcode(source, "Artist1 - Song A")
"""

import os
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Iterable, Iterator

import ffmpeg

from spot_fetcher.core.cancellation import CancellationToken
from spot_fetcher.core.exceptions import FetchTranscodeFailure
from spot_fetcher.core.logger import get_logger
from spot_fetcher.download.source import YtDlpAudioSource
from spot_fetcher.utils import calculate_backoff, ensure_directory, sanitize_filename
from spot_fetcher.youtube.models import SourceReference

logger = get_logger(__name__)


OUTPUT_EXTENSION = ".mp3"
PARTIAL_SUFFIX = ".part"
AUDIO_BITRATE = "320k"

# Characters of ffmpeg stderr kept in failure messages
STDERR_TAIL = 500


class FfmpegTranscoder:
    """Spawns ffmpeg reading from stdin and writing a 320 kbps MP3."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg") -> None:
        self._binary = ffmpeg_binary

    def spawn(self, output_path: Path) -> subprocess.Popen:
        """
        Start ffmpeg for one output file.

        ffmpeg runs in its own session, so a Ctrl+C in the terminal reaches
        only spot-fetcher and the track in flight can still finish.

        Returns:
            The running process, with stdin and stderr piped.

        Raises:
            OSError: If ffmpeg cannot be started (not installed, etc.)
        """
        stream = (
            ffmpeg
            .input("pipe:0")
            .output(
                str(output_path),
                format="mp3",
                acodec="libmp3lame",
                audio_bitrate=AUDIO_BITRATE,
                vn=None,
            )
            .global_args("-loglevel", "error", "-nostdin")
            .overwrite_output()
        )
        return subprocess.Popen(
            stream.compile(cmd=self._binary),
            stdin=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )


class FetchTranscodeUnit:
    """
    Turns a SourceReference into an MP3 on disk.

    Attributes:
        download_dir: Directory receiving the artifacts.
        _paths: track key -> output path, for every key seen so far.
        _stems: filename stems already taken by some track key.
    """

    def __init__(
        self,
        download_dir: Path,
        source: Any = None,
        transcoder: Any = None,
        claimed_keys: Iterable[str] = (),
        retries: int = 0,
        cancel_token: CancellationToken | None = None
    ) -> None:
        self.download_dir = download_dir
        self._source = source or YtDlpAudioSource()
        self._transcoder = transcoder or FfmpegTranscoder()
        self._retries = retries
        self._cancel_token = cancel_token
        self._directory_ready = False
        self._paths: dict[str, Path] = {}
        self._stems: set[str] = set()
        self._lock = threading.Lock()

        for key in claimed_keys:
            self._claim(key)

    # =========================================================================
    # Output paths
    # =========================================================================

    def ensure_output_directory(self) -> Path:
        """
        Create the download directory once, before the first write.

        Raises:
            FetchTranscodeFailure: stage "filesystem", if it cannot be created.
        """
        if not self._directory_ready:
            try:
                ensure_directory(self.download_dir)
            except OSError as e:
                raise FetchTranscodeFailure(
                    f"Cannot create download directory {self.download_dir}: {e}",
                    stage="filesystem",
                    cause=e
                ) from e
            self._directory_ready = True
        return self.download_dir

    def output_path_for(self, track_key: str) -> Path:
        """Final artifact path for a track key (claims it if new)."""
        return self._claim(track_key)

    def existing_path(self, track_key: str) -> Path | None:
        """Artifact path for a track key if the file exists on disk."""
        path = self._claim(track_key)
        return path if path.is_file() else None

    def _claim(self, track_key: str) -> Path:
        with self._lock:
            path = self._paths.get(track_key)
            if path is not None:
                return path

            base = sanitize_filename(track_key)
            stem = base
            suffix = 2
            while stem in self._stems:
                stem = f"{base} ({suffix})"
                suffix += 1

            if stem != base:
                logger.warning(f"Filename collision for {track_key}, saving as {stem}{OUTPUT_EXTENSION}")

            self._stems.add(stem)
            path = self.download_dir / f"{stem}{OUTPUT_EXTENSION}"
            self._paths[track_key] = path
            return path

    # =========================================================================
    # Fetch + transcode
    # =========================================================================

    def fetch_and_transcode(self, source_ref: SourceReference, track_key: str) -> Path:
        """
        Fetch the source and write the 320 kbps MP3 for track_key.

        Args:
            source_ref: Located source for the track.
            track_key: "{artist} - {title}".

        Returns:
            Path of the completed artifact. It is fully written and
            flushed when this returns.

        Raises:
            FetchTranscodeFailure: If the source or ffmpeg failed, or the
                                   file could not be finalized. Retried up
                                   to self._retries times unless the
                                   failure is a filesystem one.
        """
        output_path = self.output_path_for(track_key)
        attempts = self._retries + 1
        attempt = 0

        while True:
            try:
                return self._fetch_once(source_ref, output_path)
            except FetchTranscodeFailure as e:
                attempt += 1
                if e.stage == "filesystem" or attempt >= attempts:
                    raise
                delay = calculate_backoff(attempt - 1)
                logger.debug(
                    f"Fetch attempt {attempt}/{attempts} for {track_key} failed "
                    f"({e.stage}): {e.message}. Retrying in {delay:.1f}s"
                )
                if self._cancel_token is not None:
                    if self._cancel_token.wait(delay):
                        raise
                else:
                    time.sleep(delay)

    def _fetch_once(self, source_ref: SourceReference, output_path: Path) -> Path:
        self.ensure_output_directory()

        chunks = self._source.open(source_ref.url)

        try:
            partial_path = _create_partial_file(output_path)
        except OSError as e:
            _close_iterator(chunks)
            raise FetchTranscodeFailure(
                f"Cannot create a temporary file for {output_path.name}: {e}",
                stage="filesystem",
                cause=e
            ) from e

        try:
            process = self._transcoder.spawn(partial_path)
        except (OSError, ffmpeg.Error) as e:
            _close_iterator(chunks)
            _remove_quietly(partial_path)
            raise FetchTranscodeFailure(
                f"Failed to start ffmpeg: {e}",
                stage="transcode",
                cause=e
            ) from e

        producer_errors: list[BaseException] = []
        producer = threading.Thread(
            target=_pump,
            args=(chunks, process, producer_errors),
            name=f"source-{source_ref.video_id}",
            daemon=True,
        )

        try:
            producer.start()
            stderr = process.stderr.read() if process.stderr is not None else b""
            returncode = process.wait()
            producer.join()

            self._raise_for_outcome(producer_errors, returncode, stderr)

            if not partial_path.is_file() or partial_path.stat().st_size == 0:
                raise FetchTranscodeFailure(
                    "ffmpeg exited without producing output",
                    stage="transcode"
                )

            try:
                _fsync_file(partial_path)
                os.replace(partial_path, output_path)
            except OSError as e:
                raise FetchTranscodeFailure(
                    f"Failed to finalize {output_path.name}: {e}",
                    stage="filesystem",
                    cause=e
                ) from e
        except BaseException:
            if process.poll() is None:
                process.kill()
                process.wait()
            producer.join(timeout=5)
            _remove_quietly(partial_path)
            raise

        logger.debug(f"Wrote {output_path}")
        return output_path

    @staticmethod
    def _raise_for_outcome(
        producer_errors: list[BaseException],
        returncode: int,
        stderr: bytes
    ) -> None:
        """
        Combine both stages into one outcome.

        A source error other than a broken pipe wins, since ffmpeg then
        saw a truncated stream and may have exited cleanly. A broken pipe
        only means ffmpeg stopped reading, so ffmpeg's exit status decides.
        """
        producer_error = producer_errors[0] if producer_errors else None

        if producer_error is not None and not isinstance(producer_error, BrokenPipeError):
            if isinstance(producer_error, FetchTranscodeFailure):
                raise producer_error
            raise FetchTranscodeFailure(
                f"Audio stream failed: {producer_error}",
                stage="source",
                cause=producer_error
            ) from producer_error

        if returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()[-STDERR_TAIL:]
            raise FetchTranscodeFailure(
                f"ffmpeg exited with code {returncode}: {message or 'no output'}",
                stage="transcode",
                details={"returncode": returncode}
            )

        if producer_error is not None:
            raise FetchTranscodeFailure(
                f"Audio stream failed: {producer_error}",
                stage="source",
                cause=producer_error
            ) from producer_error


def _pump(chunks: Iterator[bytes], process: subprocess.Popen, errors: list[BaseException]) -> None:
    """Producer stage: copy chunks into ffmpeg's stdin, then close it."""
    try:
        for chunk in chunks:
            process.stdin.write(chunk)
    except Exception as e:
        errors.append(e)
    finally:
        _close_iterator(chunks)
        try:
            process.stdin.close()
        except OSError:
            pass


def _create_partial_file(output_path: Path) -> Path:
    """
    Create a unique NAME.mp3.<random>.part file next to output_path.

    Each attempt writes its own file, so concurrent fetches of the same
    track never share a partial file.
    """
    fd, name = tempfile.mkstemp(
        dir=output_path.parent,
        prefix=f"{output_path.name}.",
        suffix=PARTIAL_SUFFIX,
    )
    os.close(fd)
    return Path(name)


def _close_iterator(chunks: Any) -> None:
    close = getattr(chunks, "close", None)
    if close is not None:
        close()


def _fsync_file(path: Path) -> None:
    with open(path, "rb+") as f:
        os.fsync(f.fileno())


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug(f"Failed to remove partial file {path}: {e}")
