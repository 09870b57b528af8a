"""
Output sinks for the acquisition orchestrator.

The orchestrator is the same in both delivery modes; only the sink
differs:
    - DiskSink: batch mode, artifacts stay in the download directory
    - ArchiveSink: server mode, artifacts are also appended to a zip
      archive that is streamed to the client while the run progresses

Archive Streaming:
    zipfile writes into an in-memory, non-seekable buffer, so entries
    use data descriptors and no part of the archive is ever rewritten.
    After each track the server calls drain() and sends whatever bytes
    have been produced. close() writes the central directory.
"""

import io
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path

from spot_fetcher.core.logger import get_logger
from spot_fetcher.spotify.models import TrackDescriptor

logger = get_logger(__name__)


class OutputSink(ABC):
    """Receives every artifact the orchestrator produces or finds."""

    @abstractmethod
    def on_fetched(self, descriptor: TrackDescriptor, path: Path) -> None:
        """Called after a track's artifact has been fully written."""

    @abstractmethod
    def on_skipped(self, descriptor: TrackDescriptor, path: Path | None) -> None:
        """Called for a track already in the ledger; path is None if the file is gone."""

    def close(self) -> None:
        """Called once after the last track."""


class DiskSink(OutputSink):
    """Leaves artifacts where the Fetch-Transcode Unit wrote them."""

    def on_fetched(self, descriptor: TrackDescriptor, path: Path) -> None:
        logger.debug(f"Saved {path}")

    def on_skipped(self, descriptor: TrackDescriptor, path: Path | None) -> None:
        pass


class _ChunkBuffer(io.RawIOBase):
    """Write-only, non-seekable byte sink drained by the server."""

    def __init__(self) -> None:
        super().__init__()
        self._chunks: list[bytes] = []

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


class ArchiveSink(OutputSink):
    """
    Streams artifacts into a zip archive with maximum compression.

    Attributes:
        entries: Archive member names in the order they were added.
    """

    def __init__(self, compresslevel: int = 9) -> None:
        self._buffer = _ChunkBuffer()
        self._zip = zipfile.ZipFile(
            self._buffer,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compresslevel,
        )
        self._closed = False
        self.entries: list[str] = []

    def on_fetched(self, descriptor: TrackDescriptor, path: Path) -> None:
        self._append(path)

    def on_skipped(self, descriptor: TrackDescriptor, path: Path | None) -> None:
        if path is None:
            logger.info(f"Already downloaded but file missing, not archived: {descriptor.key}")
            return
        self._append(path)

    def _append(self, path: Path) -> None:
        arcname = path.name
        if arcname in self.entries:
            return
        self._zip.write(path, arcname=arcname)
        self.entries.append(arcname)
        logger.debug(f"Archived {arcname}")

    def drain(self) -> bytes:
        """Bytes written to the archive since the last drain."""
        return self._buffer.drain()

    def close(self) -> None:
        """Finalize the archive (central directory). Idempotent."""
        if not self._closed:
            self._zip.close()
            self._closed = True
