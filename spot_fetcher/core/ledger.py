"""
Dedup ledger for spot-fetcher.

The ledger is the persisted set of track keys ("{artist} - {title}")
that have already been acquired. A key is in the ledger iff an .mp3 for
it was produced successfully in this or an earlier run.

File Format:
    A pretty-printed UTF-8 JSON array of strings, rewritten in full on
    every update:

        [
          "Artist1 - Song A",
          "Queen - Bohemian Rhapsody"
        ]

Durability:
    record() flushes the whole ledger immediately after every successful
    track, so a crash loses at most the track in flight. Writes go to a
    temporary file in the same directory followed by os.replace(), so a
    crash mid-write never leaves a truncated ledger behind.

Usage:
    ledger = DedupLedger(Path("downloaded_songs.json"))
    ledger.load()

    if not ledger.contains("Queen - Bohemian Rhapsody"):
        ...
        ledger.record("Queen - Bohemian Rhapsody")
"""

import json
import os
import tempfile
import threading
from pathlib import Path

from spot_fetcher.core.exceptions import CorruptLedgerError, LedgerError, LedgerWriteError
from spot_fetcher.core.logger import get_logger

logger = get_logger(__name__)


class DedupLedger:
    """
    JSON-backed set of acquired track keys.

    Insertion order is preserved, both in memory and on disk, so the
    filename-collision resolution that walks the ledger is deterministic.

    Attributes:
        path: Location of the ledger file.

    Thread Safety:
        A run only ever has one writer, but the HTTP server may run
        several requests against the same ledger, so all public methods
        take self._lock.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._keys: list[str] = []
        self._index: set[str] = set()
        self._lock = threading.Lock()

    def load(self) -> set[str]:
        """
        (Re)load the ledger from disk.

        Returns:
            The set of keys on disk; empty when no ledger file exists yet.

        Raises:
            CorruptLedgerError: If the file is not a JSON array of strings.
                                The file is left untouched.
            LedgerError: If the file exists but cannot be read.
        """
        with self._lock:
            if not self.path.exists():
                logger.debug(f"No ledger at {self.path}, starting empty")
                self._keys = []
                self._index = set()
                return set()

            try:
                content = self.path.read_text(encoding="utf-8")
            except OSError as e:
                raise LedgerError(
                    f"Failed to read ledger: {e}",
                    details={"path": str(self.path), "original_error": str(e)}
                ) from e

            try:
                data = json.loads(content)
            except json.JSONDecodeError as e:
                raise CorruptLedgerError(
                    f"Ledger file is not valid JSON: {self.path} (line {e.lineno})",
                    details={"path": str(self.path), "original_error": str(e)}
                ) from e

            if not isinstance(data, list) or not all(isinstance(k, str) for k in data):
                raise CorruptLedgerError(
                    f"Ledger file must contain a JSON array of strings: {self.path}",
                    details={"path": str(self.path)}
                )

            keys: list[str] = []
            index: set[str] = set()
            for key in data:
                if key not in index:
                    keys.append(key)
                    index.add(key)

            self._keys = keys
            self._index = index
            logger.debug(f"Loaded {len(keys)} entries from ledger {self.path}")
            return set(index)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._index

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    @property
    def keys(self) -> list[str]:
        """Snapshot of the ledger keys in insertion order."""
        with self._lock:
            return list(self._keys)

    def record(self, key: str) -> None:
        """
        Add key and persist the full ledger immediately.

        Raises:
            LedgerWriteError: If the ledger cannot be written. The key stays
                              in memory, so the current run will not fetch
                              it again.
        """
        with self._lock:
            if key not in self._index:
                self._keys.append(key)
                self._index.add(key)
            self._persist()

    def _persist(self) -> None:
        """Write the ledger atomically. Caller must hold self._lock."""
        payload = json.dumps(self._keys, indent=2, ensure_ascii=False)
        tmp_name: str | None = None

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise LedgerWriteError(
                f"Failed to write ledger {self.path}: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
