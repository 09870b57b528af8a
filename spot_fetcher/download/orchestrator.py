"""
Acquisition orchestrator for spot-fetcher.

Drives the per-track state machine shared by the batch CLI and the
HTTP server. The two entry points differ only in the output sink and
the pacing delay they pass in.

Per-track States:
    PENDING ──(in ledger)──────────────────────────> SKIPPED ─> DONE
    PENDING ──(no search result)───────────────────────────────> DONE
    PENDING ─> LOCATED ─> FETCHING ─> FETCHED ──────────────────> DONE
                                  └─> FETCH_FAILED ─────────────> DONE

Ordering Rules:
    - The ledger is checked before searching, so known tracks cost no
      network round trip.
    - On FETCHED the key is recorded in the ledger (flushed to disk)
      before the sink sees the file.
    - The pacing delay follows every real fetch attempt (success or
      failure) except on the last track. Skipped and no-match tracks
      are not paced.
    - Tracks are processed strictly one at a time.

Failure Isolation:
    Nothing raised while processing a single track stops the run. Search
    errors become "no-match" in the locator; fetch/transcode errors and
    ledger write errors become "failed" here. Run-level failures (bad
    reference, auth, playlist fetch, corrupt ledger) happen before the
    loop starts.

Usage:
    orchestrator = AcquisitionOrchestrator(
        locator, fetcher, ledger, DiskSink(), pacing_seconds=10.0
    )
    summary = orchestrator.run(tracks)
    print(summary.fetched, summary.no_match)
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Any, Iterator, Sequence

from spot_fetcher.core.cancellation import CancellationToken
from spot_fetcher.core.config import Config
from spot_fetcher.core.exceptions import FetchTranscodeFailure, LedgerWriteError
from spot_fetcher.core.ledger import DedupLedger
from spot_fetcher.core.logger import get_logger, log_download_failure, log_no_match
from spot_fetcher.download.sinks import OutputSink
from spot_fetcher.download.source import YtDlpAudioSource
from spot_fetcher.download.transcoder import FetchTranscodeUnit
from spot_fetcher.spotify.models import TrackDescriptor
from spot_fetcher.youtube.locator import SourceLocator
from spot_fetcher.youtube.models import SourceReference

logger = get_logger(__name__)


class TrackState(Enum):
    """States a track passes through during one run."""
    PENDING = auto()
    LOCATED = auto()
    SKIPPED = auto()
    FETCHING = auto()
    FETCHED = auto()
    FETCH_FAILED = auto()
    DONE = auto()


class TrackStatus(str, Enum):
    """Final outcome of one track."""
    SKIPPED = "skipped"
    NO_MATCH = "no-match"
    FETCHED = "fetched"
    FAILED = "failed"


@dataclass
class TrackOutcome:
    """
    Result of processing one track.

    Attributes:
        descriptor: The track.
        status: Final outcome.
        history: States visited, in order, ending with DONE.
        source: Located source, when the search found one.
        path: Artifact path for fetched tracks, or the existing file for
              skipped ones (None if it is no longer on disk).
        error: Failure message for failed tracks.
    """
    descriptor: TrackDescriptor
    status: TrackStatus | None = None
    history: list[TrackState] = field(default_factory=lambda: [TrackState.PENDING])
    source: SourceReference | None = None
    path: Path | None = None
    error: str | None = None

    @property
    def state(self) -> TrackState:
        return self.history[-1]

    @property
    def fetch_attempted(self) -> bool:
        return TrackState.FETCHING in self.history

    def advance(self, state: TrackState) -> None:
        logger.debug(f"{self.descriptor.key}: {self.state.name} -> {state.name}")
        self.history.append(state)

    def finish(self, status: TrackStatus) -> "TrackOutcome":
        self.status = status
        self.advance(TrackState.DONE)
        return self


@dataclass
class RunSummary:
    """Per-track outcomes of a run plus the counts for the summary log."""
    total: int = 0
    outcomes: list[TrackOutcome] = field(default_factory=list)
    cancelled: bool = False

    def add(self, outcome: TrackOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: TrackStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def fetched(self) -> int:
        return self.count(TrackStatus.FETCHED)

    @property
    def skipped(self) -> int:
        return self.count(TrackStatus.SKIPPED)

    @property
    def no_match(self) -> int:
        return self.count(TrackStatus.NO_MATCH)

    @property
    def failed(self) -> int:
        return self.count(TrackStatus.FAILED)


class AcquisitionOrchestrator:
    """
    Sequences locate, fetch, record and pace for every track.

    Attributes:
        _locator: SourceLocator (or anything with locate()).
        _fetcher: FetchTranscodeUnit (or anything with fetch_and_transcode()
                  and existing_path()).
        _ledger: Loaded DedupLedger.
        _sink: OutputSink receiving the artifacts.
        _pacing_seconds: Delay after each fetch attempt.
        _cancel_token: Checked before each track and during pacing.
    """

    def __init__(
        self,
        locator: Any,
        fetcher: Any,
        ledger: DedupLedger,
        sink: OutputSink,
        pacing_seconds: float,
        cancel_token: CancellationToken | None = None
    ) -> None:
        self._locator = locator
        self._fetcher = fetcher
        self._ledger = ledger
        self._sink = sink
        self._pacing_seconds = pacing_seconds
        self._cancel_token = cancel_token or CancellationToken()

    @property
    def cancel_token(self) -> CancellationToken:
        return self._cancel_token

    def iter_run(self, tracks: Sequence[TrackDescriptor]) -> Iterator[TrackOutcome]:
        """
        Process tracks in order, yielding each outcome as soon as it is final.

        Stops early, without error, when the cancellation token is set.
        """
        total = len(tracks)

        for index, descriptor in enumerate(tracks):
            if self._cancel_token.is_cancelled():
                logger.warning(f"Cancelled, {total - index} track(s) not processed")
                return

            outcome = self.process_track(descriptor)
            yield outcome

            is_last = index == total - 1
            if outcome.fetch_attempted and not is_last and self._pacing_seconds > 0:
                self._cancel_token.wait(self._pacing_seconds)

    def run(self, tracks: Sequence[TrackDescriptor], progress: Any = None) -> RunSummary:
        """
        Process every track and return the summary.

        Args:
            tracks: Resolved playlist tracks.
            progress: Optional AcquisitionProgressBar, updated per track.
        """
        summary = RunSummary(total=len(tracks))

        try:
            for outcome in self.iter_run(tracks):
                summary.add(outcome)
                if progress is not None:
                    progress.update(outcome.status.value)
        finally:
            self._sink.close()

        summary.cancelled = len(summary.outcomes) < summary.total
        return summary

    def process_track(self, descriptor: TrackDescriptor) -> TrackOutcome:
        """
        Run one track through the state machine.

        Never raises for per-track problems; the returned outcome says
        what happened.
        """
        key = descriptor.key
        outcome = TrackOutcome(descriptor=descriptor)

        # Dedup before searching
        if self._ledger.contains(key):
            outcome.advance(TrackState.SKIPPED)
            outcome.path = self._fetcher.existing_path(key)
            logger.info(f"Skipping {key} (already downloaded)")
            self._sink.on_skipped(descriptor, outcome.path)
            return outcome.finish(TrackStatus.SKIPPED)

        source = self._locator.locate(descriptor)
        if source is None:
            log_no_match(logger, key, descriptor.search_query)
            return outcome.finish(TrackStatus.NO_MATCH)

        outcome.source = source
        outcome.advance(TrackState.LOCATED)

        logger.info(f"Downloading: {key}")
        outcome.advance(TrackState.FETCHING)
        try:
            path = self._fetcher.fetch_and_transcode(source, key)
        except FetchTranscodeFailure as e:
            outcome.advance(TrackState.FETCH_FAILED)
            outcome.error = e.message
            log_download_failure(logger, key, source.url, e.message)
            return outcome.finish(TrackStatus.FAILED)
        except Exception as e:
            outcome.advance(TrackState.FETCH_FAILED)
            outcome.error = str(e)
            logger.debug(f"Unexpected error while downloading {key}", exc_info=True)
            log_download_failure(logger, key, source.url, str(e))
            return outcome.finish(TrackStatus.FAILED)

        outcome.advance(TrackState.FETCHED)
        outcome.path = path
        status = TrackStatus.FETCHED

        try:
            self._ledger.record(key)
        except LedgerWriteError as e:
            logger.critical(
                f"Downloaded {key} but could not update the ledger: {e.message}. "
                f"It will be downloaded again on the next run."
            )
            outcome.error = e.message
            status = TrackStatus.FAILED

        try:
            self._sink.on_fetched(descriptor, path)
        except Exception as e:
            logger.error(f"Failed to deliver {path.name}: {e}", exc_info=True)
            outcome.error = str(e)
            status = TrackStatus.FAILED

        if status == TrackStatus.FETCHED:
            logger.info(f"Downloaded: {key}")
        return outcome.finish(status)


# =========================================================================
# Convenience Functions (called by CLI and server)
# =========================================================================

def create_orchestrator(
    config: Config,
    ledger: DedupLedger,
    sink: OutputSink,
    pacing_seconds: float,
    cancel_token: CancellationToken | None = None,
    locator: Any = None,
    source: Any = None,
    transcoder: Any = None
) -> AcquisitionOrchestrator:
    """
    Build an orchestrator wired to the real collaborators.

    The ledger must already be loaded: its keys seed the filename claims
    of the Fetch-Transcode Unit.

    Args:
        config: Application configuration.
        ledger: Loaded ledger.
        sink: DiskSink (batch) or ArchiveSink (server).
        pacing_seconds: config.download.batch_delay_seconds or
                        config.download.serve_delay_seconds.
        cancel_token: Token shared with the caller, created if omitted.
        locator, source, transcoder: Collaborator overrides (tests).
    """
    cancel_token = cancel_token or CancellationToken()

    if locator is None:
        locator = SourceLocator(
            search_filter=config.download.search_filter,
            retries=config.download.retries,
            cancel_token=cancel_token,
        )

    fetcher = FetchTranscodeUnit(
        download_dir=config.output.directory,
        source=source or YtDlpAudioSource(cookie_file=config.download.cookie_file),
        transcoder=transcoder,
        claimed_keys=ledger.keys,
        retries=config.download.retries,
        cancel_token=cancel_token,
    )

    return AcquisitionOrchestrator(
        locator=locator,
        fetcher=fetcher,
        ledger=ledger,
        sink=sink,
        pacing_seconds=pacing_seconds,
        cancel_token=cancel_token,
    )
