"""
Download module for spot-fetcher.

This module turns resolved tracks into MP3 files:
    - source: YtDlpAudioSource, best-audio byte stream via yt-dlp + requests
    - transcoder: FetchTranscodeUnit, ffmpeg 320 kbps MP3 pipeline
    - sinks: DiskSink / ArchiveSink output strategies
    - orchestrator: AcquisitionOrchestrator, the per-track state machine

Usage:
    from spot_fetcher.download import DiskSink, create_orchestrator

    orchestrator = create_orchestrator(config, ledger, DiskSink(), 10.0)
    summary = orchestrator.run(tracks)
"""

from spot_fetcher.download.orchestrator import (
    AcquisitionOrchestrator,
    RunSummary,
    TrackOutcome,
    TrackState,
    TrackStatus,
    create_orchestrator,
)
from spot_fetcher.download.sinks import ArchiveSink, DiskSink, OutputSink
from spot_fetcher.download.source import YtDlpAudioSource
from spot_fetcher.download.transcoder import FetchTranscodeUnit, FfmpegTranscoder

__all__ = [
    "AcquisitionOrchestrator",
    "RunSummary",
    "TrackOutcome",
    "TrackState",
    "TrackStatus",
    "create_orchestrator",
    "OutputSink",
    "DiskSink",
    "ArchiveSink",
    "YtDlpAudioSource",
    "FetchTranscodeUnit",
    "FfmpegTranscoder",
]
