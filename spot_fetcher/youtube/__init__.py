"""
YouTube integration module for spot-fetcher.

This module handles locating audio sources on YouTube:
    - locator: SourceLocator, first-result search via ytmusicapi
    - models: SourceReference data class

Usage:
    from spot_fetcher.youtube import SourceLocator

    locator = SourceLocator()
    source = locator.locate(track)
"""

from spot_fetcher.youtube.locator import SourceLocator
from spot_fetcher.youtube.models import SourceReference

__all__ = [
    "SourceLocator",
    "SourceReference",
]
