"""
Source locator for spot-fetcher.

Finds a fetchable YouTube source for each track.

Matching Policy:
    1. Search with the query "{title} {artist}"
    2. Take the first result carrying a videoId, in the order ytmusicapi
       returns them
    3. Return None when nothing usable comes back

    There is no scoring, duration check or fuzzy matching: the search
    provider's own ranking is trusted.

Error Policy:
    Search errors never abort the run. They are logged and the track is
    reported as "no match". With retries > 0 a failed search is repeated
    with exponential backoff before giving up.

Usage:
    from spot_fetcher.youtube.locator import SourceLocator

    locator = SourceLocator(search_filter="videos")
    source = locator.locate(TrackDescriptor(title="Song A", artist="Artist1"))
    if source is None:
        ...  # no match
"""

import time
from typing import Any

from ytmusicapi import YTMusic

from spot_fetcher.core.cancellation import CancellationToken
from spot_fetcher.core.exceptions import SearchFailure
from spot_fetcher.core.logger import get_logger
from spot_fetcher.spotify.models import TrackDescriptor
from spot_fetcher.utils import calculate_backoff
from spot_fetcher.youtube.models import SourceReference

logger = get_logger(__name__)


# Number of results requested from ytmusicapi; only the first usable one counts
SEARCH_LIMIT = 10


class SourceLocator:
    """
    Resolves TrackDescriptors to SourceReferences via YouTube search.

    Attributes:
        _ytmusic: YTMusic client (unauthenticated). Created lazily so that
                  constructing a locator never touches the network.
        _search_filter: ytmusicapi filter, "videos" or "songs".
        _retries: Extra attempts after a failed search.
    """

    def __init__(
        self,
        ytmusic: Any = None,
        search_filter: str = "videos",
        retries: int = 0,
        cancel_token: CancellationToken | None = None
    ) -> None:
        self._ytmusic = ytmusic
        self._search_filter = search_filter
        self._retries = retries
        self._cancel_token = cancel_token

    def _client(self) -> Any:
        if self._ytmusic is None:
            self._ytmusic = YTMusic()
        return self._ytmusic

    def locate(self, descriptor: TrackDescriptor) -> SourceReference | None:
        """
        Find the source for one track.

        Args:
            descriptor: Track to search for.

        Returns:
            SourceReference of the first usable result, or None when the
            search returns nothing usable or fails.
        """
        query = descriptor.search_query

        try:
            results = self._search_with_retry(query)
        except SearchFailure as e:
            logger.warning(f"Search failed for {descriptor.key}: {e.message}")
            return None

        for raw in results:
            if not isinstance(raw, dict) or not raw.get("videoId"):
                continue
            source = SourceReference.from_ytmusic_result(raw)
            logger.debug(f"Matched {descriptor.key} -> {source.url} ({source.title})")
            return source

        return None

    def _search_with_retry(self, query: str) -> list[dict[str, Any]]:
        """
        Run one search, repeating it up to self._retries times on error.

        Raises:
            SearchFailure: When every attempt failed.
        """
        attempts = self._retries + 1
        last_exception: Exception | None = None

        for attempt in range(attempts):
            try:
                return self._client().search(
                    query, filter=self._search_filter, limit=SEARCH_LIMIT
                ) or []
            except Exception as e:
                last_exception = e

                if attempt < attempts - 1:
                    delay = calculate_backoff(attempt)
                    logger.debug(
                        f"Search attempt {attempt + 1}/{attempts} failed: {e}. "
                        f"Retrying in {delay:.1f}s"
                    )
                    if self._sleep(delay):
                        break

        raise SearchFailure(
            f"Search failed after {attempts} attempt(s): {last_exception}",
            details={"query": query, "original_error": str(last_exception)}
        ) from last_exception

    def _sleep(self, delay: float) -> bool:
        """Sleep for delay seconds. Returns True if cancelled meanwhile."""
        if self._cancel_token is not None:
            return self._cancel_token.wait(delay)
        time.sleep(delay)
        return False
