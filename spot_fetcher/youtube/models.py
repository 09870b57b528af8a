"""
Data models for YouTube search results.

A SourceReference is single-use: it is produced by the locator for one
track, handed to the Fetch-Transcode Unit, and never persisted.
"""

from dataclasses import dataclass
from typing import Any


YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v="
YOUTUBE_MUSIC_WATCH_URL = "https://music.youtube.com/watch?v="


@dataclass(frozen=True)
class SourceReference:
    """
    Immutable locator of a fetchable media source.

    Attributes:
        url: Full watch URL passed to yt-dlp.
             For songs: "https://music.youtube.com/watch?v=..."
             For videos: "https://www.youtube.com/watch?v=..."
        video_id: YouTube video ID (11-character string).
                  Example: "dQw4w9WgXcQ"
        title: Result title as shown by YouTube, for logging only.
    """
    url: str
    video_id: str
    title: str = ""

    @classmethod
    def from_ytmusic_result(cls, data: dict[str, Any]) -> "SourceReference":
        """
        Create a SourceReference from a ytmusicapi search result.

        Raises:
            KeyError: If the result has no videoId.
        """
        video_id = data["videoId"]
        if data.get("resultType") == "song":
            url = f"{YOUTUBE_MUSIC_WATCH_URL}{video_id}"
        else:
            url = f"{YOUTUBE_WATCH_URL}{video_id}"

        return cls(
            url=url,
            video_id=video_id,
            title=data.get("title") or "",
        )
