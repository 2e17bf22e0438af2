"""YouTube track source: resolves queries and URLs into track entries using yt-dlp."""

import atexit
import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import yt_dlp
from yt_dlp.utils import DownloadError, ExtractorError

from timefmt import format_duration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackEntry:
    """A resolved, playable track with display metadata."""

    title: str
    url: str
    duration_label: str
    thumbnail_url: str
    requested_by: int


@dataclass(frozen=True)
class PlaylistInfo:
    """Playlist metadata returned alongside its tracks."""

    title: str
    track_count: int


@dataclass
class TrackResolution:
    """Result of resolving a query: the tracks and, for playlists, their grouping."""

    tracks: list[TrackEntry] = field(default_factory=list)
    playlist: PlaylistInfo | None = None


class TrackSource(ABC):
    """Resolves text queries or URLs into track entries."""

    @abstractmethod
    async def search(self, query: str, requested_by: int, limit: int = 1) -> TrackResolution:
        """
        Resolve a query or URL.

        Args:
            query: Free-text search or a URL
            requested_by: User id recorded on every returned entry
            limit: Maximum number of search hits for free-text queries

        Returns:
            TrackResolution, with an empty track list when nothing matched
        """

    @abstractmethod
    async def resolve_stream(self, track: TrackEntry) -> str | None:
        """Return a direct audio stream URL for a track, or None if it cannot be played."""


# User-Agent to use for requests (needed for FFmpeg too)
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

# Cookie file path (place cookies.txt in project root to use)
_COOKIES_FILE = Path(__file__).parent / "cookies.txt"

_COMMON_OPTIONS = {
    "quiet": True,
    "no_warnings": True,
    "http_headers": {"User-Agent": USER_AGENT},
    # Enable multiple JS runtimes as fallback
    "js_runtimes": {"deno": {}, "node": {}, "bun": {}},
    # Enable remote EJS challenge solver scripts
    "remote_components": {"ejs:github": {}},
    "extractor_args": {
        "youtube": {
            "player_client": ["tv", "web"],
            "player_js_variant": ["tv"],
        }
    },
}

# Flat listing: metadata only, no stream resolution (searches and playlists)
_YDL_OPTIONS_FLAT = {
    **_COMMON_OPTIONS,
    "noplaylist": False,
    "extract_flat": "in_playlist",
    "ignoreerrors": True,
}

# Full extraction of a single video, used right before streaming
_YDL_OPTIONS_STREAM = {
    **_COMMON_OPTIONS,
    "format": "251/250/249/140/139/bestaudio/best",
    "noplaylist": True,
}

# Thread pool for running blocking yt-dlp operations
_executor = ThreadPoolExecutor(max_workers=3)
atexit.register(_executor.shutdown, wait=False)


def _get_options(flat: bool) -> dict:
    """Get yt-dlp options with cookies if available."""
    opts = dict(_YDL_OPTIONS_FLAT if flat else _YDL_OPTIONS_STREAM)
    if _COOKIES_FILE.exists():
        opts["cookiefile"] = str(_COOKIES_FILE)
    return opts


def _extract_info(url: str, *, flat: bool) -> dict | None:
    """Extract info from URL or search expression (blocking operation)."""
    with yt_dlp.YoutubeDL(_get_options(flat)) as ydl:
        try:
            return ydl.extract_info(url, download=False)
        except DownloadError as e:
            error_msg = str(e)
            if "JavaScript" in error_msg or "nsig" in error_msg:
                logger.error("yt-dlp requires Deno/Node.js for YouTube (https://deno.land)")
            else:
                logger.warning("yt-dlp could not extract %s: %s", url, error_msg)
            return None
        except ExtractorError as e:
            logger.warning("yt-dlp extractor failed for %s: %s", url, e)
            return None


def is_url(query: str) -> bool:
    """Check if the query is a URL rather than search text."""
    return query.startswith(("http://", "https://"))


def is_playlist_url(url: str) -> bool:
    """Check if the URL is a playlist."""
    return "list=" in url or "/playlist" in url


def _thumbnail_of(info: dict) -> str:
    """Pick a thumbnail URL from a yt-dlp info dict."""
    if info.get("thumbnail"):
        return info["thumbnail"]
    thumbnails = info.get("thumbnails") or []
    if thumbnails:
        return thumbnails[-1].get("url", "")
    return ""


def _entry_to_track(info: dict, requested_by: int) -> TrackEntry | None:
    """Convert a yt-dlp entry (flat or full) into a TrackEntry."""
    url = info.get("webpage_url") or info.get("url")
    if not url and info.get("id"):
        url = f"https://www.youtube.com/watch?v={info['id']}"
    if not url:
        return None

    return TrackEntry(
        title=info.get("title") or "Unknown",
        url=url,
        duration_label=format_duration(int(info.get("duration") or 0)),
        thumbnail_url=_thumbnail_of(info),
        requested_by=requested_by,
    )


class YouTubeTrackSource(TrackSource):
    """Track source backed by yt-dlp searches and URL extraction."""

    async def search(self, query: str, requested_by: int, limit: int = 1) -> TrackResolution:
        if is_url(query):
            target = query
        else:
            target = f"ytsearch{max(limit, 1)}:{query}"

        loop = asyncio.get_running_loop()
        info = await loop.run_in_executor(
            _executor, lambda: _extract_info(target, flat=True)
        )
        if not info:
            return TrackResolution()

        if info.get("_type") == "playlist" or "entries" in info:
            tracks = [
                track
                for track in (
                    _entry_to_track(e, requested_by) for e in info.get("entries") or [] if e
                )
                if track
            ]
            if not tracks:
                return TrackResolution()
            if is_url(query) and is_playlist_url(query):
                playlist = PlaylistInfo(
                    title=info.get("title") or "Playlist", track_count=len(tracks)
                )
                return TrackResolution(tracks=tracks, playlist=playlist)
            return TrackResolution(tracks=tracks[: max(limit, 1)])

        track = _entry_to_track(info, requested_by)
        return TrackResolution(tracks=[track] if track else [])

    async def resolve_stream(self, track: TrackEntry) -> str | None:
        """
        Resolve the direct audio URL right before playback.

        Stream URLs expire, so they are never stored on the entry.
        """
        loop = asyncio.get_running_loop()
        info = await loop.run_in_executor(
            _executor, lambda: _extract_info(track.url, flat=False)
        )
        if not info:
            return None

        # Get the best audio URL
        url = info.get("url")
        if not url:
            # Try to get from formats
            formats = info.get("formats", [])
            audio_formats = [f for f in formats if f.get("acodec") != "none"]
            if audio_formats:
                url = audio_formats[-1].get("url")

        return url or None
