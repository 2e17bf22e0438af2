"""Playback backend: the per-guild voice connection that streams tracks through FFmpeg."""

import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import discord

from youtube import USER_AGENT, TrackEntry

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when the voice connection or a stream cannot be established."""

    pass


class EventKind(Enum):
    TRACK_START = "track_start"
    TRACK_ADD = "track_add"
    TRACK_END = "track_end"
    QUEUE_END = "queue_end"
    DISCONNECT = "disconnect"
    ERROR = "error"
    CONNECTION_ERROR = "connection_error"


@dataclass(frozen=True)
class PlaybackEvent:
    """A lifecycle event for one guild's playback."""

    kind: EventKind
    guild_id: int
    track: TrackEntry | None = None
    error: str | None = None
    source: Any = None


EventListener = Callable[[PlaybackEvent], Awaitable[None]]
StreamResolver = Callable[[TrackEntry], Awaitable[str | None]]


class PlaybackBackend(ABC):
    """Voice connection for one guild. Streams one track at a time."""

    @abstractmethod
    async def connect(self, voice_channel) -> None:
        """Join (or move to) a voice channel. Raises BackendError on failure."""

    @abstractmethod
    async def play(self, track: TrackEntry) -> None:
        """Replace whatever is streaming with ``track``. Raises BackendError on failure."""

    @abstractmethod
    async def pause(self) -> None: ...

    @abstractmethod
    async def resume(self) -> None: ...

    @abstractmethod
    async def set_volume(self, volume: int) -> None:
        """Scale output volume, 1-100."""

    @abstractmethod
    async def seek(self, position_ms: int) -> None:
        """Restart the current track at ``position_ms``."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop streaming without emitting a track end."""

    @abstractmethod
    async def disconnect(self) -> None: ...

    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def is_playing(self) -> bool: ...

    @abstractmethod
    def is_paused(self) -> bool: ...


# FFmpeg options for reconnecting on network issues
# Include User-Agent header to avoid 403 errors from YouTube
FFMPEG_BEFORE_OPTIONS = (
    "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5 "
    "-reconnect_on_network_error 1 -reconnect_on_http_error 4xx,5xx "
    f'-headers "User-Agent: {USER_AGENT}\r\n"'
)
# Output options for audio conversion
FFMPEG_OPTIONS = "-vn -bufsize 64k"


def has_voice_permissions(voice_channel) -> bool:
    """Check that the bot may join and speak in a voice channel."""
    permissions = voice_channel.permissions_for(voice_channel.guild.me)
    return bool(permissions.connect and permissions.speak)


class DiscordVoiceBackend(PlaybackBackend):
    """discord.py voice client streaming FFmpeg-decoded audio."""

    def __init__(self, guild_id: int, listener: EventListener, resolve_stream: StreamResolver):
        self.guild_id = guild_id
        self._listener = listener
        self._resolve_stream = resolve_stream
        self.voice_client: discord.VoiceClient | None = None
        self._volume = 80
        self._current: TrackEntry | None = None
        self._stream_url: str | None = None
        # Bumped every time a stream is replaced; stale after-callbacks compare against it
        self._generation = 0

    async def connect(self, voice_channel) -> None:
        if self.voice_client and self.voice_client.is_connected():
            if self.voice_client.channel.id != voice_channel.id:
                await self.voice_client.move_to(voice_channel)
            return

        try:
            self.voice_client = await voice_channel.connect(self_deaf=True)
        except (discord.ClientException, asyncio.TimeoutError, discord.opus.OpusNotLoaded) as e:
            self.voice_client = None
            raise BackendError(f"Could not join {voice_channel.name}: {e}") from e

    async def play(self, track: TrackEntry) -> None:
        stream_url = await self._resolve_stream(track)
        if not stream_url:
            raise BackendError(f"Could not load a stream for {track.title}")
        self._start_stream(track, stream_url, offset_seconds=0)
        await self._emit(PlaybackEvent(EventKind.TRACK_START, self.guild_id, track=track, source=self))

    async def seek(self, position_ms: int) -> None:
        if not self._current or not self._stream_url:
            raise BackendError("Nothing is streaming")
        self._start_stream(self._current, self._stream_url, offset_seconds=position_ms / 1000)

    def _start_stream(self, track: TrackEntry, stream_url: str, offset_seconds: float) -> None:
        if not self.voice_client or not self.voice_client.is_connected():
            raise BackendError("Not connected to a voice channel")

        before_options = FFMPEG_BEFORE_OPTIONS
        if offset_seconds:
            before_options = f"-ss {offset_seconds:.3f} {before_options}"

        try:
            source = discord.FFmpegPCMAudio(
                stream_url,
                before_options=before_options,
                options=FFMPEG_OPTIONS,
                stderr=subprocess.PIPE,  # Capture FFmpeg errors
            )
        except discord.ClientException as e:
            raise BackendError(f"Failed to start FFmpeg: {e}") from e

        self._generation += 1
        generation = self._generation
        if self.voice_client.is_playing() or self.voice_client.is_paused():
            self.voice_client.stop()

        self._current = track
        self._stream_url = stream_url
        volume_source = discord.PCMVolumeTransformer(source, volume=self._volume / 100)
        self.voice_client.play(
            volume_source, after=self._make_after_callback(track, generation, volume_source)
        )

    def _make_after_callback(self, track: TrackEntry, generation: int, source):
        """Create the after-playback callback for the voice client (runs on the player thread)."""
        def after_callback(error):
            if generation != self._generation:
                return

            message = str(error) if error else None
            proc = getattr(source.original, "_process", None)
            if not message and proc and proc.returncode:
                message = f"FFmpeg exited with code {proc.returncode}"
                logger.error("FFmpeg crashed with code %s for: %s", proc.returncode, track.title)

            if self.voice_client and self.voice_client.loop:
                asyncio.run_coroutine_threadsafe(
                    self._finish(track, message), self.voice_client.loop
                )

        return after_callback

    async def _finish(self, track: TrackEntry, error: str | None) -> None:
        if error:
            await self._emit(
                PlaybackEvent(EventKind.ERROR, self.guild_id, track=track, error=error, source=self)
            )
        self._current = None
        self._stream_url = None
        await self._emit(PlaybackEvent(EventKind.TRACK_END, self.guild_id, track=track, source=self))

    async def _emit(self, event: PlaybackEvent) -> None:
        try:
            await self._listener(event)
        except Exception:
            logger.exception("Playback event handler failed for %s", event.kind.value)

    async def pause(self) -> None:
        if self.voice_client and self.voice_client.is_playing():
            self.voice_client.pause()

    async def resume(self) -> None:
        if self.voice_client and self.voice_client.is_paused():
            self.voice_client.resume()

    async def set_volume(self, volume: int) -> None:
        self._volume = volume
        # PCMVolumeTransformer wraps the source
        if self.voice_client and self.voice_client.source is not None:
            if hasattr(self.voice_client.source, "volume"):
                self.voice_client.source.volume = volume / 100

    async def stop(self) -> None:
        self._generation += 1
        self._current = None
        self._stream_url = None
        if self.voice_client and (self.voice_client.is_playing() or self.voice_client.is_paused()):
            self.voice_client.stop()

    async def disconnect(self) -> None:
        await self.stop()
        if self.voice_client:
            await self.voice_client.disconnect()
            self.voice_client = None

    def is_connected(self) -> bool:
        return bool(self.voice_client and self.voice_client.is_connected())

    def is_playing(self) -> bool:
        return bool(self.voice_client and self.voice_client.is_playing())

    def is_paused(self) -> bool:
        return bool(self.voice_client and self.voice_client.is_paused())
