"""Session manager: applies playback commands to guild sessions and reconciles backend events."""

import asyncio
import logging
import random
import re
import time
from collections import deque
from typing import Any, Callable

from notifier import COLOR_SUCCESS, Notice, Notifier
from session import (
    DEFAULT_VOLUME,
    ConnectionState,
    GuildPlaybackSession,
    PlayState,
    RepeatMode,
    SessionStore,
)
from timefmt import parse_timestamp
from voice_backend import (
    BackendError,
    EventKind,
    EventListener,
    PlaybackBackend,
    PlaybackEvent,
)
from youtube import TrackEntry, TrackSource

logger = logging.getLogger(__name__)

BackendFactory = Callable[[int, EventListener], PlaybackBackend]

LOOP_MODES = {
    "track": RepeatMode.TRACK,
    "queue": RepeatMode.QUEUE,
    "off": RepeatMode.OFF,
}

LOOP_ICONS = {
    RepeatMode.OFF: "➡️",
    RepeatMode.TRACK: "🔂",
    RepeatMode.QUEUE: "🔁",
}

_INTEGER = re.compile(r"^[+-]?\d+$")


def _cancel_task(task: asyncio.Task | None) -> None:
    """Cancel a task if it exists and is not done."""
    if task and not task.done():
        task.cancel()


def parse_int(value: Any) -> int | None:
    """Parse an int argument, accepting ints and integer strings only."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INTEGER.match(value.strip()):
        return int(value.strip())
    return None


class SessionManager:
    """Owns guild playback sessions and every mutation applied to them."""

    def __init__(
        self,
        track_source: TrackSource,
        notifier: Notifier,
        backend_factory: BackendFactory,
        *,
        store: SessionStore | None = None,
        can_connect: Callable[[Any], bool] | None = None,
        default_volume: int = DEFAULT_VOLUME,
        leave_on_end_delay: float = 0.0,
        command_prefix: str = "!",
    ):
        self.track_source = track_source
        self.notifier = notifier
        self.store = store if store is not None else SessionStore()
        self._backend_factory = backend_factory
        self._can_connect = can_connect or (lambda channel: True)
        self.default_volume = default_volume
        self.leave_on_end_delay = leave_on_end_delay
        self.command_prefix = command_prefix

    # ============== Lifecycle ==============

    def ensure_session(self, guild_id: int, notify_target: Any) -> GuildPlaybackSession:
        """Get the guild's session, creating one with defaults if none is live."""
        session = self.store.get(guild_id)
        if session is not None:
            return session

        session = GuildPlaybackSession(
            guild_id=guild_id,
            notify_target=notify_target,
            volume=self.default_volume,
        )
        session.backend = self._backend_factory(guild_id, self.handle_event)
        return self.store.add(session)

    def _is_live(self, session: GuildPlaybackSession) -> bool:
        return self.store.is_live(session)

    def _go_idle(self, session: GuildPlaybackSession) -> None:
        session.current_track = None
        session.play_state = PlayState.IDLE
        session.track_start_time = None
        session.paused_at = None
        session.total_paused_time = 0.0

    def _destroy(self, session: GuildPlaybackSession) -> None:
        """Reset a session and drop it from the store."""
        _cancel_task(session._teardown_task)
        session._teardown_task = None
        session.queue.clear()
        self._go_idle(session)
        session.connection_state = ConnectionState.DISCONNECTED
        self.store.remove(session.guild_id, session)

    def _schedule_teardown(self, session: GuildPlaybackSession) -> None:
        _cancel_task(session._teardown_task)
        session._teardown_task = asyncio.create_task(self._teardown_after_delay(session))

    async def _teardown_after_delay(self, session: GuildPlaybackSession) -> None:
        await asyncio.sleep(self.leave_on_end_delay)
        if not self._is_live(session) or session.is_active:
            return

        # Detach first so _destroy doesn't cancel the task it runs in
        session._teardown_task = None
        self._destroy(session)
        await self._disconnect_backend(session)

    async def _disconnect_backend(self, session: GuildPlaybackSession) -> None:
        try:
            await session.backend.disconnect()
        except BackendError as e:
            logger.warning("Failed to disconnect guild %s cleanly: %s", session.guild_id, e)

    async def notify(
        self, session: GuildPlaybackSession, content: str | None = None, notice: Notice | None = None
    ) -> None:
        await self.notifier.send(session.notify_target, content=content, notice=notice)

    # ============== Play / enqueue ==============

    async def _check_voice(self, session: GuildPlaybackSession, voice_channel) -> bool:
        """Ensure there is a voice channel and the bot can connect and speak in it."""
        if voice_channel is None:
            await self.notify(session, "❌ You must be in a voice channel!")
            return False
        if not self._can_connect(voice_channel):
            await self.notify(session, "❌ I need permissions to join and speak!")
            return False
        return True

    async def _connect(self, session: GuildPlaybackSession, voice_channel) -> bool:
        """Connect the session's backend if needed. Returns False if the session is gone or failed."""
        if session.is_connected and session.backend.is_connected():
            return True

        try:
            await session.backend.connect(voice_channel)
        except BackendError as e:
            logger.warning("Voice connection failed for guild %s: %s", session.guild_id, e)
            await self.handle_event(
                PlaybackEvent(EventKind.CONNECTION_ERROR, session.guild_id, error=str(e))
            )
            return False

        if not self._is_live(session):
            # Stopped while connecting
            await self._disconnect_backend(session)
            return False

        session.connection_state = ConnectionState.CONNECTED
        await session.backend.set_volume(session.volume)
        return True

    async def play(
        self,
        session: GuildPlaybackSession,
        voice_channel,
        query: str | None,
        requested_by: int = 0,
    ) -> bool:
        """
        Resolve a query and add the result to the queue, starting playback if idle.

        Args:
            session: Target guild session
            voice_channel: Voice channel of the requester, or None if they aren't in one
            query: Search text or URL
            requested_by: User id recorded on the queued entries

        Returns:
            True if something was queued
        """
        if not await self._check_voice(session, voice_channel):
            return False

        query = (query or "").strip()
        if not query:
            await self.notify(session, f"❌ Provide a song name or URL! Usage: `{self.command_prefix}play <query>`")
            return False

        await self.notify(session, f"🔍 Searching: **{query}**")
        resolution = await self.track_source.search(query, requested_by, limit=1)

        if not resolution.tracks:
            await self.notify(session, "❌ No results found!")
            return False

        if not self._is_live(session):
            await self.notify(session, f"🛑 Playback was stopped before **{query}** finished loading.")
            return False

        if not await self._connect(session, voice_channel):
            return False

        if resolution.playlist:
            session.queue.extend(resolution.tracks)
            await self.notify(
                session,
                f"✅ Added playlist **{resolution.playlist.title}** ({len(resolution.tracks)} tracks)",
            )
        else:
            track = resolution.tracks[0]
            session.queue.append(track)
            await self.handle_event(PlaybackEvent(EventKind.TRACK_ADD, session.guild_id, track=track))

        await self._start_if_idle(session)
        return True

    async def enqueue(self, session: GuildPlaybackSession, voice_channel, track: TrackEntry) -> bool:
        """Queue an already-resolved track (from the search picker), starting playback if idle."""
        if not await self._check_voice(session, voice_channel):
            return False
        if not self._is_live(session) or not await self._connect(session, voice_channel):
            return False

        session.queue.append(track)
        await self.handle_event(PlaybackEvent(EventKind.TRACK_ADD, session.guild_id, track=track))
        await self._start_if_idle(session)
        return True

    async def _start_if_idle(self, session: GuildPlaybackSession) -> None:
        """Start the head of the queue unless something is already playing."""
        async with session._lock:
            if session.is_active or not self._is_live(session):
                return
            await self._start_next(session)

    # ============== Advancing (callers hold session._lock) ==============

    async def _start_track(self, session: GuildPlaybackSession, track: TrackEntry) -> bool:
        """Make ``track`` current and stream it. Returns False if the stream failed."""
        _cancel_task(session._teardown_task)
        session._teardown_task = None

        session.current_track = track
        session.play_state = PlayState.PLAYING
        session.track_start_time = time.time()
        session.paused_at = None
        session.total_paused_time = 0.0

        try:
            await session.backend.play(track)
        except BackendError as e:
            logger.warning("Could not start %s in guild %s: %s", track.title, session.guild_id, e)
            if session.current_track is track:
                self._go_idle(session)
            if self._is_live(session):
                await self.notify(session, f"❌ Error: {e}")
            return False

        return self._is_live(session)

    async def _start_next(self, session: GuildPlaybackSession) -> bool:
        """Promote queue entries until one starts; go idle and end the queue if none does."""
        while session.queue:
            track = session.queue.popleft()
            if await self._start_track(session, track):
                return True
            if not self._is_live(session):
                return False

        self._go_idle(session)
        await self.handle_event(PlaybackEvent(EventKind.QUEUE_END, session.guild_id))
        return False

    async def _advance(self, session: GuildPlaybackSession) -> None:
        """Move past the current track according to the repeat mode."""
        finished = session.current_track

        if finished is not None and session.repeat_mode is RepeatMode.TRACK:
            if await self._start_track(session, finished):
                return
        elif finished is not None and session.repeat_mode is RepeatMode.QUEUE:
            self._go_idle(session)
            session.queue.append(finished)

        await self._start_next(session)

    # ============== Playback commands ==============

    async def _require_active(self, session: GuildPlaybackSession) -> bool:
        if not session.is_active:
            await self.notify(session, "❌ Nothing playing!")
            return False
        return True

    async def skip(self, session: GuildPlaybackSession) -> bool:
        """Skip the current track. Returns True if something was playing."""
        if not await self._require_active(session):
            return False

        async with session._lock:
            if not self._is_live(session) or not session.is_active:
                return False
            await self.notify(session, "⏭️ Skipped")
            await self._advance(session)
        return True

    async def stop(self, session: GuildPlaybackSession) -> bool:
        """Clear everything, disconnect and drop the session."""
        was_busy = session.is_active or bool(session.queue) or session.is_connected
        self._destroy(session)
        await self._disconnect_backend(session)

        if was_busy:
            await self.notify(session, "🛑 Stopped!")
        else:
            await self.notify(session, "❌ Nothing playing!")
        return was_busy

    async def pause(self, session: GuildPlaybackSession) -> bool:
        if not await self._require_active(session):
            return False

        # Waits out a track that is still starting, so the backend has a stream to pause
        async with session._lock:
            if not self._is_live(session) or not session.is_active:
                await self.notify(session, "❌ Nothing playing!")
                return False
            if session.play_state is PlayState.PAUSED:
                await self.notify(session, "⏸️ Already paused!")
                return False

            session.play_state = PlayState.PAUSED
            session.paused_at = time.time()
            await session.backend.pause()

        await self.notify(session, "⏸️ Paused!")
        return True

    async def resume(self, session: GuildPlaybackSession) -> bool:
        if not await self._require_active(session):
            return False

        async with session._lock:
            if not self._is_live(session) or not session.is_active:
                await self.notify(session, "❌ Nothing playing!")
                return False
            if session.play_state is PlayState.PLAYING:
                await self.notify(session, "▶️ Already playing!")
                return False

            session.play_state = PlayState.PLAYING
            if session.paused_at:
                session.total_paused_time += time.time() - session.paused_at
                session.paused_at = None
            await session.backend.resume()

        await self.notify(session, "▶️ Resumed!")
        return True

    async def show_volume(self, session: GuildPlaybackSession) -> None:
        await self.notify(session, f"🔊 Volume: **{session.volume}%**")

    async def set_volume(self, session: GuildPlaybackSession, value: int | str) -> bool:
        """Set volume (1-100). Rejected values leave the volume untouched."""
        volume = parse_int(value)
        if volume is None or not 1 <= volume <= 100:
            await self.notify(session, "❌ Volume must be 1-100!")
            return False

        async with session._lock:
            session.volume = volume
            await session.backend.set_volume(volume)
        await self.notify(session, f"🔊 Volume: **{volume}%**")
        return True

    async def seek(self, session: GuildPlaybackSession, time_label: str | None) -> bool:
        """Seek within the current track to MM:SS or HH:MM:SS."""
        if not await self._require_active(session):
            return False
        if not time_label:
            await self.notify(session, "❌ Provide time (MM:SS)!")
            return False

        seconds = parse_timestamp(time_label)
        if seconds is None:
            await self.notify(session, "❌ Invalid format! Use MM:SS or HH:MM:SS.")
            return False

        async with session._lock:
            if not self._is_live(session) or not session.is_active:
                await self.notify(session, "❌ Nothing playing!")
                return False
            try:
                await session.backend.seek(seconds * 1000)
                if session.play_state is PlayState.PAUSED:
                    await session.backend.pause()
            except BackendError as e:
                await self.notify(session, f"❌ Error: {e}")
                return False

            now = time.time()
            session.track_start_time = now - seconds
            session.total_paused_time = 0.0
            session.paused_at = now if session.play_state is PlayState.PAUSED else None

        await self.notify(session, f"⏩ Seeked to {time_label}")
        return True

    async def set_loop(self, session: GuildPlaybackSession, mode: str | None) -> bool:
        """Set the repeat mode. No mode means track repeat."""
        repeat = LOOP_MODES.get((mode or "track").strip().lower())
        if repeat is None:
            await self.notify(session, f"❌ Use: `{self.command_prefix}loop track/queue/off`")
            return False

        session.repeat_mode = repeat
        labels = {
            RepeatMode.TRACK: "Track loop",
            RepeatMode.QUEUE: "Queue loop",
            RepeatMode.OFF: "Loop off",
        }
        await self.notify(session, f"{LOOP_ICONS[repeat]} {labels[repeat]}")
        return True

    # ============== Queue commands ==============

    async def _queue_position(self, session: GuildPlaybackSession, value: Any) -> int | None:
        """Validate a 1-based queue position. Returns the 0-based index, or None after reporting."""
        position = parse_int(value)
        size = len(session.queue)
        if position is None or not 1 <= position <= size:
            valid = "1" if size == 1 else f"1 and {size}"
            await self.notify(session, f"❌ Invalid track number! Choose between {valid}.")
            return None
        return position - 1

    async def shuffle(self, session: GuildPlaybackSession) -> bool:
        """Shuffle the queue (the current track stays put)."""
        if not session.queue:
            await self.notify(session, "❌ Queue empty!")
            return False

        if len(session.queue) < 2:
            await self.notify(session, "🔀 Only one track in queue.")
            return True

        tracks = list(session.queue)
        random.shuffle(tracks)
        session.queue = deque(tracks)
        await self.notify(session, f"🔀 Shuffled **{len(tracks)}** tracks!")
        return True

    async def remove(self, session: GuildPlaybackSession, position: int | str) -> bool:
        """Remove a queued track by its 1-based position."""
        if not session.queue:
            await self.notify(session, "❌ Queue empty!")
            return False

        index = await self._queue_position(session, position)
        if index is None:
            return False

        track = session.queue[index]
        del session.queue[index]
        await self.notify(session, f"🗑️ Removed **{track.title}**")
        return True

    async def jump(self, session: GuildPlaybackSession, position: int | str) -> bool:
        """Play the track at a 1-based position now, discarding everything queued before it."""
        async with session._lock:
            if not self._is_live(session):
                return False
            if not session.queue:
                await self.notify(session, "❌ Queue empty!")
                return False

            index = await self._queue_position(session, position)
            if index is None:
                return False
            if not session.is_connected:
                await self.notify(session, "❌ Nothing playing!")
                return False

            for _ in range(index):
                session.queue.popleft()
            target = session.queue.popleft()
            self._go_idle(session)

            await self.notify(session, f"⏭️ Jumped to track {index + 1}")
            if not await self._start_track(session, target):
                await self._start_next(session)
        return True

    async def clear(self, session: GuildPlaybackSession) -> bool:
        """Empty the queue without touching the current track."""
        if not session.queue:
            await self.notify(session, "❌ Queue already empty!")
            return False

        session.queue.clear()
        await self.notify(session, "🗑️ Queue cleared!")
        return True

    # ============== Read-only views ==============

    def list_queue(self, session: GuildPlaybackSession) -> list[TrackEntry]:
        return list(session.queue)

    def now_playing(self, session: GuildPlaybackSession) -> TrackEntry | None:
        return session.current_track

    def elapsed_seconds(self, session: GuildPlaybackSession) -> int | None:
        """Get elapsed playback time in seconds, accounting for pauses."""
        if not session.track_start_time or not session.current_track:
            return None

        if session.paused_at:
            # Currently paused - calculate time up to pause
            elapsed = session.paused_at - session.track_start_time - session.total_paused_time
        else:
            elapsed = time.time() - session.track_start_time - session.total_paused_time

        return max(0, int(elapsed))

    # ============== Event reconciliation ==============

    def _now_playing_notice(self, session: GuildPlaybackSession, track: TrackEntry) -> Notice:
        notice = Notice(
            title="🎵 Now Playing",
            description=f"**[{track.title}]({track.url})**",
            thumbnail_url=track.thumbnail_url or None,
            footer=f"Volume: {session.volume}%",
            color=COLOR_SUCCESS,
        )
        notice.add_field("Duration", track.duration_label, inline=True)
        notice.add_field("Requested by", f"<@{track.requested_by}>", inline=True)
        return notice

    async def handle_event(self, event: PlaybackEvent) -> None:
        """Apply one playback event to the guild's session. Stale events are dropped."""
        session = self.store.get(event.guild_id)
        if session is None:
            logger.debug("Dropping %s for guild %s: no session", event.kind.value, event.guild_id)
            return
        if event.source is not None and event.source is not session.backend:
            logger.debug("Dropping stale %s for guild %s", event.kind.value, event.guild_id)
            return

        logger.debug("Guild %s: %s", event.guild_id, event.kind.value)

        if event.kind is EventKind.TRACK_START:
            if session.is_active and session.current_track is event.track:
                await self.notify(session, notice=self._now_playing_notice(session, event.track))

        elif event.kind is EventKind.TRACK_ADD:
            await self.notify(session, f"✅ Added **{event.track.title}** to the queue!")

        elif event.kind is EventKind.TRACK_END:
            async with session._lock:
                if not self._is_live(session) or session.current_track is not event.track:
                    return
                if not session.backend.is_connected():
                    # The disconnect event will tear the session down
                    return
                await self._advance(session)

        elif event.kind is EventKind.QUEUE_END:
            self._go_idle(session)
            await self.notify(session, "📭 Queue finished! Leaving voice channel.")
            self._schedule_teardown(session)

        elif event.kind is EventKind.DISCONNECT:
            self._destroy(session)
            await self.notify(session, "👋 Disconnected from voice channel.")

        elif event.kind is EventKind.ERROR:
            logger.error("Playback error in guild %s: %s", event.guild_id, event.error)
            await self.notify(session, f"❌ Error: {event.error}")

        elif event.kind is EventKind.CONNECTION_ERROR:
            await self.notify(session, f"❌ Connection error: {event.error}")

    async def handle_voice_disconnect(self, guild_id: int) -> None:
        """React to the bot leaving voice (kicked, channel deleted, etc.)."""
        session = self.store.get(guild_id)
        if session is None or session.backend.is_connected():
            # Nothing to do, or a stale update from a connection that was already replaced
            return
        await self.handle_event(PlaybackEvent(EventKind.DISCONNECT, guild_id))
