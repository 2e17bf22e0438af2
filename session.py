"""Per-guild playback session state and the store that owns it."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from youtube import TrackEntry

logger = logging.getLogger(__name__)

DEFAULT_VOLUME = 80


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class PlayState(Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


class RepeatMode(Enum):
    OFF = "off"
    TRACK = "track"
    QUEUE = "queue"


@dataclass(eq=False)
class GuildPlaybackSession:
    """
    Playback state for a single guild.

    Fields are mutated only by SessionManager; everything else reads them.
    PLAYING/PAUSED always has a current track and a connection, IDLE never
    has a current track, and the current track is never left in the queue.
    """

    guild_id: int
    notify_target: Any
    backend: Any = None
    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    queue: deque[TrackEntry] = field(default_factory=deque)
    current_track: TrackEntry | None = None
    play_state: PlayState = PlayState.IDLE
    volume: int = DEFAULT_VOLUME
    repeat_mode: RepeatMode = RepeatMode.OFF
    track_start_time: float | None = None
    paused_at: float | None = None
    total_paused_time: float = 0.0
    _teardown_task: asyncio.Task | None = field(default=None, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_active(self) -> bool:
        """True while a track is playing or paused."""
        return self.play_state is not PlayState.IDLE

    @property
    def is_connected(self) -> bool:
        return self.connection_state is ConnectionState.CONNECTED


class SessionStore:
    """Maps guild ids to at most one live session each."""

    def __init__(self):
        self._sessions: dict[int, GuildPlaybackSession] = {}

    def get(self, guild_id: int) -> GuildPlaybackSession | None:
        return self._sessions.get(guild_id)

    def add(self, session: GuildPlaybackSession) -> GuildPlaybackSession:
        """Register a session; an existing session for the guild wins."""
        existing = self._sessions.get(session.guild_id)
        if existing is not None:
            return existing
        self._sessions[session.guild_id] = session
        logger.info("Created playback session for guild %s", session.guild_id)
        return session

    def remove(self, guild_id: int, session: GuildPlaybackSession | None = None) -> bool:
        """
        Drop the session for a guild.

        When ``session`` is given, only that exact instance is removed, so a
        late teardown never evicts a newer session for the same guild.
        """
        current = self._sessions.get(guild_id)
        if current is None or (session is not None and current is not session):
            return False
        del self._sessions[guild_id]
        logger.info("Destroyed playback session for guild %s", guild_id)
        return True

    def is_live(self, session: GuildPlaybackSession) -> bool:
        """Check that a session is still the one registered for its guild."""
        return self._sessions.get(session.guild_id) is session

    def __contains__(self, guild_id: int) -> bool:
        return guild_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
