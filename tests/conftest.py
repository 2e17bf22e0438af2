"""Shared pytest fixtures for the music bot test suite."""

from unittest.mock import MagicMock, PropertyMock, patch

import pytest
import pytest_asyncio

from config import BotConfig
from main import MusicBot
from search import SearchCoordinator
from session_manager import SessionManager
from tests.fixtures.fakes import FakeBackendFactory, FakeNotifier, FakeTrackSource
from tests.fixtures.mocks import create_mock_text_channel, create_mock_voice_channel
from tests.fixtures.track_data import get_sample_tracks, make_track
from youtube import PlaylistInfo, TrackResolution

GUILD_ID = 987654321
BOT_USER_ID = 424242


# ============================================================================
# Discord.py Mocks
# ============================================================================


@pytest.fixture
def mock_voice_channel():
    """Mock Discord voice channel the requester is in."""
    return create_mock_voice_channel()


@pytest.fixture
def mock_text_channel():
    """Mock text channel commands are issued from."""
    return create_mock_text_channel()


@pytest.fixture
def mock_voice_client():
    """Mock Discord voice client."""
    client = MagicMock()
    client.is_connected.return_value = True
    client.is_playing.return_value = False
    client.is_paused.return_value = False
    return client


# ============================================================================
# Track Fixtures
# ============================================================================


@pytest.fixture
def sample_tracks():
    """Three distinct sample tracks."""
    return get_sample_tracks(3)


@pytest.fixture
def search_tracks():
    """Five search candidates for the interactive picker."""
    return [make_track(f"Result {i}") for i in range(1, 6)]


@pytest.fixture
def track_source(sample_tracks, search_tracks):
    """Track source with single tracks, a playlist and a multi-result search."""
    a, b, c = sample_tracks
    return FakeTrackSource(
        {
            "song a": TrackResolution(tracks=[a]),
            "song b": TrackResolution(tracks=[b]),
            "song c": TrackResolution(tracks=[c]),
            "https://www.youtube.com/playlist?list=PL123": TrackResolution(
                tracks=[a, b, c], playlist=PlaylistInfo(title="Greatest Hits", track_count=3)
            ),
            "lofi": TrackResolution(tracks=search_tracks),
        }
    )


# ============================================================================
# Session Manager Fixtures
# ============================================================================


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def backend_factory():
    return FakeBackendFactory()


@pytest.fixture
def manager(track_source, notifier, backend_factory):
    """Session manager wired to in-memory collaborators."""
    return SessionManager(track_source, notifier, backend_factory)


@pytest.fixture
def session(manager, mock_text_channel):
    """Fresh session for the test guild."""
    return manager.ensure_session(GUILD_ID, mock_text_channel)


@pytest.fixture
def coordinator(manager):
    """Search coordinator with a one second window."""
    return SearchCoordinator(manager, timeout=1.0)


@pytest_asyncio.fixture
async def playing_session(manager, session, mock_voice_channel, sample_tracks, notifier):
    """Session playing the first sample track with the other two queued."""
    for query in ("song a", "song b", "song c"):
        await manager.play(session, mock_voice_channel, query, requested_by=111222333)
    notifier.clear()
    return session


# ============================================================================
# Bot Fixtures
# ============================================================================


@pytest.fixture
def bot_user():
    """The bot's own account, as seen by discord.py once logged in."""
    user = MagicMock()
    user.id = BOT_USER_ID
    with patch.object(MusicBot, "user", new_callable=PropertyMock, return_value=user):
        yield user


@pytest.fixture
def make_bot(bot_user, track_source, notifier, backend_factory):
    """Build MusicBots on in-memory collaborators that run commands from mock messages."""

    async def factory(**config):
        client = MusicBot(
            BotConfig(**config),
            notifier=notifier,
            track_source=track_source,
            backend_factory=backend_factory,
        )
        # Binds the running loop so discord.py can schedule command_error events
        await client._async_setup_hook()
        return client

    return factory


@pytest_asyncio.fixture
async def bot(make_bot):
    return await make_bot()
