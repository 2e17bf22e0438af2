"""Integration tests for music playback flow through chat commands."""

import asyncio

import pytest

from session import PlayState, RepeatMode
from tests.fixtures.fakes import settle
from tests.fixtures.mocks import create_mock_message, create_mock_text_channel

GUILD_ID = 987654321


class ChatBot:
    """Sends chat messages from one text channel through MusicBot.on_message."""

    def __init__(self, bot):
        self.bot = bot
        self.manager = bot.manager
        self.notifier = bot.notifier
        self.channel = create_mock_text_channel()

    async def say(self, content, user_id=111222333):
        await self.bot.on_message(create_mock_message(content, user_id=user_id, channel=self.channel))

    @property
    def session(self):
        return self.manager.store.get(GUILD_ID)

    @property
    def backend(self):
        return self.session.backend


@pytest.fixture
def chat(bot):
    return ChatBot(bot)


class TestPlaybackFlow:
    """Complete request-to-teardown flows."""

    @pytest.mark.asyncio
    async def test_queue_plays_through_and_leaves(self, chat, sample_tracks):
        for query in ("song a", "song b", "song c"):
            await chat.say(f"!play {query}")

        backend = chat.backend
        assert chat.session.current_track == sample_tracks[0]
        assert len(chat.session.queue) == 2

        await backend.finish()
        await backend.finish()
        assert chat.session.current_track == sample_tracks[2]

        await backend.finish()
        await settle()

        assert chat.manager.store.get(GUILD_ID) is None
        assert backend.played == sample_tracks
        assert backend.disconnect_calls == 1
        assert "📭 Queue finished! Leaving voice channel." in chat.notifier.texts

    @pytest.mark.asyncio
    async def test_no_results_leaves_state_untouched(self, chat):
        await chat.say("!play nothing matches this")

        assert chat.notifier.texts[-1] == "❌ No results found!"
        assert chat.session.current_track is None
        assert len(chat.session.queue) == 0

    @pytest.mark.asyncio
    async def test_playlist_then_single(self, chat, sample_tracks):
        await chat.say("!play https://www.youtube.com/playlist?list=PL123")
        await chat.say("!play song a")

        assert chat.notifier.contains("✅ Added playlist **Greatest Hits** (3 tracks)")
        assert chat.session.current_track == sample_tracks[0]
        assert list(chat.session.queue) == [sample_tracks[1], sample_tracks[2], sample_tracks[0]]


class TestRepeatModes:
    @pytest.mark.asyncio
    async def test_queue_repeat_keeps_every_track(self, chat, sample_tracks):
        for query in ("song a", "song b", "song c"):
            await chat.say(f"!play {query}")
        await chat.say("!loop queue")

        played = []
        for _ in range(6):
            played.append(chat.session.current_track)
            assert len(chat.session.queue) + 1 == 3
            await chat.backend.finish()

        assert played == sample_tracks * 2
        assert chat.session.repeat_mode is RepeatMode.QUEUE

    @pytest.mark.asyncio
    async def test_track_repeat_replays(self, chat, sample_tracks):
        await chat.say("!play song a")
        await chat.say("!play song b")
        await chat.say("!loop track")

        await chat.backend.finish()
        await chat.backend.finish()

        assert chat.backend.played == [sample_tracks[0]] * 3
        assert list(chat.session.queue) == [sample_tracks[1]]


class TestQueueEditing:
    @pytest.mark.asyncio
    async def test_volume_text_is_rejected(self, chat):
        await chat.say("!play song a")
        await chat.say("!volume abc")

        assert chat.session.volume == 80
        assert chat.backend.volume == 80
        assert chat.notifier.texts[-1] == "❌ Volume must be 1-100!"

    @pytest.mark.asyncio
    async def test_volume_reaches_backend(self, chat):
        await chat.say("!play song a")
        await chat.say("!vol 35")

        assert chat.session.volume == 35
        assert chat.backend.volume == 35

    @pytest.mark.asyncio
    async def test_jump_discards_skipped_entries(self, chat, sample_tracks):
        for query in ("song a", "song b", "song c"):
            await chat.say(f"!play {query}")

        await chat.say("!jump 2")

        assert chat.session.current_track == sample_tracks[2]
        assert len(chat.session.queue) == 0
        assert chat.notifier.texts[-2] == "⏭️ Jumped to track 2"

    @pytest.mark.asyncio
    async def test_remove_then_invalid_position(self, chat, sample_tracks):
        for query in ("song a", "song b", "song c"):
            await chat.say(f"!play {query}")

        await chat.say("!remove 1")
        assert list(chat.session.queue) == [sample_tracks[2]]
        assert chat.notifier.texts[-1] == f"🗑️ Removed **{sample_tracks[1].title}**"

        await chat.say("!remove 5")
        assert chat.notifier.texts[-1] == "❌ Invalid track number! Choose between 1."

    @pytest.mark.asyncio
    async def test_shuffle_is_a_permutation(self, chat, sample_tracks):
        await chat.say("!play song a")
        for query in ("song b", "song c", "song a", "song b"):
            await chat.say(f"!play {query}")
        before = sorted(t.title for t in chat.session.queue)

        await chat.say("!shuffle")

        assert sorted(t.title for t in chat.session.queue) == before
        assert chat.notifier.texts[-1] == "🔀 Shuffled **4** tracks!"

    @pytest.mark.asyncio
    async def test_pause_twice_then_resume(self, chat):
        await chat.say("!play song a")
        await chat.say("!pause")
        await chat.say("!pause")

        assert chat.session.play_state is PlayState.PAUSED
        assert chat.notifier.texts[-1] == "⏸️ Already paused!"

        await chat.say("!resume")
        assert chat.session.play_state is PlayState.PLAYING


class TestSearchFlow:
    @pytest.mark.asyncio
    async def test_pick_queues_choice(self, chat, search_tracks):
        task = asyncio.create_task(chat.say("!search lofi"))
        await settle()

        # Another user's reply is not a pick and gets routed normally
        await chat.say("4", user_id=999)
        assert not task.done()

        await chat.say("4")
        await task

        assert chat.session.current_track == search_tracks[3]

    @pytest.mark.asyncio
    async def test_double_reply_enqueues_once(self, chat, search_tracks):
        await chat.say("!play song a")
        task = asyncio.create_task(chat.say("!search lofi"))
        await settle()

        await chat.say("1")
        await chat.say("2")
        await task

        assert list(chat.session.queue) == [search_tracks[0]]

    @pytest.mark.asyncio
    async def test_timeout_queues_nothing(self, make_bot, notifier):
        chat = ChatBot(await make_bot(search_timeout=0.01))

        await chat.say("!search lofi")
        await chat.say("1")

        assert notifier.texts[-1] == "❌ Timed out!"
        assert chat.manager.store.get(GUILD_ID) is None
