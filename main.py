"""Discord music bot with prefix commands, interactive search and AI helpers."""

import logging
import shutil

import discord
from discord.ext import commands
from dotenv import load_dotenv

from commands import setup_commands
from config import BotConfig
from health import HealthServer
from notifier import DiscordNotifier, Notifier
from search import SearchCoordinator
from session_manager import SessionManager
from voice_backend import DiscordVoiceBackend, has_voice_permissions
from youtube import TrackSource, YouTubeTrackSource

load_dotenv()

logger = logging.getLogger(__name__)


class MusicBot(commands.Bot):
    """Prefix-command bot wiring chat messages to music sessions, search windows and AI commands."""

    def __init__(
        self,
        config: BotConfig,
        *,
        notifier: Notifier | None = None,
        track_source: TrackSource | None = None,
        backend_factory=None,
    ):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.guild_messages = True
        intents.message_content = True
        intents.voice_states = True
        super().__init__(
            command_prefix=config.prefix,
            intents=intents,
            help_command=None,
            case_insensitive=True,
        )

        self.config = config
        self.notifier = notifier or DiscordNotifier()
        self.track_source = track_source or YouTubeTrackSource()
        self.manager = SessionManager(
            self.track_source,
            self.notifier,
            backend_factory or self._create_backend,
            can_connect=has_voice_permissions,
            default_volume=config.default_volume,
            leave_on_end_delay=config.leave_on_end_delay,
            command_prefix=config.prefix,
        )
        self.coordinator = SearchCoordinator(
            self.manager,
            timeout=config.search_timeout,
            max_candidates=config.search_result_limit,
        )
        self.health = HealthServer(port=config.port)
        setup_commands(self)

    def _create_backend(self, guild_id: int, listener):
        return DiscordVoiceBackend(guild_id, listener, self.track_source.resolve_stream)

    async def setup_hook(self):
        """Start the keep-alive web server before connecting."""
        await self.health.start()

    async def close(self):
        await self.health.stop()
        await super().close()

    async def on_ready(self):
        """Called when bot is ready."""
        logger.info("Logged in as %s (ID: %s)", self.user, self.user.id)
        await self.change_presence(activity=discord.Game(name=f"AI + Music | {self.config.prefix}help"))

    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return

        # Replies to an open search window are picks, not commands
        if self.coordinator.feed(message.channel.id, message.author.id, message.content):
            return

        await self.process_commands(message)

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            # Other bots may share the prefix; stay quiet
            return

        error = getattr(error, "original", error)
        logger.error("Command %s failed in guild %s", ctx.command, ctx.guild.id, exc_info=error)
        await self.notifier.send(ctx.channel, f"❌ Error: {error}")

    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ):
        """Tear down the guild's session when the bot is disconnected from voice."""
        if self.user is None or member.id != self.user.id:
            return
        if after.channel is None and before.channel:
            await self.manager.handle_voice_disconnect(before.channel.guild.id)


# ============== Dependency Check ==============


def check_dependencies() -> list[str]:
    """Check for required external dependencies."""
    missing = []
    if not shutil.which("ffmpeg"):
        missing.append("FFmpeg - Required for audio playback")
    if not shutil.which("deno") and not shutil.which("node"):
        missing.append("Deno or Node.js - Required by yt-dlp for YouTube (install: https://deno.land)")
    return missing


# ============== Entry Point ==============


def main():
    """Run the bot."""
    config = BotConfig.from_env()
    if not config.token:
        print("Error: DISCORD_TOKEN not found in environment variables.")
        print("Create a .env file with: DISCORD_TOKEN=your_token_here")
        return

    # Check external dependencies
    missing_deps = check_dependencies()
    if missing_deps:
        print("Warning: Missing external dependencies:")
        for dep in missing_deps:
            print(f"  - {dep}")
        print()

    client = MusicBot(config)
    client.run(config.token, log_level=config.log_level_value, root_logger=True)


if __name__ == "__main__":
    main()
