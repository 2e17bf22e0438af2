"""Music playback commands: play, skip, stop, pause, resume, queue, nowplaying, volume, shuffle, remove, loop, seek, clear, jump, search."""

from discord.ext import commands

from commands.helpers import render_progress, reply, truncate, voice_channel_of
from notifier import COLOR_SUCCESS, Notice
from session import PlayState
from session_manager import LOOP_ICONS

# Queue entries listed before "... and N more"
QUEUE_PAGE_SIZE = 10


def setup(bot: commands.Bot):
    manager = bot.manager
    coordinator = bot.coordinator

    def session_for(ctx: commands.Context):
        return manager.ensure_session(ctx.guild.id, ctx.channel)

    def existing_session(ctx: commands.Context):
        """Session for lookups that shouldn't create one."""
        return manager.store.get(ctx.guild.id)

    @bot.command(name="play", aliases=["p"])
    async def play(ctx: commands.Context, *, query: str | None = None):
        """Search or load a URL and queue the result."""
        await manager.play(
            session_for(ctx),
            voice_channel_of(ctx.author),
            query,
            requested_by=ctx.author.id,
        )

    @bot.command(name="skip", aliases=["s"])
    async def skip(ctx: commands.Context):
        await manager.skip(session_for(ctx))

    @bot.command(name="stop", aliases=["leave"])
    async def stop(ctx: commands.Context):
        await manager.stop(session_for(ctx))

    @bot.command(name="pause")
    async def pause(ctx: commands.Context):
        await manager.pause(session_for(ctx))

    @bot.command(name="resume", aliases=["r"])
    async def resume(ctx: commands.Context):
        await manager.resume(session_for(ctx))

    @bot.command(name="queue", aliases=["q"])
    async def queue(ctx: commands.Context):
        """Show the current track and what's up next."""
        session = existing_session(ctx)
        tracks = manager.list_queue(session) if session else []
        if not tracks:
            await reply(ctx, "📭 Queue empty!")
            return

        lines = [
            f"{i}. **[{t.title}]({t.url})** - {t.duration_label}"
            for i, t in enumerate(tracks[:QUEUE_PAGE_SIZE], 1)
        ]
        if len(tracks) > QUEUE_PAGE_SIZE:
            lines.append(f"... and {len(tracks) - QUEUE_PAGE_SIZE} more")

        current = manager.now_playing(session)
        description = "\n".join(lines)
        if current:
            description = f"🎶 Now: **[{current.title}]({current.url})**\n\n{description}"

        await reply(
            ctx,
            notice=Notice(
                title="📋 Queue",
                description=truncate(description, 4096),
                footer=f"{len(tracks)} tracks",
            ),
        )

    @bot.command(name="nowplaying", aliases=["np"])
    async def nowplaying(ctx: commands.Context):
        """Show the current track with progress, volume and loop mode."""
        session = existing_session(ctx)
        track = manager.now_playing(session) if session else None
        if not track:
            await reply(ctx, "❌ Nothing playing!")
            return

        notice = Notice(
            title="🎵 Now Playing",
            description=f"**[{track.title}]({track.url})**",
            thumbnail_url=track.thumbnail_url or None,
            color=COLOR_SUCCESS,
        )
        progress = render_progress(
            manager.elapsed_seconds(session),
            track.duration_label,
            paused=session.play_state is PlayState.PAUSED,
        )
        notice.add_field("Progress", progress)
        notice.add_field("Volume", f"{session.volume}%", inline=True)
        notice.add_field("Loop", LOOP_ICONS[session.repeat_mode], inline=True)
        await reply(ctx, notice=notice)

    @bot.command(name="volume", aliases=["vol"])
    async def volume(ctx: commands.Context, value: str | None = None):
        if value is not None:
            await manager.set_volume(session_for(ctx), value)
            return

        session = existing_session(ctx)
        if session is None:
            await reply(ctx, f"🔊 Volume: **{manager.default_volume}%**")
        else:
            await manager.show_volume(session)

    @bot.command(name="shuffle")
    async def shuffle(ctx: commands.Context):
        await manager.shuffle(session_for(ctx))

    @bot.command(name="remove")
    async def remove(ctx: commands.Context, position: str | None = None):
        await manager.remove(session_for(ctx), position)

    @bot.command(name="loop")
    async def loop(ctx: commands.Context, mode: str | None = None):
        await manager.set_loop(session_for(ctx), mode)

    @bot.command(name="seek")
    async def seek(ctx: commands.Context, position: str | None = None):
        await manager.seek(session_for(ctx), position)

    @bot.command(name="clear")
    async def clear(ctx: commands.Context):
        await manager.clear(session_for(ctx))

    @bot.command(name="jump")
    async def jump(ctx: commands.Context, position: str | None = None):
        await manager.jump(session_for(ctx), position)

    @bot.command(name="search")
    async def search(ctx: commands.Context, *, query: str | None = None):
        """List results and queue the one the requester picks."""
        await coordinator.run(
            ctx.guild.id,
            ctx.author.id,
            query,
            channel_id=ctx.channel.id,
            notify_target=ctx.channel,
            voice_channel_of=lambda: voice_channel_of(ctx.author),
        )
