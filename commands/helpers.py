"""Shared helper functions used across command modules."""

from notifier import Notice
from timefmt import format_duration


def voice_channel_of(member):
    """Voice channel a member is currently in, or None."""
    voice = getattr(member, "voice", None)
    if voice is None:
        return None
    return voice.channel


def render_progress(elapsed: int | None, duration_label: str, paused: bool = False) -> str:
    """Render elapsed time against the track's duration label."""
    if elapsed is None:
        return duration_label
    indicator = " (Paused)" if paused else ""
    return f"`{format_duration(elapsed) if elapsed else '0:00'} / {duration_label}`{indicator}"


def truncate(text: str, limit: int) -> str:
    """Cut text to a Discord field limit, marking the cut."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


async def reply(ctx, content: str | None = None, notice: Notice | None = None) -> None:
    """Answer in the channel the command came from."""
    await ctx.bot.notifier.send(ctx.channel, content=content, notice=notice)
