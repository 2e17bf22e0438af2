"""General commands: help."""

from discord.ext import commands

from commands.helpers import reply
from notifier import COLOR_INFO, Notice


def build_help(prefix: str) -> Notice:
    """Help embed listing AI and music commands for the given prefix."""
    p = prefix
    notice = Notice(title="🤖 Bot Commands", color=COLOR_INFO)
    notice.add_field(
        "🎨 AI",
        "\n".join([
            f"`{p}imagine <prompt>` - Generate an image",
            f"`{p}vision` - Describe an attached image",
            f"`{p}video <prompt>` - Generate a video",
        ]),
    )
    notice.add_field(
        "🎵 Music",
        "\n".join([
            f"`{p}play <query>` - Play a song or playlist",
            f"`{p}search <query>` - Pick from search results",
            f"`{p}skip` / `{p}stop` - Skip or stop",
            f"`{p}pause` / `{p}resume` - Pause or resume",
            f"`{p}queue` / `{p}nowplaying` - Show queue or current track",
            f"`{p}volume [1-100]` - Show or set volume",
            f"`{p}loop [track/queue/off]` - Set loop mode",
            f"`{p}seek <MM:SS>` - Seek in the current track",
            f"`{p}shuffle` / `{p}clear` - Shuffle or clear the queue",
            f"`{p}remove <n>` / `{p}jump <n>` - Remove or jump to a track",
        ]),
    )
    notice.footer = f"Aliases: {p}p {p}s {p}q {p}np {p}vol {p}r {p}gen {p}see"
    return notice


def setup(bot: commands.Bot):
    @bot.command(name="help")
    async def help_command(ctx: commands.Context):
        await reply(ctx, notice=build_help(bot.command_prefix))
