"""Command modules for the Discord bot."""

from commands.ai import setup as setup_ai
from commands.general import setup as setup_general
from commands.music import setup as setup_music


def setup_commands(bot):
    """Register all command modules on the bot."""
    setup_general(bot)
    setup_music(bot)
    setup_ai(bot)
