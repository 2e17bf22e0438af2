"""Status messages sent back to the channel a command came from."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import discord

logger = logging.getLogger(__name__)

COLOR_SUCCESS = 0x00FF00
COLOR_INFO = 0x0099FF
COLOR_WARNING = 0xFF9900


@dataclass
class Notice:
    """Structured message: rendered as an embed by Discord notifiers."""

    title: str
    description: str | None = None
    fields: list[tuple[str, str, bool]] = field(default_factory=list)
    thumbnail_url: str | None = None
    footer: str | None = None
    url: str | None = None
    color: int = COLOR_INFO

    def add_field(self, name: str, value: str, inline: bool = False) -> "Notice":
        self.fields.append((name, value, inline))
        return self


class Notifier(ABC):
    """Best-effort delivery of text or notices to a channel."""

    @abstractmethod
    async def send(self, target: Any, content: str | None = None, notice: Notice | None = None) -> None:
        """Send to ``target``. Failures are logged, never raised or retried."""


def build_embed(notice: Notice) -> discord.Embed:
    """Convert a Notice into a discord.Embed."""
    embed = discord.Embed(
        title=notice.title,
        description=notice.description,
        url=notice.url,
        color=discord.Color(notice.color),
    )
    for name, value, inline in notice.fields:
        embed.add_field(name=name, value=value, inline=inline)
    if notice.thumbnail_url:
        embed.set_thumbnail(url=notice.thumbnail_url)
    if notice.footer:
        embed.set_footer(text=notice.footer)
    return embed


class DiscordNotifier(Notifier):
    """Sends to a discord.py messageable (text channel, thread)."""

    async def send(self, target: Any, content: str | None = None, notice: Notice | None = None) -> None:
        embed = build_embed(notice) if notice else None
        try:
            await target.send(content=content, embed=embed)
        except discord.HTTPException as e:
            logger.warning("Failed to send message to channel %s: %s", getattr(target, "id", target), e)
