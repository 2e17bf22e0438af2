"""Mock object factories for discord.py objects."""

from unittest.mock import AsyncMock, MagicMock


def create_mock_voice_channel(
    channel_id: int = 123456789,
    channel_name: str = "General",
    guild_id: int = 987654321,
    guild_name: str = "Test Server",
    can_connect: bool = True,
    can_speak: bool = True,
) -> MagicMock:
    """Create a mock Discord voice channel."""
    channel = MagicMock()
    channel.id = channel_id
    channel.name = channel_name
    channel.guild = MagicMock()
    channel.guild.id = guild_id
    channel.guild.name = guild_name
    channel.permissions_for.return_value = MagicMock(connect=can_connect, speak=can_speak)
    return channel


def create_mock_voice_client(
    is_connected: bool = True,
    is_playing: bool = False,
    is_paused: bool = False,
    channel_id: int = 123456789,
) -> MagicMock:
    """Create a mock Discord voice client."""
    client = MagicMock()
    client.is_connected.return_value = is_connected
    client.is_playing.return_value = is_playing
    client.is_paused.return_value = is_paused
    client.channel.id = channel_id
    client.source = None
    client.play = MagicMock()
    client.stop = MagicMock()
    client.pause = MagicMock()
    client.resume = MagicMock()
    client.move_to = AsyncMock()
    client.disconnect = AsyncMock()
    return client


def create_mock_member(
    user_id: int = 111222333,
    username: str = "TestUser",
    in_voice: bool = True,
    voice_channel_id: int = 123456789,
    bot: bool = False,
) -> MagicMock:
    """Create a mock Discord guild member."""
    member = MagicMock()
    member.id = user_id
    member.name = username
    member.display_name = username
    member.bot = bot

    if in_voice:
        member.voice = MagicMock()
        member.voice.channel = create_mock_voice_channel(channel_id=voice_channel_id)
    else:
        member.voice = None

    return member


def create_mock_text_channel(channel_id: int = 555666777) -> MagicMock:
    """Create a mock text channel that records sent messages."""
    channel = MagicMock()
    channel.id = channel_id
    channel.send = AsyncMock(return_value=MagicMock(delete=AsyncMock()))
    return channel


def create_mock_message(
    content: str,
    user_id: int = 111222333,
    guild_id: int | None = 987654321,
    channel=None,
    user_in_voice: bool = True,
    bot: bool = False,
    attachments: list | None = None,
) -> MagicMock:
    """Create a mock Discord message as seen by on_message."""
    message = MagicMock()
    message.content = content
    message.author = create_mock_member(user_id=user_id, in_voice=user_in_voice, bot=bot)
    message.channel = channel or create_mock_text_channel()
    message.attachments = attachments or []

    if guild_id is None:
        message.guild = None
    else:
        message.guild = MagicMock()
        message.guild.id = guild_id
        message.guild.name = "Test Server"

    return message


def create_mock_attachment(filename: str, url: str | None = None) -> MagicMock:
    """Create a mock message attachment."""
    attachment = MagicMock()
    attachment.filename = filename
    attachment.url = url or f"https://cdn.discordapp.com/attachments/1/2/{filename}"
    return attachment


def create_mock_ytdl(extract_info_result: dict | None = None) -> MagicMock:
    """Create a mock yt-dlp YoutubeDL instance usable as a context manager."""
    ytdl = MagicMock()
    ytdl.__enter__.return_value = ytdl
    ytdl.__exit__.return_value = False
    ytdl.extract_info.return_value = extract_info_result
    return ytdl
