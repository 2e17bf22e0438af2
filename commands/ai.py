"""Generative AI commands: imagine (image generation), vision (image description), video."""

import base64
import io
import logging
import re

import discord
import httpx
from discord.ext import commands

from commands.helpers import reply
from notifier import COLOR_INFO, COLOR_SUCCESS, COLOR_WARNING, Notice

logger = logging.getLogger(__name__)

STABILITY_URL = "https://api.stability.ai/v1/generation/stable-diffusion-xl-1024-v1-0/text-to-image"
VIDEO_PROVIDER_URLS = {
    "runway": "https://api.runwayml.com/v1/generation/text_to_video",
    "pika": "https://api.pika.art/v1/generations",
}
VISION_PROMPT = (
    "Describe this image in detail. What do you see? Be specific about objects, "
    "people, colors, setting, and any text."
)

IMAGE_URL_PATTERN = re.compile(r"(https?://\S+\.(?:png|jpg|jpeg|gif|webp))", re.IGNORECASE)
IMAGE_FILENAME_PATTERN = re.compile(r"\.(?:png|jpg|jpeg|gif|webp|bmp)$", re.IGNORECASE)

HTTP_TIMEOUT = 120.0


class AIProviderError(Exception):
    """Raised when an AI API returns an error or an unusable payload."""

    pass


def _error_message(data: dict) -> str | None:
    error = data.get("error") if isinstance(data, dict) else None
    if not error:
        return None
    if isinstance(error, dict):
        return error.get("message") or str(error)
    return str(error)


async def generate_image_stability(http: httpx.AsyncClient, prompt: str, api_key: str) -> bytes | None:
    """
    Generate an image with Stable Diffusion XL.

    Returns:
        PNG bytes, or None if the API did not return a success status
    """
    resp = await http.post(
        STABILITY_URL,
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
        json={
            "text_prompts": [{"text": prompt, "weight": 1}],
            "cfg_scale": 7,
            "height": 1024,
            "width": 1024,
            "steps": 30,
            "samples": 1,
        },
    )
    if not resp.is_success:
        logger.warning("Stability API returned %s", resp.status_code)
        return None
    artifacts = resp.json().get("artifacts") or []
    if not artifacts:
        return None
    return base64.b64decode(artifacts[0]["base64"])


async def generate_image_dalle(
    http: httpx.AsyncClient, prompt: str, base_url: str, api_key: str
) -> str:
    """Generate an image with DALL-E 3 and return its URL."""
    resp = await http.post(
        f"{base_url}/images/generations",
        headers={"Authorization": f"Bearer {api_key}"},
        json={
            "model": "dall-e-3",
            "prompt": prompt,
            "size": "1024x1024",
            "quality": "standard",
            "n": 1,
        },
    )
    data = resp.json()
    error = _error_message(data)
    if error:
        raise AIProviderError(error)
    return data["data"][0]["url"]


async def describe_image(http: httpx.AsyncClient, image_url: str, base_url: str, api_key: str) -> str:
    """Ask a vision model to describe an image."""
    resp = await http.post(
        f"{base_url}/chat/completions",
        headers={"Authorization": f"Bearer {api_key}"},
        json={
            "model": "gpt-4o",
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VISION_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
            "max_tokens": 500,
        },
    )
    data = resp.json()
    error = _error_message(data)
    if error:
        raise AIProviderError(error)
    return data["choices"][0]["message"]["content"]


async def generate_video(http: httpx.AsyncClient, prompt: str, provider: str, api_key: str) -> str:
    """Start a text-to-video generation and return the resulting URL."""
    url = VIDEO_PROVIDER_URLS.get(provider)
    if url is None:
        raise AIProviderError("Unknown video provider")

    resp = await http.post(url, headers={"Authorization": f"Bearer {api_key}"}, json={"prompt": prompt})
    data = resp.json()
    error = _error_message(data)
    if error:
        raise AIProviderError(error)

    video_url = data.get("url") if provider == "runway" else data.get("output")
    if not video_url:
        raise AIProviderError(f"{provider} did not return a video URL")
    return video_url


def find_image_url(message: discord.Message) -> str | None:
    """First image attachment of a message, else the first image URL in its text."""
    if message.attachments:
        attachment = message.attachments[0]
        if IMAGE_FILENAME_PATTERN.search(attachment.filename or ""):
            return attachment.url
        return None

    match = IMAGE_URL_PATTERN.search(message.content or "")
    return match.group(1) if match else None


async def _delete_quietly(message) -> None:
    try:
        await message.delete()
    except discord.HTTPException as e:
        logger.debug("Could not delete progress message: %s", e)


def setup(bot: commands.Bot):
    config = bot.config
    p = bot.command_prefix

    @bot.command(name="imagine", aliases=["gen"])
    async def imagine(ctx: commands.Context, *, prompt: str | None = None):
        """Generate an image, Stability first with DALL-E 3 as fallback."""
        if not config.openai_api_key and not config.stability_api_key:
            await reply(ctx, "❌ AI image generation is not configured. Ask the bot owner to add API keys.")
            return

        if not prompt:
            await reply(ctx, f"❌ Please provide a prompt! Usage: `{p}imagine a beautiful sunset over mountains`")
            return

        progress = await ctx.channel.send(f"🎨 Generating image: **{prompt}**...")
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http:
                if config.stability_api_key:
                    image = await generate_image_stability(http, prompt, config.stability_api_key)
                    if image:
                        embed = discord.Embed(
                            title="🎨 Generated Image",
                            description=f"**{prompt}**",
                            color=discord.Color(COLOR_SUCCESS),
                        )
                        embed.set_image(url="attachment://generated.png")
                        file = discord.File(io.BytesIO(image), filename="generated.png")
                        await ctx.channel.send(embed=embed, file=file)
                        return

                if not config.openai_api_key:
                    raise AIProviderError("No AI provider available")

                image_url = await generate_image_dalle(
                    http, prompt, config.ai_api_url, config.openai_api_key
                )
            embed = discord.Embed(
                title="🎨 Generated Image",
                description=f"**{prompt}**",
                color=discord.Color(COLOR_SUCCESS),
            )
            embed.set_image(url=image_url)
            embed.set_footer(text="Powered by DALL-E 3")
            await ctx.channel.send(embed=embed)
        except (httpx.HTTPError, AIProviderError, KeyError, ValueError) as e:
            logger.warning("Image generation failed: %s", e)
            await reply(ctx, f"❌ Error generating image: {e}")
        finally:
            await _delete_quietly(progress)

    @bot.command(name="vision", aliases=["see"])
    async def vision(ctx: commands.Context):
        """Describe an attached or linked image."""
        image_url = find_image_url(ctx.message)
        if image_url is None:
            if ctx.message.attachments:
                await reply(ctx, "❌ Please provide a valid image file (PNG, JPG, GIF, WebP)")
            else:
                await reply(
                    ctx,
                    f"❌ Please attach an image or provide an image URL! Usage: `{p}vision` (with image attached)"
                )
            return

        if not config.openai_api_key:
            await reply(ctx, "❌ AI vision is not configured. Ask the bot owner to add OpenAI API key.")
            return

        progress = await ctx.channel.send("🔍 Analyzing image...")
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http:
                description = await describe_image(
                    http, image_url, config.ai_api_url, config.openai_api_key
                )
            await reply(
                ctx,
                notice=Notice(
                    title="🔍 Image Analysis",
                    description=description[:4096],
                    footer="Powered by GPT-4o Vision",
                    color=COLOR_INFO,
                ),
            )
        except (httpx.HTTPError, AIProviderError, KeyError, ValueError) as e:
            logger.warning("Image analysis failed: %s", e)
            await reply(ctx, f"❌ Error analyzing image: {e}")
        finally:
            await _delete_quietly(progress)

    @bot.command(name="video")
    async def video(ctx: commands.Context, *, prompt: str | None = None):
        """Generate a video when a provider is configured, otherwise announce it's coming."""
        if not prompt:
            await reply(ctx, f"❌ Please provide a prompt! Usage: `{p}video a cat playing with a ball`")
            return

        if not config.video_api_key:
            notice = Notice(
                title="🎬 Video Generation",
                description=f"**{prompt}**",
                footer="Providers coming: Runway, Pika, Kling, Sora",
                color=COLOR_WARNING,
            )
            notice.add_field("Status", "⏳ Coming Soon", inline=True)
            notice.add_field(
                "Note", "Video generation requires additional API setup. Contact the bot owner."
            )
            await reply(ctx, notice=notice)
            return

        progress = await ctx.channel.send(
            f"🎬 Generating video: **{prompt}**... (This may take several minutes)"
        )
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http:
                video_url = await generate_video(
                    http, prompt, config.video_provider or "", config.video_api_key
                )
            await reply(
                ctx,
                notice=Notice(
                    title="🎬 Generated Video",
                    description=f"**{prompt}**",
                    url=video_url,
                    footer=f"Powered by {config.video_provider}",
                    color=COLOR_SUCCESS,
                ),
            )
        except (httpx.HTTPError, AIProviderError, KeyError, ValueError) as e:
            logger.warning("Video generation failed: %s", e)
            await reply(ctx, f"❌ Error generating video: {e}")
        finally:
            await _delete_quietly(progress)
