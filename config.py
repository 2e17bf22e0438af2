"""Runtime configuration read from environment variables (.env is loaded by main)."""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "!"
DEFAULT_VOLUME = 80
DEFAULT_SEARCH_TIMEOUT = 30.0
DEFAULT_SEARCH_RESULT_LIMIT = 5
DEFAULT_LEAVE_ON_END_DELAY = 0.0
DEFAULT_AI_API_URL = "https://api.openai.com/v1"
DEFAULT_PORT = 3000


def _get_int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer, using %s", name, raw, default)
        return default
    if not minimum <= value <= maximum:
        logger.warning("Ignoring %s=%s: expected %s-%s, using %s", name, value, minimum, maximum, default)
        return default
    return value


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number, using %s", name, raw, default)
        return default
    if value < 0:
        logger.warning("Ignoring %s=%s: must not be negative, using %s", name, value, default)
        return default
    return value


@dataclass(frozen=True)
class BotConfig:
    """Bot settings. Build with BotConfig.from_env()."""

    token: str | None = None
    prefix: str = DEFAULT_PREFIX
    default_volume: int = DEFAULT_VOLUME
    search_timeout: float = DEFAULT_SEARCH_TIMEOUT
    search_result_limit: int = DEFAULT_SEARCH_RESULT_LIMIT
    leave_on_end_delay: float = DEFAULT_LEAVE_ON_END_DELAY
    log_level: str = "INFO"
    ai_api_url: str = DEFAULT_AI_API_URL
    openai_api_key: str | None = None
    stability_api_key: str | None = None
    video_api_key: str | None = None
    video_provider: str | None = None
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls) -> "BotConfig":
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning("Ignoring LOG_LEVEL=%r, using INFO", log_level)
            log_level = "INFO"

        return cls(
            token=os.getenv("DISCORD_TOKEN"),
            prefix=os.getenv("COMMAND_PREFIX") or DEFAULT_PREFIX,
            default_volume=_get_int("DEFAULT_VOLUME", DEFAULT_VOLUME, 1, 100),
            search_timeout=_get_float("SEARCH_TIMEOUT", DEFAULT_SEARCH_TIMEOUT),
            search_result_limit=_get_int("SEARCH_RESULT_LIMIT", DEFAULT_SEARCH_RESULT_LIMIT, 1, 5),
            leave_on_end_delay=_get_float("LEAVE_ON_END_DELAY", DEFAULT_LEAVE_ON_END_DELAY),
            log_level=log_level,
            ai_api_url=(os.getenv("AI_API_URL") or DEFAULT_AI_API_URL).rstrip("/"),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            stability_api_key=os.getenv("STABILITY_API_KEY") or None,
            video_api_key=os.getenv("VIDEO_API_KEY") or None,
            video_provider=(os.getenv("VIDEO_PROVIDER") or "").lower() or None,
            port=_get_int("PORT", DEFAULT_PORT, 1, 65535),
        )

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)
