"""HTTP keep-alive server so hosting platforms can ping the bot while it runs."""

import asyncio
import logging
from datetime import datetime, timezone

from aiohttp import web

logger = logging.getLogger(__name__)

KEEP_ALIVE_INTERVAL = 60.0


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def handle_index(request: web.Request) -> web.Response:
    return web.Response(text="🎵 Discord Bot is running!")


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "timestamp": _timestamp()})


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", handle_index)
    app.router.add_get("/health", handle_health)
    return app


class HealthServer:
    """Serves ``/`` and ``/health`` and logs a keep-alive line every minute."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 3000,
        keep_alive_interval: float = KEEP_ALIVE_INTERVAL,
    ):
        self.host = host
        self.port = port
        self.keep_alive_interval = keep_alive_interval
        self.runner: web.AppRunner | None = None
        self._keep_alive_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self.runner is not None

    async def start(self) -> None:
        if self.is_running:
            return

        self.runner = web.AppRunner(create_app())
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info("🌐 Web server running on port %s", self.port)

        self._keep_alive_task = asyncio.create_task(self._keep_alive())

    async def _keep_alive(self) -> None:
        while True:
            await asyncio.sleep(self.keep_alive_interval)
            logger.info("[Keep-alive] %s", _timestamp())

    async def stop(self) -> None:
        if self._keep_alive_task is not None:
            self._keep_alive_task.cancel()
            self._keep_alive_task = None
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
