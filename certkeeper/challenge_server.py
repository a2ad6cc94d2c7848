"""
HTTP server for ACME HTTP-01 challenges.

certbot writes challenge responses below ``base_folder/webroot``; this server
publishes them at ``/.well-known/acme-challenge/<token>`` for hosts that do
not already run a web server of their own.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any

from aiohttp import web
from aiohttp.web import Application, Request, Response

from .certbot import challenge_file

logger = logging.getLogger(__name__)

# ACME tokens are base64url
_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class HTTPChallengeServer:
    """Serve HTTP-01 challenge files from a certbot webroot."""

    def __init__(self, base_folder: Path | str, host: str = "0.0.0.0", port: int = 80):
        """Initialize the HTTP challenge server.

        Args:
            base_folder: certkeeper base folder containing ``webroot``
            host: Host to bind to (default: 0.0.0.0)
            port: Port to bind to (default: 80)
        """
        self.base_folder = Path(base_folder)
        self.host = host
        self.port = port
        self.app: Application | None = None
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None

        self._running = False
        self._start_event = asyncio.Event()

    def create_app(self) -> Application:
        """Create the aiohttp application with routes."""
        app = web.Application()
        app.router.add_get(
            "/.well-known/acme-challenge/{token}", self._handle_challenge
        )
        app.router.add_get("/health", self._handle_health)
        return app

    async def _handle_challenge(self, request: Request) -> Response:
        token = request.match_info["token"]

        if not _TOKEN_RE.match(token):
            logger.warning(f"Rejected malformed challenge token: {token!r}")
            return web.Response(text="Invalid challenge token", status=400)

        path = challenge_file(self.base_folder, token)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.warning(f"Challenge token not found: {token}")
            return web.Response(text=f"Challenge token not found: {token}", status=404)

        logger.info(f"Serving ACME challenge for token: {token}")
        return web.Response(text=content.strip(), content_type="text/plain")

    async def _handle_health(self, request: Request) -> Response:
        return web.Response(text="OK", content_type="text/plain")

    async def start(self) -> None:
        """Start the HTTP challenge server."""
        if self._running:
            logger.warning("HTTP challenge server is already running")
            return

        try:
            logger.info(f"Starting HTTP challenge server on {self.host}:{self.port}")
            self.app = self.create_app()
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()

            self.site = web.TCPSite(self.runner, self.host, self.port)
            await self.site.start()

            self._running = True
            self._start_event.set()
            logger.info(f"Serving challenges from {self.base_folder / 'webroot'}")
        except Exception as e:
            logger.error(f"Failed to start HTTP challenge server: {e}")
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the HTTP challenge server."""
        if not self._running:
            return

        logger.info("Stopping HTTP challenge server...")
        await self._cleanup()
        self._running = False
        self._start_event.clear()

    async def _cleanup(self) -> None:
        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        self.app = None

    async def wait_until_ready(self, timeout: float = 5.0) -> bool:
        """Wait until the server is ready to serve requests.

        Returns:
            True if server is ready, False if timeout occurred
        """
        try:
            await asyncio.wait_for(self._start_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    @property
    def is_running(self) -> bool:
        return self._running

    async def __aenter__(self) -> "HTTPChallengeServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
