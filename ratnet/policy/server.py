"""Listen-only connection policy."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


class ServerPolicy:
    """Starts a transport in server mode and keeps it running until stopped."""

    def __init__(self, transport: Any, listen_uri: str, admin_mode: bool = False) -> None:
        self.transport = transport
        self.listen_uri = listen_uri
        self.admin_mode = admin_mode
        self._running = False
        self._transport_lock = asyncio.Lock()
        self._listen_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def _listen(self) -> None:
        try:
            await self.transport.listen(self.listen_uri, self.admin_mode)
        except Exception as exc:
            logger.error("Server policy listen error: %s", exc)

    async def run_policy(self) -> None:
        """Start listening in the background; calling it again is harmless."""
        if self._running:
            return
        self._running = True
        logger.info("Starting server policy on %s", self.listen_uri)
        self._listen_task = asyncio.create_task(self._listen())
        logger.debug("Server policy started successfully")

    async def stop(self) -> None:
        """Stop the transport; calling it when already stopped is harmless."""
        if not self._running:
            return
        self._running = False
        logger.info("Stopping server policy")
        async with self._transport_lock:
            await self.transport.stop()
        logger.debug("Server policy stopped successfully")

    def to_json(self) -> str:
        return json.dumps(
            {
                "policy": "server",
                "listen_uri": self.listen_uri,
                "admin_mode": self.admin_mode,
                "transport": "transport",
            },
            separators=(",", ":"),
        )