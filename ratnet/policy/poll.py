"""Periodic polling connection policy."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0


class PollPolicy:
    """Wakes up at a fixed interval and walks the node's enabled peers."""

    def __init__(self, transport: Any, node: Any, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        self.transport = transport
        self.node = node
        self.interval = interval
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def _tick(self) -> None:
        logger.debug("Poll policy tick")
        try:
            peers = await self.node.get_peers(None)
        except Exception as exc:
            logger.debug("Poll policy could not list peers: %s", exc)
            return
        for peer in peers:
            if peer.enabled:
                logger.debug("Would poll peer: %s", peer.name)

    async def _loop(self) -> None:
        while self._running:
            await self._tick()
            await asyncio.sleep(self.interval)
        logger.info("Poll policy stopped")

    async def run_policy(self) -> None:
        """Start the polling loop; calling it again while running does nothing."""
        if self._running:
            return
        self._running = True
        logger.info("Starting poll policy")
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop the polling loop."""
        logger.info("Stopping poll policy")
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task