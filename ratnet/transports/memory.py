"""In-process transport used for testing."""

from __future__ import annotations

from typing import Any, Sequence

DEFAULT_BYTE_LIMIT = 1024 * 1024


class MemoryTransport:
    """A transport that never touches the network; every RPC succeeds with ``None``.

    Each call made through :meth:`rpc` is recorded in :attr:`calls` as a
    ``(host, method, args)`` tuple.
    """

    name = "memory"

    def __init__(self, byte_limit: int = DEFAULT_BYTE_LIMIT) -> None:
        self.byte_limit = byte_limit
        self.calls: list[tuple[str, Any, list[Any]]] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def listen(self, listen: str, admin_mode: bool) -> None:
        """Mark the transport as running."""
        self._running = True

    async def rpc(self, host: str, method: Any, args: Sequence[Any]) -> Any:
        """Record the remote call and report success with ``None``."""
        self.calls.append((host, method, list(args)))
        return None

    async def stop(self) -> None:
        """Mark the transport as stopped."""
        self._running = False