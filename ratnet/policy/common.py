"""Peer bookkeeping and the push/pull exchange shared by connection policies."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from ratnet.errors import SerializationError

logger = logging.getLogger(__name__)

_ACTION_ID = "ID"
_ACTION_PICKUP = "Pickup"
_ACTION_DROPOFF = "Dropoff"


@dataclass
class Bundle:
    """A batch of messages exchanged between nodes, stamped with a time."""

    data: bytes = b""
    time: int = 0

    @classmethod
    def from_value(cls, value: Any) -> Bundle:
        """Build a bundle from an RPC result (a Bundle or a ``{"data", "time"}`` map)."""
        if isinstance(value, Bundle):
            return value
        if not isinstance(value, Mapping) or "data" not in value or "time" not in value:
            raise SerializationError("value is not a bundle")
        raw, stamp = value["data"], value["time"]
        if isinstance(stamp, bool) or not isinstance(stamp, int):
            raise SerializationError("bundle time must be an integer")
        if isinstance(raw, (bytes, bytearray, memoryview)):
            return cls(bytes(raw), stamp)
        if isinstance(raw, list):
            try:
                return cls(bytes(raw), stamp)
            except (TypeError, ValueError) as exc:
                raise SerializationError(f"invalid bundle data: {exc}") from exc
        raise SerializationError("bundle data must be bytes or a list of byte values")

    def to_value(self) -> dict[str, Any]:
        """Return the JSON-compatible form sent over an RPC."""
        return {"data": list(self.data), "time": self.time}


@dataclass
class PeerInfo:
    """Synchronisation state kept for one remote peer."""

    last_poll_local: int = 0
    last_poll_remote: int = 0
    total_bytes_tx: int = 0
    total_bytes_rx: int = 0
    routing_pub: Any = field(default=None)

    @property
    def stats(self) -> tuple[int, int, int, int]:
        return (
            self.last_poll_local,
            self.last_poll_remote,
            self.total_bytes_tx,
            self.total_bytes_rx,
        )


def _parse_routing_key(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return value
    raise SerializationError("Invalid routing key format")


class PeerTable:
    """Known peers keyed by host, with their polling state and transfer totals."""

    def __init__(self, peers: Mapping[str, PeerInfo] | None = None) -> None:
        self._peers: dict[str, PeerInfo] = dict(peers or {})
        self._lock = asyncio.Lock()

    def __contains__(self, host: object) -> bool:
        return host in self._peers

    def __len__(self) -> int:
        return len(self._peers)

    async def _peer_for(self, host: str) -> PeerInfo:
        async with self._lock:
            return self._peers.setdefault(host, PeerInfo())

    async def poll_server(self, transport: Any, node: Any, host: str, pubsrv: Any) -> bool:
        """Exchange pending messages with ``host`` in both directions.

        Fetches and caches the peer's routing key, picks up local messages for
        the peer and remote messages for us, delivers each side's bundle and
        updates the transfer statistics.
        """
        peer = await self._peer_for(host)

        if peer.routing_pub is None:
            logger.debug("Getting routing key for peer: %s", host)
            try:
                response = await transport.rpc(host, _ACTION_ID, [])
            except Exception as exc:
                logger.error("Failed to get remote routing key: %s", exc)
                raise
            try:
                peer.routing_pub = _parse_routing_key(response)
            except SerializationError:
                logger.error("Failed to deserialize remote routing key")
                raise

        to_remote: Bundle = await node.pickup(
            peer.routing_pub, peer.last_poll_local, transport.byte_limit, []
        )
        logger.debug("Local pickup result length: %d", len(to_remote.data))

        try:
            raw = await transport.rpc(host, _ACTION_PICKUP, [pubsrv, peer.last_poll_remote])
        except Exception as exc:
            logger.error("Remote pickup error: %s", exc)
            raise

        to_local: Bundle | None = None
        try:
            to_local = Bundle.from_value(raw)
        except SerializationError:
            logger.debug("Remote pickup returned no data or invalid format")
        else:
            logger.debug("Remote pickup result length: %d", len(to_local.data))
            peer.total_bytes_rx += len(to_local.data)

        if to_remote.data:
            try:
                await transport.rpc(host, _ACTION_DROPOFF, [to_remote.to_value()])
            except Exception as exc:
                logger.error("Remote dropoff error: %s", exc)
                raise
            # Only start tracking time once data has already flowed.
            if peer.total_bytes_tx > 0:
                peer.last_poll_local = to_remote.time
            peer.total_bytes_tx += len(to_remote.data)

        if to_local is not None and to_local.data:
            try:
                await node.dropoff(to_local)
            except Exception as exc:
                logger.error("Local dropoff error: %s", exc)
                raise
            if peer.total_bytes_rx > 0:
                peer.last_poll_remote = to_local.time

        return True

    async def get_peers(self) -> list[str]:
        async with self._lock:
            return list(self._peers)

    async def get_peer_stats(self, host: str) -> tuple[int, int, int, int] | None:
        """Return ``(last_poll_local, last_poll_remote, bytes_tx, bytes_rx)`` or None."""
        async with self._lock:
            peer = self._peers.get(host)
        return None if peer is None else peer.stats

    async def remove_peer(self, host: str) -> bool:
        async with self._lock:
            return self._peers.pop(host, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._peers.clear()

    async def add_peer(self, key: str, address: str, port: int) -> None:
        """Record a discovered peer; its routing key is learned on first poll."""
        async with self._lock:
            self._peers[key] = PeerInfo()

    def hosts(self) -> Iterable[str]:
        return iter(list(self._peers))