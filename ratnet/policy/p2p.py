"""Peer-to-peer policy: mDNS discovery plus periodic synchronisation with found peers."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import secrets
import socket
import struct
from typing import Any, Callable

from ratnet.errors import RatNetError, TransportError
from ratnet.policy.common import PeerTable
from ratnet.policy.mdns import (
    MULTICAST_ADDR,
    MULTICAST_PORT,
    DiscoveredPeer,
    build_advertisement,
    build_announcement,
    parse_discovered_peers,
)

logger = logging.getLogger(__name__)

DEFAULT_LISTEN_INTERVAL = 30.0
DEFAULT_ADVERTISE_INTERVAL = 10.0
DEFAULT_SYNC_INTERVAL = 60.0

PeerTransportFactory = Callable[[DiscoveredPeer], Any]


def _random_rank() -> int:
    return secrets.randbits(64)


class _DatagramQueue(asyncio.DatagramProtocol):
    """Collects received datagrams; ``None`` marks that the socket was closed."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[bytes | None] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: Any) -> None:
        self.queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        logger.warning("mDNS socket error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        self.queue.put_nowait(None)


class P2PPolicy:
    """Discovers peers over multicast DNS and exchanges messages with them."""

    def __init__(
        self,
        transport: Any,
        listen_uri: str,
        node: Any,
        admin_mode: bool = False,
        listen_interval: float = DEFAULT_LISTEN_INTERVAL,
        advertise_interval: float = DEFAULT_ADVERTISE_INTERVAL,
        *,
        peer_transport_factory: PeerTransportFactory | None = None,
        mdns_port: int = MULTICAST_PORT,
        sync_interval: float = DEFAULT_SYNC_INTERVAL,
    ) -> None:
        self.transport = transport
        self.node = node
        self.listen_uri = listen_uri
        self.admin_mode = admin_mode
        self._listen_interval = listen_interval
        self._advertise_interval = advertise_interval
        self._sync_interval = sync_interval
        self._mdns_port = mdns_port
        self._peer_transport_factory = peer_transport_factory or (lambda _peer: self.transport)

        self._negotiation_rank = _random_rank()
        self._listening = False
        self._advertising = False
        self.local_address = ""

        self._listen_endpoint: asyncio.DatagramTransport | None = None
        self._listen_protocol: _DatagramQueue | None = None
        self._dial_endpoint: asyncio.DatagramTransport | None = None
        self._tasks: list[asyncio.Task[None]] = []

        self.peer_table = PeerTable()
        self._peer_list: dict[str, Any] = {}

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def is_advertising(self) -> bool:
        return self._advertising

    @property
    def listen_interval(self) -> float:
        return self._listen_interval

    @property
    def advertise_interval(self) -> float:
        return self._advertise_interval

    @property
    def negotiation_rank(self) -> int:
        return self._negotiation_rank

    @property
    def peer_transports(self) -> dict[str, Any]:
        """Transports for discovered peers, keyed by ``address:port``."""
        return dict(self._peer_list)

    def reroll_negotiation_rank(self) -> None:
        """Pick a fresh random rank, used to break connection ties."""
        self._negotiation_rank = _random_rank()

    async def _init_listen_socket(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind(("0.0.0.0", self._mdns_port))
        except OSError as exc:
            sock.close()
            raise TransportError(f"Failed to bind mDNS listen socket: {exc}") from exc
        mreq = struct.pack("4s4s", socket.inet_aton(MULTICAST_ADDR), socket.inet_aton("0.0.0.0"))
        try:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        except OSError as exc:
            logger.warning("Failed to join multicast group: %s", exc)
        sock.setblocking(False)
        loop = asyncio.get_running_loop()
        self._listen_endpoint, self._listen_protocol = await loop.create_datagram_endpoint(
            _DatagramQueue, sock=sock
        )

    async def _init_dial_socket(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind(("0.0.0.0", 0))
            ip = sock.getsockname()[0]
        except OSError as exc:
            sock.close()
            raise TransportError(f"Failed to bind mDNS dial socket: {exc}") from exc
        port = self.listen_uri.rsplit(":", 1)[-1]
        self.local_address = f"{self.transport.name}://{ip}:{port}"
        sock.setblocking(False)
        loop = asyncio.get_running_loop()
        self._dial_endpoint, _ = await loop.create_datagram_endpoint(_DatagramQueue, sock=sock)

    async def process_mdns_packet(self, data: bytes) -> None:
        """Add every peer advertised by SRV answers in an mDNS response."""
        for peer in parse_discovered_peers(data):
            logger.debug("Discovered peer: %s", peer)
            await self._add_discovered_peer(peer)

    async def _add_discovered_peer(self, peer: DiscoveredPeer) -> None:
        key = peer.key
        try:
            peer_transport = self._peer_transport_factory(peer)
        except Exception as exc:
            logger.warning("Failed to create transport for peer %s: %s", key, exc)
            return
        self._peer_list[key] = peer_transport
        await self.peer_table.add_peer(key, peer.address, peer.port)
        logger.info("Added discovered peer: %s", key)

    def create_mdns_advertisement_packet(self, local_address: str, negotiation_rank: int) -> bytes:
        """Build the mDNS response advertising ``local_address`` and ``negotiation_rank``."""
        return build_advertisement(local_address, negotiation_rank)

    async def mdns_listen(self) -> None:
        """Process incoming mDNS packets until the policy stops listening."""
        protocol = self._listen_protocol
        if protocol is None:
            raise TransportError("Listen socket not initialized")
        while self._listening:
            data = await protocol.queue.get()
            if data is None:
                break
            try:
                await self.process_mdns_packet(data)
            except RatNetError as exc:
                logger.warning("Error processing mDNS packet: %s", exc)

    async def _transport_listen(self) -> None:
        try:
            await self.transport.listen(self.listen_uri, self.admin_mode)
        except Exception as exc:
            logger.error("P2P transport listen error: %s", exc)

    async def _advertise_loop(self) -> None:
        while self._listening and self._advertising:
            endpoint = self._dial_endpoint
            if endpoint is None:
                break
            packet = build_announcement(self.local_address, self._negotiation_rank)
            try:
                endpoint.sendto(packet, (MULTICAST_ADDR, self._mdns_port))
            except OSError as exc:
                logger.warning("mDNS advertise error: %s", exc)
            await asyncio.sleep(self._advertise_interval)

    async def _sync_loop(self) -> None:
        while self._listening:
            await self.sync_with_peers()
            await asyncio.sleep(self._sync_interval)

    async def run_policy(self) -> None:
        """Open the mDNS sockets and start listening, advertising and syncing."""
        if self._listening:
            return
        logger.info("Starting P2P policy on %s", self.listen_uri)
        await self._init_listen_socket()
        try:
            await self._init_dial_socket()
        except TransportError:
            self._close_sockets()
            raise

        self._listening = True
        self._advertising = True
        self._tasks = [
            asyncio.create_task(self._transport_listen()),
            asyncio.create_task(self.mdns_listen()),
            asyncio.create_task(self._advertise_loop()),
            asyncio.create_task(self._sync_loop()),
        ]
        logger.debug("P2P policy started successfully")

    def _close_sockets(self) -> None:
        for endpoint in (self._listen_endpoint, self._dial_endpoint):
            if endpoint is not None:
                endpoint.close()
        self._listen_endpoint = None
        self._listen_protocol = None
        self._dial_endpoint = None

    async def stop(self) -> None:
        """Stop the transport, close the sockets and forget discovered peers."""
        if not self._listening:
            return
        logger.info("Stopping P2P policy")
        self._listening = False
        self._advertising = False
        try:
            await self.transport.stop()
        finally:
            self._close_sockets()
            tasks, self._tasks = self._tasks, []
            for task in tasks:
                task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task
            self._peer_list.clear()
        logger.debug("P2P policy stopped successfully")

    async def sync_with_peers(self) -> None:
        """Poll every discovered peer once; failures are logged, not raised."""
        for key in list(self._peer_list):
            peer_transport = self._peer_list.get(key)
            if peer_transport is None:
                continue
            try:
                await self._sync_with_peer(key, peer_transport)
            except Exception as exc:
                logger.warning("Failed to sync with peer %s: %s", key, exc)

    async def _sync_with_peer(self, key: str, peer_transport: Any) -> None:
        node_id = await self.node.id()
        if await self.peer_table.poll_server(peer_transport, self.node, key, node_id):
            logger.debug("Successfully synced with peer: %s", key)
        else:
            logger.debug("No new data synced with peer: %s", key)

    def to_json(self) -> str:
        return json.dumps(
            {
                "policy": "p2p",
                "listen_uri": self.listen_uri,
                "admin_mode": self.admin_mode,
                "listen_interval": round(self._listen_interval * 1000),
                "advertise_interval": round(self._advertise_interval * 1000),
                "transport": "transport",
            },
            separators=(",", ":"),
        )