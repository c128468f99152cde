import asyncio
import json
import struct

import pytest

from ratnet.errors import SerializationError, TransportError
from ratnet.policy.common import Bundle
from ratnet.policy.mdns import build_advertisement, encode_name
from ratnet.policy.p2p import P2PPolicy
from ratnet.transports.memory import MemoryTransport


class FakeNode:
    def __init__(self):
        self.dropped = []

    async def id(self):
        return "node-key"

    async def pickup(self, routing_pub, last_time, byte_limit, channels):
        return Bundle(b"", 0)

    async def dropoff(self, bundle):
        self.dropped.append(bundle)


class RecordingTransport:
    name = "fake"
    byte_limit = 1000

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def rpc(self, host, method, args):
        self.calls.append((host, method, list(args)))
        if self.fail:
            raise TransportError("unreachable")
        if method == "ID":
            return "remote-key"
        return None


def make_policy(**kwargs):
    return P2PPolicy(MemoryTransport(), "127.0.0.1:8080", FakeNode(), False, 30.0, 10.0, **kwargs)


def srv_response(target: bytes, port: int, flags: int = 0x8400) -> bytes:
    header = struct.pack(">6H", 0, flags, 0, 1, 0, 0)
    rdata = struct.pack(">HHH", 0, 0, port) + target
    return header + encode_name("peer.local") + struct.pack(">HHIH", 0x21, 1, 120, len(rdata)) + rdata


@pytest.mark.asyncio
async def test_p2p_policy_creation():
    policy = make_policy()
    assert not policy.is_listening
    assert not policy.is_advertising
    assert policy.listen_interval == 30.0
    assert policy.advertise_interval == 10.0
    assert 0 <= policy.negotiation_rank < 2**64


@pytest.mark.asyncio
async def test_p2p_negotiation_rank_reroll():
    policy = make_policy()
    original = policy.negotiation_rank
    policy.reroll_negotiation_rank()
    assert policy.negotiation_rank != original


@pytest.mark.asyncio
async def test_start_stop():
    transport = MemoryTransport()
    policy = P2PPolicy(transport, "127.0.0.1:8080", FakeNode(), mdns_port=0,
                       advertise_interval=3600.0, sync_interval=3600.0)
    await policy.run_policy()
    await asyncio.sleep(0.01)
    assert policy.is_listening
    assert policy.is_advertising
    assert transport.is_running
    assert policy.local_address.startswith("memory://")
    assert policy.local_address.endswith(":8080")

    await policy.stop()
    assert not policy.is_listening
    assert not policy.is_advertising
    assert not transport.is_running


@pytest.mark.asyncio
async def test_stop_when_not_running_leaves_transport_alone():
    transport = MemoryTransport()
    await transport.listen("", False)
    policy = P2PPolicy(transport, "127.0.0.1:8080", FakeNode())
    await policy.stop()
    assert transport.is_running


@pytest.mark.asyncio
async def test_mdns_listen_requires_socket():
    policy = make_policy()
    with pytest.raises(TransportError):
        await policy.mdns_listen()


@pytest.mark.asyncio
async def test_process_packet_adds_peer():
    peer_transport = RecordingTransport()
    policy = make_policy(peer_transport_factory=lambda peer: peer_transport)
    await policy.process_mdns_packet(srv_response(b"10.0.0.5", 7000))
    assert await policy.peer_table.get_peers() == ["10.0.0.5:7000"]
    assert policy.peer_transports == {"10.0.0.5:7000": peer_transport}
    assert await policy.peer_table.get_peer_stats("10.0.0.5:7000") == (0, 0, 0, 0)


@pytest.mark.asyncio
async def test_process_query_is_ignored():
    policy = make_policy()
    await policy.process_mdns_packet(srv_response(b"10.0.0.5", 7000, flags=0x0000))
    assert await policy.peer_table.get_peers() == []


@pytest.mark.asyncio
async def test_process_short_packet_is_ignored():
    policy = make_policy()
    await policy.process_mdns_packet(b"\x00\x01")
    assert policy.peer_transports == {}


@pytest.mark.asyncio
async def test_process_bad_name_raises():
    policy = make_policy()
    packet = struct.pack(">6H", 0, 0x8400, 0, 1, 0, 0) + b"\x05ab"
    with pytest.raises(SerializationError):
        await policy.process_mdns_packet(packet)


@pytest.mark.asyncio
async def test_factory_failure_skips_peer():
    def factory(peer):
        raise ValueError("no transport")

    policy = make_policy(peer_transport_factory=factory)
    await policy.process_mdns_packet(srv_response(b"10.0.0.5", 7000))
    assert await policy.peer_table.get_peers() == []
    assert policy.peer_transports == {}


@pytest.mark.asyncio
async def test_advertisement_packet():
    policy = make_policy()
    packet = policy.create_mdns_advertisement_packet("udp://0.0.0.0:8080", 42)
    assert packet == build_advertisement("udp://0.0.0.0:8080", 42)
    assert packet[:12] == bytes([0, 0, 0x84, 0, 0, 0, 0, 2, 0, 0, 0, 0])
    assert packet.endswith(b"rank=42")


@pytest.mark.asyncio
async def test_sync_with_peers_polls_peer():
    peer_transport = RecordingTransport()
    policy = make_policy(peer_transport_factory=lambda peer: peer_transport)
    await policy.process_mdns_packet(srv_response(b"10.0.0.5", 7000))
    await policy.sync_with_peers()
    assert peer_transport.calls == [
        ("10.0.0.5:7000", "ID", []),
        ("10.0.0.5:7000", "Pickup", ["node-key", 0]),
    ]
    assert await policy.peer_table.get_peer_stats("10.0.0.5:7000") == (0, 0, 0, 0)


@pytest.mark.asyncio
async def test_sync_failure_is_contained():
    peer_transport = RecordingTransport(fail=True)
    policy = make_policy(peer_transport_factory=lambda peer: peer_transport)
    await policy.process_mdns_packet(srv_response(b"10.0.0.5", 7000))
    await policy.sync_with_peers()
    assert peer_transport.calls == [("10.0.0.5:7000", "ID", [])]


@pytest.mark.asyncio
async def test_to_json():
    policy = P2PPolicy(MemoryTransport(), "127.0.0.1:8080", FakeNode(), True, 30.0, 10.0)
    assert json.loads(policy.to_json()) == {
        "policy": "p2p",
        "listen_uri": "127.0.0.1:8080",
        "admin_mode": True,
        "listen_interval": 30000,
        "advertise_interval": 10000,
        "transport": "transport",
    }