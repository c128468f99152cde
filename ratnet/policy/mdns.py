"""Multicast DNS packet building and parsing used for peer discovery."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator

from ratnet.errors import SerializationError

MAX_DATAGRAM_SIZE = 4096
MULTICAST_ADDR = "224.0.0.251"
MULTICAST_PORT = 5353

TYPE_SRV = 0x0021
TYPE_TXT = 0x0010
CLASS_IN = 0x0001
RECORD_TTL = 120

HEADER_SIZE = 12
QR_FLAG = 0x8000
MAX_LABEL_LENGTH = 63
_POINTER_MASK = 0xC0

# Transaction 0, flags response+authoritative, no questions, two answers.
ADVERTISEMENT_HEADER = bytes(
    [0x00, 0x00, 0x84, 0x00, 0x00, 0x00, 0x00, 0x02, 0x00, 0x00, 0x00, 0x00]
)
# Transaction 0, flags response+authoritative, two questions, no answers.
ANNOUNCEMENT_HEADER = bytes(
    [0x00, 0x00, 0x84, 0x00, 0x00, 0x02, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00]
)


@dataclass
class DiscoveredPeer:
    """A peer learned from an SRV record in an mDNS response."""

    name: str
    address: str
    port: int
    priority: int = 0
    weight: int = 0
    negotiation_rank: int = 0

    @property
    def key(self) -> str:
        """The ``address:port`` key under which the peer is tracked."""
        return f"{self.address}:{self.port}"


def _u16(value: int, what: str) -> bytes:
    if not 0 <= value <= 0xFFFF:
        raise SerializationError(f"{what} out of range: {value}")
    return struct.pack(">H", value)


def _service_names(local_address: str, negotiation_rank: int) -> tuple[str, str]:
    if not 0 <= negotiation_rank <= 0xFFFFFFFFFFFFFFFF:
        raise SerializationError(f"negotiation rank out of range: {negotiation_rank}")
    encoded_address = local_address.encode("utf-8").hex()
    encoded_rank = negotiation_rank.to_bytes(8, "little").hex()
    return f"rn.{encoded_address}", f"ng.{encoded_rank}"


def encode_name(name: str) -> bytes:
    """Encode a dotted name as length-prefixed DNS labels ending in a zero byte."""
    out = bytearray()
    for part in name.split("."):
        raw = part.encode("utf-8")
        if len(raw) > MAX_LABEL_LENGTH:
            raise SerializationError("DNS name part too long")
        out.append(len(raw))
        out += raw
    out.append(0)
    return bytes(out)


def skip_name(data: bytes, offset: int) -> int:
    """Return the offset just past the DNS name starting at ``offset``."""
    while offset < len(data):
        length = data[offset]
        if length == 0:
            return offset + 1
        if length & _POINTER_MASK == _POINTER_MASK:
            return offset + 2
        offset += length + 1
    raise SerializationError("Invalid DNS name")


def extract_name(data: bytes, offset: int) -> str:
    """Read the DNS name at ``offset``, following compression pointers."""
    parts: list[str] = []
    visited: set[int] = set()
    while offset < len(data):
        length = data[offset]
        if length == 0:
            break
        if length & _POINTER_MASK == _POINTER_MASK:
            if offset + 1 >= len(data):
                raise SerializationError("DNS name pointer extends beyond packet")
            if offset in visited:
                raise SerializationError("DNS name pointer loop")
            visited.add(offset)
            pointer = ((length & 0x3F) << 8) | data[offset + 1]
            # A pointer replaces the rest of the name, as in the wire format.
            parts.clear()
            offset = pointer
            continue
        if length > MAX_LABEL_LENGTH:
            raise SerializationError("Invalid DNS name length")
        offset += 1
        if offset + length > len(data):
            raise SerializationError("DNS name extends beyond packet")
        parts.append(data[offset:offset + length].decode("utf-8", errors="replace"))
        offset += length
    return ".".join(parts)


def build_srv_record(name: str, target: str, port: int, priority: int, weight: int) -> bytes:
    """Build an IN-class SRV resource record."""
    rdata = (
        _u16(priority, "priority")
        + _u16(weight, "weight")
        + _u16(port, "port")
        + encode_name(target)
    )
    return (
        encode_name(name)
        + struct.pack(">HHI", TYPE_SRV, CLASS_IN, RECORD_TTL)
        + _u16(len(rdata), "record length")
        + rdata
    )


def build_txt_record(name: str, text: str) -> bytes:
    """Build an IN-class TXT resource record holding one string."""
    raw = text.encode("utf-8")
    if len(raw) > 0xFF:
        raise SerializationError("TXT string too long")
    return (
        encode_name(name)
        + struct.pack(">HHI", TYPE_TXT, CLASS_IN, RECORD_TTL)
        + _u16(len(raw) + 1, "record length")
        + bytes([len(raw)])
        + raw
    )


def build_advertisement(local_address: str, negotiation_rank: int) -> bytes:
    """Build the mDNS response advertising this node's address and rank."""
    rn_prefix, ng_prefix = _service_names(local_address, negotiation_rank)
    rn_name = f"{rn_prefix}.local"
    ng_name = f"{ng_prefix}.local"
    return (
        ADVERTISEMENT_HEADER
        + build_srv_record(rn_name, ng_name, MULTICAST_PORT, 0, 0)
        + build_txt_record(rn_name, f"rank={negotiation_rank}")
    )


def build_announcement(local_address: str, negotiation_rank: int) -> bytes:
    """Build the periodic announcement packet with the two service names as questions.

    The names are written as plain dotted text followed by a zero byte.
    """
    rn_prefix, ng_prefix = _service_names(local_address, negotiation_rank)
    packet = bytearray(ANNOUNCEMENT_HEADER)
    for name in (f"{rn_prefix}.local.", f"{ng_prefix}.local."):
        packet += name.encode("utf-8")
        packet.append(0)
        packet += struct.pack(">HH", TYPE_SRV, CLASS_IN)
    return bytes(packet)


def parse_srv_record(data: bytes, name_offset: int, record_data: bytes) -> DiscoveredPeer:
    """Decode an SRV record's data; the owner name is read from ``data`` at ``name_offset``."""
    if len(record_data) < 6:
        raise SerializationError("SRV record too short")
    priority, weight, port = struct.unpack(">HHH", record_data[:6])
    target = record_data[6:].decode("utf-8", errors="replace")
    name = extract_name(data, name_offset)
    return DiscoveredPeer(
        name=name, address=target, port=port, priority=priority, weight=weight
    )


def parse_discovered_peers(data: bytes) -> Iterator[DiscoveredPeer]:
    """Yield a peer for each SRV answer in an mDNS response.

    Queries and packets too short for a header yield nothing; a truncated
    record ends the scan. A malformed name raises SerializationError after
    the peers found before it have been yielded.
    """
    if len(data) < HEADER_SIZE:
        return
    _txid, flags, questions, answers, _authority, _additional = struct.unpack(
        ">6H", data[:HEADER_SIZE]
    )
    if not flags & QR_FLAG:
        return

    offset = HEADER_SIZE
    for _ in range(questions):
        offset = skip_name(data, offset)
        if offset + 4 > len(data):
            return
        offset += 4

    for _ in range(answers):
        name_offset = offset
        offset = skip_name(data, offset)
        if offset + 10 > len(data):
            return
        record_type, record_class, _ttl, data_len = struct.unpack(
            ">HHIH", data[offset:offset + 10]
        )
        offset += 10
        if offset + data_len > len(data):
            return
        if record_type == TYPE_SRV and record_class == CLASS_IN:
            try:
                peer = parse_srv_record(data, name_offset, data[offset:offset + data_len])
            except SerializationError:
                pass
            else:
                yield peer
        offset += data_len