"""Default message router: channel extraction, node delivery and channel patches."""

from __future__ import annotations

import json
import logging
import struct
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from ratnet.errors import InvalidArgumentError, SerializationError

logger = logging.getLogger(__name__)

CHANNEL_FLAG = 0x01
STREAM_HEADER_FLAG = 0x02
CHUNKED_FLAG = 0x04


@dataclass
class Msg:
    """A message delivered to a node or routed to another channel."""

    name: str = ""
    content: bytes = b""
    is_chan: bool = False
    pubkey: Any = None
    chunked: bool = False
    stream_header: bool = False


@dataclass
class Patch:
    """Forwards every message seen on ``source`` to each channel in ``targets``."""

    source: str
    targets: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        self.targets = tuple(self.targets)

    def to_value(self) -> dict[str, Any]:
        return {"from": self.source, "to": list(self.targets)}

    @classmethod
    def from_value(cls, value: Any) -> Patch:
        if not isinstance(value, dict):
            raise SerializationError("patch must be an object")
        source, targets = value.get("from"), value.get("to")
        if not isinstance(source, str):
            raise SerializationError("patch 'from' must be a string")
        if not isinstance(targets, list) or not all(isinstance(t, str) for t in targets):
            raise SerializationError("patch 'to' must be a list of strings")
        return cls(source, tuple(targets))


ChunkHandler = Callable[[Any, Msg], Awaitable[Any]]


def extract_channel_name(data: bytes) -> tuple[str | None, bytes]:
    """Split a routed message into its channel name (if flagged) and the rest.

    The first byte holds the flags; with CHANNEL_FLAG set it is followed by a
    big-endian 16-bit name length and the UTF-8 name.
    """
    if not data:
        return None, data
    if not data[0] & CHANNEL_FLAG:
        return None, data[1:]
    if len(data) < 3:
        raise SerializationError("Invalid channel message format")
    (name_len,) = struct.unpack(">H", data[1:3])
    end = 3 + name_len
    if len(data) < end:
        raise SerializationError("Channel name length exceeds message size")
    try:
        name = data[3:end].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SerializationError(f"Invalid UTF-8 in channel name: {exc}") from exc
    return name, data[end:]


async def _deliver_to_node(node: Any, msg: Msg) -> None:
    await node.handle(msg)


class DefaultRouter:
    """Delivers incoming messages to the node and forwards them along channel patches.

    Chunked and stream-header messages are passed to ``chunk_handler``; by
    default they go to the node's ``handle`` with their chunk flags set.
    """

    def __init__(
        self,
        patches: Iterable[Patch] = (),
        chunk_handler: ChunkHandler | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._patches: list[Patch] = []
        self._chunk_handler = chunk_handler or _deliver_to_node
        for item in patches:
            self.patch(item)

    def patch(self, patch: Patch) -> None:
        """Install ``patch``, replacing any existing patch from the same channel."""
        with self._lock:
            self._patches = [p for p in self._patches if p.source != patch.source]
            self._patches.append(patch)

    def get_patches(self) -> list[Patch]:
        with self._lock:
            return list(self._patches)

    async def route(self, node: Any, msg: bytes) -> None:
        """Route one raw message received by ``node``."""
        if not msg:
            raise InvalidArgumentError("Empty message")
        flags = msg[0]
        logger.debug("Routing message with flags: 0x%02x", flags)

        if flags & (STREAM_HEADER_FLAG | CHUNKED_FLAG):
            channel, rest = extract_channel_name(msg)
            chunk_msg = Msg(
                name=channel or "",
                content=bytes(rest),
                is_chan=channel is not None,
                chunked=True,
                stream_header=bool(flags & STREAM_HEADER_FLAG),
            )
            await self._chunk_handler(node, chunk_msg)
            return

        if flags & CHANNEL_FLAG:
            channel, rest = extract_channel_name(msg)
            if channel is not None:
                content = bytes(rest)
                await self._handle(node, Msg(name=channel, content=content, is_chan=True))
                await self._apply_patches(channel, node, content)
                return

        await self._handle(node, Msg(content=bytes(msg[1:])))

    async def _handle(self, node: Any, msg: Msg) -> None:
        try:
            handled = await node.handle(msg)
        except Exception as exc:
            if msg.is_chan:
                logger.error("Error handling message for channel '%s': %s", msg.name, exc)
            else:
                logger.error("Error handling message: %s", exc)
            return
        if handled:
            logger.debug("Message handled by node")
        else:
            logger.debug("Message not handled by node")

    async def _apply_patches(self, channel: str, node: Any, content: bytes) -> None:
        routed = False
        for patch in self.get_patches():
            if patch.source != channel:
                continue
            for target in patch.targets:
                logger.debug("Routing message from '%s' to '%s'", channel, target)
                try:
                    await node.send_msg(Msg(name=target, content=content, is_chan=True))
                except Exception as exc:
                    logger.error("Failed to route message to channel '%s': %s", target, exc)
                else:
                    routed = True
        if routed:
            logger.info("Message routed from channel '%s'", channel)

    def to_json(self) -> str:
        return json.dumps(
            {"type": "default", "patches": [p.to_value() for p in self.get_patches()]},
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, text: str) -> DefaultRouter:
        """Build a router from its JSON form; patches are restored when present."""
        try:
            config = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SerializationError(f"invalid router JSON: {exc}") from exc
        patches: list[Patch] = []
        if isinstance(config, dict) and "patches" in config:
            raw = config["patches"]
            if not isinstance(raw, list):
                raise SerializationError("router 'patches' must be a list")
            patches = [Patch.from_value(item) for item in raw]
        return cls(patches)