# ratnet

Asynchronous building blocks for a store-and-forward anonymity network
meant for mesh routing and embedded scenarios. Everything is plain
`asyncio` and the standard library; there are no third-party
dependencies.

## What is in the package

- `ratnet.registry.Registry` — a name-keyed registry of factories for
  routers, policies and transports. `new_router_from_map`,
  `new_policy_from_map` and `new_transport_from_map` pick the factory
  named by the `"Router"`, `"Policy"` or `"Transport"` key of a
  configuration mapping. A missing or non-string type raises
  `InvalidArgumentError`; an unknown type raises `NotFoundError`.
- `ratnet.defaults.register_defaults(registry)` — registers the
  `"default"` router and the `"poll"`, `"server"` and `"p2p"` policies.
  The `"server"` and `"p2p"` factories read `listen_uri` (default
  `"127.0.0.1:8080"`) and `admin_mode` (default `False`); `"p2p"` also
  reads `listen_interval` and `advertise_interval` in milliseconds
  (defaults 30000 and 10000).
- `ratnet.policy.server.ServerPolicy` — starts `transport.listen` in the
  background and stops the transport on `stop()`. Starting or stopping
  twice is harmless. `to_json()` gives its configuration.
- `ratnet.policy.poll.PollPolicy` — at a fixed interval (30 seconds by
  default) asks the node for its peers and walks the enabled ones.
- `ratnet.policy.common.PeerTable` — per-peer state (`PeerInfo`) and
  `poll_server`, the push/pull exchange with a remote host: it fetches
  and caches the peer's routing key, picks up local messages for the
  peer and remote messages for the node, drops each `Bundle` off on the
  other side and updates transfer totals (`get_peer_stats`).
- `ratnet.policy.p2p.P2PPolicy` — opens mDNS sockets, listens for
  responses, adds each peer advertised by an SRV answer to its
  `PeerTable`, periodically sends an announcement carrying its address
  and a random 64-bit negotiation rank, and periodically polls every
  discovered peer. By default discovered peers are reached through the
  policy's own transport; pass `peer_transport_factory` to supply one
  per peer. `reroll_negotiation_rank()` picks a new rank.
- `ratnet.policy.mdns` — helpers to build and parse the discovery
  packets: `encode_name`, `skip_name`, `extract_name`,
  `build_srv_record`, `build_txt_record`, `build_advertisement`,
  `build_announcement`, `parse_srv_record`, `parse_discovered_peers`
  and the `DiscoveredPeer` dataclass.
- `ratnet.router.default.DefaultRouter` — decodes a message's flag byte,
  hands messages to `node.handle`, forwards channel messages along the
  installed `Patch` routes with `node.send_msg`, and passes chunked and
  stream-header messages to a chunk handler (by default `node.handle`).
  `to_json()` / `from_json()` save and restore its patches.
- `ratnet.transports.memory.MemoryTransport` — an in-process transport
  for tests; every RPC succeeds with `None` and is recorded in `calls`.

Errors are subclasses of `ratnet.errors.RatNetError`:
`InvalidArgumentError`, `NotFoundError`, `SerializationError` and
`TransportError`.

## Installation

```
pip install .
```

## Example

```python
import asyncio

from ratnet.defaults import register_defaults
from ratnet.errors import NotFoundError
from ratnet.registry import Registry
from ratnet.transports.memory import MemoryTransport


async def main():
    registry = register_defaults(Registry())
    print(sorted(registry.get_policy_types()))

    transport = MemoryTransport()
    policy = registry.new_policy_from_map(
        transport, None, {"Policy": "server", "listen_uri": "127.0.0.1:8080"}
    )
    await policy.run_policy()
    print(policy.to_json())
    await policy.stop()

    try:
        registry.new_router_from_map({"Router": "missing"})
    except NotFoundError as exc:
        print(exc)


asyncio.run(main())
```

## Channel message framing

A routed message starts with a flag byte: `0x01` channel, `0x02`
stream header, `0x04` chunked. When the channel flag is set, the flag
byte is followed by a big-endian 16-bit name length and the UTF-8
channel name; the rest is the payload.
`ratnet.router.default.extract_channel_name` splits a message into its
channel name (or `None`) and its payload.

## What the package does not do

- It has no node: policies and routers call a node object you supply
  (`pickup`, `dropoff`, `handle`, `send_msg`, `get_peers`, `id`), and
  nothing stores messages, contacts, channels or keys.
- The only transport is `MemoryTransport`; there is no UDP, TLS or
  HTTPS transport, so nothing talks to a real remote node on its own.
- There is no command-line program and no server to run.

## Running the tests

```
pip install ".[test]"
pytest
```