"""Registration of the built-in routers and policies."""

from __future__ import annotations

from typing import Any, Mapping

from ratnet.policy.p2p import P2PPolicy
from ratnet.policy.poll import PollPolicy
from ratnet.policy.server import ServerPolicy
from ratnet.registry import Registry
from ratnet.router.default import DefaultRouter

DEFAULT_LISTEN_URI = "127.0.0.1:8080"
DEFAULT_LISTEN_INTERVAL_MS = 30000
DEFAULT_ADVERTISE_INTERVAL_MS = 10000


def _str(config: Mapping[str, Any], key: str, default: str) -> str:
    value = config.get(key)
    return value if isinstance(value, str) else default


def _bool(config: Mapping[str, Any], key: str, default: bool) -> bool:
    value = config.get(key)
    return value if isinstance(value, bool) else default


def _millis(config: Mapping[str, Any], key: str, default: int) -> float:
    value = config.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        value = default
    return value / 1000


def _server_policy(transport: Any, node: Any, config: Mapping[str, Any]) -> ServerPolicy:
    return ServerPolicy(
        transport,
        _str(config, "listen_uri", DEFAULT_LISTEN_URI),
        _bool(config, "admin_mode", False),
    )


def _p2p_policy(transport: Any, node: Any, config: Mapping[str, Any]) -> P2PPolicy:
    return P2PPolicy(
        transport,
        _str(config, "listen_uri", DEFAULT_LISTEN_URI),
        node,
        _bool(config, "admin_mode", False),
        _millis(config, "listen_interval", DEFAULT_LISTEN_INTERVAL_MS),
        _millis(config, "advertise_interval", DEFAULT_ADVERTISE_INTERVAL_MS),
    )


def register_defaults(registry: Registry) -> Registry:
    """Register the "default" router and the "poll", "server" and "p2p" policies."""
    registry.register_router("default", lambda _config: DefaultRouter())
    registry.register_policy("poll", lambda transport, node, _config: PollPolicy(transport, node))
    registry.register_policy("server", _server_policy)
    registry.register_policy("p2p", _p2p_policy)
    return registry