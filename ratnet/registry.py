"""Registry of named factories for routers, policies and transports."""

from __future__ import annotations

import threading
from typing import Any, Callable, Mapping

from ratnet.errors import InvalidArgumentError, NotFoundError

Config = Mapping[str, Any]
RouterFactory = Callable[[Config], Any]
PolicyFactory = Callable[[Any, Any, Config], Any]
TransportFactory = Callable[[Any, Config], Any]


class Registry:
    """Maps component type names to factories that build them from a config map."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._routers: dict[str, RouterFactory] = {}
        self._policies: dict[str, PolicyFactory] = {}
        self._transports: dict[str, TransportFactory] = {}

    def register_router(self, name: str, factory: RouterFactory) -> None:
        """Register a factory taking ``config`` and returning a router."""
        with self._lock:
            self._routers[name] = factory

    def register_policy(self, name: str, factory: PolicyFactory) -> None:
        """Register a factory taking ``(transport, node, config)`` and returning a policy."""
        with self._lock:
            self._policies[name] = factory

    def register_transport(self, name: str, factory: TransportFactory) -> None:
        """Register a factory taking ``(node, config)`` and returning a transport."""
        with self._lock:
            self._transports[name] = factory

    def _lookup(self, table: dict[str, Any], kind: str, config: Config) -> Any:
        type_name = config.get(kind)
        if not isinstance(type_name, str):
            raise InvalidArgumentError(f"Missing or invalid {kind} type")
        with self._lock:
            factory = table.get(type_name)
        if factory is None:
            raise NotFoundError(f"{kind} type '{type_name}' not found")
        return factory

    def new_router_from_map(self, config: Config) -> Any:
        """Build a router whose type is named by ``config["Router"]``."""
        factory = self._lookup(self._routers, "Router", config)
        return factory(config)

    def new_policy_from_map(self, transport: Any, node: Any, config: Config) -> Any:
        """Build a policy whose type is named by ``config["Policy"]``."""
        factory = self._lookup(self._policies, "Policy", config)
        return factory(transport, node, config)

    def new_transport_from_map(self, node: Any, config: Config) -> Any:
        """Build a transport whose type is named by ``config["Transport"]``."""
        factory = self._lookup(self._transports, "Transport", config)
        return factory(node, config)

    def get_router_types(self) -> list[str]:
        with self._lock:
            return list(self._routers)

    def get_policy_types(self) -> list[str]:
        with self._lock:
            return list(self._policies)

    def get_transport_types(self) -> list[str]:
        with self._lock:
            return list(self._transports)

    def clear(self) -> None:
        """Remove every registration."""
        with self._lock:
            self._routers.clear()
            self._policies.clear()
            self._transports.clear()