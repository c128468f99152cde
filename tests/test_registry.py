import pytest

from ratnet.errors import InvalidArgumentError, NotFoundError
from ratnet.registry import Registry


def test_registry_creation():
    registry = Registry()
    assert registry.get_router_types() == []
    assert registry.get_policy_types() == []
    assert registry.get_transport_types() == []


def test_missing_type_error():
    registry = Registry()
    with pytest.raises(InvalidArgumentError) as info:
        registry.new_router_from_map({})
    assert "Missing or invalid Router type" in str(info.value)


def test_non_string_type_is_invalid():
    registry = Registry()
    registry.register_transport("udp", lambda node, config: "t")
    with pytest.raises(InvalidArgumentError, match="Missing or invalid Transport type"):
        registry.new_transport_from_map(None, {"Transport": 5})


def test_unknown_type_not_found():
    registry = Registry()
    with pytest.raises(NotFoundError, match="Policy type 'nope' not found"):
        registry.new_policy_from_map(None, None, {"Policy": "nope"})


def test_router_factory_receives_config():
    registry = Registry()
    registry.register_router("default", lambda config: ("router", dict(config)))
    config = {"Router": "default", "extra": 1}
    assert registry.new_router_from_map(config) == ("router", config)


def test_policy_factory_receives_all_arguments():
    registry = Registry()
    registry.register_policy(
        "poll", lambda transport, node, config: (transport, node, config["Policy"])
    )
    result = registry.new_policy_from_map("tr", "nd", {"Policy": "poll"})
    assert result == ("tr", "nd", "poll")


def test_transport_factory_receives_node_and_config():
    registry = Registry()
    registry.register_transport("udp", lambda node, config: (node, config.get("listen")))
    result = registry.new_transport_from_map("nd", {"Transport": "udp", "listen": "127.0.0.1:0"})
    assert result == ("nd", "127.0.0.1:0")


def test_type_listing_and_replacement():
    registry = Registry()
    registry.register_router("a", lambda c: 1)
    registry.register_router("b", lambda c: 2)
    registry.register_router("a", lambda c: 3)
    assert sorted(registry.get_router_types()) == ["a", "b"]
    assert registry.new_router_from_map({"Router": "a"}) == 3


def test_clear_removes_everything():
    registry = Registry()
    registry.register_router("r", lambda c: None)
    registry.register_policy("p", lambda t, n, c: None)
    registry.register_transport("t", lambda n, c: None)
    registry.clear()
    assert registry.get_router_types() == []
    assert registry.get_policy_types() == []
    assert registry.get_transport_types() == []
    with pytest.raises(NotFoundError):
        registry.new_router_from_map({"Router": "r"})