import pytest

from ratnet.errors import (
    InvalidArgumentError,
    NotFoundError,
    RatNetError,
    SerializationError,
    TransportError,
)


@pytest.mark.parametrize(
    "cls",
    [InvalidArgumentError, NotFoundError, SerializationError, TransportError],
)
def test_all_errors_derive_from_base(cls):
    err = cls("boom")
    assert isinstance(err, RatNetError)
    assert str(err) == "boom"


def test_message_is_kept():
    err = NotFoundError("Router type 'x' not found")
    assert str(err) == "Router type 'x' not found"


def test_invalid_argument_is_a_value_error():
    err = InvalidArgumentError("bad")
    assert isinstance(err, ValueError)
    assert err.args == ("bad",)


def test_serialization_is_a_value_error():
    err = SerializationError("Invalid DNS name")
    assert isinstance(err, ValueError)
    assert str(err) == "Invalid DNS name"


def test_not_found_is_a_lookup_error():
    err = NotFoundError("missing")
    assert isinstance(err, LookupError)
    assert err.args == ("missing",)


def test_transport_error_is_not_a_value_error():
    err = TransportError("closed")
    assert isinstance(err, RatNetError)
    assert not isinstance(err, ValueError)
    assert not isinstance(err, LookupError)
    assert str(err) == "closed"