"""Exception hierarchy shared by every ratnet component."""


class RatNetError(Exception):
    """Base class for all errors raised by ratnet."""


class InvalidArgumentError(RatNetError, ValueError):
    """An argument or configuration value was missing or malformed."""


class NotFoundError(RatNetError, LookupError):
    """A named item (component type, peer, channel, ...) does not exist."""


class SerializationError(RatNetError, ValueError):
    """Data could not be encoded or decoded."""


class TransportError(RatNetError):
    """A transport failed to send, receive or start."""