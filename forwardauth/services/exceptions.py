"""Exceptions raised by the gateway services."""


class InvalidToken(ValueError):
    """A token is malformed, forged, or was signed with another secret."""


class ExpiredToken(InvalidToken):
    """A token was validly signed, but its lifetime is over."""


class StoreUnavailable(RuntimeError):
    """The token store could not be reached."""


class StoreCorrupted(RuntimeError):
    """
    The token store holds state that cannot be trusted.

    This is fatal: no authorization decision may be made from it.
    """


class ConfigurationError(RuntimeError):
    """Raised when a required service parameter is missing or invalid."""
