"""Exceptions raised by ip_locator.

Operational failures (bad input, provider errors, a missing database) are
returned as LookupFailure values. Only the conditions below are raised.
"""


class IpLocatorError(Exception):
    """Base class for ip_locator errors."""


class ConfigurationError(IpLocatorError):
    """The configured provider is missing required credentials."""


class PreconditionError(IpLocatorError):
    """An operation was attempted without its required precondition."""


class EditionError(PreconditionError):
    """User geolocation is not included in the configured product edition."""

    def __init__(self, message: str = "Sorry, user geolocation is a Maps Pro feature!") -> None:
        super().__init__(message)
