from typing import Optional


class RouterError(Exception):
    """Base class for errors raised inside the routing core."""


class ProviderError(RouterError):
    """A classifier provider could not produce a usable answer."""

    def __init__(self, message: str, provider_id: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.provider_id = provider_id
        self.original_error = original_error


class ProviderTransportError(ProviderError):
    """Timeout, network failure, HTTP error status or quota rejection."""


class ParseError(ProviderError):
    """Provider output is not a decision object with an ``action`` string."""


class ProviderMisconfiguredError(RouterError):
    """Raised when a configured provider is missing credentials."""


class HandlerRegistrationError(RouterError):
    """Raised at startup when the alias table or handler registry is inconsistent."""
