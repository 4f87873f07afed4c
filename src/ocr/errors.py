"""Exceptions raised by recognition providers and the orchestrator."""


class OCRError(Exception):
    """Base class for recognition errors."""


class ProviderTransportError(OCRError):
    """A provider call failed on the network, the server, or its payload.

    Retried by the orchestrator and never surfaced to the caller.
    """


class ProviderAuthError(OCRError):
    """A provider rejected or is missing its credentials.

    The provider is skipped for the rest of the request without retrying.
    """


class AllProvidersExhausted(OCRError):
    """No provider, including the offline fallback, produced any text."""
