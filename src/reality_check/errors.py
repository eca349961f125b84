from __future__ import annotations


class RealityCheckError(RuntimeError):
    """Base class for provider failures that the pipeline degrades around."""


class EndpointError(RealityCheckError):
    """A single search endpoint was unreachable or answered with garbage."""

    def __init__(self, endpoint: str, message: str) -> None:
        super().__init__(f"{endpoint}: {message}")
        self.endpoint = endpoint


class BackendError(RealityCheckError):
    """Generative backend failed: transport, auth, non-OK, empty or non-JSON reply."""


class ImageDecodeError(RealityCheckError):
    pass


class ProviderError(RealityCheckError):
    """An article provider tier could not deliver articles."""


class StorageError(RealityCheckError):
    pass
