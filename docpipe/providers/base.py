"""Abstract base for the model endpoint shared by OCR, pipeline stages and refinement."""

from abc import ABC, abstractmethod

from docpipe.models import ModelReply, ModelRequest


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class ModelProvider(ABC):
    """Abstract base for all model endpoints."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini')."""
        ...

    @abstractmethod
    async def generate(self, request: ModelRequest) -> ModelReply:
        """Issue exactly one call for the given request.

        Args:
            request: Model id, instruction/content text parts, optional inline
                PNG images and generation parameters.

        Returns:
            ModelReply whose text may be empty.

        Raises:
            ProviderError: On transport, auth or timeout failure.
        """
        ...
