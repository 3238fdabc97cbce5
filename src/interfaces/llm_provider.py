"""Abstract base class for completion (LLM) service providers.

Every call returns a :class:`~src.models.completion.CompletionResult` that
carries the provider-reported input and output token counts, because usage
accounting charges the account by the real cost of each call rather than by
estimate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.completion import CompletionResult


# Concrete implementations: OpenAILLMProvider, AnthropicLLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for completion services used by generation and vision extraction.

    Providers must support plain text completion; vision (page image
    transcription) is optional and declared via :meth:`supports_vision`.
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> CompletionResult:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the actual request or data.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        CompletionResult
            Response text plus token usage.

        Raises
        ------
        src.utils.errors.ProviderUnavailableError
            Timeout, connection failure, or 5xx (transient).
        src.utils.errors.RateLimitError
            HTTP 429 (transient).
        src.utils.errors.LLMError
            Any other failure.
        """

    @abstractmethod
    async def vision_extract(self, image_bytes: bytes, prompt: str) -> CompletionResult:
        """Transcribe an image (a rendered document page) guided by *prompt*.

        Raises
        ------
        src.utils.errors.LLMError
            If the provider does not support vision or the call fails.
        """

    @abstractmethod
    def supports_vision(self) -> bool:
        """Return ``True`` if :meth:`vision_extract` is usable."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return an identifier such as ``"openai"`` or ``"anthropic"``."""

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the text model id used for cost weighting."""

    def get_vision_model_name(self) -> str:
        """Return the vision model id; defaults to the text model."""
        return self.get_model_name()

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured."""
