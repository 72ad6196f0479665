"""
Text generator protocol and provider adapters.

The orchestrator only depends on TextGenerator.complete(); swapping LLM
providers means swapping the adapter.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol

import groq
import openai

from manzai.core.config import Settings

logger = logging.getLogger("manzai")

Message = Dict[str, str]


class TextGeneratorError(Exception):
    """Raised when the provider call fails or returns a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TextGenerator(Protocol):
    """
    Protocol for LLM text generation.

    Implementations take role-tagged messages and return the generated text
    blob ("" when the provider returned no content).
    """

    model: str

    def complete(self, messages: List[Message], *, temperature: float, max_tokens: int) -> str:
        """
        Run one chat completion.

        Raises:
            TextGeneratorError: If the provider call fails
        """
        ...


def _first_choice_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return (content or "").strip()


class OpenAICompatibleGenerator:
    """OpenAI-compatible chat completions (xAI by default)."""

    def __init__(
        self,
        api_key: str,
        model: str = "grok-4-fast-reasoning",
        base_url: Optional[str] = "https://api.x.ai/v1",
        timeout: Optional[float] = None,
        forward_max_output_tokens: bool = True,
    ):
        if not api_key:
            raise TextGeneratorError("API key is required for the OpenAI-compatible generator")
        if not model or not model.strip():
            raise TextGeneratorError("model is required and cannot be empty")

        self.model = model
        self.forward_max_output_tokens = forward_max_output_tokens
        self.client = openai.OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    def complete(self, messages: List[Message], *, temperature: float, max_tokens: int) -> str:
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        # xAI reads max_output_tokens; other compatible servers read max_tokens
        extra_body = {"max_output_tokens": max_tokens} if self.forward_max_output_tokens else None
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                extra_body=extra_body,
            )
        except openai.APIStatusError as e:
            raise TextGeneratorError(f"LLM request failed: {e}", status=e.status_code) from e
        except openai.OpenAIError as e:
            raise TextGeneratorError(f"LLM request failed: {e}") from e
        return _first_choice_text(response)


class GroqGenerator:
    """Groq chat completions."""

    def __init__(self, api_key: str, model: str = "llama-3.1-8b-instant", timeout: Optional[float] = None):
        if not api_key:
            raise TextGeneratorError("GROQ_API_KEY not configured")
        self.model = model
        self.client = groq.Groq(api_key=api_key, timeout=timeout)

    def complete(self, messages: List[Message], *, temperature: float, max_tokens: int) -> str:
        if not messages:
            raise ValueError("messages is required and cannot be empty")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except groq.APIStatusError as e:
            raise TextGeneratorError(f"LLM request failed: {e}", status=e.status_code) from e
        except groq.GroqError as e:
            raise TextGeneratorError(f"LLM request failed: {e}") from e
        return _first_choice_text(response)


def build_text_generator(settings_obj: Settings) -> Optional[TextGenerator]:
    """Build the configured provider adapter, or None when no key is set."""
    provider = (settings_obj.LLM_PROVIDER or "xai").lower()
    if provider == "groq":
        if not settings_obj.GROQ_API_KEY:
            logger.warning("GROQ_API_KEY not configured; generation disabled")
            return None
        return GroqGenerator(
            api_key=settings_obj.GROQ_API_KEY,
            model=settings_obj.GROQ_MODEL,
            timeout=settings_obj.LLM_TIMEOUT_SECONDS,
        )

    if not settings_obj.XAI_API_KEY:
        logger.warning("XAI_API_KEY not configured; generation disabled")
        return None
    return OpenAICompatibleGenerator(
        api_key=settings_obj.XAI_API_KEY,
        model=settings_obj.XAI_MODEL,
        base_url=settings_obj.XAI_BASE_URL,
        timeout=settings_obj.LLM_TIMEOUT_SECONDS,
    )
