"""Chat-completion adapters for the import correction stage.

Provides a base interface and a concrete adapter for OpenAI-compatible
chat-completion endpoints (Groq, OpenAI, local gateways).
"""

from abc import ABC, abstractmethod
from typing import Optional

import openai
from openai import OpenAI

_RETRYABLE_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504})


class LLMTransportError(Exception):
    """Raised when the provider call itself fails (network, HTTP status, empty reply).

    Attributes:
        retryable: Whether repeating the same call may succeed.
        status_code: HTTP status returned by the provider, if any.
    """

    def __init__(self, message: str, retryable: bool = True, status_code: Optional[int] = None) -> None:
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message)


class BaseChatAdapter(ABC):
    """Abstract base for all chat-completion adapters."""

    @abstractmethod
    def generate(self, prompt: str, system_prompt: str = "") -> str:
        """Send a system + user message pair and return the raw reply text.

        Args:
            prompt: The user message.
            system_prompt: The system message; omitted when empty.

        Returns:
            Raw string content of the first completion choice.

        Raises:
            LLMTransportError: If the provider call fails.
        """


class OpenAIChatAdapter(BaseChatAdapter):
    """Adapter for OpenAI-compatible chat completion APIs.

    Configured for non-streaming output with low temperature suitable
    for structured JSON generation. Retries are left to the caller so
    every attempt is visible in the correction-stage logs.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.1-70b-versatile",
        base_url: Optional[str] = None,
        max_tokens: int = 2000,
        temperature: float = 0.1,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialise the adapter.

        Args:
            api_key: Bearer credential for the provider.
            model: Model identifier.
            base_url: Base URL of the OpenAI-compatible endpoint.
            max_tokens: Maximum tokens in the completion.
            temperature: Sampling temperature.
            timeout_seconds: Per-call timeout.
        """
        client_kwargs: dict = {
            "api_key": api_key,
            "timeout": timeout_seconds,
            "max_retries": 0,
        }
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = OpenAI(**client_kwargs)
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def model(self) -> str:
        return self._model

    def generate(self, prompt: str, system_prompt: str = "") -> str:
        """Call the chat completion API.

        Args:
            prompt: The user message.
            system_prompt: The system message.

        Returns:
            Raw string content from the model response.

        Raises:
            LLMTransportError: On connection, timeout, or HTTP status errors.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                stream=False,
            )
        except openai.APIStatusError as exc:
            raise LLMTransportError(
                f"Provider returned HTTP {exc.status_code}: {exc.message}",
                retryable=exc.status_code in _RETRYABLE_STATUS_CODES,
                status_code=exc.status_code,
            ) from exc
        except (openai.APIConnectionError, openai.APITimeoutError) as exc:
            raise LLMTransportError(f"Provider unreachable: {exc}") from exc
        except openai.OpenAIError as exc:
            raise LLMTransportError(f"Provider call failed: {exc}", retryable=False) from exc

        if not response.choices:
            raise LLMTransportError("Provider returned no choices.")
        return response.choices[0].message.content or ""
