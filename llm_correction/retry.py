"""Retry logic for chat-completion transport errors.

Retries only on retryable transport failures (timeouts, connection
resets, rate limits, 5xx). Parse failures are the caller's concern:
each correction stage has its own deterministic fallback.
"""

import logging
import time
from typing import Callable, List

from llm_correction.adapter import BaseChatAdapter, LLMTransportError

logger = logging.getLogger(__name__)


class LLMRetryExhaustedError(Exception):
    """Raised when every attempt failed with a transport error.

    Attributes:
        attempts: Total number of attempts made.
        last_error: The transport error from the final attempt.
        history: Transport errors from every failed attempt.
    """

    def __init__(
        self,
        attempts: int,
        last_error: LLMTransportError,
        history: List[LLMTransportError],
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.history = history
        super().__init__(
            f"Provider call failed after {attempts} attempt(s). "
            f"Last error: {last_error}"
        )


def generate_with_retry(
    adapter: BaseChatAdapter,
    prompt: str,
    system_prompt: str = "",
    max_attempts: int = 2,
    delay_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    stage: str = "call",
) -> str:
    """Call ``adapter.generate()`` with a fixed-delay retry budget.

    Args:
        adapter: A chat adapter implementing ``generate(prompt, system_prompt)``.
        prompt: The user message.
        system_prompt: The system message.
        max_attempts: Total attempts, including the first.
        delay_seconds: Fixed pause between attempts.
        sleep: Sleep function, injectable for tests.
        stage: Label used in log lines ("detection", "correction", ...).

    Returns:
        The raw reply text of the first successful attempt.

    Raises:
        LLMTransportError: If a non-retryable transport error occurs.
        LLMRetryExhaustedError: If all attempts fail with retryable errors.
    """
    errors: List[LLMTransportError] = []
    total_attempts = max(1, max_attempts)

    for attempt in range(1, total_attempts + 1):
        try:
            raw = adapter.generate(prompt, system_prompt)
            if attempt > 1:
                logger.info(
                    "Provider %s call succeeded on attempt %d/%d",
                    stage,
                    attempt,
                    total_attempts,
                )
            return raw
        except LLMTransportError as exc:
            if not exc.retryable:
                raise

            errors.append(exc)
            logger.warning(
                "Provider %s attempt %d/%d failed: %s",
                stage,
                attempt,
                total_attempts,
                exc,
            )
            if attempt < total_attempts and delay_seconds > 0:
                sleep(delay_seconds)

    raise LLMRetryExhaustedError(
        attempts=total_attempts,
        last_error=errors[-1],
        history=errors,
    )
