"""
Claude client for the message rewrite pass.

One operation: rewrite a finished pt-BR message under a system prompt.
The primary model is tried first, then the optional fallback model. Retries
are left to the caller's time budget, so the SDK's own retries are disabled.
"""

import logging
from typing import Optional

from anthropic import AsyncAnthropic, APIError

from app.config import settings

logger = logging.getLogger(__name__)


class ClaudeClientError(Exception):
    """Raised when no model produced a rewrite."""
    pass


class ClaudeClient:
    """Async wrapper around AsyncAnthropic for single-turn rewrites."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        fallback_model: Optional[str] = None,
    ):
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key (defaults to settings)
            model: Primary model (defaults to settings.claude_model)
            fallback_model: Model tried once when the primary fails
        """
        self.api_key = api_key or settings.anthropic_api_key
        if not self.api_key:
            raise ValueError("Anthropic API key is required")

        self._client = AsyncAnthropic(
            api_key=self.api_key,
            max_retries=0,
            timeout=settings.humanize_timeout_seconds,
        )
        self._models = [model or settings.claude_model]
        fallback = fallback_model or settings.claude_fallback_model
        if fallback and fallback not in self._models:
            self._models.append(fallback)

        logger.info(f"ClaudeClient initialized with models={self._models}")

    async def rewrite(
        self,
        text: str,
        system_prompt: str,
        max_tokens: int = 300,
        temperature: float = 0.4,
    ) -> str:
        """Rewrite a message.

        Args:
            text: Message to rewrite
            system_prompt: Rewrite instructions
            max_tokens: Output limit
            temperature: Sampling temperature

        Returns:
            Rewritten text (may be empty if the model answered with no text)

        Raises:
            ClaudeClientError: If every model failed
        """
        last_error: Optional[Exception] = None

        for model in self._models:
            try:
                response = await self._client.messages.create(
                    model=model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    system=system_prompt,
                    messages=[{"role": "user", "content": text}],
                )
            except APIError as e:
                logger.warning(f"Rewrite failed on {model}: {e}")
                last_error = e
                continue

            return "".join(
                block.text for block in response.content if getattr(block, "type", None) == "text"
            ).strip()

        raise ClaudeClientError(f"Claude rewrite failed: {last_error}") from last_error

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()


# Singleton
_client: Optional[ClaudeClient] = None


def get_claude_client() -> ClaudeClient:
    """Get singleton ClaudeClient.

    Raises:
        ValueError: If no API key is configured
    """
    global _client
    if _client is None:
        _client = ClaudeClient()
    return _client


async def close_claude_client() -> None:
    """Close the singleton if it was ever created."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
