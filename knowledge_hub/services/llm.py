"""OpenAI LLM service for chat completions."""

import asyncio
from typing import List, Optional

from openai import AsyncOpenAI

from knowledge_hub.core.exceptions import GenerationError


class LLMService:
    """Service for generating chat responses."""

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        timeout: float = 30.0,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Initialize the LLM service.

        Args:
            api_key: OpenAI API key.
            model: Chat model name.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens in a reply.
            timeout: Per-call timeout in seconds.
            base_url: Alternative API endpoint.
            client: Pre-built client, mainly for tests.
        """
        self.client = client or AsyncOpenAI(
            api_key=api_key or "missing-api-key", base_url=base_url, timeout=timeout, max_retries=0)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def chat(self, messages: List[dict]) -> str:
        """
        Generate the next assistant message for a conversation.

        Args:
            messages: Ordered {role, content} dicts; the last one is the
                newest user or system turn.

        Returns:
            Generated reply text.

        Raises:
            GenerationError: If generation fails, times out or is empty.
        """
        if not messages:
            raise GenerationError("Cannot generate a reply for an empty conversation")

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout,
            )
            content = response.choices[0].message.content
        except asyncio.TimeoutError as e:
            raise GenerationError(
                f"Generation request timed out after {self.timeout}s") from e
        except Exception as e:
            raise GenerationError(f"Failed to generate response: {str(e)}") from e

        if not content or not content.strip():
            raise GenerationError("Empty response from LLM")
        return content.strip()
