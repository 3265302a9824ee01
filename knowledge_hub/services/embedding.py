"""OpenAI embedding generation service."""

import asyncio
import math
from typing import List, Optional

from openai import AsyncOpenAI

from knowledge_hub.core.exceptions import EmbeddingError


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(
        self,
        api_key: str,
        model: str,
        dimensions: Optional[int] = None,
        timeout: float = 30.0,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Initialize the embedding service.

        Args:
            api_key: OpenAI API key.
            model: Embedding model name.
            dimensions: Requested vector size, or None for the model default.
            timeout: Per-call timeout in seconds.
            base_url: Alternative API endpoint.
            client: Pre-built client, mainly for tests.
        """
        self.client = client or AsyncOpenAI(
            api_key=api_key or "missing-api-key", base_url=base_url, timeout=timeout, max_retries=0)
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for a single text.

        Args:
            text: Text string to embed.

        Returns:
            Embedding vector.

        Raises:
            EmbeddingError: If the provider fails, times out, or returns
                something that is not a non-empty vector of finite numbers.
        """
        try:
            kwargs = {"model": self.model, "input": [text]}
            if self.dimensions:
                kwargs["dimensions"] = self.dimensions
            response = await asyncio.wait_for(
                self.client.embeddings.create(**kwargs), timeout=self.timeout)
            vector = response.data[0].embedding
        except asyncio.TimeoutError as e:
            raise EmbeddingError(
                f"Embedding request timed out after {self.timeout}s") from e
        except Exception as e:
            raise EmbeddingError(f"Failed to generate embedding: {str(e)}") from e

        return validate_vector(vector)


def validate_vector(vector) -> List[float]:
    """
    Check a provider payload and coerce it to a list of floats.

    Args:
        vector: Raw provider value.

    Returns:
        The vector as a list of floats.

    Raises:
        EmbeddingError: If the payload is malformed.
    """
    if not isinstance(vector, (list, tuple)) or not vector:
        raise EmbeddingError("Embedding provider returned an empty or malformed vector")
    try:
        values = [float(v) for v in vector]
    except (TypeError, ValueError) as e:
        raise EmbeddingError(f"Embedding provider returned non-numeric data: {str(e)}") from e
    if not all(math.isfinite(v) for v in values):
        raise EmbeddingError("Embedding provider returned non-finite values")
    return values
