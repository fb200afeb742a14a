"""
Embedding Service.
Best-effort vector embeddings from an OpenAI-compatible /embeddings endpoint.
"""

import asyncio
import logging
from typing import List, Optional

import httpx

from nova.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class EmbeddingService:
    """
    Embedding provider adapter.

    Never raises to callers: a missing key, a non-2xx response, a malformed
    body or a timeout all yield None so that indexing and search degrade to
    keyword-only behavior. 5xx responses and transport errors are retried
    with exponential backoff.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._api_key = api_key if api_key is not None else settings.EMBEDDING_API_KEY
        self._api_url = api_url or settings.EMBEDDING_API_URL
        self._model = model or settings.EMBEDDING_MODEL
        self._max_chars = settings.EMBEDDING_MAX_INPUT_CHARS
        self._max_retries = settings.EMBEDDING_MAX_RETRIES
        self._backoff = settings.EMBEDDING_RETRY_BACKOFF_SECONDS
        self._client = client
        self._owns_client = client is None

    @property
    def is_available(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.EMBEDDING_TIMEOUT_SECONDS)
            )
        return self._client

    async def embed(self, text: str) -> Optional[List[float]]:
        """
        Embed text.

        Args:
            text: Input text (truncated to EMBEDDING_MAX_INPUT_CHARS)

        Returns:
            Vector of floats, or None when no embedding could be obtained
        """
        if not self.is_available:
            logger.debug("Embedding API key not configured, skipping embedding")
            return None

        payload = {"model": self._model, "input": (text or "")[:self._max_chars]}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        client = self._get_client()

        for attempt in range(self._max_retries + 1):
            try:
                response = await client.post(self._api_url, json=payload, headers=headers)
            except httpx.TimeoutException:
                logger.warning("Embedding request timed out")
                return None
            except httpx.TransportError as e:
                logger.warning(f"Embedding transport error (attempt {attempt + 1}): {e}")
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff * (2 ** attempt))
                    continue
                return None

            if response.status_code >= 500 and attempt < self._max_retries:
                logger.warning(
                    f"Embedding provider returned {response.status_code} "
                    f"(attempt {attempt + 1}), retrying"
                )
                await asyncio.sleep(self._backoff * (2 ** attempt))
                continue

            if response.status_code != 200:
                logger.error(
                    f"Embedding provider error {response.status_code}: {response.text[:200]}"
                )
                return None

            return self._parse(response)

        return None

    def _parse(self, response: httpx.Response) -> Optional[List[float]]:
        try:
            vector = response.json()["data"][0]["embedding"]
            return [float(v) for v in vector]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Malformed embedding response: {e}")
            return None

    async def cleanup(self):
        """Cleanup resources."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
        logger.info("Embedding service cleaned up")
