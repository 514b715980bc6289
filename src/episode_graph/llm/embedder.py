from __future__ import annotations

import logging
from typing import Any

import httpx

from episode_graph.errors import ExtractionError
from episode_graph.http import HttpClientFactory, bearer_headers, transient_retry


class HttpEmbedder:
    """Embedding client for OpenAI-compatible `/embeddings` endpoints (BigModel, OpenAI, ...).

    `api_url` is the full endpoint URL.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str,
        model: str,
        *,
        dim: int = 1536,
        read_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.api_url = api_url
        self.model = model
        self.dim = dim
        self.log = logger or logging.getLogger(__name__)
        self._client = HttpClientFactory.client(
            headers=bearer_headers(api_key), read_timeout=read_timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @transient_retry()
    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        return await self._client.post(self.api_url, json=payload)

    async def _request(self, inp: str | list[str]) -> list[list[float]]:
        try:
            r = await self._post({"model": self.model, "input": inp})
        except httpx.HTTPError as e:
            raise ExtractionError(f"Embedding request failed: {e}") from e
        if r.status_code >= 400:
            raise ExtractionError(f"Embedding API request failed: {r.status_code} {r.text[:500]}")

        try:
            data = r.json()
        except ValueError as e:
            raise ExtractionError(f"Embedding API returned non-JSON body: {e}") from e
        items = data.get("data") if isinstance(data, dict) else None
        if not items or not isinstance(items, list):
            raise ExtractionError("No embedding data returned from API")
        if not all(isinstance(item, dict) and isinstance(item.get("embedding"), list) for item in items):
            raise ExtractionError("Malformed embedding data returned from API")

        vectors = [item["embedding"] for item in sorted(items, key=lambda x: x.get("index", 0))]
        for v in vectors:
            if len(v) != self.dim:
                self.log.warning("Embedding dimension %d differs from configured %d", len(v), self.dim)
                break
        return vectors

    async def embed(self, text: str) -> list[float]:
        return (await self._request(text))[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        vectors = await self._request(texts)
        if len(vectors) != len(texts):
            raise ExtractionError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors

    async def test_connection(self) -> bool:
        try:
            await self.embed("test")
            return True
        except Exception as e:
            self.log.error("Embedding service connection test failed: %s", e)
            return False
