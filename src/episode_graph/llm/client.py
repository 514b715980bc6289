from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from episode_graph.errors import ExtractionError
from episode_graph.http import HttpClientFactory, bearer_headers, transient_retry
from episode_graph.knowledge_graph.extractors import (
    CandidateEntity,
    CandidateRelationship,
    normalize_entities,
    normalize_relationships,
    parse_json_array,
)

ENTITY_SYSTEM_PROMPT = """You are an expert at extracting entities from text.
Extract all entities (people, organizations, locations, concepts, etc.) from the given text.
Return a JSON array with each entity containing: name, type, and a brief description.
Example: [{"name": "John Doe", "type": "person", "description": "Software engineer"}]"""

RELATIONSHIP_SYSTEM_PROMPT = """You are an expert at extracting relationships between entities from text.
Given a text and a list of entities, extract all relationships between these entities.
Return a JSON array with each relationship containing: source_entity, target_entity, relationship_type, and description.
Use the entity names exactly as given.
Example: [{"source_entity": "John Doe", "target_entity": "Microsoft", "relationship_type": "works_at", "description": "John works at Microsoft"}]"""

SUMMARY_SYSTEM_PROMPT = """You are an expert at creating concise summaries.
Create a summary of the given text that is no longer than {max_length} characters.
Focus on the key points and main ideas."""


class OpenAICompatibleClient:
    """Chat-completions client for any OpenAI-compatible endpoint.

    Implements the `Extractor` contract. Transport and HTTP failures surface
    as `ExtractionError`; a reply that is present but malformed degrades to an
    empty extraction instead.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.openai.com/v1",
        model: str = "gpt-3.5-turbo",
        *,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        read_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.log = logger or logging.getLogger(__name__)
        self._client = HttpClientFactory.client(
            base_url=api_url.rstrip("/"),
            headers=bearer_headers(api_key),
            read_timeout=read_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @transient_retry()
    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        return await self._client.post("/chat/completions", json=payload)

    async def chat(self, messages: list[dict[str, str]]) -> str:
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        self.log.debug("chat request model=%s messages=%d", self.model, len(messages))
        try:
            r = await self._post(payload)
        except httpx.HTTPError as e:
            raise ExtractionError(f"LLM request failed: {e}") from e
        if r.status_code >= 400:
            raise ExtractionError(f"LLM API error: {r.status_code} {r.text[:500]}")

        try:
            data = r.json()
        except ValueError as e:
            raise ExtractionError(f"LLM API returned non-JSON body: {e}") from e
        if not isinstance(data, dict):
            raise ExtractionError(f"LLM API returned unexpected body: {type(data).__name__}")
        choices = data.get("choices") or []
        if not isinstance(choices, list) or not choices:
            raise ExtractionError("No response choices from LLM API")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise ExtractionError("Malformed response choice from LLM API")
        content = message.get("content") or ""
        if not isinstance(content, str):
            raise ExtractionError("LLM response content is not text")
        self.log.debug("chat response length=%d usage=%s", len(content), data.get("usage"))
        return content

    async def generate_text(self, prompt: str, system_prompt: str | None = None) -> str:
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return await self.chat(messages)

    async def extract_entities(self, text: str) -> list[CandidateEntity]:
        reply = await self.generate_text(f"Extract entities from this text: {text}", ENTITY_SYSTEM_PROMPT)
        return normalize_entities(parse_json_array(reply))

    async def extract_relationships(
        self, text: str, entities: list[CandidateEntity]
    ) -> list[CandidateRelationship]:
        if not entities:
            return []
        prompt = (
            f"Text: {text}\n\n"
            f"Entities: {json.dumps(entities, ensure_ascii=False)}\n\n"
            "Extract relationships between these entities."
        )
        reply = await self.generate_text(prompt, RELATIONSHIP_SYSTEM_PROMPT)
        return normalize_relationships(parse_json_array(reply))

    async def generate_summary(self, text: str, max_length: int = 200) -> str:
        try:
            reply = await self.generate_text(text, SUMMARY_SYSTEM_PROMPT.format(max_length=max_length))
        except ExtractionError as e:
            self.log.warning("Summary generation failed, truncating instead: %s", e)
            return text[:max_length]
        summary = reply.strip()
        return summary or text[:max_length]
