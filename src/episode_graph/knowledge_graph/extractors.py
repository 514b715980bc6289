from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Candidate records are loosely typed: whatever the model returned, after normalization.
CandidateEntity = dict[str, Any]
CandidateRelationship = dict[str, Any]


class Extractor(Protocol):
    """Turns free text into candidate entities, relationships and summaries."""

    async def extract_entities(self, text: str) -> list[CandidateEntity]: ...

    async def extract_relationships(
        self, text: str, entities: list[CandidateEntity]
    ) -> list[CandidateRelationship]: ...

    async def generate_summary(self, text: str, max_length: int = 200) -> str: ...

    async def generate_text(self, prompt: str, system_prompt: str | None = None) -> str: ...


class Embedder(Protocol):
    """Turns text into a fixed-length vector."""

    dim: int

    async def embed(self, text: str) -> list[float]: ...

    async def embed_many(self, texts: list[str]) -> list[list[float]]: ...

    async def test_connection(self) -> bool: ...


_ARRAY_START = re.compile(r"\[")
_DECODER = json.JSONDecoder()


def parse_json_array(reply: str) -> list[Any]:
    """Return the first JSON array embedded in a model reply, or [] if there is none.

    Models often wrap JSON in prose or code fences. Decoding starts at each
    `[` in turn and stops at the end of the first complete array, so trailing
    prose (bracketed or not) is ignored.
    """
    reply = reply or ""
    last_error: json.JSONDecodeError | None = None
    for m in _ARRAY_START.finditer(reply):
        try:
            data, _ = _DECODER.raw_decode(reply, m.start())
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(data, list):
            return data
    if last_error is not None:
        logger.warning("Unparseable JSON array in model reply: %s", last_error)
    else:
        logger.debug("No JSON array in model reply")
    return []


def _clean_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_entities(items: list[Any]) -> list[CandidateEntity]:
    out: list[CandidateEntity] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = _clean_str(item.get("name"))
        if not name:
            continue
        ent: CandidateEntity = {"name": name}
        if _clean_str(item.get("type")):
            ent["type"] = _clean_str(item["type"])
        if _clean_str(item.get("description")):
            ent["description"] = _clean_str(item["description"])
        if isinstance(item.get("attributes"), dict):
            ent["attributes"] = item["attributes"]
        out.append(ent)
    return out


def normalize_relationships(items: list[Any]) -> list[CandidateRelationship]:
    out: list[CandidateRelationship] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        src = _clean_str(item.get("source_entity"))
        dst = _clean_str(item.get("target_entity"))
        if not src or not dst:
            continue
        rel: CandidateRelationship = {"source_entity": src, "target_entity": dst}
        if _clean_str(item.get("relationship_type")):
            rel["relationship_type"] = _clean_str(item["relationship_type"])
        if _clean_str(item.get("description")):
            rel["description"] = _clean_str(item["description"])
        confidence = item.get("confidence")
        if isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
            rel["confidence"] = float(confidence)
        if isinstance(item.get("attributes"), dict):
            rel["attributes"] = item["attributes"]
        out.append(rel)
    return out
