from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class Node:
    """An entity node.

    `id` is an opaque unique token; `name` is not required to be unique.
    """

    id: str
    type: str
    name: str
    summary: str = ""
    created_at: str = field(default_factory=utc_now)
    valid_at: str | None = None
    invalid_at: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    name_embedding: list[float] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "summary": self.summary,
            "created_at": self.created_at,
            "valid_at": self.valid_at,
            "invalid_at": self.invalid_at,
            "attributes": dict(self.attributes),
        }


@dataclass(slots=True)
class Edge:
    """A directed relationship between two entity nodes."""

    id: str
    type: str
    source_id: str
    target_id: str
    name: str
    summary: str = ""
    created_at: str = field(default_factory=utc_now)
    valid_at: str | None = None
    invalid_at: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    # Populated by fact queries only
    source_node: Node | None = None
    target_node: Node | None = None

    def to_dict(self) -> dict[str, Any]:
        out = {
            "id": self.id,
            "type": self.type,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "name": self.name,
            "summary": self.summary,
            "created_at": self.created_at,
            "valid_at": self.valid_at,
            "invalid_at": self.invalid_at,
            "attributes": dict(self.attributes),
        }
        if self.source_node is not None:
            out["source_node"] = self.source_node.to_dict()
        if self.target_node is not None:
            out["target_node"] = self.target_node.to_dict()
        return out


class Episode(BaseModel):
    """One unit of free text submitted for extraction. Never stored itself."""

    name: str = Field(description="Episode name/title")
    content: str = Field(description="Episode content text")
    source_description: str | None = Field(default=None, description="Source description (optional)")
    source: str | None = Field(default=None, description="Source identifier (optional)")
    reference_time: str | None = Field(
        default=None, description="Reference time for the episode, ISO-8601 (optional)"
    )


@dataclass(slots=True)
class SearchResult:
    score: float
    content: str
    node: Node | None = None
    edge: Edge | None = None

    @property
    def key(self) -> str:
        if self.node is not None:
            return self.node.id
        if self.edge is not None:
            return self.edge.id
        return ""

    @classmethod
    def for_node(cls, node: Node, score: float) -> SearchResult:
        return cls(score=score, content=render_node(node), node=node)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "content": self.content,
            "node": self.node.to_dict() if self.node is not None else None,
            "edge": self.edge.to_dict() if self.edge is not None else None,
        }


def render_node(node: Node) -> str:
    return f"{node.name} ({node.type}): {node.summary or 'No description'}"


@dataclass(slots=True)
class IngestStats:
    episode: str
    entities: int = 0
    relations: int = 0
    nodes_written: int = 0
    edges_written: int = 0
    edges_dropped: int = 0
    extract_ms: float = 0.0
    upsert_ms: float = 0.0
