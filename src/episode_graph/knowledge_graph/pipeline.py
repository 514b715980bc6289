from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from episode_graph.errors import EpisodeIngestError

from .extractors import CandidateEntity, CandidateRelationship, Embedder, Extractor
from .models import Edge, Episode, IngestStats, Node, utc_now
from .store import GraphStore

DEFAULT_NODE_TYPE = "entity"
DEFAULT_EDGE_TYPE = "related_to"
DEFAULT_CONFIDENCE = 0.8


class GraphIngestor:
    """Turns episodes into entity nodes and relationship edges and persists them.

    Each episode runs extraction -> relationship extraction -> summary ->
    materialization -> edge resolution -> persistence, sequentially. Edge
    endpoints are resolved by name against the episode's own nodes only.
    """

    def __init__(
        self,
        store: GraphStore,
        extractor: Extractor,
        embedder: Embedder | None = None,
        *,
        summary_max_length: int = 200,
        atomic_writes: bool = True,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.extractor = extractor
        self.embedder = embedder
        self.summary_max_length = summary_max_length
        self.atomic_writes = atomic_writes
        self.log = logger or logging.getLogger(__name__)

    async def ingest_many(self, episodes: list[Episode]) -> list[IngestStats]:
        """Ingest episodes in order; the first failure stops the batch."""
        self.log.info("Processing %d episodes", len(episodes))
        out: list[IngestStats] = []
        for i, episode in enumerate(episodes):
            try:
                out.append(await self.ingest(episode))
            except Exception as e:
                self.log.error("Failed to process episode %s: %s", episode.name, e)
                raise EpisodeIngestError(episode.name, i, e) from e
        self.log.info("Successfully processed %d episodes", len(episodes))
        return out

    async def ingest(self, episode: Episode) -> IngestStats:
        stats = IngestStats(episode=episode.name)
        if not episode.content.strip():
            self.log.info("Episode %s has no content; nothing to extract", episode.name)
            return stats

        t0 = time.perf_counter()
        entities = await self.extractor.extract_entities(episode.content)
        self.log.debug("Extracted %d entities from episode %s", len(entities), episode.name)
        relationships = await self.extractor.extract_relationships(episode.content, entities)
        self.log.debug("Extracted %d relationships from episode %s", len(relationships), episode.name)
        summary = await self.extractor.generate_summary(episode.content, self.summary_max_length)
        t1 = time.perf_counter()

        nodes = self._materialize_nodes(episode, entities, summary)
        edges = self._resolve_edges(episode, relationships, nodes)
        valid = [e for e in edges if e.source_id and e.target_id and e.source_id != e.target_id]
        await self._embed_names(nodes)

        t2 = time.perf_counter()
        await self._persist(nodes, valid)
        t3 = time.perf_counter()

        stats.entities = len(entities)
        stats.relations = len(relationships)
        stats.nodes_written = len(nodes)
        stats.edges_written = len(valid)
        stats.edges_dropped = len(edges) - len(valid)
        stats.extract_ms = (t1 - t0) * 1000.0
        stats.upsert_ms = (t3 - t2) * 1000.0
        self.log.info(
            "Episode %s: added %d nodes and %d edges (%d dropped)",
            episode.name,
            stats.nodes_written,
            stats.edges_written,
            stats.edges_dropped,
        )
        return stats

    def _materialize_nodes(self, episode: Episode, entities: list[CandidateEntity], summary: str) -> list[Node]:
        now = utc_now()
        nodes: list[Node] = []
        for ent in entities:
            attrs: dict[str, Any] = {
                "source_episode": episode.name,
                "source_description": episode.source_description,
                "episode_summary": summary,
            }
            attrs.update(ent.get("attributes") or {})
            nodes.append(
                Node(
                    id=str(uuid.uuid4()),
                    type=ent.get("type") or DEFAULT_NODE_TYPE,
                    name=ent["name"],
                    summary=ent.get("description") or "",
                    created_at=now,
                    valid_at=episode.reference_time or now,
                    attributes=attrs,
                )
            )
        return nodes

    def _resolve_edges(
        self, episode: Episode, relationships: list[CandidateRelationship], nodes: list[Node]
    ) -> list[Edge]:
        # Scratch lookup for this episode only; first node with a given name wins.
        ids_by_name: dict[str, str] = {}
        for n in nodes:
            ids_by_name.setdefault(n.name.lower(), n.id)

        now = utc_now()
        edges: list[Edge] = []
        for rel in relationships:
            rel_type = rel.get("relationship_type") or DEFAULT_EDGE_TYPE
            attrs: dict[str, Any] = {
                "source_episode": episode.name,
                "confidence": rel.get("confidence", DEFAULT_CONFIDENCE),
            }
            attrs.update(rel.get("attributes") or {})
            edges.append(
                Edge(
                    id=str(uuid.uuid4()),
                    type=rel_type,
                    source_id=ids_by_name.get(str(rel.get("source_entity", "")).lower(), ""),
                    target_id=ids_by_name.get(str(rel.get("target_entity", "")).lower(), ""),
                    name=rel_type,
                    summary=rel.get("description") or "",
                    created_at=now,
                    valid_at=episode.reference_time or now,
                    attributes=attrs,
                )
            )
        return edges

    async def _embed_names(self, nodes: list[Node]) -> None:
        if not nodes or self.embedder is None:
            return
        try:
            vectors = await self.embedder.embed_many([n.name for n in nodes])
        except Exception as e:
            self.log.warning("Name embedding failed; storing nodes without vectors: %s", e)
            return
        for node, vec in zip(nodes, vectors):
            node.name_embedding = vec

    async def _persist(self, nodes: list[Node], edges: list[Edge]) -> None:
        if self.atomic_writes:
            if nodes or edges:
                await self.store.add_graph(nodes, edges)
            return
        if nodes:
            await self.store.add_nodes(nodes)
        if edges:
            await self.store.add_edges(edges)
