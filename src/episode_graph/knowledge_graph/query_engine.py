from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from episode_graph.errors import InvalidInputError

from .extractors import Embedder
from .models import Edge, Node, SearchResult
from .store import GraphStore

SEARCH_MODES = ("semantic", "keyword", "hybrid")
MAX_SEARCH_RESULTS = 100

SEMANTIC_WEIGHT = 1.2
KEYWORD_WEIGHT = 0.8


def merge_results(
    semantic: list[SearchResult], keyword: list[SearchResult], limit: int
) -> list[SearchResult]:
    """Weighted merge of two ranked lists keyed by node/edge id.

    Ties keep first-seen order: semantic hits in their order, then
    keyword-only hits in theirs.
    """
    combined: dict[str, SearchResult] = {}
    for r in semantic:
        if r.key:
            combined[r.key] = replace(r, score=r.score * SEMANTIC_WEIGHT)
    for r in keyword:
        if not r.key:
            continue
        existing = combined.get(r.key)
        if existing is not None:
            existing.score += r.score * KEYWORD_WEIGHT
        else:
            combined[r.key] = replace(r, score=r.score * KEYWORD_WEIGHT)
    ranked = sorted(combined.values(), key=lambda r: r.score, reverse=True)
    return ranked[:limit]


@dataclass(slots=True)
class GraphQueryEngine:
    """Read side of the graph: ranked search plus entity and fact lookups.

    Keyword matching is case-insensitive containment on node names (the
    store's rule). Semantic search never raises; it degrades to keyword.
    """

    store: GraphStore
    embedder: Embedder | None = None
    max_entity_results: int = 100
    max_fact_results: int = 200
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    async def search(self, query: str, limit: int = 10, mode: str = "hybrid") -> list[SearchResult]:
        if mode not in SEARCH_MODES:
            raise InvalidInputError(f"Unsupported search type: {mode}")
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_SEARCH_RESULTS:
            raise InvalidInputError(f"limit must be an integer between 1 and {MAX_SEARCH_RESULTS}")

        self.log.debug("Searching for: %s (type: %s, limit: %d)", query, mode, limit)
        if mode == "semantic":
            results = await self.semantic_search(query, limit)
        elif mode == "keyword":
            results = await self.keyword_search(query, limit)
        else:
            semantic = await self.semantic_search(query, limit)
            keyword = await self.keyword_search(query, limit)
            results = merge_results(semantic, keyword, limit)

        self.log.info("Search completed: found %d results", len(results))
        return results

    async def keyword_search(self, query: str, limit: int) -> list[SearchResult]:
        try:
            hits = await self.store.search_nodes(query, limit)
        except Exception as e:
            self.log.error("Keyword search failed: %s", e)
            return []
        return [SearchResult.for_node(node, score if score is not None else 1.0) for node, score in hits[:limit]]

    async def semantic_search(self, query: str, limit: int) -> list[SearchResult]:
        try:
            if self.embedder is None:
                raise RuntimeError("no embedder configured")
            vector = await self.embedder.embed(query)
            hits = await self.store.vector_search(vector, limit)
        except Exception as e:
            self.log.warning("Semantic search failed, falling back to keyword search: %s", e)
            return await self.keyword_search(query, limit)
        return [SearchResult.for_node(node, score) for node, score in hits[:limit]]

    async def find_entities(self, name: str, entity_type: str | None = None) -> list[Node]:
        self.log.debug("Getting entities: name=%s, type=%s", name, entity_type)
        nodes = await self.store.find_nodes(name, entity_type, limit=self.max_entity_results)
        self.log.info("Found %d entities matching criteria", len(nodes))
        return nodes

    async def find_facts(
        self,
        source_name: str | None = None,
        target_name: str | None = None,
        fact_type: str | None = None,
    ) -> list[Edge]:
        self.log.debug("Getting facts: source=%s, target=%s, type=%s", source_name, target_name, fact_type)
        if not (source_name or target_name or fact_type):
            self.log.warning("Fact query without filters; returning up to %d edges", self.max_fact_results)
        edges = await self.store.find_edges(source_name, target_name, fact_type, limit=self.max_fact_results)
        self.log.info("Found %d facts matching criteria", len(edges))
        return edges
