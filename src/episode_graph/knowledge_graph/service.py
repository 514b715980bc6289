from __future__ import annotations

import logging
from dataclasses import dataclass

from episode_graph.settings import GraphSettings

from .extractors import Embedder, Extractor
from .models import Edge, Episode, IngestStats, Node, SearchResult
from .pipeline import GraphIngestor
from .query_engine import GraphQueryEngine
from .store import GraphStore

HEALTH_PROMPT = "Hello"
HEALTH_SYSTEM_PROMPT = 'Respond with just "OK"'


@dataclass(slots=True)
class HealthStatus:
    database: bool
    llm: bool
    embedding: bool

    @property
    def healthy(self) -> bool:
        # Embedding outages degrade search to keyword; they do not take the server down.
        return self.database and self.llm

    def as_dict(self) -> dict[str, bool]:
        return {"database": self.database, "llm": self.llm, "embedding": self.embedding}


class KnowledgeGraphService:
    """Wires the store, extractor and embedder into the ingest and query pipelines."""

    def __init__(
        self,
        store: GraphStore,
        extractor: Extractor,
        embedder: Embedder,
        *,
        summary_max_length: int = 200,
        atomic_writes: bool = True,
        max_entity_results: int = 100,
        max_fact_results: int = 200,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.extractor = extractor
        self.embedder = embedder
        self.log = logger or logging.getLogger(__name__)
        self.ingestor = GraphIngestor(
            store,
            extractor,
            embedder,
            summary_max_length=summary_max_length,
            atomic_writes=atomic_writes,
            logger=self.log.getChild("ingest"),
        )
        self.queries = GraphQueryEngine(
            store,
            embedder,
            max_entity_results=max_entity_results,
            max_fact_results=max_fact_results,
            log=self.log.getChild("query"),
        )

    @classmethod
    def from_settings(cls, cfg: GraphSettings, *, logger: logging.Logger | None = None) -> KnowledgeGraphService:
        from episode_graph.llm.client import OpenAICompatibleClient
        from episode_graph.llm.embedder import HttpEmbedder

        from .neo4j_store import Neo4jConfig, Neo4jGraphStore

        cfg.require_complete()
        log = logger or logging.getLogger("episode_graph")
        store = Neo4jGraphStore(
            Neo4jConfig(
                uri=cfg.neo4j_uri,
                user=cfg.neo4j_user,
                password=cfg.neo4j_password or "",
                database=cfg.neo4j_database,
                embedding_dimension=cfg.embedding_dimension,
            ),
            logger=log.getChild("neo4j"),
        )
        llm = OpenAICompatibleClient(
            api_key=cfg.openai_api_key or "",
            api_url=cfg.openai_api_url,
            model=cfg.openai_api_model,
            read_timeout=cfg.request_timeout,
            logger=log.getChild("llm"),
        )
        embedder = HttpEmbedder(
            api_key=cfg.embedding_api_key or "",
            api_url=cfg.embedding_api_url,
            model=cfg.embedding_model,
            dim=cfg.embedding_dimension,
            read_timeout=cfg.request_timeout,
            logger=log.getChild("embedder"),
        )
        return cls(
            store,
            llm,
            embedder,
            summary_max_length=cfg.summary_max_length,
            atomic_writes=cfg.atomic_episode_writes,
            max_entity_results=cfg.max_entity_results,
            max_fact_results=cfg.max_fact_results,
            logger=log,
        )

    async def initialize(self) -> None:
        try:
            await self.store.connect()
            await self.store.ensure_schema()
        except Exception as e:
            self.log.error("Failed to initialize knowledge graph: %s", e)
            raise
        self.log.info("Knowledge graph initialized successfully")

    async def shutdown(self) -> None:
        await self.store.close()
        for client in (self.extractor, self.embedder):
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()
        self.log.info("Knowledge graph shutdown successfully")

    async def add_episodes(self, episodes: list[Episode]) -> list[IngestStats]:
        return await self.ingestor.ingest_many(episodes)

    async def search(self, query: str, num_results: int = 10, search_type: str = "hybrid") -> list[SearchResult]:
        return await self.queries.search(query, num_results, search_type)

    async def get_entities(self, name: str, entity_type: str | None = None) -> list[Node]:
        return await self.queries.find_entities(name, entity_type)

    async def get_facts(
        self,
        source_node_name: str | None = None,
        target_node_name: str | None = None,
        fact_type: str | None = None,
    ) -> list[Edge]:
        return await self.queries.find_facts(source_node_name, target_node_name, fact_type)

    async def health_check(self) -> HealthStatus:
        """Probe each dependency independently; failures are reported, never raised."""
        try:
            database = bool(await self.store.health_check())
        except Exception as e:
            self.log.error("Database health check failed: %s", e)
            database = False

        try:
            reply = await self.extractor.generate_text(HEALTH_PROMPT, HEALTH_SYSTEM_PROMPT)
            llm = "OK" in reply
        except Exception as e:
            self.log.error("LLM health check failed: %s", e)
            llm = False

        try:
            embedding = bool(await self.embedder.test_connection())
        except Exception as e:
            self.log.error("Embedding health check failed: %s", e)
            embedding = False

        return HealthStatus(database=database, llm=llm, embedding=embedding)
