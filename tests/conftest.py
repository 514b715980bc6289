"""In-memory stand-ins for the graph store, extractor and embedder."""

from __future__ import annotations

from dataclasses import replace

import pytest

from episode_graph.errors import ExtractionError, PersistenceError
from episode_graph.knowledge_graph.models import Edge, Episode, Node
from episode_graph.knowledge_graph.pipeline import GraphIngestor
from episode_graph.knowledge_graph.query_engine import GraphQueryEngine
from episode_graph.knowledge_graph.service import KnowledgeGraphService

DEMO_ENTITIES = [
    {"name": "John Doe", "type": "person", "description": "Software engineer"},
    {"name": "Microsoft", "type": "company", "description": "Technology company"},
]
DEMO_RELATIONSHIPS = [
    {
        "source_entity": "John Doe",
        "target_entity": "Microsoft",
        "relationship_type": "works_at",
        "description": "John works at Microsoft",
    }
]


class FakeStore:
    def __init__(self):
        self.nodes: dict[str, Node] = {}
        self.edges: dict[str, Edge] = {}
        self.calls: list[str] = []
        self.fail_on: set[str] = set()
        self.vector_hits: list[tuple[Node, float]] = []
        self.healthy = True

    def _record(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail_on:
            raise PersistenceError(f"{op} failed")

    async def connect(self) -> None:
        self._record("connect")

    async def close(self) -> None:
        self._record("close")

    async def ensure_schema(self) -> None:
        self._record("ensure_schema")

    async def add_nodes(self, nodes):
        self._record("add_nodes")
        for n in nodes:
            self.nodes[n.id] = n

    async def add_edges(self, edges):
        self._record("add_edges")
        dangling = [e for e in edges if e.source_id not in self.nodes or e.target_id not in self.nodes]
        if dangling:
            raise PersistenceError(f"{len(dangling)} edges reference nodes that do not exist")
        for e in edges:
            self.edges[e.id] = e

    async def add_graph(self, nodes, edges):
        self._record("add_graph")
        before_nodes, before_edges = dict(self.nodes), dict(self.edges)
        try:
            if nodes:
                await self.add_nodes(nodes)
            if edges:
                await self.add_edges(edges)
        except Exception:
            self.nodes, self.edges = before_nodes, before_edges
            raise

    async def search_nodes(self, query, limit):
        self._record("search_nodes")
        hits = [n for n in self.nodes.values() if query.lower() in n.name.lower()]
        return [(n, 1.0) for n in hits[:limit]]

    async def vector_search(self, embedding, limit):
        self._record("vector_search")
        return self.vector_hits[:limit]

    async def find_nodes(self, name, node_type=None, *, limit=100):
        self._record("find_nodes")
        hits = [
            n
            for n in self.nodes.values()
            if name.lower() in n.name.lower() and (not node_type or n.type == node_type)
        ]
        return hits[:limit]

    async def find_edges(self, source_name=None, target_name=None, edge_type=None, *, limit=200):
        self._record("find_edges")
        out = []
        for e in self.edges.values():
            src, dst = self.nodes[e.source_id], self.nodes[e.target_id]
            if source_name and source_name.lower() not in src.name.lower():
                continue
            if target_name and target_name.lower() not in dst.name.lower():
                continue
            if edge_type and e.type != edge_type:
                continue
            out.append(replace(e, source_node=src, target_node=dst))
        return out[:limit]

    async def health_check(self):
        self._record("health_check")
        return self.healthy


class FakeExtractor:
    def __init__(self, entities=None, relationships=None, summary="Summary of the text", reply="OK"):
        self.entities = [dict(e) for e in (DEMO_ENTITIES if entities is None else entities)]
        self.relationships = [dict(r) for r in (DEMO_RELATIONSHIPS if relationships is None else relationships)]
        self.summary = summary
        self.reply = reply
        self.error: Exception | None = None
        self.calls: list[str] = []

    def _record(self, op: str) -> None:
        self.calls.append(op)
        if self.error is not None:
            raise self.error

    async def extract_entities(self, text):
        self._record("extract_entities")
        return [dict(e) for e in self.entities]

    async def extract_relationships(self, text, entities):
        self._record("extract_relationships")
        return [dict(r) for r in self.relationships]

    async def generate_summary(self, text, max_length=200):
        self._record("generate_summary")
        return self.summary

    async def generate_text(self, prompt, system_prompt=None):
        self._record("generate_text")
        return self.reply


class FakeEmbedder:
    dim = 3

    def __init__(self):
        self.error: Exception | None = None
        self.calls: list[str] = []

    def _record(self, op: str) -> None:
        self.calls.append(op)
        if self.error is not None:
            raise self.error

    async def embed(self, text):
        self._record("embed")
        return [0.1, 0.2, 0.3]

    async def embed_many(self, texts):
        self._record("embed_many")
        return [[0.1, 0.2, 0.3] for _ in texts]

    async def test_connection(self):
        try:
            self._record("test_connection")
        except ExtractionError:
            return False
        return True


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def ingestor(store, extractor, embedder):
    return GraphIngestor(store, extractor, embedder)


@pytest.fixture
def engine(store, embedder):
    return GraphQueryEngine(store, embedder)


@pytest.fixture
def service(store, extractor, embedder):
    return KnowledgeGraphService(store, extractor, embedder)


@pytest.fixture
def demo_episode():
    return Episode(name="Demo", content="John Doe is a software engineer who works at Microsoft.")


def make_node(name: str, node_id: str | None = None, node_type: str = "entity", summary: str = "") -> Node:
    return Node(id=node_id or f"id-{name.lower()}", type=node_type, name=name, summary=summary)


@pytest.fixture
def node_factory():
    return make_node
