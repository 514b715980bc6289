"""Knowledge graph subsystem.

This module provides:
- An LLM-driven ingestion pipeline turning episodes into entity nodes and relationship edges
- A graph store abstraction + Neo4j implementation
- A query engine for keyword, semantic and hybrid search plus entity/fact lookups
"""

from .models import Edge, Episode, IngestStats, Node, SearchResult
from .pipeline import GraphIngestor
from .query_engine import GraphQueryEngine
from .service import HealthStatus, KnowledgeGraphService
from .store import GraphStore

__all__ = [
    "Edge",
    "Episode",
    "GraphIngestor",
    "GraphQueryEngine",
    "GraphStore",
    "HealthStatus",
    "IngestStats",
    "KnowledgeGraphService",
    "Node",
    "SearchResult",
]
