from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from neo4j import AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from episode_graph.errors import PersistenceError

from .models import Edge, Node

VECTOR_INDEX = "entity_name_embedding"

# Columns stored as first-class properties; everything else is a flattened attribute.
_NODE_FIELDS = ("id", "type", "name", "summary", "created_at", "valid_at", "invalid_at")
_EDGE_FIELDS = _NODE_FIELDS + ("source_id", "target_id")
_RESERVED = frozenset(_EDGE_FIELDS) | {"name_embedding"}


@dataclass(slots=True)
class Neo4jConfig:
    uri: str
    user: str
    password: str
    database: str = "neo4j"
    embedding_dimension: int = 1536
    max_connection_pool_size: int = 50
    # seconds
    connection_acquisition_timeout: float = 60.0
    connection_timeout: float = 30.0


def _property_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(v, (str, int, float, bool)) for v in value):
        if len({type(v) for v in value}) <= 1:
            return list(value)
    # Neo4j properties cannot hold maps or mixed/nested lists
    return json.dumps(value, default=str, ensure_ascii=False)


def _attribute_props(attributes: dict[str, Any]) -> dict[str, Any]:
    return {
        k: _property_value(v)
        for k, v in (attributes or {}).items()
        if v is not None and k not in _RESERVED
    }


def _node_from_props(props: dict[str, Any]) -> Node:
    attrs = {k: v for k, v in props.items() if k not in _RESERVED}
    return Node(
        id=props["id"],
        type=props.get("type") or "entity",
        name=props.get("name") or "",
        summary=props.get("summary") or "",
        created_at=props.get("created_at") or "",
        valid_at=props.get("valid_at"),
        invalid_at=props.get("invalid_at"),
        attributes=attrs,
    )


def _edge_from_props(props: dict[str, Any], source: dict[str, Any], target: dict[str, Any]) -> Edge:
    attrs = {k: v for k, v in props.items() if k not in _RESERVED}
    return Edge(
        id=props["id"],
        type=props.get("type") or "related_to",
        source_id=source["id"],
        target_id=target["id"],
        name=props.get("name") or props.get("type") or "",
        summary=props.get("summary") or "",
        created_at=props.get("created_at") or "",
        valid_at=props.get("valid_at"),
        invalid_at=props.get("invalid_at"),
        attributes=attrs,
        source_node=_node_from_props(source),
        target_node=_node_from_props(target),
    )


class Neo4jGraphStore:
    """Neo4j-backed graph store.

    Entities are `:Entity` nodes, relationships are `:RELATIONSHIP` edges;
    both carry their attributes flattened onto the record. Bulk writes use
    UNWIND. Name matching is case-insensitive containment everywhere.

    Dependency: neo4j>=5 (async driver).
    """

    def __init__(self, cfg: Neo4jConfig, *, logger: logging.Logger | None = None):
        self.cfg = cfg
        self.log = logger or logging.getLogger(__name__)
        # Driver is safe for concurrent use; sessions are lightweight.
        self._driver = AsyncGraphDatabase.driver(
            cfg.uri,
            auth=(cfg.user, cfg.password),
            max_connection_pool_size=cfg.max_connection_pool_size,
            connection_acquisition_timeout=cfg.connection_acquisition_timeout,
            connection_timeout=cfg.connection_timeout,
        )

    async def connect(self) -> None:
        try:
            await self._driver.verify_connectivity()
        except (Neo4jError, DriverError) as e:
            raise PersistenceError(f"cannot connect to Neo4j at {self.cfg.uri}: {e}") from e
        self.log.info("Connected to Neo4j at %s", self.cfg.uri)

    async def close(self) -> None:
        await self._driver.close()
        self.log.info("Neo4j driver closed")

    async def ensure_schema(self) -> None:
        dim = int(self.cfg.embedding_dimension)
        stmts = [
            "CREATE INDEX entity_id IF NOT EXISTS FOR (n:Entity) ON (n.id)",
            "CREATE INDEX entity_name IF NOT EXISTS FOR (n:Entity) ON (n.name)",
            "CREATE INDEX entity_type IF NOT EXISTS FOR (n:Entity) ON (n.type)",
            "CREATE INDEX relationship_id IF NOT EXISTS FOR ()-[r:RELATIONSHIP]-() ON (r.id)",
            "CREATE INDEX relationship_type IF NOT EXISTS FOR ()-[r:RELATIONSHIP]-() ON (r.type)",
            f"CREATE VECTOR INDEX {VECTOR_INDEX} IF NOT EXISTS FOR (n:Entity) ON (n.name_embedding) "
            f"OPTIONS {{indexConfig: {{`vector.dimensions`: {dim}, `vector.similarity_function`: 'cosine'}}}}",
        ]
        async with self._driver.session(database=self.cfg.database) as s:
            for q in stmts:
                try:
                    await s.run(q)
                    self.log.debug("Ensured index: %s", q)
                except Neo4jError as e:
                    self.log.warning("Failed to create index (may already exist): %s (%s)", q, e)

    # --- writes ---

    async def add_nodes(self, nodes: list[Node]) -> None:
        if not nodes:
            return
        await self._write(self._create_nodes_tx, nodes)
        self.log.info("Added %d nodes to the database", len(nodes))

    async def add_edges(self, edges: list[Edge]) -> None:
        if not edges:
            return
        await self._write(self._create_edges_tx, edges)
        self.log.info("Added %d edges to the database", len(edges))

    async def add_graph(self, nodes: list[Node], edges: list[Edge]) -> None:
        if not nodes and not edges:
            return

        async def _tx(tx):
            if nodes:
                await self._create_nodes_tx(tx, nodes)
            if edges:
                await self._create_edges_tx(tx, edges)

        await self._write(_tx)
        self.log.info("Added %d nodes and %d edges in one transaction", len(nodes), len(edges))

    async def _write(self, fn, *args) -> None:
        try:
            async with self._driver.session(database=self.cfg.database) as s:
                await s.execute_write(fn, *args)
        except PersistenceError:
            raise
        except (Neo4jError, DriverError) as e:
            raise PersistenceError(f"Neo4j write failed: {e}") from e

    @staticmethod
    async def _create_nodes_tx(tx, batch: list[Node]) -> int:
        rows = [
            {
                **{f: getattr(n, f) for f in _NODE_FIELDS},
                "attributes": _attribute_props(n.attributes),
                "name_embedding": n.name_embedding,
            }
            for n in batch
        ]
        q = """
        UNWIND $rows AS row
        CREATE (n:Entity {
          id: row.id,
          type: row.type,
          name: row.name,
          summary: row.summary,
          created_at: row.created_at,
          valid_at: row.valid_at,
          invalid_at: row.invalid_at
        })
        SET n += row.attributes
        SET n.name_embedding = row.name_embedding
        RETURN count(n) AS created
        """
        result = await tx.run(q, rows=rows)
        record = await result.single()
        return record["created"] if record else 0

    @staticmethod
    async def _create_edges_tx(tx, batch: list[Edge]) -> int:
        rows = [
            {**{f: getattr(e, f) for f in _EDGE_FIELDS}, "attributes": _attribute_props(e.attributes)}
            for e in batch
        ]
        # MATCH drops rows whose endpoints are missing; compare counts to detect it.
        q = """
        UNWIND $rows AS row
        MATCH (source:Entity {id: row.source_id})
        MATCH (target:Entity {id: row.target_id})
        CREATE (source)-[r:RELATIONSHIP {
          id: row.id,
          type: row.type,
          name: row.name,
          summary: row.summary,
          created_at: row.created_at,
          valid_at: row.valid_at,
          invalid_at: row.invalid_at
        }]->(target)
        SET r += row.attributes
        RETURN count(r) AS created
        """
        result = await tx.run(q, rows=rows)
        record = await result.single()
        created = record["created"] if record else 0
        if created != len(rows):
            raise PersistenceError(
                f"{len(rows) - created} of {len(rows)} edges reference nodes that do not exist"
            )
        return created

    # --- reads ---

    async def query(self, cypher: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        async with self._driver.session(database=self.cfg.database) as s:
            self.log.debug("Executing Neo4j query: %s %s", cypher.strip(), params)
            result = await s.run(cypher, **(params or {}))
            return await result.data()

    async def search_nodes(self, query: str, limit: int) -> list[tuple[Node, float]]:
        q = """
        MATCH (n:Entity)
        WHERE toLower(n.name) CONTAINS toLower($query)
        RETURN n{.*, name_embedding: null} AS n, 1.0 AS score
        ORDER BY n.created_at, n.id
        LIMIT $limit
        """
        rows = await self.query(q, {"query": query, "limit": int(limit)})
        return [(_node_from_props(r["n"]), float(r["score"])) for r in rows]

    async def vector_search(self, embedding: list[float], limit: int) -> list[tuple[Node, float]]:
        q = """
        CALL db.index.vector.queryNodes($index, $limit, $embedding) YIELD node, score
        RETURN node{.*, name_embedding: null} AS n, score
        ORDER BY score DESC, n.id
        """
        rows = await self.query(q, {"index": VECTOR_INDEX, "limit": int(limit), "embedding": embedding})
        return [(_node_from_props(r["n"]), float(r["score"])) for r in rows]

    async def find_nodes(self, name: str, node_type: str | None = None, *, limit: int = 100) -> list[Node]:
        q = "MATCH (n:Entity) WHERE toLower(n.name) CONTAINS toLower($name)"
        params: dict[str, Any] = {"name": name, "limit": int(limit)}
        if node_type:
            q += " AND n.type = $type"
            params["type"] = node_type
        q += " RETURN n{.*, name_embedding: null} AS n ORDER BY n.created_at, n.id LIMIT $limit"
        rows = await self.query(q, params)
        return [_node_from_props(r["n"]) for r in rows]

    async def find_edges(
        self,
        source_name: str | None = None,
        target_name: str | None = None,
        edge_type: str | None = None,
        *,
        limit: int = 200,
    ) -> list[Edge]:
        q = "MATCH (source:Entity)-[r:RELATIONSHIP]->(target:Entity) WHERE true"
        params: dict[str, Any] = {"limit": int(limit)}
        if source_name:
            q += " AND toLower(source.name) CONTAINS toLower($source_name)"
            params["source_name"] = source_name
        if target_name:
            q += " AND toLower(target.name) CONTAINS toLower($target_name)"
            params["target_name"] = target_name
        if edge_type:
            q += " AND r.type = $edge_type"
            params["edge_type"] = edge_type
        q += """
        RETURN r{.*} AS r,
               source{.*, name_embedding: null} AS source,
               target{.*, name_embedding: null} AS target
        ORDER BY r.created_at, r.id
        LIMIT $limit
        """
        rows = await self.query(q, params)
        return [_edge_from_props(r["r"], r["source"], r["target"]) for r in rows]

    async def health_check(self) -> bool:
        try:
            await self._driver.verify_connectivity()
            return True
        except Exception as e:
            self.log.error("Neo4j health check failed: %s", e)
            return False
