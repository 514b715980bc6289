from __future__ import annotations

from typing import Protocol

from .models import Edge, Node


class GraphStore(Protocol):
    """Abstraction for the backing graph database."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def ensure_schema(self) -> None: ...

    async def add_nodes(self, nodes: list[Node]) -> None: ...

    async def add_edges(self, edges: list[Edge]) -> None: ...

    async def add_graph(self, nodes: list[Node], edges: list[Edge]) -> None:
        """Write nodes then edges in one transaction; nothing persists on failure."""
        ...

    async def search_nodes(self, query: str, limit: int) -> list[tuple[Node, float]]: ...

    async def vector_search(self, embedding: list[float], limit: int) -> list[tuple[Node, float]]: ...

    async def find_nodes(self, name: str, node_type: str | None = None, *, limit: int = 100) -> list[Node]: ...

    async def find_edges(
        self,
        source_name: str | None = None,
        target_name: str | None = None,
        edge_type: str | None = None,
        *,
        limit: int = 200,
    ) -> list[Edge]: ...

    async def health_check(self) -> bool: ...
