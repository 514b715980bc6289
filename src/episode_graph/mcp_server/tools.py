"""Tool-call surface: validates arguments, runs the service, renders text.

Kept independent of the MCP transport so it can be driven directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from episode_graph.errors import EpisodeIngestError
from episode_graph.knowledge_graph.models import Edge, Node, SearchResult
from episode_graph.knowledge_graph.service import HealthStatus, KnowledgeGraphService

from .schemas import AddEpisodesInput, GetEntitiesInput, GetFactsInput, HealthCheckInput, SearchInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]

    @property
    def input_schema(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec("add_episodes", "Add episodes (text documents) to the knowledge graph", AddEpisodesInput),
    ToolSpec(
        "search",
        "Search the knowledge graph using semantic, keyword, or hybrid search",
        SearchInput,
    ),
    ToolSpec("get_entities", "Get entities by name and optionally by type", GetEntitiesInput),
    ToolSpec("get_facts", "Get facts/relationships between entities", GetFactsInput),
    ToolSpec("health_check", "Check the health status of the knowledge graph server", HealthCheckInput),
)


@dataclass(frozen=True, slots=True)
class ToolResponse:
    text: str
    is_error: bool = False


def _mark(ok: bool) -> str:
    return "✓" if ok else "✗"


def format_search(query: str, results: list[SearchResult]) -> str:
    lines = []
    for i, r in enumerate(results, 1):
        if r.node is not None:
            lines.append(f"{i}. {r.node.name} ({r.node.type}) - Score: {r.score:.2f}\n   {r.content}")
        elif r.edge is not None:
            lines.append(f"{i}. {r.edge.name} - Score: {r.score:.2f}\n   {r.content}")
        else:
            lines.append(f"{i}. {r.content} - Score: {r.score:.2f}")
    return f'Found {len(results)} results for query "{query}":\n\n' + "\n\n".join(lines)


def format_entities(args: GetEntitiesInput, nodes: list[Node]) -> str:
    if not nodes:
        type_part = f' and type "{args.entity_type}"' if args.entity_type else ""
        return f'No entities found matching name "{args.name}"{type_part}.'
    lines = [
        f"{i}. {n.name} ({n.type})\n   Summary: {n.summary or 'No summary'}\n   Created: {n.created_at}"
        for i, n in enumerate(nodes, 1)
    ]
    return f"Found {len(nodes)} entities:\n\n" + "\n\n".join(lines)


def format_facts(args: GetFactsInput, edges: list[Edge]) -> str:
    if not edges:
        filters = ", ".join(
            part
            for part in (
                args.source_node_name and f'source: "{args.source_node_name}"',
                args.target_node_name and f'target: "{args.target_node_name}"',
                args.fact_type and f'type: "{args.fact_type}"',
            )
            if part
        )
        return f"No facts found with filters: {filters}." if filters else "No facts found."
    lines = []
    for i, e in enumerate(edges, 1):
        src = e.source_node.name if e.source_node else "Unknown"
        dst = e.target_node.name if e.target_node else "Unknown"
        lines.append(
            f"{i}. {src} --{e.name}--> {dst}\n   Summary: {e.summary or 'No summary'}\n   Type: {e.type or 'Unknown'}"
        )
    return f"Found {len(edges)} facts:\n\n" + "\n\n".join(lines)


def format_health(health: HealthStatus) -> str:
    status = "healthy" if health.healthy else "unhealthy"
    details = "\n".join(
        [
            f"Database: {_mark(health.database)}",
            f"LLM: {_mark(health.llm)}",
            f"Embedding: {_mark(health.embedding)}",
        ]
    )
    return f"Server status: {status}\n\n{details}"


def _validation_message(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {e.get('msg')}")
    return "invalid arguments (" + "; ".join(parts) + ")"


class ToolHandler:
    def __init__(self, service: KnowledgeGraphService):
        self.service = service
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[str]]] = {
            "add_episodes": self._add_episodes,
            "search": self._search,
            "get_entities": self._get_entities,
            "get_facts": self._get_facts,
            "health_check": self._health_check,
        }

    async def call(self, name: str, arguments: dict[str, Any] | None) -> ToolResponse:
        handler = self._handlers.get(name)
        if handler is None:
            return ToolResponse(f"Error: Unknown tool: {name}", is_error=True)
        try:
            return ToolResponse(await handler(arguments or {}))
        except ValidationError as e:
            logger.warning("Rejected %s call: %s", name, e)
            return ToolResponse(f"Error in {name}: {_validation_message(e)}", is_error=True)
        except EpisodeIngestError as e:
            logger.error("Tool call error in %s: %s", name, e, exc_info=True)
            return ToolResponse(
                f"Error in {name}: {e}. Episodes before #{e.index + 1} were added; later ones were skipped.",
                is_error=True,
            )
        except Exception as e:
            logger.error("Tool call error in %s: %s", name, e, exc_info=True)
            return ToolResponse(f"Error in {name}: {e}", is_error=True)

    async def _add_episodes(self, arguments: dict[str, Any]) -> str:
        args = AddEpisodesInput.model_validate(arguments)
        stats = await self.service.add_episodes(args.episodes)
        nodes = sum(s.nodes_written for s in stats)
        edges = sum(s.edges_written for s in stats)
        return (
            f"Successfully added {len(args.episodes)} episodes to the knowledge graph "
            f"({nodes} entities, {edges} relationships)."
        )

    async def _search(self, arguments: dict[str, Any]) -> str:
        args = SearchInput.model_validate(arguments)
        results = await self.service.search(args.query, args.num_results, args.search_type)
        return format_search(args.query, results)

    async def _get_entities(self, arguments: dict[str, Any]) -> str:
        args = GetEntitiesInput.model_validate(arguments)
        nodes = await self.service.get_entities(args.name, args.entity_type)
        return format_entities(args, nodes)

    async def _get_facts(self, arguments: dict[str, Any]) -> str:
        args = GetFactsInput.model_validate(arguments)
        edges = await self.service.get_facts(args.source_node_name, args.target_node_name, args.fact_type)
        return format_facts(args, edges)

    async def _health_check(self, arguments: dict[str, Any]) -> str:
        HealthCheckInput.model_validate(arguments)
        return format_health(await self.service.health_check())
