from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from episode_graph.knowledge_graph.models import Episode
from episode_graph.knowledge_graph.query_engine import MAX_SEARCH_RESULTS


class AddEpisodesInput(BaseModel):
    episodes: list[Episode] = Field(min_length=1, description="List of episodes to add")


class SearchInput(BaseModel):
    query: str = Field(description="Search query")
    num_results: int = Field(
        default=10, ge=1, le=MAX_SEARCH_RESULTS, description="Number of results to return (1-100)"
    )
    search_type: Literal["semantic", "keyword", "hybrid"] = Field(default="hybrid", description="Search type")


class GetEntitiesInput(BaseModel):
    name: str = Field(description="Entity name to search for")
    entity_type: str | None = Field(default=None, description="Optional entity type filter")


class GetFactsInput(BaseModel):
    source_node_name: str | None = Field(default=None, description="Source entity name (optional)")
    target_node_name: str | None = Field(default=None, description="Target entity name (optional)")
    fact_type: str | None = Field(default=None, description="Fact/relationship type (optional)")


class HealthCheckInput(BaseModel):
    pass
