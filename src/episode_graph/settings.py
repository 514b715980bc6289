from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from episode_graph.errors import ConfigurationError


class GraphSettings(BaseSettings):
    """Unified configuration for the episode graph server.

    Environment variables use their conventional names (NEO4J_URI,
    OPENAI_API_KEY, ...) and may also come from a local .env file.
    """

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")

    # --- Graph DB (Neo4j) ---
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str | None = None
    neo4j_database: str = "neo4j"

    # --- LLM (OpenAI-compatible chat completions) ---
    openai_api_key: str | None = None
    openai_api_url: str = "https://api.openai.com/v1"
    openai_api_model: str = "gpt-3.5-turbo"

    # --- Embeddings ---
    embedding_api_key: str | None = None
    embedding_api_url: str = Field(
        default="https://open.bigmodel.cn/api/paas/v4/embeddings",
        description="Full URL of an OpenAI-compatible /embeddings endpoint",
    )
    embedding_model: str = "embedding-2"
    embedding_dimension: int = Field(default=1536, gt=0)

    # --- Pipeline tuning ---
    request_timeout: float = Field(default=60.0, gt=0, description="Read timeout for LLM/embedding calls")
    summary_max_length: int = Field(default=200, gt=0)
    max_entity_results: int = Field(default=100, gt=0)
    max_fact_results: int = Field(default=200, gt=0)
    atomic_episode_writes: bool = Field(
        default=True,
        description="Write an episode's nodes and edges in a single transaction",
    )

    def require_complete(self) -> None:
        missing: list[str] = []
        if not self.neo4j_uri:
            missing.append("NEO4J_URI")
        if not self.neo4j_user:
            missing.append("NEO4J_USER")
        if not (self.neo4j_password or "").strip():
            missing.append("NEO4J_PASSWORD")
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if not self.embedding_api_key:
            missing.append("EMBEDDING_API_KEY")
        if missing:
            raise ConfigurationError(missing)


settings = GraphSettings()
