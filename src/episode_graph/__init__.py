"""Episode graph: a small knowledge graph served to LLM agents over MCP."""

__version__ = "0.1.0"
