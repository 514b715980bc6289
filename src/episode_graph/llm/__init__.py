from .client import OpenAICompatibleClient
from .embedder import HttpEmbedder

__all__ = ["HttpEmbedder", "OpenAICompatibleClient"]
