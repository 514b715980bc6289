"""Exceptions raised by the knowledge graph service."""

from __future__ import annotations


class EpisodeGraphError(Exception):
    """Base exception for knowledge graph operations."""


class ConfigurationError(EpisodeGraphError):
    """A required credential or connection parameter is missing."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required configuration: {', '.join(missing)}")


class ExtractionError(EpisodeGraphError):
    """The language model or embedding service could not be reached."""


class PersistenceError(EpisodeGraphError):
    """The graph store rejected a write."""


class InvalidInputError(EpisodeGraphError, ValueError):
    """Caller-supplied arguments failed validation."""


class EpisodeIngestError(EpisodeGraphError):
    """Raised when one episode of a batch fails; later episodes are not processed."""

    def __init__(self, episode_name: str, index: int, cause: BaseException):
        self.episode_name = episode_name
        self.index = index
        self.cause = cause
        super().__init__(f"Failed to process episode '{episode_name}' (#{index + 1}): {cause}")
