"""Repository layer for data access."""

from catalog.repositories.chunk_repository import ChunkRepository
from catalog.repositories.version_repository import VersionRepository

__all__ = [
    "ChunkRepository",
    "VersionRepository",
]
