"""Structural chunking of theme files."""

from .chunker import ChunkCache, chunk_file, run_strategies
from .chunks import Chunk, ChunkMetadata, ChunkType

__all__ = ["Chunk", "ChunkCache", "ChunkMetadata", "ChunkType", "chunk_file", "run_strategies"]
