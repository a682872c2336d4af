"""Lightweight embedding store used for vector similarity over theme files."""

from __future__ import annotations

import hashlib
import re
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

_TOKEN_PATTERN = re.compile(r"[a-z0-9_]+(?:-[a-z0-9_]+)*")


class Encoder(Protocol):
    @property
    def dimension(self) -> int:
        ...

    def encode(self, text: str) -> np.ndarray:
        ...


class HashEmbeddingEncoder:
    """Deterministic bag-of-tokens encoder until a real model is plugged in.

    Every token maps to a pseudo-random unit direction seeded by its hash, so
    texts sharing vocabulary land close together.
    """

    def __init__(self, dimension: int = 128) -> None:
        if dimension <= 0:
            raise ValueError("Embedding dimension must be positive.")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def encode(self, text: str) -> np.ndarray:
        accumulator = np.zeros(self._dimension, dtype=np.float32)
        for token in _TOKEN_PATTERN.findall(text.lower()):
            accumulator += _token_vector(token, self._dimension)
        norm = float(np.linalg.norm(accumulator))
        if norm == 0.0:
            return accumulator
        return accumulator / norm


@lru_cache(maxsize=16384)
def _token_vector(token: str, dimension: int) -> np.ndarray:
    seed = int.from_bytes(hashlib.sha256(token.encode("utf-8")).digest()[:8], "big")
    vector = np.random.default_rng(seed).standard_normal(dimension).astype(np.float32)
    vector /= np.linalg.norm(vector)
    vector.setflags(write=False)
    return vector


@dataclass(frozen=True)
class EmbeddingRecord:
    """Indexed document vector together with the content hash it came from."""

    key: str
    content_hash: str
    vector: np.ndarray


class EmbeddingsIndex:
    """In-memory cosine-similarity index keyed by file id."""

    def __init__(self, encoder: Optional[Encoder] = None) -> None:
        self._encoder = encoder or HashEmbeddingEncoder()
        self._records: Dict[str, EmbeddingRecord] = {}
        self._matrix: Optional[np.ndarray] = None
        self._keys: List[str] = []
        self._lock = threading.Lock()

    @property
    def is_empty(self) -> bool:
        return not self._records

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def index_document(self, key: str, content: str, content_hash: str) -> None:
        existing = self._records.get(key)
        if existing is not None and existing.content_hash == content_hash:
            return
        record = EmbeddingRecord(key=key, content_hash=content_hash, vector=self._encoder.encode(content))
        with self._lock:
            self._records[key] = record
            self._matrix = None

    def remove(self, key: str) -> None:
        with self._lock:
            if self._records.pop(key, None) is not None:
                self._matrix = None

    def retain(self, keys: Sequence[str]) -> None:
        """Drop every record whose key is not in ``keys``."""
        keep = set(keys)
        with self._lock:
            stale = [key for key in self._records if key not in keep]
            for key in stale:
                del self._records[key]
            if stale:
                self._matrix = None

    def search(self, query: str, limit: int = 10, threshold: float = 0.0) -> List[Tuple[str, float]]:
        """Return ``(key, cosine)`` pairs above ``threshold``, best first."""
        query_vector = self._encoder.encode(query)
        if not query_vector.any():
            return []
        matrix, keys = self._backend()
        if matrix is None:
            return []
        scores = matrix @ query_vector
        order = np.argsort(-scores, kind="stable")
        results: List[Tuple[str, float]] = []
        for index in order:
            score = float(scores[index])
            if score <= threshold:
                break
            results.append((keys[index], score))
            if len(results) >= limit:
                break
        return results

    def _backend(self) -> Tuple[Optional[np.ndarray], List[str]]:
        with self._lock:
            if self._matrix is None and self._records:
                self._keys = sorted(self._records)
                self._matrix = np.vstack([self._records[key].vector for key in self._keys])
            return self._matrix, list(self._keys)


__all__ = ["EmbeddingRecord", "EmbeddingsIndex", "Encoder", "HashEmbeddingEncoder"]
