"""Vector index over memory embeddings.

`FlatVectorIndex` keeps every vector in one dense float32 matrix and scores
queries by cosine similarity. Stores are small (one row per memory key), so
brute force is fast enough and needs no native ANN library. On disk it is
two files under `<store>/vectors/`: `index.npy` and `keys.json`.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

import numpy as np

from .errors import MemError
from .models.types import SearchResult

logger = logging.getLogger(__name__)

MATRIX_FILE = "index.npy"
KEYS_FILE = "keys.json"


class VectorIndex(ABC):
    """Key → vector map with nearest-neighbour search."""

    @abstractmethod
    def add(self, key: str, vector: list[float]) -> None:
        """Insert or replace the vector for `key`."""

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Drop `key`; returns False if it was not indexed."""

    @abstractmethod
    def contains(self, key: str) -> bool: ...

    @abstractmethod
    def search(self, vector: list[float], limit: int = 10) -> list[SearchResult]:
        """Nearest keys to `vector`, best first."""

    @abstractmethod
    def build(self, items: Iterable[tuple[str, list[float]]]) -> None:
        """Replace the whole index with `items`."""

    @abstractmethod
    def save(self) -> None: ...

    @abstractmethod
    def load(self) -> None: ...


def _normalize(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    return matrix / np.clip(norms, a_min=1e-9, a_max=None)


class FlatVectorIndex(VectorIndex):
    def __init__(self, path: Path, dim: int) -> None:
        self.path = Path(path)
        self.dim = dim
        self._keys: list[str] = []
        self._matrix = np.zeros((0, dim), dtype=np.float32)

    def __len__(self) -> int:
        return len(self._keys)

    def _row(self, vector: list[float]) -> np.ndarray:
        row = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        if self.dim == 0 and not self._keys:
            # Dimension unknown until the first vector arrives.
            self.dim = row.shape[1]
            self._matrix = np.zeros((0, self.dim), dtype=np.float32)
        if row.shape[1] != self.dim:
            raise MemError(f"vector has dimension {row.shape[1]}, index expects {self.dim}")
        return _normalize(row)

    def add(self, key: str, vector: list[float]) -> None:
        row = self._row(vector)
        if key in self._keys:
            self._matrix[self._keys.index(key)] = row[0]
            return
        self._keys.append(key)
        self._matrix = np.vstack([self._matrix, row])

    def remove(self, key: str) -> bool:
        if key not in self._keys:
            return False
        i = self._keys.index(key)
        del self._keys[i]
        self._matrix = np.delete(self._matrix, i, axis=0)
        return True

    def contains(self, key: str) -> bool:
        return key in self._keys

    def search(self, vector: list[float], limit: int = 10) -> list[SearchResult]:
        if not self._keys or limit <= 0:
            return []
        query = self._row(vector)[0]
        scores = self._matrix @ query
        order = np.argsort(-scores)[:limit]
        return [
            # Cosine in [-1, 1] mapped onto [0, 1].
            SearchResult(key=self._keys[i], score=float((scores[i] + 1.0) / 2.0))
            for i in order
        ]

    def build(self, items: Iterable[tuple[str, list[float]]]) -> None:
        self._keys = []
        self._matrix = np.zeros((0, self.dim), dtype=np.float32)
        for key, vector in items:
            self.add(key, vector)
        logger.info("Built vector index with %d entries", len(self._keys))

    def save(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        np.save(self.path / MATRIX_FILE, self._matrix)
        (self.path / KEYS_FILE).write_text(json.dumps(self._keys), encoding="utf-8")

    def load(self) -> None:
        """Read the index from disk; a missing index loads empty."""
        matrix_path = self.path / MATRIX_FILE
        keys_path = self.path / KEYS_FILE
        if not matrix_path.exists() or not keys_path.exists():
            return
        matrix = np.load(matrix_path)
        keys = json.loads(keys_path.read_text(encoding="utf-8"))
        if matrix.shape[0] != len(keys):
            raise MemError(f"corrupt vector index at {self.path}")
        if matrix.shape[0] and self.dim and matrix.shape[1] != self.dim:
            # Embedding model changed since the index was written.
            logger.warning(
                "Vector index dimension %d != %d, discarding", matrix.shape[1], self.dim,
            )
            return
        self._keys = list(keys)
        self._matrix = matrix.astype(np.float32)
        if matrix.shape[0]:
            self.dim = matrix.shape[1]
