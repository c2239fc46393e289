"""Bookkeeping for transient tensors owned by the pipeline."""

from __future__ import annotations

import numpy as np


class BufferPool:
    """Track live input/output arrays so they can be counted and released."""

    def __init__(self) -> None:
        self._buffers: dict[int, np.ndarray] = {}

    def register(self, array: np.ndarray) -> np.ndarray:
        self._buffers[id(array)] = array
        return array

    def release(self, array: np.ndarray) -> None:
        self._buffers.pop(id(array), None)

    def release_all(self) -> int:
        count = len(self._buffers)
        self._buffers.clear()
        return count

    @property
    def tensor_count(self) -> int:
        return len(self._buffers)

    @property
    def memory_mb(self) -> float:
        return sum(buf.nbytes for buf in self._buffers.values()) / (1024**2)
