"""Bounded ring buffer of recently captured samples.

Samples are written twice, at ``pos`` and ``pos + capacity``, so the newest
``n`` samples are always a contiguous slice of the backing array. Reading a
window is a view, never a copy, which keeps the block callback free of
allocations.
"""

from __future__ import annotations

from typing import cast

import numpy as np

from quantscope.typing import NDArrayFloat


class SampleHistory:
    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1 (got {capacity})")
        self.capacity = int(capacity)
        self._buf = np.zeros(2 * self.capacity, dtype=np.float64)
        self._pos = 0  # next write slot in [0, capacity)
        self._count = 0

    def __len__(self) -> int:
        return self._count

    @property
    def full(self) -> bool:
        return self._count >= self.capacity

    def push(self, value: float) -> None:
        pos = self._pos
        self._buf[pos] = value
        self._buf[pos + self.capacity] = value
        self._pos = pos + 1 if pos + 1 < self.capacity else 0
        if self._count < self.capacity:
            self._count += 1

    def latest(self, default: float = 0.0) -> float:
        """Newest sample, or ``default`` when nothing has been captured yet."""
        if self._count == 0:
            return default
        return float(self._buf[self._pos + self.capacity - 1])

    def __getitem__(self, index: int) -> float:
        """Index from the newest sample: ``history[-1]`` is the newest."""
        if index >= 0 or -index > self._count:
            raise IndexError(f"history index {index} out of range (len={self._count})")
        return float(self._buf[self._pos + self.capacity + index])

    def window(self, n: int) -> NDArrayFloat:
        """Newest ``n`` samples, oldest first, as a read-only view.

        Slots never written read as zero.
        """
        if n < 1 or n > self.capacity:
            raise ValueError(f"window length must be in 1-{self.capacity} (got {n})")
        end = self._pos + self.capacity
        view = self._buf[end - n : end]
        view.flags.writeable = False
        return cast(NDArrayFloat, view)

    def clear(self) -> None:
        self._buf.fill(0.0)
        self._pos = 0
        self._count = 0

    def extend(self, values: NDArrayFloat) -> None:
        """Push a block of samples, oldest first."""
        values = np.asarray(values, dtype=np.float64)
        if values.size > self.capacity:
            values = values[-self.capacity :]
        m = values.size
        if m == 0:
            return
        idx = (self._pos + np.arange(m)) % self.capacity
        self._buf[idx] = values
        self._buf[idx + self.capacity] = values
        self._pos = (self._pos + m) % self.capacity
        self._count = min(self.capacity, self._count + m)
