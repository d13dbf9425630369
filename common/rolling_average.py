"""
Rolling Average Module

Fixed-capacity circular window of samples with an arithmetic mean, used for
the update-interval instrumentation of the streaming channel.
Thread-safe access with a lock for concurrent reads/writes.
"""

import threading
from collections import deque
from typing import List

from .constants import ROLLING_WINDOW_SIZE


class RollingAverage:
    """
    Mean of the last N samples.

    Before the window is full the mean covers only the samples seen so far;
    once full, each new sample evicts the oldest.
    """

    def __init__(self, size: int = ROLLING_WINDOW_SIZE):
        if size <= 0:
            raise ValueError(f"Window size must be positive, got {size}")
        self.size = size
        self.lock = threading.Lock()
        self._samples = deque(maxlen=size)

    def add(self, value: float) -> float:
        """
        Add a sample.

        Returns:
            The new average
        """
        with self.lock:
            self._samples.append(float(value))
            return sum(self._samples) / len(self._samples)

    @property
    def average(self) -> float:
        """Current average, 0.0 while empty"""
        with self.lock:
            if not self._samples:
                return 0.0
            return sum(self._samples) / len(self._samples)

    def samples(self) -> List[float]:
        """Copy of the window, oldest first"""
        with self.lock:
            return list(self._samples)

    def reset(self):
        with self.lock:
            self._samples.clear()

    def __len__(self) -> int:
        with self.lock:
            return len(self._samples)
