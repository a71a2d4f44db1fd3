"""
Memory accounting helpers for vector storage.

Tracks "virtual" usage (what callers report), not the process heap. The
in-memory store reports the byte size of each stored vector.
"""

import math
from typing import Callable, Dict, Optional

BYTES_PER_FLOAT32 = 4
BYTES_PER_FLOAT64 = 8

MemoryCallback = Callable[[int, int], None]


def bytes_per_vector(dimensions: int, use_float32: bool = True) -> int:
    """Bytes needed to store one vector of the given dimensionality."""
    return dimensions * (BYTES_PER_FLOAT32 if use_float32 else BYTES_PER_FLOAT64)


def estimate_embedding_memory(dimensions: int, count: int, use_float32: bool = True) -> int:
    """
    Exact memory usage for storing `count` embeddings.

    Example: 1000 embeddings of 1536 dims take 6,144,000 bytes as float32
    and 12,288,000 bytes as float64.
    """
    return bytes_per_vector(dimensions, use_float32) * count


def format_bytes(num_bytes: int, precision: int = 2) -> str:
    """Format a byte count as a human-readable string, e.g. "12.34 MB"."""
    if num_bytes == 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    exponent = min(int(math.floor(math.log(abs(num_bytes), 1024))), len(units) - 1)
    value = num_bytes / (1024 ** exponent)
    return f"{value:.{precision}f} {units[exponent]}"


class MemoryBudget:
    """
    Memory budget tracker with warning and exceeded callbacks.

    Callbacks fire once when a threshold is crossed and re-arm after usage
    drops back below it.
    """

    def __init__(self, max_bytes: int, warning_threshold: float = 0.8,
                 on_warning: Optional[MemoryCallback] = None,
                 on_exceeded: Optional[MemoryCallback] = None):
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        if not 0 <= warning_threshold <= 1:
            raise ValueError("warning_threshold must be between 0 and 1")

        self.max_bytes = max_bytes
        self.warning_threshold = warning_threshold
        self.on_warning = on_warning
        self.on_exceeded = on_exceeded

        self._usage = 0
        self._warning_fired = False
        self._exceeded_fired = False

    @property
    def usage(self) -> int:
        return self._usage

    def track(self, num_bytes: int) -> None:
        """Track a new allocation, firing callbacks when thresholds are crossed."""
        if num_bytes < 0:
            raise ValueError("Cannot track negative bytes. Use release() instead.")

        self._usage += num_bytes
        self._check_thresholds()

    def release(self, num_bytes: int) -> None:
        """Release tracked memory."""
        if num_bytes < 0:
            raise ValueError("Cannot release negative bytes. Use track() instead.")

        self._usage = max(0, self._usage - num_bytes)

        fraction = self._usage / self.max_bytes
        if fraction < self.warning_threshold:
            self._warning_fired = False
        if fraction < 1:
            self._exceeded_fired = False

    def reset(self) -> None:
        self._usage = 0
        self._warning_fired = False
        self._exceeded_fired = False

    def would_exceed(self, num_bytes: int) -> bool:
        """Check whether tracking num_bytes more would exceed the budget."""
        return self._usage + num_bytes > self.max_bytes

    def check(self) -> Dict[str, object]:
        """Current budget status."""
        return {
            "ok": self._usage <= self.max_bytes,
            "used": self._usage,
            "available": self.max_bytes - self._usage,
            "percentage": self._usage * 100 / self.max_bytes,
        }

    def _check_thresholds(self) -> None:
        fraction = self._usage / self.max_bytes

        if fraction > 1 and not self._exceeded_fired:
            self._exceeded_fired = True
            if self.on_exceeded:
                self.on_exceeded(self._usage, self.max_bytes)

        if fraction >= self.warning_threshold and not self._warning_fired:
            self._warning_fired = True
            if self.on_warning:
                self.on_warning(self._usage, self.max_bytes)
