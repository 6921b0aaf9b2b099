"""Per-provider concurrency cap for outbound provider calls."""

import threading
from contextlib import contextmanager
from typing import Iterator


class ProviderConcurrencyLimiter:
    """
    Bounds in-flight calls per provider across all sellers in this process.

    The worker pool is shared, so a global cap alone would let one slow
    provider occupy every worker; each provider gets its own semaphore.
    """

    def __init__(self, max_per_provider: int = 4):
        if max_per_provider < 1:
            raise ValueError("max_per_provider must be >= 1")
        self.max_per_provider = max_per_provider
        self._semaphores: dict[str, threading.BoundedSemaphore] = {}
        self._lock = threading.Lock()

    def _semaphore(self, provider: str) -> threading.BoundedSemaphore:
        with self._lock:
            if provider not in self._semaphores:
                self._semaphores[provider] = threading.BoundedSemaphore(self.max_per_provider)
            return self._semaphores[provider]

    @contextmanager
    def slot(self, provider: str) -> Iterator[None]:
        semaphore = self._semaphore(provider)
        semaphore.acquire()
        try:
            yield
        finally:
            semaphore.release()
