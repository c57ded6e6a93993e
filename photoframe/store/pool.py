"""Fixed-size, non-blocking pool of store connection handles."""

import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Deque, Generic, Optional, TypeVar

from ..exceptions import PoolExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourcePool(Generic[T]):
    """Pool of exclusively owned handles with immediate accept-or-reject acquisition.

    The free-list is the only state shared between workers and is guarded by a
    single lock. Handles are reused oldest-released first. Returned handles are
    not health-checked; a broken connection surfaces its failure on next use.
    """

    def __init__(self, handles: Iterable[T], name: str = "store") -> None:
        """Initialize the pool with an already-open set of handles.

        Args:
            handles: Handles making up the pool; their count fixes the capacity
            name: Pool name used in log messages
        """
        self.name = name
        self._lock = threading.Lock()
        self._free: Deque[T] = deque(handles)
        self._capacity = len(self._free)
        self._closed = False

        logger.info(f"Resource pool '{name}' populated, size: {self._capacity}")

    @classmethod
    def create(cls, factory: Callable[[], T], size: int, name: str = "store") -> "ResourcePool[T]":
        """Open `size` handles with `factory` and pool them.

        Raises:
            ValueError: If size is not positive
            Exception: Whatever the factory raises; handles opened so far are not leaked
        """
        if size < 1:
            raise ValueError(f"Pool size must be at least 1, got {size}")

        handles: list[T] = []
        try:
            for _ in range(size):
                handles.append(factory())
        except Exception:
            logger.exception(f"Failed to create connection for pool '{name}'")
            for handle in handles:
                _close_quietly(handle)
            raise

        return cls(handles, name=name)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available(self) -> int:
        with self._lock:
            return len(self._free)

    def acquire(self) -> T:
        """Take a handle without waiting.

        Raises:
            PoolExhaustedError: If no handle is free
        """
        with self._lock:
            if self._closed or not self._free:
                raise PoolExhaustedError(
                    "connection pool is exhausted",
                    {"pool": self.name, "capacity": self._capacity},
                )
            return self._free.popleft()

    def release(self, handle: T) -> None:
        """Return a handle to the back of the free-list.

        Raises:
            ValueError: If more handles are released than the pool holds
        """
        with self._lock:
            if self._closed:
                _close_quietly(handle)
                return
            if len(self._free) >= self._capacity:
                raise ValueError(f"Pool '{self.name}' already holds {self._capacity} handles")
            self._free.append(handle)

    @contextmanager
    def lease(self) -> Iterator[T]:
        """Acquire a handle for the duration of a with-block."""
        handle = self.acquire()
        try:
            yield handle
        finally:
            self.release(handle)

    def close(self) -> None:
        """Close idle handles and refuse further acquisitions.

        Handles still checked out are closed when they are released.
        """
        with self._lock:
            self._closed = True
            idle = list(self._free)
            self._free.clear()

        for handle in idle:
            _close_quietly(handle)
        logger.info(f"Resource pool '{self.name}' closed ({len(idle)} idle handles)")


def _close_quietly(handle: object) -> None:
    close: Optional[Callable[[], None]] = getattr(handle, "close", None)
    if close is None:
        return
    try:
        close()
    except Exception as e:
        logger.warning(f"Error closing pooled handle: {e}")
