"""Fixed-size set of worker threads, each serving one request at a time."""

import logging
import threading
from collections.abc import Callable
from typing import Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestDispatcher(Generic[T]):
    """Runs `workers` threads that each loop: receive one intent, handle it, repeat.

    Workers share only the `receive` callable (for HTTP, the listening socket);
    there is no queue between them. A fault escaping `handle` is logged and
    counted at the iteration boundary and the worker carries on, so total
    capacity stays at `workers` for the life of the dispatcher.
    """

    def __init__(
        self,
        workers: int,
        receive: Callable[[], Optional[T]],
        handle: Callable[[T], None],
        name: str = "frame-worker",
    ) -> None:
        """Initialize the dispatcher.

        Args:
            workers: Number of worker threads
            receive: Returns the next intent, or None when nothing arrived within
                its own short timeout; must not block indefinitely
            handle: Processes one intent to completion
            name: Thread name prefix
        """
        if workers < 1:
            raise ValueError(f"Dispatcher needs at least one worker, got {workers}")

        self.workers = workers
        self.name = name
        self._receive = receive
        self._handle = handle
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._stats_lock = threading.Lock()
        self._processed = 0
        self._faults = 0

    @property
    def processed(self) -> int:
        with self._stats_lock:
            return self._processed

    @property
    def faults(self) -> int:
        with self._stats_lock:
            return self._faults

    @property
    def alive_workers(self) -> int:
        return sum(1 for thread in self._threads if thread.is_alive())

    @property
    def running(self) -> bool:
        return bool(self._threads) and not self._stop.is_set()

    def start(self) -> None:
        if self._threads:
            logger.warning("Dispatcher already started")
            return

        self._stop.clear()
        for index in range(self.workers):
            thread = threading.Thread(
                target=self._run, name=f"{self.name}-{index}", daemon=True
            )
            self._threads.append(thread)
            thread.start()
        logger.info(f"Started {self.workers} worker(s)")

    def stop(self, timeout: float = 10.0) -> None:
        """Signal workers to finish their current request and exit."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"Worker {thread.name} did not stop within {timeout}s")
        self._threads = []
        logger.info("Dispatcher stopped")

    def _run(self) -> None:
        logger.debug("Worker started")
        while not self._stop.is_set():
            self.run_once()
        logger.debug("Worker exiting")

    def run_once(self) -> bool:
        """Run one worker iteration.

        Returns:
            True if an intent was received and handled without a fault
        """
        try:
            intent = self._receive()
        except Exception:
            logger.exception("Could not receive request")
            self._stop.wait(0.1)
            return False

        if intent is None:
            return False

        try:
            self._handle(intent)
        except Exception:
            logger.exception("Unhandled fault while serving request; worker continues")
            with self._stats_lock:
                self._faults += 1
            return False

        with self._stats_lock:
            self._processed += 1
        return True
