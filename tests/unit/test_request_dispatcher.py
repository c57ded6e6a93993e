"""Unit tests for the fixed-size worker dispatcher."""

import queue
import threading
import time
from collections.abc import Callable
from typing import Optional
from unittest.mock import Mock

import pytest

from photoframe.dispatcher import RequestDispatcher


def queue_receiver(source: "queue.Queue[str]") -> Callable[[], Optional[str]]:
    def receive() -> Optional[str]:
        try:
            return source.get(timeout=0.05)
        except queue.Empty:
            return None

    return receive


class TestRunOnce:
    """Test a single worker iteration."""

    def test_run_once_when_handler_faults_then_next_request_is_served(self) -> None:
        intents = iter(["bad", "good"])
        handled: list[str] = []

        def handle(intent: str) -> None:
            if intent == "bad":
                raise RuntimeError("handler blew up")
            handled.append(intent)

        dispatcher = RequestDispatcher(1, lambda: next(intents), handle)

        assert dispatcher.run_once() is False
        assert dispatcher.run_once() is True
        assert handled == ["good"]
        assert dispatcher.faults == 1
        assert dispatcher.processed == 1

    def test_run_once_when_nothing_received_then_handler_not_called(self) -> None:
        handle = Mock()
        dispatcher = RequestDispatcher(1, lambda: None, handle)

        assert dispatcher.run_once() is False
        handle.assert_not_called()

    def test_run_once_when_receive_raises_then_returns_false(self) -> None:
        receive = Mock(side_effect=OSError("socket closed"))
        dispatcher = RequestDispatcher(1, receive, Mock())

        assert dispatcher.run_once() is False
        assert dispatcher.faults == 0

    def test_init_when_no_workers_then_raises_value_error(self) -> None:
        with pytest.raises(ValueError):
            RequestDispatcher(0, lambda: None, Mock())


class TestWorkerThreads:
    """Test the running dispatcher."""

    def test_start_when_faults_occur_then_all_workers_stay_alive(self) -> None:
        source: "queue.Queue[str]" = queue.Queue()
        done = threading.Event()
        handled: list[str] = []
        lock = threading.Lock()

        def handle(intent: str) -> None:
            if intent.startswith("fault"):
                raise ValueError(intent)
            with lock:
                handled.append(intent)
                if len(handled) == 4:
                    done.set()

        dispatcher = RequestDispatcher(2, queue_receiver(source), handle, name="test-worker")
        dispatcher.start()
        try:
            for intent in ("fault-1", "ok-1", "fault-2", "ok-2", "ok-3", "ok-4"):
                source.put(intent)

            assert done.wait(timeout=5)
            assert dispatcher.alive_workers == 2
            assert dispatcher.running
        finally:
            dispatcher.stop(timeout=2)

        assert sorted(handled) == ["ok-1", "ok-2", "ok-3", "ok-4"]
        assert dispatcher.faults == 2
        assert dispatcher.processed == 4
        assert not dispatcher.running

    def test_start_when_running_then_threads_are_named_after_dispatcher(self) -> None:
        seen: set[str] = set()
        source: "queue.Queue[str]" = queue.Queue()

        def handle(_intent: str) -> None:
            seen.add(threading.current_thread().name)
            time.sleep(0.05)

        dispatcher = RequestDispatcher(2, queue_receiver(source), handle, name="frame-worker")
        dispatcher.start()
        try:
            for index in range(6):
                source.put(str(index))
            deadline = time.monotonic() + 5
            while dispatcher.processed < 6 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            dispatcher.stop(timeout=2)

        assert dispatcher.processed == 6
        assert seen <= {"frame-worker-0", "frame-worker-1"}
        assert seen

    def test_stop_when_called_then_workers_exit(self) -> None:
        dispatcher = RequestDispatcher(3, queue_receiver(queue.Queue()), Mock(), name="stop-test")
        dispatcher.start()
        assert dispatcher.alive_workers == 3

        dispatcher.stop(timeout=2)

        assert not [t for t in threading.enumerate() if t.name.startswith("stop-test-")]
