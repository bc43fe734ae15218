from __future__ import annotations

import io
import queue
import threading
import time
from typing import Any, Callable

import pytest

from arena_server.launcher.log_setup import LogInitializer


class LineChannel:
    """Control channel fed by the test; readline() blocks like stdin."""

    def __init__(self) -> None:
        self._lines: queue.Queue[str] = queue.Queue()

    def send(self, line: str) -> None:
        self._lines.put(line + "\n")

    def close(self) -> None:
        self._lines.put("")

    def readline(self) -> str:
        return self._lines.get()


class FakeGame:
    """Reports a scripted player count, advancing one step per gate poll."""

    def __init__(self, counts: list[int]) -> None:
        self._counts = list(counts)
        self._current = 0
        self.polls: list[int] = []
        self.phase_probe: Callable[[], Any] | None = None
        self.phases_seen: list[Any] = []

    @property
    def player_count(self) -> int:
        if self._counts:
            self._current = self._counts.pop(0)
        self.polls.append(self._current)
        if self.phase_probe is not None:
            self.phases_seen.append(self.phase_probe())
        return self._current

    def wait_for_player_count(self, expected: int, timeout: float | None = None) -> bool:
        time.sleep(min(timeout or 0.001, 0.01))
        return self._current >= expected


class FakeRunner:
    def __init__(self, events: Any, metrics: Any = None, log: Any = None, counts: list[int] | None = None) -> None:
        self.events = events
        self.game = FakeGame(counts if counts is not None else [1])
        self.start_calls = 0
        self.stop_calls = 0
        self.polls_before_start: int | None = None
        self.received: list[Any] = []

    def start(self) -> None:
        self.start_calls += 1
        self.polls_before_start = len(self.game.polls)

    def stop(self) -> bool:
        self.stop_calls += 1
        return True

    def handle_after_message_receive(self, message: Any) -> None:
        self.received.append(message)


class FakeServer:
    def __init__(self, events: Any, port: int = 0, metrics: Any = None, fail_on_start: bool = False) -> None:
        self.events = events
        self.port = port
        self.fail_on_start = fail_on_start
        self.start_calls = 0
        self.stop_calls = 0
        self.ticks: list[Any] = []
        self.joins: list[Any] = []

    def start(self) -> None:
        self.start_calls += 1
        if self.fail_on_start:
            raise OSError(98, "Address already in use")

    def stop(self) -> bool:
        self.stop_calls += 1
        return True

    def handle_after_game_tick(self, state: Any) -> None:
        self.ticks.append(state)

    def handle_after_new_player_join(self, info: Any) -> None:
        self.joins.append(info)


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class RunInThread:
    """Runs Orchestrator.run() on a worker thread and keeps its exit code."""

    def __init__(self, orchestrator: Any) -> None:
        self.orchestrator = orchestrator
        self.exit_code: int | None = None
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.start()

    def _run(self) -> None:
        self.exit_code = self.orchestrator.run()

    def join(self, timeout: float = 5.0) -> int | None:
        self.thread.join(timeout)
        return self.exit_code


@pytest.fixture
def channel() -> LineChannel:
    return LineChannel()


@pytest.fixture
def log_initializer(request: pytest.FixtureRequest) -> LogInitializer:
    # A logger tree per test so thresholds never leak between tests
    return LogInitializer(logger_name=f"arena_test.{request.node.name}", stream=io.StringIO())
