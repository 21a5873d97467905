import concurrent.futures
import threading
import time

import pytest

from onboarder.errors import ErrorType
from onboarder.event_bus import EventBus
from onboarder.models import Action, ProcessingResult, RepoStatus
from onboarder.scheduler import CANCELLED_MESSAGE, LEDGER_SKIP_MESSAGE, Scheduler
from onboarder.strategies import BaseStrategy, CreateEntityStrategy

from conftest import make_repo


class RecordingStrategy(BaseStrategy):
    """Sleeps for `delay` and tracks how many calls overlap."""

    mode = "test"

    def __init__(self, delay: float = 0.0, fail: set[str] | None = None, crash: set[str] | None = None):
        super().__init__(None, None, None)
        self.delay = delay
        self.fail = fail or set()
        self.crash = crash or set()
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self.observed: list = []
        self.state = None
        self._lock = threading.Lock()

    def run(self, repository):
        with self._lock:
            self.calls.append(repository.full_name)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.state is not None:
                self.observed.append(self.state.get(repository.full_name).status)
            if self.delay:
                time.sleep(self.delay)
            if repository.name in self.fail:
                raise RuntimeError("HTTP 404: Not Found")
            return ProcessingResult.done(repository.full_name, Action.CREATED, "ok")
        finally:
            with self._lock:
                self.active -= 1

    def process(self, repository):
        if repository.name in self.crash:
            raise RuntimeError("worker exploded")
        return super().process(repository)


def _repos(n):
    return [make_repo(f"repo-{i}") for i in range(n)]


def test_concurrency_must_be_positive(state):
    with pytest.raises(ValueError):
        Scheduler(RecordingStrategy(), state, concurrency=0)


def test_empty_batch(state):
    assert Scheduler(RecordingStrategy(), state).run([]) == []


def test_one_result_per_repository(state):
    repos = _repos(12)

    results = Scheduler(RecordingStrategy(), state, concurrency=4, rate_limit=0).run(repos)

    assert sorted(r.repository for r in results) == sorted(r.full_name for r in repos)


def test_never_exceeds_worker_count(state):
    strategy = RecordingStrategy(delay=0.05)

    Scheduler(strategy, state, concurrency=3, rate_limit=0).run(_repos(10))

    assert 1 <= strategy.max_active <= 3
    assert len(strategy.calls) == 10


def test_rate_limit_delay_overlaps_across_workers(state):
    n = 6
    started = time.monotonic()

    Scheduler(RecordingStrategy(), state, concurrency=n, rate_limit=0.2).run(_repos(n))

    assert time.monotonic() - started < 0.2 * n * 0.5


def test_rate_limit_sleeps_once_per_task(state):
    sleeps = []
    Scheduler(RecordingStrategy(), state, concurrency=2, rate_limit=0.3, sleep=sleeps.append).run(_repos(4))
    assert sleeps == [0.3] * 4


def test_ledger_skip_does_not_call_strategy(state):
    state.record_success("acme/repo-0")
    strategy = RecordingStrategy()

    results = Scheduler(strategy, state, rate_limit=0).run(_repos(2))

    by_repo = {r.repository: r for r in results}
    assert by_repo["acme/repo-0"].skipped
    assert by_repo["acme/repo-0"].message == LEDGER_SKIP_MESSAGE
    assert strategy.calls == ["acme/repo-1"]


def test_outcomes_are_recorded(state):
    strategy = RecordingStrategy(fail={"repo-1"})

    Scheduler(strategy, state, rate_limit=0).run(_repos(2))

    assert state.get("acme/repo-0").status == RepoStatus.SUCCESS
    failed = state.get("acme/repo-1")
    assert failed.status == RepoStatus.ERROR
    assert "REPOSITORY_NOT_FOUND" in failed.error


def test_graceful_skip_is_recorded_as_success(state, manifests, catalog, defaults):
    catalog.entities.add("repo_0")
    strategy = CreateEntityStrategy(manifests, catalog, defaults)

    results = Scheduler(strategy, state, rate_limit=0).run(_repos(1))

    assert results[0].skipped
    assert results[0].notice.type == ErrorType.ENTITY_EXISTS
    assert state.get("acme/repo-0").status == RepoStatus.SUCCESS


def test_unexpected_raise_becomes_failed_result(state):
    strategy = RecordingStrategy(crash={"repo-0"})

    results = Scheduler(strategy, state, rate_limit=0).run(_repos(2))

    by_repo = {r.repository: r for r in results}
    assert by_repo["acme/repo-0"].action == Action.FAILED
    assert by_repo["acme/repo-0"].error.type == ErrorType.UNKNOWN
    assert by_repo["acme/repo-1"].action == Action.CREATED
    assert state.get("acme/repo-0").status == RepoStatus.ERROR


def test_in_progress_is_visible_while_running(state):
    strategy = RecordingStrategy()
    strategy.state = state

    Scheduler(strategy, state, rate_limit=0).run(_repos(1))

    assert strategy.observed == [RepoStatus.IN_PROGRESS]
    assert state.get("acme/repo-0").status == RepoStatus.SUCCESS


def test_stop_before_run_cancels_every_task(state):
    strategy = RecordingStrategy()
    scheduler = Scheduler(strategy, state, rate_limit=0)
    scheduler.stop()

    results = scheduler.run(_repos(3))

    assert len(results) == 3
    assert all(r.skipped and r.message == CANCELLED_MESSAGE for r in results)
    assert strategy.calls == []
    assert state.list_all() == {}


def test_stop_mid_run_cancels_queued_tasks(state):
    strategy = RecordingStrategy()
    # the rate-limit delay runs inside the first task, before its strategy call
    scheduler = Scheduler(strategy, state, concurrency=1, rate_limit=0.01, sleep=lambda _: scheduler.stop())

    results = scheduler.run(_repos(4))

    assert results[0].repository == "acme/repo-0"
    assert results[0].action == Action.CREATED
    cancelled = [r for r in results[1:] if r.skipped and r.message == CANCELLED_MESSAGE]
    assert len(cancelled) == 3
    assert strategy.calls == ["acme/repo-0"]
    assert list(state.list_all()) == ["acme/repo-0"]
    assert not scheduler.interrupted


def _interrupt_after_first(monkeypatch):
    real_as_completed = concurrent.futures.as_completed

    def as_completed(futures):
        pending = real_as_completed(futures)
        yield next(pending)
        raise KeyboardInterrupt

    monkeypatch.setattr(concurrent.futures, "as_completed", as_completed)


def test_interrupt_drops_queued_tasks(state, monkeypatch):
    _interrupt_after_first(monkeypatch)
    strategy = RecordingStrategy(delay=0.2)
    scheduler = Scheduler(strategy, state, concurrency=1, rate_limit=0)
    repos = _repos(5)

    results = scheduler.run(repos)

    assert scheduler.interrupted
    assert sorted(r.repository for r in results) == sorted(r.full_name for r in repos)
    assert results[0].action == Action.CREATED
    cancelled = [r for r in results if r.skipped and r.message == CANCELLED_MESSAGE]
    # the task picked up when Ctrl-C arrived may still finish
    assert len(cancelled) >= 3
    assert len(strategy.calls) == len(results) - len(cancelled)


def test_events_are_emitted(state):
    state.record_success("acme/repo-0")
    bus = EventBus()
    events = []
    bus.subscribe(events.append)

    Scheduler(RecordingStrategy(), state, rate_limit=0, bus=bus).run(_repos(2))

    kinds = [(e.event_type, e.repository) for e in events]
    assert ("task_skipped", "acme/repo-0") in kinds
    assert kinds.index(("task_started", "acme/repo-1")) < kinds.index(("task_completed", "acme/repo-1"))
    completed = next(e for e in events if e.event_type == "task_completed")
    assert completed.payload["action"] == "created"
    assert completed.payload["error_type"] is None
