"""
ONBOARDER Scheduler — Bounded Worker Pool

Fans a repository list out to the active strategy:
  1. A fixed pool of C long-lived workers pulls from one shared queue.
  2. Each task consults the ledger, marks itself in progress, waits the
     rate-limit delay, runs the strategy, and records the outcome.
  3. Exactly one ProcessingResult comes back per repository, in
     completion order.

A failing task never stops the batch. There is no batch timeout.
Stopping (stop() or Ctrl-C) drops queued tasks; in-flight ones finish.
"""

from __future__ import annotations

import concurrent.futures
import threading
import time
from typing import Callable

from loguru import logger

from onboarder.errors import classify_error
from onboarder.event_bus import TASK_COMPLETED, TASK_SKIPPED, TASK_STARTED, EventBus
from onboarder.models import ProcessingResult, Repository
from onboarder.state import StateStore
from onboarder.strategies import BaseStrategy

CANCELLED_MESSAGE = "Cancelled before start"
LEDGER_SKIP_MESSAGE = "Recently processed; skipped"


class Scheduler:

    def __init__(
        self,
        strategy: BaseStrategy,
        state: StateStore,
        concurrency: int = 5,
        rate_limit: float = 0.1,
        bus: EventBus | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.strategy = strategy
        self.state = state
        self.concurrency = concurrency
        self.rate_limit = rate_limit
        self.bus = bus
        self._sleep = sleep
        self._stopping = threading.Event()
        self.interrupted = False

    def stop(self) -> None:
        """Stop starting new tasks. Tasks already running complete normally."""
        self._stopping.set()

    # -----------------------------------------------------------------------
    # Batch
    # -----------------------------------------------------------------------

    def run(self, repositories: list[Repository]) -> list[ProcessingResult]:
        results: list[ProcessingResult] = []
        if not repositories:
            return results

        logger.info(
            f"[SCHEDULER] Processing {len(repositories)} repositories "
            f"({self.concurrency} workers, {self.rate_limit}s delay)"
        )

        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="onboarder",
        )
        future_to_repo = {executor.submit(self._run_task, repo): repo for repo in repositories}
        collected: set[concurrent.futures.Future] = set()

        try:
            for future in concurrent.futures.as_completed(future_to_repo):
                results.append(self._collect(future, future_to_repo[future]))
                collected.add(future)
        except KeyboardInterrupt:
            logger.warning("[SCHEDULER] Interrupted, cancelling queued tasks")
            self.interrupted = True
            self.stop()
            executor.shutdown(wait=True, cancel_futures=True)
            for future, repo in future_to_repo.items():
                if future in collected:
                    continue
                if future.cancelled():
                    results.append(ProcessingResult.skip(repo.full_name, CANCELLED_MESSAGE))
                else:
                    results.append(self._collect(future, repo))
        finally:
            executor.shutdown(wait=True)

        return results

    def _collect(self, future: concurrent.futures.Future, repo: Repository) -> ProcessingResult:
        try:
            return future.result()
        except Exception as e:
            error = classify_error(e, repo.full_name)
            logger.error(f"[SCHEDULER] Task for {repo.full_name} crashed: {e}")
            return ProcessingResult.fail(repo.full_name, error.user_message, error)

    # -----------------------------------------------------------------------
    # Task
    # -----------------------------------------------------------------------

    def _run_task(self, repo: Repository) -> ProcessingResult:
        name = repo.full_name

        if self._stopping.is_set():
            return ProcessingResult.skip(name, CANCELLED_MESSAGE)

        if self.state.should_skip(name, repo.pushed_at):
            self._emit(TASK_SKIPPED, name, {"reason": "ledger"})
            return ProcessingResult.skip(name, LEDGER_SKIP_MESSAGE)

        self.state.record_in_progress(name)
        self._emit(TASK_STARTED, name, {"mode": self.strategy.mode})

        try:
            if self.rate_limit > 0:
                self._sleep(self.rate_limit)
            result = self.strategy.process(repo)
        except Exception as e:
            error = classify_error(e, name)
            logger.error(f"[SCHEDULER] Unexpected failure for {name}: {e}")
            result = ProcessingResult.fail(name, error.user_message, error)

        if result.error is not None:
            self.state.record_error(name, result.error)
        else:
            self.state.record_success(name, repo.pushed_at)

        self._emit(TASK_COMPLETED, name, {
            "action": result.action.value,
            "success": result.success,
            "skipped": result.skipped,
            "message": result.message,
            "error_type": result.error.type.value if result.error else None,
        })
        return result

    def _emit(self, event_type: str, repository: str, payload: dict) -> None:
        if self.bus is not None:
            self.bus.emit(event_type, repository, payload)
