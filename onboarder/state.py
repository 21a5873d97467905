"""
ONBOARDER State — The Ledger

Durable record of the last outcome per repository. Answers one question
for the scheduler: has this repository been handled recently enough that
this run should leave it alone?

Rules:
  - No entry                          → process
  - Last outcome error, < 24h ago     → skip (don't hammer a failing repo)
  - Last outcome error, ≥ 24h ago     → process (retry window elapsed)
  - Last outcome success, pushed since → process (content changed)
  - Last outcome success, < 7 days ago → skip
  - Anything else                      → process

`in_progress` markers are diagnostic only. A crash mid-task leaves one
behind and the next run processes that repository again.

Every mutation rewrites the whole ledger before the lock is released.
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from loguru import logger
from pydantic import ValidationError

from onboarder.errors import StateError
from onboarder.models import Ledger, RepoState, RepoStatus

ERROR_RETRY_WINDOW = timedelta(hours=24)
SUCCESS_RECHECK_WINDOW = timedelta(days=7)
MAX_ERROR_LENGTH = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class LedgerStats:
    successful: int = 0
    failed: int = 0
    in_progress: int = 0
    last_run: datetime | None = None

    @property
    def total(self) -> int:
        return self.successful + self.failed + self.in_progress


class StateStore:
    """
    Mutex-guarded, write-through ledger backed by a JSON file.

    The clock is injectable so skip windows can be tested without sleeping.
    """

    def __init__(self, path: Path | str, clock: Callable[[], datetime] | None = None):
        self.path = Path(path)
        self._clock = clock or _utcnow
        self._lock = threading.RLock()
        self._ledger = Ledger()

        try:
            self._load()
        except (OSError, ValueError) as e:
            logger.warning(f"[STATE] Failed to load {self.path}, starting fresh: {e}")
            self._ledger = Ledger()

    def __enter__(self) -> StateStore:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Skip decision
    # -----------------------------------------------------------------------

    def should_skip(self, repo_id: str, freshness: datetime | None) -> bool:
        with self._lock:
            state = self._ledger.processed_repos.get(repo_id)
            if state is None:
                return False

            last = _aware(state.last_processed)
            age = self._clock() - last

            if state.status == RepoStatus.ERROR:
                if age < ERROR_RETRY_WINDOW:
                    logger.info(
                        f"[STATE] Skipping {repo_id}: recent error "
                        f"({age.total_seconds() / 3600:.1f} hours ago)"
                    )
                    return True
                return False

            if state.status == RepoStatus.SUCCESS:
                if freshness is not None and _aware(freshness) > last:
                    logger.info(f"[STATE] {repo_id} has new changes since last processing")
                    return False
                if age < SUCCESS_RECHECK_WINDOW:
                    logger.info(
                        f"[STATE] Skipping {repo_id}: recently processed successfully "
                        f"({age.total_seconds() / 86400:.1f} days ago)"
                    )
                    return True

            return False

    # -----------------------------------------------------------------------
    # Terminal writes
    # -----------------------------------------------------------------------

    def record_in_progress(self, repo_id: str) -> None:
        with self._lock:
            self._ledger.processed_repos[repo_id] = RepoState(
                last_processed=self._clock(),
                status=RepoStatus.IN_PROGRESS,
            )
            logger.debug(f"[STATE] Marked {repo_id} as in progress")
            self._persist()

    def record_success(self, repo_id: str, freshness: datetime | None = None) -> None:
        with self._lock:
            self._ledger.processed_repos[repo_id] = RepoState(
                last_processed=self._clock(),
                status=RepoStatus.SUCCESS,
            )
            logger.debug(f"[STATE] Recorded success for {repo_id} (pushed {freshness})")
            self._persist()

    def record_error(self, repo_id: str, err: BaseException | str) -> None:
        message = str(err)
        if len(message) > MAX_ERROR_LENGTH:
            message = message[:MAX_ERROR_LENGTH] + "..."

        with self._lock:
            self._ledger.processed_repos[repo_id] = RepoState(
                last_processed=self._clock(),
                status=RepoStatus.ERROR,
                error=message,
            )
            logger.debug(f"[STATE] Recorded error for {repo_id}: {message}")
            self._persist()

    # -----------------------------------------------------------------------
    # Administration
    # -----------------------------------------------------------------------

    def get(self, repo_id: str) -> RepoState | None:
        with self._lock:
            state = self._ledger.processed_repos.get(repo_id)
            return state.model_copy() if state else None

    def get_stats(self) -> LedgerStats:
        with self._lock:
            stats = LedgerStats(last_run=self._ledger.last_run)
            for state in self._ledger.processed_repos.values():
                if state.status == RepoStatus.SUCCESS:
                    stats.successful += 1
                elif state.status == RepoStatus.ERROR:
                    stats.failed += 1
                elif state.status == RepoStatus.IN_PROGRESS:
                    stats.in_progress += 1
            return stats

    def list_all(self) -> dict[str, RepoState]:
        with self._lock:
            return {name: state.model_copy() for name, state in self._ledger.processed_repos.items()}

    def reset(self, repo_id: str) -> bool:
        with self._lock:
            existed = self._ledger.processed_repos.pop(repo_id, None) is not None
            logger.info(f"[STATE] Reset state for {repo_id}")
            self._persist()
            return existed

    def reset_all(self) -> None:
        with self._lock:
            self._ledger.processed_repos = {}
            logger.info("[STATE] Reset all repository state")
            self._persist()

    def cleanup_older_than(self, max_age: timedelta) -> int:
        with self._lock:
            cutoff = self._clock() - max_age
            stale = [
                name for name, state in self._ledger.processed_repos.items()
                if _aware(state.last_processed) < cutoff
            ]
            for name in stale:
                del self._ledger.processed_repos[name]

            if stale:
                logger.info(f"[STATE] Cleaned up {len(stale)} entries older than {max_age}")
                self._persist()
            return len(stale)

    def export_to(self, path: Path | str) -> None:
        with self._lock:
            self._write(Path(path))
            logger.info(f"[STATE] Exported state to {path}")

    def import_from(self, path: Path | str) -> int:
        """Replace the ledger with the contents of `path`. Returns the entry count."""
        raw = Path(path).read_text()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StateError(f"Invalid state file {path}: {e}") from e

        if not isinstance(data, dict) or data.get("processed_repos") is None:
            raise StateError("Invalid state file: missing processed_repos")

        try:
            imported = Ledger.model_validate(data)
        except ValidationError as e:
            raise StateError(f"Invalid state file {path}: {e}") from e

        with self._lock:
            self._ledger = imported
            self._ledger.last_run = self._clock()
            self._write(self.path)
            logger.info(f"[STATE] Imported {len(imported.processed_repos)} repositories from {path}")
            return len(imported.processed_repos)

    def close(self) -> None:
        with self._lock:
            self._persist()

    # -----------------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------------

    def _load(self) -> None:
        if not self.path.exists():
            return

        data = self.path.read_text()
        if not data.strip():
            return

        self._ledger = Ledger.model_validate_json(data)
        logger.info(f"[STATE] Loaded state with {len(self._ledger.processed_repos)} processed repositories")

    def _persist(self) -> None:
        """Write-through. Failures are logged; the in-memory ledger stays authoritative."""
        self._ledger.last_run = self._clock()
        try:
            self._write(self.path)
        except OSError as e:
            logger.warning(f"[STATE] Failed to save state to {self.path}: {e}")

    def _write(self, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_text(self._ledger.model_dump_json(indent=2))
        os.replace(tmp, target)
