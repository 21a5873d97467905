"""
ONBOARDER Models

Repositories flow in from the directory, results flow out of the strategies,
and RepoState entries live in the ledger between runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from onboarder.errors import ProcessingError


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class Repository(BaseModel):
    """A discovered repository. Frozen for the duration of a run."""
    model_config = ConfigDict(frozen=True)

    full_name: str
    name: str = ""
    description: str = ""
    html_url: str = ""
    clone_url: str = ""
    language: str = ""
    topics: tuple[str, ...] = ()
    private: bool = False
    archived: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None
    default_branch: str = "main"
    stars: int = 0
    forks: int = 0
    open_issues: int = 0
    license: str = ""

    # Enrichment (yaml mode only)
    code_owners: tuple[str, ...] = ()
    has_dockerfile: bool = False
    has_kubernetes: bool = False
    has_ci: bool = False

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def repo_name(self) -> str:
        return self.full_name.split("/", 1)[-1]


class PullRequest(BaseModel):
    number: int
    title: str = ""
    url: str = ""


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class RepoStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    IN_PROGRESS = "in_progress"


class RepoState(BaseModel):
    """Last known outcome for one repository."""
    last_processed: datetime
    last_commit: str = ""
    status: RepoStatus
    error: str | None = None


class Ledger(BaseModel):
    last_run: datetime | None = None
    processed_repos: dict[str, RepoState] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class Action(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    REGISTERED = "registered"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessingResult:
    """
    Outcome of one dispatched task.

    `error` is set only for failures. `notice` carries the classified
    condition behind a graceful skip (PR exists, entity already registered)
    so the summary can explain it without counting it as a failure.
    """
    repository: str
    success: bool
    action: Action
    message: str
    skipped: bool = False
    error: ProcessingError | None = None
    notice: ProcessingError | None = None

    @classmethod
    def done(cls, repository: str, action: Action, message: str) -> ProcessingResult:
        return cls(repository=repository, success=True, action=action, message=message)

    @classmethod
    def skip(cls, repository: str, message: str, notice: ProcessingError | None = None) -> ProcessingResult:
        return cls(
            repository=repository,
            success=True,
            skipped=True,
            action=Action.SKIPPED,
            message=message,
            notice=notice,
        )

    @classmethod
    def fail(cls, repository: str, message: str, error: ProcessingError) -> ProcessingResult:
        return cls(
            repository=repository,
            success=False,
            action=Action.FAILED,
            message=message,
            error=error,
        )
