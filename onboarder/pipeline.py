"""
ONBOARDER Pipeline — One Run, End to End

  discover → filter → (dry run: list and stop) → schedule → summarize

It never talks to GitHub or the catalog itself. Collaborators, the
strategy and the ledger are all handed in by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger
from rich.console import Console
from rich.table import Table

from onboarder.config_loader import OnboarderConfig
from onboarder.event_bus import EventBus
from onboarder.interfaces import RepositoryDirectory
from onboarder.models import Repository
from onboarder.scheduler import Scheduler
from onboarder.state import StateStore
from onboarder.strategies import BaseStrategy
from onboarder.summary import ErrorSummary, render_summary


def filter_repositories(
    repositories: list[Repository],
    include: list[str] | None = None,
    exclude: list[str] | None = None,
    preselected: bool = False,
) -> list[Repository]:
    """
    Drop archived repositories, then apply the include and exclude lists
    by short name. When discovery already fetched exactly the included
    repositories, only the exclude list applies.
    """
    include_set = set(include or ())
    exclude_set = set(exclude or ())

    kept: list[Repository] = []
    for repo in repositories:
        name = repo.name or repo.repo_name
        if repo.archived:
            logger.debug(f"[PIPELINE] Skipping archived repository {repo.full_name}")
            continue
        if include_set and not preselected and name not in include_set:
            continue
        if name in exclude_set:
            logger.debug(f"[PIPELINE] Excluding {repo.full_name}")
            continue
        kept.append(repo)
    return kept


@dataclass
class RunReport:
    discovered: int = 0
    repositories: list[Repository] = field(default_factory=list)
    summary: ErrorSummary | None = None
    dry_run: bool = False
    interrupted: bool = False

    @property
    def exit_code(self) -> int:
        if self.interrupted:
            return 130
        if self.summary is not None and self.summary.total > 0:
            return 1
        return 0


class Onboarder:

    def __init__(
        self,
        config: OnboarderConfig,
        directory: RepositoryDirectory,
        strategy: BaseStrategy | None = None,
        state: StateStore | None = None,
        console: Console | None = None,
        bus: EventBus | None = None,
    ):
        self.config = config
        self.directory = directory
        self.strategy = strategy
        self.state = state
        self.console = console or Console()
        self.bus = bus

    def run(self) -> RunReport:
        runtime = self.config.runtime
        organization = self.config.github.organization

        logger.info(
            f"[PIPELINE] Onboarding {organization} "
            f"(mode={runtime.mode}, concurrency={runtime.concurrency}, dry_run={runtime.dry_run})"
        )

        # Only generated manifests use owners and signals
        enrich = runtime.mode == "yaml" and not runtime.dry_run
        include = list(runtime.include_repos) or None

        discovered = self.directory.discover(organization, include=include, enrich=enrich)
        repositories = filter_repositories(
            discovered,
            include=runtime.include_repos,
            exclude=runtime.exclude_repos,
            preselected=include is not None,
        )
        logger.info(f"[PIPELINE] Found {len(discovered)} repositories, {len(repositories)} after filtering")

        if runtime.dry_run:
            self._print_dry_run(repositories)
            return RunReport(discovered=len(discovered), repositories=repositories, dry_run=True)

        if self.strategy is None or self.state is None:
            raise ValueError("A strategy and a state store are required outside dry-run mode")

        scheduler = Scheduler(
            self.strategy,
            self.state,
            concurrency=runtime.concurrency,
            rate_limit=runtime.rate_limit,
            bus=self.bus,
        )
        results = scheduler.run(repositories)

        summary = ErrorSummary.from_results(results)
        render_summary(summary, self.console)

        return RunReport(
            discovered=len(discovered),
            repositories=repositories,
            summary=summary,
            interrupted=scheduler.interrupted,
        )

    def _print_dry_run(self, repositories: list[Repository]) -> None:
        table = Table(
            title=f"Dry run: would process {len(repositories)} repositories",
            border_style="cyan",
        )
        table.add_column("Repository")
        table.add_column("Language")
        table.add_column("Default branch")

        for repo in repositories:
            table.add_row(repo.full_name, repo.language or "-", repo.default_branch)

        self.console.print(table)
        self.console.print("[dim]No changes were made.[/]")
