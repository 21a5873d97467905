"""
ONBOARDER Summary — Result Aggregation

Folds ProcessingResults into an ErrorSummary and renders the run report.
Only results carrying an error count as failures; graceful skips show
their notice but leave the totals alone.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from onboarder.errors import ErrorCategory, ErrorType
from onboarder.models import Action, ProcessingResult

ACTION_COLORS = {
    Action.CREATED: "green",
    Action.UPDATED: "green",
    Action.REGISTERED: "green",
    Action.SKIPPED: "yellow",
    Action.FAILED: "red",
}


@dataclass
class ErrorSummary:
    total: int = 0
    by_category: Counter[ErrorCategory] = field(default_factory=Counter)
    by_type: Counter[ErrorType] = field(default_factory=Counter)
    recoverable: int = 0
    results: list[ProcessingResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[ProcessingResult]) -> ErrorSummary:
        summary = cls()
        for result in results:
            summary.add_result(result)
        return summary

    def add_result(self, result: ProcessingResult) -> None:
        self.results.append(result)
        if result.error is None:
            return
        self.total += 1
        self.by_category[result.error.category] += 1
        self.by_type[result.error.type] += 1
        if result.error.recoverable:
            self.recoverable += 1

    @property
    def succeeded(self) -> bool:
        return self.total == 0

    def count(self, action: Action) -> int:
        return sum(1 for r in self.results if r.action == action)


def _describe(result: ProcessingResult) -> str:
    if result.error is not None:
        return result.error.user_message
    return result.message


def render_summary(summary: ErrorSummary, console: Console) -> None:
    table = Table(title="Onboarding Results", border_style="bright_green")
    table.add_column("Repository")
    table.add_column("Action")
    table.add_column("Details")

    for r in sorted(summary.results, key=lambda r: r.repository):
        color = ACTION_COLORS.get(r.action, "white")
        table.add_row(escape(r.repository), f"[{color}]{r.action.value}[/]", escape(_describe(r)))

    console.print(table)

    counts = " | ".join(
        f"{action.value} {summary.count(action)}"
        for action in (Action.CREATED, Action.UPDATED, Action.REGISTERED, Action.SKIPPED, Action.FAILED)
    )
    console.print(f"\n[bold]{len(summary.results)} processed | {counts}[/]")

    if summary.succeeded:
        console.print("[bold green]All repositories processed without errors.[/]")
        return

    breakdown = Table(title="Failures by Category", border_style="red")
    breakdown.add_column("Category")
    breakdown.add_column("Count", justify="right")
    for category, count in summary.by_category.most_common():
        breakdown.add_row(category.value, str(count))
    console.print(breakdown)

    console.print(f"[bold red]{summary.total} failed[/] ({summary.recoverable} recoverable, retry on the next run)")
