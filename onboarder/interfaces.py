"""
ONBOARDER Collaborators

The three remote services the pipeline talks to, as abstract seams.
GitHubClient and HarnessClient implement them for real; tests swap in
in-memory fakes.

Collaborators raise on failure. Strategies own classification.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

from onboarder.manifest import CatalogEntity
from onboarder.models import PullRequest, Repository

WriteOutcome = Literal["created", "updated", "unchanged"]


class RepositoryDirectory(ABC):
    """Source of repositories to onboard."""

    @abstractmethod
    def discover(
        self,
        organization: str,
        include: list[str] | None = None,
        enrich: bool = False,
    ) -> list[Repository]:
        """
        List the organization's repositories, or fetch exactly `include`
        when given. With `enrich`, each repository carries CODEOWNERS and
        Docker/Kubernetes/CI signals.
        """
        ...

    @abstractmethod
    def enrich(self, repository: Repository) -> Repository:
        ...


class ManifestRemote(ABC):
    """Read and write catalog manifests inside repositories."""

    @abstractmethod
    def read_file(self, repository: Repository, path: str) -> str | None:
        """File content on the default branch, or None when absent."""
        ...

    @abstractmethod
    def write_manifest(self, repository: Repository, content: str) -> WriteOutcome:
        """Commit `content` as catalog-info.yaml on a fresh branch and open a pull request."""
        ...

    @abstractmethod
    def find_open_onboarding_pr(self, repository: Repository) -> PullRequest | None:
        ...


class CatalogRemote(ABC):
    """The catalog service."""

    @abstractmethod
    def create_entity(self, entity: CatalogEntity) -> None:
        ...

    @abstractmethod
    def entity_exists(self, identifier: str) -> bool:
        ...

    @abstractmethod
    def register_manifest_location(
        self,
        repository: Repository,
        branch: str,
        path: str,
        content: str,
    ) -> None:
        """Ask the catalog to import the manifest at `path` on `branch`."""
        ...

    @abstractmethod
    def validate_connection(self) -> None:
        ...
