"""
ONBOARDER Strategy base

Each strategy is one way of getting a repository into the catalog:
  - A single unit of remote work per repository
  - A set of error types that mean "already done" rather than "failed"

Strategies hold no per-run state. The ledger lives in the StateStore.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from loguru import logger

from onboarder.config_loader import DefaultsConfig
from onboarder.errors import ErrorType, classify_error
from onboarder.interfaces import CatalogRemote, ManifestRemote
from onboarder.models import ProcessingResult, Repository


class BaseStrategy(ABC):
    """
    Base class for all onboarding strategies.

    Subclasses define:
      - mode: str, the --mode value that selects them
      - graceful: error types reported as skipped with a notice
      - run(), the remote work, free to raise
    """

    mode: str = "unknown"
    graceful: frozenset[ErrorType] = frozenset()

    def __init__(
        self,
        manifests: ManifestRemote,
        catalog: CatalogRemote,
        defaults: DefaultsConfig,
        org_id: str = "",
        project_id: str = "",
    ):
        self.manifests = manifests
        self.catalog = catalog
        self.defaults = defaults
        self.org_id = org_id
        self.project_id = project_id

    def process(self, repository: Repository) -> ProcessingResult:
        """Run the strategy for one repository. Never raises."""
        try:
            return self.run(repository)
        except Exception as e:
            error = classify_error(e, repository.full_name)
            if error.type in self.graceful:
                logger.info(f"[STRATEGY] {repository.full_name}: {error.user_message}")
                return ProcessingResult.skip(repository.full_name, error.user_message, notice=error)

            logger.warning(f"[STRATEGY] {self.mode} failed for {repository.full_name}: {error}")
            return ProcessingResult.fail(repository.full_name, error.user_message, error)

    @abstractmethod
    def run(self, repository: Repository) -> ProcessingResult:
        """Do the remote work and describe the outcome."""
        ...
