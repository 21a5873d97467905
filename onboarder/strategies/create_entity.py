"""
Create-entity strategy (api mode).

Builds the Component from repository metadata and submits it straight to
the catalog. No file is written to the repository.
"""

from __future__ import annotations

from onboarder.errors import ErrorType
from onboarder.manifest import build_entity
from onboarder.models import Action, ProcessingResult, Repository
from onboarder.strategies.base import BaseStrategy


class CreateEntityStrategy(BaseStrategy):
    mode = "api"
    graceful = frozenset({ErrorType.ENTITY_EXISTS})

    def run(self, repository: Repository) -> ProcessingResult:
        entity = build_entity(repository, self.defaults)
        self.catalog.create_entity(entity)
        return ProcessingResult.done(
            repository.full_name,
            Action.CREATED,
            f"Created component {entity.identifier}",
        )
