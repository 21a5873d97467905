"""
Register-existing-manifest strategy (register mode).

For repositories that already carry a catalog-info.yaml: find it, make its
identifiers acceptable to the catalog, and ask the catalog to import it
from Git.
"""

from __future__ import annotations

from onboarder.errors import ErrorType, catalog_file_not_found
from onboarder.manifest import MANIFEST_CANDIDATE_PATHS, sanitize_identifiers
from onboarder.models import Action, ProcessingResult, Repository
from onboarder.strategies.base import BaseStrategy


class RegisterManifestStrategy(BaseStrategy):
    mode = "register"
    graceful = frozenset({ErrorType.ENTITY_ALREADY_REGISTERED})

    def run(self, repository: Repository) -> ProcessingResult:
        full_name = repository.full_name

        found = self._locate(repository)
        if found is None:
            notice = catalog_file_not_found(full_name)
            return ProcessingResult.skip(full_name, "No catalog-info.yaml found", notice=notice)

        path, content = found
        self.catalog.register_manifest_location(
            repository,
            repository.default_branch,
            path,
            sanitize_identifiers(content),
        )
        return ProcessingResult.done(full_name, Action.REGISTERED, f"Registered {path}")

    def _locate(self, repository: Repository) -> tuple[str, str] | None:
        """First candidate path with content wins."""
        for path in MANIFEST_CANDIDATE_PATHS:
            content = self.manifests.read_file(repository, path)
            if content is not None:
                return path, content
        return None
