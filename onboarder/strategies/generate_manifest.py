"""
Generate-manifest strategy (yaml mode).

Renders catalog-info.yaml from repository metadata and proposes it to the
repository through a pull request. Nothing is written while an onboarding
PR is still open, or when the repository already carries a manifest the
catalog knows about.
"""

from __future__ import annotations

import yaml
from loguru import logger

from onboarder.errors import ErrorCategory, ErrorType, ProcessingError, pr_exists
from onboarder.manifest import (
    MANIFEST_CANDIDATE_PATHS,
    build_catalog_info,
    extract_identifier,
    render_manifest,
    to_identifier,
)
from onboarder.models import Action, ProcessingResult, Repository
from onboarder.strategies.base import BaseStrategy


class GenerateManifestStrategy(BaseStrategy):
    mode = "yaml"
    graceful = frozenset({ErrorType.PR_EXISTS})

    def run(self, repository: Repository) -> ProcessingResult:
        full_name = repository.full_name

        pr = self.manifests.find_open_onboarding_pr(repository)
        if pr is not None:
            notice = pr_exists(full_name, pr.number, pr.title)
            return ProcessingResult.skip(full_name, notice.user_message, notice=notice)

        existing = self._existing_manifest(repository)
        if existing is not None and self._entity_registered(repository, existing):
            return ProcessingResult.skip(full_name, "Manifest and catalog entity already exist")

        content = self._render(repository)
        outcome = self.manifests.write_manifest(repository, content)

        if outcome == "created":
            return ProcessingResult.done(full_name, Action.CREATED, "Opened PR adding catalog-info.yaml")
        if outcome == "updated":
            return ProcessingResult.done(full_name, Action.UPDATED, "Opened PR updating catalog-info.yaml")
        return ProcessingResult.skip(full_name, "catalog-info.yaml is already up to date")

    def _existing_manifest(self, repository: Repository) -> str | None:
        for path in MANIFEST_CANDIDATE_PATHS:
            content = self.manifests.read_file(repository, path)
            if content is not None:
                return content
        return None

    def _entity_registered(self, repository: Repository, manifest: str) -> bool:
        try:
            identifier = extract_identifier(manifest)
        except yaml.YAMLError:
            identifier = None
        identifier = (identifier or to_identifier(repository.name or repository.repo_name)).replace("-", "_")

        try:
            return self.catalog.entity_exists(identifier)
        except Exception as e:
            logger.warning(f"[STRATEGY] Could not check catalog for {identifier}, assuming absent: {e}")
            return False

    def _render(self, repository: Repository) -> str:
        try:
            return render_manifest(
                build_catalog_info(repository, self.defaults, self.org_id, self.project_id)
            )
        except (yaml.YAMLError, ValueError) as e:
            raise ProcessingError(
                ErrorCategory.VALIDATION,
                ErrorType.CATALOG_FILE_INVALID,
                f"failed to render catalog-info.yaml: {e}",
                repository=repository.full_name,
                cause=e,
                user_friendly=f"Could not build a catalog-info.yaml for '{repository.full_name}': {e}",
            ) from e
