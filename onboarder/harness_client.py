"""
ONBOARDER Harness Client

Thin client for the Harness IDP catalog:
  - create_entity:   POST /gateway/v1/entities (Component YAML in a JSON envelope)
  - entity_exists:   the same endpoint with dry_run=true, read for a conflict
  - register:        POST /gateway/v1/entities/import (manifest already in Git)
  - health check:    GET  .../catalog/health

Conclusive HTTP statuses become structured ProcessingErrors here. Everything
else is raised as RemoteAPIError for the classifier.
"""

from __future__ import annotations

from typing import Any

import httpx
import yaml
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from onboarder.config_loader import HarnessConfig
from onboarder.errors import (
    ErrorCategory,
    ErrorType,
    ProcessingError,
    RemoteAPIError,
    catalog_file_invalid,
    entity_already_registered,
    entity_exists,
    forbidden,
    unauthorized,
    validation_failed,
)
from onboarder.identity import __version__
from onboarder.interfaces import CatalogRemote
from onboarder.manifest import CatalogEntity, entity_document, extract_identifier, render_manifest
from onboarder.models import Repository

DEFAULT_CONNECTOR_REF = "account.Gihubapp"

KNOWN_TYPES = {"service", "website", "library", "resource", "api", "database", "system", "domain", "component"}
KNOWN_LIFECYCLES = {"experimental", "production", "deprecated"}


class HarnessClient(CatalogRemote):

    def __init__(self, config: HarnessConfig, timeout: float = 30.0):
        self.config = config
        self._http = httpx.Client(
            base_url=config.base_url,
            timeout=timeout,
            headers={"User-Agent": f"catalog-onboarder/{__version__}"},
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> HarnessClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    @property
    def _scope(self) -> dict[str, str]:
        return {
            "accountIdentifier": self.config.account_id,
            "orgIdentifier": self.config.org_id,
            "projectIdentifier": self.config.project_id,
        }

    def _entity_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-api-key": self.config.api_key,
            "harness-account": self.config.account_id,
            "harness-org": self.config.org_id,
            "harness-project": self.config.project_id,
        }

    def _import_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "*/*",
            "harness-account": self.config.account_id,
        }
        # Personal access tokens go in x-api-key; anything else is a bearer JWT.
        if self.config.api_key.startswith("pat."):
            headers["x-api-key"] = self.config.api_key
        else:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        return self._http.request(method, url, **kwargs)

    def _call(self, method: str, url: str, **kwargs) -> Any:
        response = self._send(method, url, **kwargs)
        if response.is_error:
            raise RemoteAPIError(response.status_code, response.reason_phrase, response.text)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # -----------------------------------------------------------------------
    # Entities
    # -----------------------------------------------------------------------

    def entity_yaml(self, entity: CatalogEntity) -> str:
        return render_manifest(entity_document(entity, self.config.org_id, self.config.project_id))

    def _post_entity(self, entity: CatalogEntity, dry_run: bool) -> Any:
        params = {"convert": "false", "dry_run": "true" if dry_run else "false", **self._scope}
        return self._call(
            "POST",
            "/gateway/v1/entities",
            params=params,
            headers=self._entity_headers(),
            json={"yaml": self.entity_yaml(entity)},
        )

    def create_entity(self, entity: CatalogEntity) -> None:
        missing = entity.missing_fields()
        if missing:
            raise validation_failed(f"component {', '.join(missing)} is required")

        if entity.type not in KNOWN_TYPES:
            logger.warning(f"[HARNESS] Component type '{entity.type}' may not be recognized by the catalog")
        if entity.lifecycle not in KNOWN_LIFECYCLES:
            logger.warning(f"[HARNESS] Component lifecycle '{entity.lifecycle}' may not be recognized by the catalog")

        logger.debug(f"[HARNESS] Creating component {entity.identifier}")
        try:
            self._post_entity(entity, dry_run=False)
        except RemoteAPIError as e:
            if e.status_code == 409 or "already exists" in e.body.lower():
                raise entity_exists("", entity.identifier, cause=e) from e
            if e.status_code == 401:
                raise unauthorized("Harness API authentication failed", cause=e) from e
            if e.status_code == 403:
                raise forbidden(cause=e) from e
            raise

        logger.info(f"[HARNESS] Created component {entity.name} (identifier: {entity.identifier})")

    def entity_exists(self, identifier: str) -> bool:
        """Probe with a dry-run create. A conflict means the identifier is taken."""
        probe = CatalogEntity(
            identifier=identifier,
            name=identifier,
            type="service",
            lifecycle="production",
            owner="probe",
        )
        try:
            self._post_entity(probe, dry_run=True)
        except RemoteAPIError as e:
            if e.status_code == 409 or "already exists" in e.body.lower():
                logger.debug(f"[HARNESS] Component {identifier} exists")
                return True
            if e.status_code == 401:
                raise unauthorized("Harness API authentication failed", cause=e) from e
            if e.status_code == 403:
                raise forbidden(cause=e) from e
            logger.debug(f"[HARNESS] Existence probe for {identifier} inconclusive: {e}")
            return False
        return False

    # -----------------------------------------------------------------------
    # Import
    # -----------------------------------------------------------------------

    def register_manifest_location(
        self,
        repository: Repository,
        branch: str,
        path: str,
        content: str,
    ) -> None:
        full_name = repository.full_name
        try:
            identifier = extract_identifier(content)
        except yaml.YAMLError as e:
            raise catalog_file_invalid(full_name, f"failed to parse YAML: {e}", cause=e) from e
        if not identifier:
            raise catalog_file_invalid(full_name, "entity identifier not found in catalog")

        body = {
            "branch_name": branch,
            "connector_ref": self.config.connector_ref or DEFAULT_CONNECTOR_REF,
            "repo_name": repository.repo_name,
            "is_harness_code_repo": False,
            "file_path": path,
            "identifier": identifier.replace("-", "_"),
            **self._scope,
        }
        logger.debug(f"[HARNESS] Importing {full_name}:{path}@{branch} as {body['identifier']}")

        try:
            self._call(
                "POST",
                "/gateway/v1/entities/import",
                params=self._scope,
                headers=self._import_headers(),
                json=body,
            )
        except RemoteAPIError as e:
            text = e.body.lower()
            if "duplicate_file_import" in text or "already been imported" in text:
                raise entity_already_registered(full_name, cause=e) from e
            if e.is_not_found:
                raise ProcessingError(
                    ErrorCategory.REPOSITORY,
                    ErrorType.REPOSITORY_NOT_FOUND,
                    "repository or file not found",
                    repository=full_name,
                    cause=e,
                    user_friendly=(
                        f"Repository '{full_name}' or catalog file '{path}' not found. "
                        "Check repository access and file path."
                    ),
                ) from e
            if e.status_code == 401:
                raise unauthorized("Harness API authentication failed", repo=full_name, cause=e) from e
            raise

        logger.info(f"[HARNESS] Imported entity for {full_name}")

    def validate_connection(self) -> None:
        a, o, p = self.config.account_id, self.config.org_id, self.config.project_id
        self._call(
            "GET",
            f"/gateway/idp/api/v1/accounts/{a}/orgs/{o}/projects/{p}/catalog/health",
            headers=self._entity_headers(),
        )
        logger.info("[HARNESS] Catalog connection validated")
