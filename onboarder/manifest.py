"""
ONBOARDER Manifest — catalog-info.yaml construction

Turns a discovered Repository plus configured defaults into a catalog
Component, either as a CatalogEntity (create-entity mode) or as the
rendered YAML manifest committed to the repository (yaml mode).

Also holds the text helpers used when registering a manifest that already
lives in a repository: identifier sanitization and identifier extraction.
"""

from __future__ import annotations

import re
from typing import Any

import yaml
from pydantic import BaseModel, Field

from onboarder.config_loader import DefaultsConfig
from onboarder.models import Repository

MANIFEST_PATH = "catalog-info.yaml"

MANIFEST_CANDIDATE_PATHS: tuple[str, ...] = (
    "catalog-info.yaml",
    "catalog-info.yml",
    ".harness/catalog-info.yaml",
    ".harness/catalog-info.yml",
)

API_VERSION = "harness.io/v1"

# Hyphenated config keys that stand for dotted annotation keys.
_ANNOTATION_KEY_ALIASES = {
    "harness-io-managed": "harness.io/managed",
}


# ---------------------------------------------------------------------------
# Entity model
# ---------------------------------------------------------------------------

class ComponentLink(BaseModel):
    url: str
    title: str
    icon: str = ""
    type: str = ""


class CatalogEntity(BaseModel):
    """A Component as the catalog API receives it."""
    identifier: str
    name: str
    type: str
    lifecycle: str
    owner: str
    system: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    annotations: dict[str, str] = Field(default_factory=dict)
    links: list[ComponentLink] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def missing_fields(self) -> list[str]:
        required = ("identifier", "name", "type", "lifecycle", "owner")
        return [field for field in required if not getattr(self, field)]


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def sanitize_name(name: str) -> str:
    return name.lower().replace("_", "-").replace(".", "-")


def to_identifier(name: str) -> str:
    return sanitize_name(name).replace("-", "_")


def resolve_owner(repo: Repository, defaults: DefaultsConfig) -> str:
    """First CODEOWNERS entry wins; otherwise the configured default."""
    if repo.code_owners:
        return repo.code_owners[0]
    return defaults.owner


def build_annotations(repo: Repository, defaults: DefaultsConfig) -> dict[str, str]:
    annotations = {
        _ANNOTATION_KEY_ALIASES.get(key, key): value
        for key, value in defaults.annotations.items()
    }
    annotations["github.com/project-slug"] = repo.full_name
    annotations["harness.io/source-repo"] = repo.html_url
    if repo.language:
        annotations["harness.io/language"] = repo.language
    return annotations


def build_tags(repo: Repository) -> list[str]:
    tags = list(repo.topics)
    if repo.language and repo.language.lower() not in tags:
        tags.append(repo.language.lower())
    return tags


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def build_entity(repo: Repository, defaults: DefaultsConfig) -> CatalogEntity:
    return CatalogEntity(
        identifier=to_identifier(repo.name or repo.repo_name),
        name=repo.name or repo.repo_name,
        type=defaults.type,
        lifecycle=defaults.lifecycle,
        owner=resolve_owner(repo, defaults),
        system=defaults.system,
        description=repo.description,
        tags=build_tags(repo),
        annotations=build_annotations(repo, defaults),
        links=[ComponentLink(url=repo.html_url, title="Repository", icon="github", type="repository")],
        metadata={
            "stars": repo.stars,
            "forks": repo.forks,
            "language": repo.language,
            "created_at": repo.created_at.isoformat() if repo.created_at else None,
            "updated_at": repo.updated_at.isoformat() if repo.updated_at else None,
        },
    )


def entity_document(entity: CatalogEntity, org_id: str, project_id: str) -> dict[str, Any]:
    """The IDP 2.0 Component document for an entity. Empty metadata fields are omitted."""
    metadata: dict[str, Any] = {}
    if entity.description:
        metadata["description"] = entity.description
    if entity.annotations:
        metadata["annotations"] = dict(entity.annotations)
    if entity.tags:
        metadata["tags"] = list(entity.tags)
    if entity.links:
        metadata["links"] = [link.model_dump(exclude_defaults=True) for link in entity.links]

    document: dict[str, Any] = {
        "apiVersion": API_VERSION,
        "identifier": entity.identifier,
        "name": entity.name,
        "kind": "Component",
        "type": entity.type,
        "projectIdentifier": project_id,
        "orgIdentifier": org_id,
        "owner": entity.owner,
    }
    if metadata:
        document["metadata"] = metadata
    document["spec"] = {"lifecycle": entity.lifecycle}
    return document


def build_catalog_info(
    repo: Repository,
    defaults: DefaultsConfig,
    org_id: str,
    project_id: str,
) -> dict[str, Any]:
    return entity_document(build_entity(repo, defaults), org_id, project_id)


def render_manifest(catalog_info: dict[str, Any]) -> str:
    return yaml.safe_dump(catalog_info, sort_keys=False, default_flow_style=False, allow_unicode=True)


# ---------------------------------------------------------------------------
# Existing manifests
# ---------------------------------------------------------------------------

_TRAILING_COMMENT = re.compile(r"\s#")


def sanitize_identifiers(content: str) -> str:
    """
    Replace hyphens with underscores in every `identifier:` value.

    Line-oriented so the rest of the file is left byte-for-byte intact.
    A trailing `# comment` is kept as written, and block scalars (`>`, `|`)
    are left alone since their value sits on the following lines.
    Applying it twice gives the same result as applying it once.
    """
    lines = content.split("\n")
    for i, line in enumerate(lines):
        if not line.strip().startswith("identifier:"):
            continue
        field, rest = line.split(":", 1)
        comment = ""
        match = _TRAILING_COMMENT.search(rest)
        if match:
            rest, comment = rest[:match.start()], rest[match.start():]
        value = rest.strip()
        if value.startswith((">", "|")):
            continue
        lines[i] = field + ": " + value.replace("-", "_") + comment
    return "\n".join(lines)


def extract_identifier(content: str) -> str | None:
    """
    Top-level `identifier` (IDP 2.0), else legacy Backstage `metadata.name`.
    Raises yaml.YAMLError when the content does not parse.
    """
    document = yaml.safe_load(content)
    if not isinstance(document, dict):
        return None

    identifier = document.get("identifier")
    if isinstance(identifier, str) and identifier:
        return identifier

    metadata = document.get("metadata")
    if isinstance(metadata, dict):
        name = metadata.get("name")
        if isinstance(name, str) and name:
            return name

    return None
