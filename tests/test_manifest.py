from datetime import datetime, timezone

import pytest
import yaml

from onboarder.config_loader import DefaultsConfig
from onboarder.manifest import (
    API_VERSION,
    build_catalog_info,
    build_entity,
    entity_document,
    extract_identifier,
    render_manifest,
    resolve_owner,
    sanitize_identifiers,
    sanitize_name,
    to_identifier,
)

from conftest import make_repo


@pytest.mark.parametrize("name,expected", [
    ("Payment_Service", "payment-service"),
    ("web.frontend", "web-frontend"),
    ("already-fine", "already-fine"),
])
def test_sanitize_name(name, expected):
    assert sanitize_name(name) == expected


def test_identifier_uses_underscores():
    assert to_identifier("My-Repo.v2") == "my_repo_v2"


def test_owner_prefers_code_owners(defaults):
    repo = make_repo("api", code_owners=("payments-team", "sre"))
    assert resolve_owner(repo, defaults) == "payments-team"
    assert resolve_owner(make_repo("api"), defaults) == "platform-team"


def test_build_entity_from_repository():
    defaults = DefaultsConfig(
        owner="platform-team",
        type="service",
        lifecycle="experimental",
        system="payments",
        annotations={"harness-io-managed": "true"},
    )
    repo = make_repo(
        "billing-api",
        description="Bills things",
        language="Go",
        topics=("payments",),
        stars=4,
        created_at=datetime(2023, 1, 2, tzinfo=timezone.utc),
    )

    entity = build_entity(repo, defaults)

    assert entity.identifier == "billing_api"
    assert entity.name == "billing-api"
    assert entity.lifecycle == "experimental"
    assert entity.system == "payments"
    assert entity.tags == ["payments", "go"]
    assert entity.annotations["github.com/project-slug"] == "acme/billing-api"
    assert entity.annotations["harness.io/managed"] == "true"
    assert entity.annotations["harness.io/language"] == "Go"
    assert entity.links[0].url == "https://github.com/acme/billing-api"
    assert entity.metadata["stars"] == 4
    assert entity.metadata["created_at"].startswith("2023-01-02")
    assert entity.missing_fields() == []


def test_language_tag_is_not_duplicated(defaults):
    repo = make_repo("api", language="Python", topics=("python",))
    assert build_entity(repo, defaults).tags == ["python"]


def test_missing_owner_is_reported():
    entity = build_entity(make_repo("api"), DefaultsConfig())
    assert entity.missing_fields() == ["owner"]


def test_entity_document_shape(defaults):
    entity = build_entity(make_repo("api", description="An API"), defaults)
    document = entity_document(entity, "default", "platform")

    assert list(document)[:4] == ["apiVersion", "identifier", "name", "kind"]
    assert document["apiVersion"] == API_VERSION
    assert document["kind"] == "Component"
    assert document["orgIdentifier"] == "default"
    assert document["projectIdentifier"] == "platform"
    assert document["owner"] == "platform-team"
    assert document["metadata"]["description"] == "An API"
    assert document["spec"] == {"lifecycle": "production"}


def test_empty_metadata_fields_are_omitted(defaults):
    entity = build_entity(make_repo("api"), defaults)
    metadata = entity_document(entity, "o", "p")["metadata"]

    assert "description" not in metadata
    assert "tags" not in metadata
    assert metadata["links"] == [
        {"url": "https://github.com/acme/api", "title": "Repository", "icon": "github", "type": "repository"}
    ]


def test_rendered_manifest_round_trips_identifier(defaults):
    rendered = render_manifest(build_catalog_info(make_repo("web-app"), defaults, "o", "p"))

    assert rendered.startswith("apiVersion: harness.io/v1\n")
    assert yaml.safe_load(rendered)["identifier"] == "web_app"
    assert extract_identifier(rendered) == "web_app"


# ---------------------------------------------------------------------------
# Existing manifests
# ---------------------------------------------------------------------------

def test_sanitize_identifiers_only_touches_identifier_lines():
    content = "apiVersion: harness.io/v1\nidentifier: my-service\nname: my-service\n"
    assert sanitize_identifiers(content) == (
        "apiVersion: harness.io/v1\nidentifier: my_service\nname: my-service\n"
    )


def test_sanitize_identifiers_keeps_indentation():
    content = "spec:\n  identifier:   a-b-c\n"
    assert sanitize_identifiers(content) == "spec:\n  identifier: a_b_c\n"


def test_sanitize_identifiers_is_idempotent():
    content = "identifier: web-app\nowner: team-a\n"
    once = sanitize_identifiers(content)
    assert sanitize_identifiers(once) == once


def test_sanitize_identifiers_keeps_trailing_comment():
    content = "identifier: web-app # was old-web\n"
    assert sanitize_identifiers(content) == "identifier: web_app # was old-web\n"


@pytest.mark.parametrize("indicator", [">-", "|", ">"])
def test_sanitize_identifiers_leaves_block_scalars(indicator):
    content = f"identifier: {indicator}\n  web-app\nname: web-app\n"
    assert sanitize_identifiers(content) == content


def test_extract_identifier_from_idp2_document():
    assert extract_identifier("apiVersion: harness.io/v1\nidentifier: billing\n") == "billing"


def test_extract_identifier_from_backstage_document():
    content = "apiVersion: backstage.io/v1alpha1\nkind: Component\nmetadata:\n  name: legacy-app\n"
    assert extract_identifier(content) == "legacy-app"


@pytest.mark.parametrize("content", ["", "just a string", "kind: Component\n", "- a\n- b\n"])
def test_extract_identifier_returns_none_without_identifier(content):
    assert extract_identifier(content) is None


def test_extract_identifier_raises_on_invalid_yaml():
    with pytest.raises(yaml.YAMLError):
        extract_identifier("identifier: [unclosed\n")
