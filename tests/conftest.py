from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from onboarder.config_loader import DefaultsConfig
from onboarder.errors import RemoteAPIError
from onboarder.interfaces import CatalogRemote, ManifestRemote, RepositoryDirectory
from onboarder.manifest import CatalogEntity, extract_identifier
from onboarder.models import PullRequest, Repository
from onboarder.state import StateStore

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_repo(slug: str, /, **kwargs) -> Repository:
    fields = {
        "full_name": f"acme/{slug}",
        "name": slug,
        "html_url": f"https://github.com/acme/{slug}",
        "default_branch": "main",
    }
    fields.update(kwargs)
    return Repository(**fields)


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------

class FakeDirectory(RepositoryDirectory):
    def __init__(self, repos: list[Repository] | None = None):
        self.repos = list(repos or [])
        self.calls: list[dict] = []

    def discover(self, organization, include=None, enrich=False):
        self.calls.append({"organization": organization, "include": include, "enrich": enrich})
        repos = self.repos
        if include:
            repos = [r for r in repos if r.name in include]
        if enrich:
            repos = [self.enrich(r) for r in repos]
        return repos

    def enrich(self, repository):
        return repository.model_copy(update={"code_owners": ("octo-team",)})

    def close(self):
        pass


class FakeManifests(ManifestRemote):
    def __init__(self):
        self.files: dict[tuple[str, str], str] = {}
        self.open_prs: dict[str, PullRequest] = {}
        self.write_outcome = "created"
        self.write_errors: dict[str, BaseException] = {}
        self.read_errors: dict[str, BaseException] = {}
        self.writes: list[tuple[str, str]] = []

    def read_file(self, repository, path):
        if repository.full_name in self.read_errors:
            raise self.read_errors[repository.full_name]
        return self.files.get((repository.full_name, path))

    def write_manifest(self, repository, content):
        if repository.full_name in self.write_errors:
            raise self.write_errors[repository.full_name]
        self.writes.append((repository.full_name, content))
        return self.write_outcome

    def find_open_onboarding_pr(self, repository):
        return self.open_prs.get(repository.full_name)


class FakeCatalog(CatalogRemote):
    """In-memory catalog that fails the way the real API does: with raw HTTP errors."""

    def __init__(self):
        self.entities: set[str] = set()
        self.registered: set[tuple[str, str]] = set()
        self.created: list[CatalogEntity] = []
        self.registrations: list[tuple[str, str, str, str]] = []
        self.create_errors: dict[str, BaseException] = {}
        self.exists_error: BaseException | None = None

    def create_entity(self, entity):
        if entity.identifier in self.create_errors:
            raise self.create_errors[entity.identifier]
        if entity.identifier in self.entities:
            raise RemoteAPIError(409, "Conflict", f"entity {entity.identifier} already exists")
        self.entities.add(entity.identifier)
        self.created.append(entity)

    def entity_exists(self, identifier):
        if self.exists_error is not None:
            raise self.exists_error
        return identifier in self.entities

    def register_manifest_location(self, repository, branch, path, content):
        key = (repository.full_name, path)
        if key in self.registered:
            raise RemoteAPIError(400, "Bad Request", '{"code":"DUPLICATE_FILE_IMPORT","message":"already been imported"}')
        self.registered.add(key)
        self.entities.add(extract_identifier(content) or "")
        self.registrations.append((repository.full_name, branch, path, content))

    def validate_connection(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        pass


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def state(tmp_path, clock) -> StateStore:
    return StateStore(tmp_path / "state.json", clock=clock)


@pytest.fixture
def defaults() -> DefaultsConfig:
    return DefaultsConfig(owner="platform-team")


@pytest.fixture
def manifests() -> FakeManifests:
    return FakeManifests()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()
