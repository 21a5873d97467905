"""
ONBOARDER GitHub Client

Token-authenticated REST client covering what onboarding needs:
  - Discovery: organization or user repositories, paginated via Link headers
  - Enrichment: CODEOWNERS owners, Docker/Kubernetes/CI signals
  - Manifests: read files, commit catalog-info.yaml on a branch, open a PR
  - Detection of already-open onboarding pull requests

Non-2xx responses raise RemoteAPIError. Transport failures are retried.
"""

from __future__ import annotations

import base64
import time
from typing import Any, Callable

import httpx
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from onboarder.errors import RemoteAPIError, classify_error, pr_exists, repository_not_found
from onboarder.identity import __version__
from onboarder.interfaces import ManifestRemote, RepositoryDirectory, WriteOutcome
from onboarder.manifest import MANIFEST_PATH
from onboarder.models import PullRequest, Repository

PAGE_SIZE = 100

CODEOWNERS_PATHS = ("CODEOWNERS", ".github/CODEOWNERS", "docs/CODEOWNERS")

DOCKER_PATHS = ("Dockerfile", "docker-compose.yml", "docker-compose.yaml")
KUBERNETES_PATHS = ("k8s", "kubernetes", "deploy", "deployment")
CI_PATHS = (
    ".github/workflows",
    ".gitlab-ci.yml",
    ".circleci",
    "Jenkinsfile",
    ".travis.yml",
    "azure-pipelines.yml",
    ".harness",
    "bitbucket-pipelines.yml",
)

ONBOARDING_PR_KEYWORDS = (
    "harness",
    "catalog-info.yaml",
    "catalog-info",
    "idp",
    "harness-onboarder",
    "harness onboarding",
    "add harness",
    "update harness",
)

PR_BODY_ADD = """This PR adds a catalog-info.yaml file to integrate this repository with Harness IDP.

The file contains:
- Component metadata
- Owner information
- Lifecycle and type configuration
- Repository annotations

This enables the repository to be discovered and managed through Harness IDP.

Auto-generated by catalog-onboarder."""

PR_BODY_UPDATE = """This PR updates the catalog-info.yaml file to sync this repository with Harness IDP.

The updated file contains:
- Component metadata
- Owner information
- Lifecycle and type configuration
- Repository annotations

This keeps the repository information current in Harness IDP.

Auto-generated by catalog-onboarder."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_code_owners(content: str) -> list[str]:
    """Unique owners in file order, `@` stripped. Comments and ownerless patterns are ignored."""
    owners: list[str] = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        for part in parts[1:]:
            owner = part.removeprefix("@")
            if owner not in owners:
                owners.append(owner)
    return owners


def is_onboarding_pr(title: str, body: str) -> bool:
    text = f"{title} {body}".lower()
    return any(keyword in text for keyword in ONBOARDING_PR_KEYWORDS)


def _decode_content(payload: dict[str, Any]) -> str:
    return base64.b64decode(payload.get("content", "")).decode("utf-8")


def _to_repository(data: dict[str, Any]) -> Repository:
    return Repository(
        full_name=data["full_name"],
        name=data.get("name") or "",
        description=data.get("description") or "",
        html_url=data.get("html_url") or "",
        clone_url=data.get("clone_url") or "",
        language=data.get("language") or "",
        topics=tuple(data.get("topics") or ()),
        private=bool(data.get("private")),
        archived=bool(data.get("archived")),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
        pushed_at=data.get("pushed_at"),
        default_branch=data.get("default_branch") or "main",
        stars=data.get("stargazers_count") or 0,
        forks=data.get("forks_count") or 0,
        open_issues=data.get("open_issues_count") or 0,
        license=(data.get("license") or {}).get("name") or "",
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GitHubClient(RepositoryDirectory, ManifestRemote):

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        self._clock = clock
        self._http = httpx.Client(
            base_url=api_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": f"catalog-onboarder/{__version__}",
            },
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        return self._http.request(method, url, **kwargs)

    def _call(self, method: str, url: str, allow_404: bool = False, **kwargs) -> Any:
        response = self._send(method, url, **kwargs)
        if allow_404 and response.status_code == 404:
            return None
        if response.is_error:
            raise RemoteAPIError(response.status_code, response.reason_phrase, response.text)
        return response.json() if response.content else None

    def _paginate(self, url: str, params: dict[str, Any] | None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        next_url: str | None = url
        while next_url:
            response = self._send("GET", next_url, params=params)
            if response.is_error:
                raise RemoteAPIError(response.status_code, response.reason_phrase, response.text)
            items.extend(response.json())
            next_url = response.links.get("next", {}).get("url")
            params = None  # the next link carries its own query
        return items

    # -----------------------------------------------------------------------
    # Discovery
    # -----------------------------------------------------------------------

    def discover(
        self,
        organization: str,
        include: list[str] | None = None,
        enrich: bool = False,
    ) -> list[Repository]:
        if include:
            logger.debug(f"[GITHUB] Fetching {len(include)} named repositories from {organization}")
            repos = self._fetch_named(organization, include)
        else:
            logger.debug(f"[GITHUB] Listing repositories for {organization}")
            account = self._call("GET", f"/users/{organization}")
            if account.get("type") == "Organization":
                raw = self._paginate(f"/orgs/{organization}/repos", {"type": "all", "per_page": PAGE_SIZE})
            else:
                raw = self._paginate(f"/users/{organization}/repos", {"type": "owner", "per_page": PAGE_SIZE})
            repos = [_to_repository(item) for item in raw if item]

        logger.info(f"[GITHUB] Discovered {len(repos)} repositories in {organization}")
        if enrich:
            repos = [self.enrich(repo) for repo in repos]
        return repos

    def _fetch_named(self, organization: str, names: list[str]) -> list[Repository]:
        repos: list[Repository] = []
        for name in names:
            full_name = f"{organization}/{name}"
            try:
                data = self._call("GET", f"/repos/{full_name}")
            except RemoteAPIError as e:
                err = repository_not_found(full_name, cause=e) if e.is_not_found else classify_error(e, full_name)
                logger.warning(f"[GITHUB] {err.user_message}")
                continue
            repos.append(_to_repository(data))
        return repos

    def enrich(self, repository: Repository) -> Repository:
        update: dict[str, Any] = {}

        try:
            update["code_owners"] = tuple(self._code_owners(repository))
        except RemoteAPIError as e:
            logger.warning(f"[GITHUB] Failed to read CODEOWNERS for {repository.full_name}: {e}")

        update["has_dockerfile"] = self._any_path_exists(repository, DOCKER_PATHS)
        update["has_kubernetes"] = self._any_path_exists(repository, KUBERNETES_PATHS)
        update["has_ci"] = self._any_path_exists(repository, CI_PATHS)

        logger.debug(f"[GITHUB] Enriched {repository.full_name}: {update}")
        return repository.model_copy(update=update)

    def _code_owners(self, repository: Repository) -> list[str]:
        for path in CODEOWNERS_PATHS:
            payload = self._contents(repository, path)
            if payload is not None:
                return parse_code_owners(_decode_content(payload))
        return []

    def _any_path_exists(self, repository: Repository, paths: tuple[str, ...]) -> bool:
        for path in paths:
            try:
                if self._call("GET", f"/repos/{repository.full_name}/contents/{path}", allow_404=True) is not None:
                    return True
            except RemoteAPIError as e:
                logger.warning(f"[GITHUB] Error checking {path} in {repository.full_name}: {e}")
        return False

    # -----------------------------------------------------------------------
    # Manifests
    # -----------------------------------------------------------------------

    def _contents(self, repository: Repository, path: str) -> dict[str, Any] | None:
        payload = self._call("GET", f"/repos/{repository.full_name}/contents/{path}", allow_404=True)
        if payload is None or isinstance(payload, list):
            return None
        return payload

    def read_file(self, repository: Repository, path: str) -> str | None:
        payload = self._contents(repository, path)
        if payload is None:
            return None
        return _decode_content(payload)

    def write_manifest(self, repository: Repository, content: str) -> WriteOutcome:
        full_name = repository.full_name
        existing = self._contents(repository, MANIFEST_PATH)

        if existing is not None and _decode_content(existing).strip() == content.strip():
            logger.info(f"[GITHUB] {MANIFEST_PATH} in {full_name} is already up to date")
            return "unchanged"

        branch = f"harness-onboarding-{int(self._clock())}"
        base = self._call("GET", f"/repos/{full_name}/branches/{repository.default_branch}")

        try:
            self._call(
                "POST",
                f"/repos/{full_name}/git/refs",
                json={"ref": f"refs/heads/{branch}", "sha": base["commit"]["sha"]},
            )
        except RemoteAPIError as e:
            if "reference already exists" in str(e).lower():
                raise pr_exists(full_name, cause=e) from e
            raise

        is_update = existing is not None
        commit: dict[str, Any] = {
            "message": f"{'Update' if is_update else 'Add'} Harness IDP {MANIFEST_PATH}",
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if is_update:
            commit["sha"] = existing["sha"]
        self._call("PUT", f"/repos/{full_name}/contents/{MANIFEST_PATH}", json=commit)

        pr = self._call(
            "POST",
            f"/repos/{full_name}/pulls",
            json={
                "title": "Update Harness IDP Integration" if is_update else "Add Harness IDP Integration",
                "head": branch,
                "base": repository.default_branch,
                "body": PR_BODY_UPDATE if is_update else PR_BODY_ADD,
            },
        )
        logger.info(f"[GITHUB] Created PR #{pr.get('number')} for {full_name}: {pr.get('html_url')}")
        return "updated" if is_update else "created"

    def find_open_onboarding_pr(self, repository: Repository) -> PullRequest | None:
        pulls = self._call(
            "GET",
            f"/repos/{repository.full_name}/pulls",
            params={"state": "open", "per_page": 50},
        ) or []

        for pr in pulls:
            if is_onboarding_pr(pr.get("title") or "", pr.get("body") or ""):
                logger.info(f"[GITHUB] Found open onboarding PR #{pr['number']} in {repository.full_name}")
                return PullRequest(number=pr["number"], title=pr.get("title") or "", url=pr.get("html_url") or "")
        return None
