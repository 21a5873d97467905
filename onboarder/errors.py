"""
ONBOARDER Errors — Failure Taxonomy

Every per-repository failure ends up as a ProcessingError with a stable
category/type pair, a recoverability flag and a message fit for humans.

Raw errors from GitHub or the catalog API are classified by scanning their
lowercased text against an ordered rule table. The first rule that matches
wins, so specific patterns ("duplicate_file_import") sit above generic ones
("already exists"). Classification is pure: no I/O, no state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------

class ErrorCategory(str, Enum):
    REPOSITORY = "REPOSITORY"
    ENTITY = "ENTITY"
    AUTHENTICATION = "AUTHENTICATION"
    VALIDATION = "VALIDATION"
    NETWORK = "NETWORK"
    PULL_REQUEST = "PULL_REQUEST"
    UNKNOWN = "UNKNOWN"


class ErrorType(str, Enum):
    # Repository
    REPOSITORY_NOT_FOUND = "REPOSITORY_NOT_FOUND"
    REPOSITORY_ACCESS_DENIED = "REPOSITORY_ACCESS_DENIED"
    CATALOG_FILE_NOT_FOUND = "CATALOG_FILE_NOT_FOUND"
    CATALOG_FILE_INVALID = "CATALOG_FILE_INVALID"

    # Entity
    ENTITY_EXISTS = "ENTITY_EXISTS"
    ENTITY_ALREADY_REGISTERED = "ENTITY_ALREADY_REGISTERED"
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    ENTITY_VALIDATION_FAILED = "ENTITY_VALIDATION_FAILED"

    # Authentication
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    API_KEY_INVALID = "API_KEY_INVALID"

    # Validation
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_VALUE = "INVALID_VALUE"

    # Network
    RATE_LIMIT = "RATE_LIMIT"
    TIMEOUT = "TIMEOUT"
    CONNECTION_FAILED = "CONNECTION_FAILED"

    # Pull request
    PR_EXISTS = "PR_EXISTS"
    PR_CONFLICT = "PR_CONFLICT"
    PR_CREATE_FAILED = "PR_CREATE_FAILED"

    UNKNOWN = "UNKNOWN"


class ProcessingError(Exception):
    """
    A classified failure for one repository.

    Treat instances as immutable: backfilling the repository goes through
    with_repository(), which returns a new error.
    """

    def __init__(
        self,
        category: ErrorCategory,
        error_type: ErrorType,
        message: str,
        repository: str = "",
        recoverable: bool = False,
        user_friendly: str = "",
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.category = category
        self.type = error_type
        self.message = message
        self.repository = repository
        self.recoverable = recoverable
        self.user_friendly = user_friendly
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.repository:
            return f"[{self.category.value}:{self.type.value}] {self.message} (repo: {self.repository})"
        return f"[{self.category.value}:{self.type.value}] {self.message}"

    @property
    def user_message(self) -> str:
        return self.user_friendly or self.message

    def with_repository(self, repository: str) -> ProcessingError:
        return ProcessingError(
            self.category,
            self.type,
            self.message,
            repository=repository,
            recoverable=self.recoverable,
            user_friendly=self.user_friendly,
            cause=self.cause,
        )


class RemoteAPIError(Exception):
    """Non-2xx response from GitHub or the catalog API."""

    def __init__(self, status_code: int, reason: str, body: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"HTTP {status_code}: {reason} - {body}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class ConfigError(Exception):
    pass


class StateError(Exception):
    pass


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def repository_not_found(repo: str, cause: BaseException | None = None) -> ProcessingError:
    return ProcessingError(
        ErrorCategory.REPOSITORY,
        ErrorType.REPOSITORY_NOT_FOUND,
        "repository not found or inaccessible",
        repository=repo,
        cause=cause,
        user_friendly=(
            f"Repository '{repo}' was not found or you don't have access to it. "
            "Please check the repository name and your permissions."
        ),
    )


def forbidden(repo: str = "", cause: BaseException | None = None) -> ProcessingError:
    if repo:
        friendly = f"Access to repository '{repo}' is forbidden. Check your token permissions."
    else:
        friendly = "Access forbidden. Check your API key permissions."
    return ProcessingError(
        ErrorCategory.AUTHENTICATION,
        ErrorType.FORBIDDEN,
        "access forbidden",
        repository=repo,
        cause=cause,
        user_friendly=friendly,
    )


def unauthorized(message: str, repo: str = "", cause: BaseException | None = None) -> ProcessingError:
    return ProcessingError(
        ErrorCategory.AUTHENTICATION,
        ErrorType.UNAUTHORIZED,
        message,
        repository=repo,
        cause=cause,
        user_friendly="Authentication failed. Please check your API keys and permissions.",
    )


def rate_limited(repo: str = "", cause: BaseException | None = None) -> ProcessingError:
    return ProcessingError(
        ErrorCategory.NETWORK,
        ErrorType.RATE_LIMIT,
        "rate limit exceeded",
        repository=repo,
        recoverable=True,
        cause=cause,
        user_friendly=(
            f"API rate limit exceeded while processing '{repo}'. "
            "Re-run the onboarder later to retry."
        ),
    )


def entity_already_registered(repo: str, cause: BaseException | None = None) -> ProcessingError:
    return ProcessingError(
        ErrorCategory.ENTITY,
        ErrorType.ENTITY_ALREADY_REGISTERED,
        "entity already registered",
        repository=repo,
        cause=cause,
        user_friendly=f"Repository '{repo}' has already been imported into the catalog. No action needed.",
    )


def entity_exists(repo: str, identifier: str, cause: BaseException | None = None) -> ProcessingError:
    return ProcessingError(
        ErrorCategory.ENTITY,
        ErrorType.ENTITY_EXISTS,
        f"entity with identifier '{identifier}' already exists",
        repository=repo,
        cause=cause,
        user_friendly=(
            f"Component '{identifier}' already exists in the catalog. "
            "Use update mode or remove the existing component first."
        ),
    )


def catalog_file_not_found(repo: str, cause: BaseException | None = None) -> ProcessingError:
    return ProcessingError(
        ErrorCategory.REPOSITORY,
        ErrorType.CATALOG_FILE_NOT_FOUND,
        "catalog-info.yaml file not found",
        repository=repo,
        cause=cause,
        user_friendly=(
            f"Repository '{repo}' doesn't have a catalog-info.yaml file. "
            "Create one first or use yaml mode to generate it."
        ),
    )


def catalog_file_invalid(repo: str, detail: str, cause: BaseException | None = None) -> ProcessingError:
    return ProcessingError(
        ErrorCategory.REPOSITORY,
        ErrorType.CATALOG_FILE_INVALID,
        f"invalid catalog file: {detail}",
        repository=repo,
        cause=cause,
        user_friendly=(
            f"The catalog-info.yaml file in '{repo}' is invalid or missing "
            "the required identifier field."
        ),
    )


def pr_exists(repo: str, number: int = 0, title: str = "", cause: BaseException | None = None) -> ProcessingError:
    if title:
        message = f"open PR #{number} already exists ({title})"
        friendly = (
            f"Repository '{repo}' already has an open onboarding PR #{number} ('{title}'). "
            "Please review and merge it first."
        )
    else:
        message = f"pull request already exists (PR #{number})"
        friendly = (
            f"Repository '{repo}' already has an open pull request for catalog onboarding. "
            "Please review and merge it first."
        )
    return ProcessingError(
        ErrorCategory.PULL_REQUEST,
        ErrorType.PR_EXISTS,
        message,
        repository=repo,
        cause=cause,
        user_friendly=friendly,
    )


def validation_failed(detail: str, repo: str = "", cause: BaseException | None = None) -> ProcessingError:
    return ProcessingError(
        ErrorCategory.VALIDATION,
        ErrorType.ENTITY_VALIDATION_FAILED,
        f"component validation failed: {detail}",
        repository=repo,
        cause=cause,
        user_friendly=f"Component validation failed: {detail}",
    )


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassificationRule:
    """
    One row of the classifier.

    A rule matches when every `all_of` pattern and at least one `any_of`
    pattern occur in the lowercased error text (an empty group is ignored).
    """
    name: str
    category: ErrorCategory
    error_type: ErrorType
    message: str
    user_template: str
    all_of: tuple[str, ...] = ()
    any_of: tuple[str, ...] = ()
    recoverable: bool = False

    def matches(self, text: str) -> bool:
        if not self.all_of and not self.any_of:
            return False
        if self.all_of and not all(p in text for p in self.all_of):
            return False
        if self.any_of and not any(p in text for p in self.any_of):
            return False
        return True

    def build(self, err: BaseException, repository: str) -> ProcessingError:
        return ProcessingError(
            self.category,
            self.error_type,
            self.message,
            repository=repository,
            recoverable=self.recoverable,
            user_friendly=self.user_template.format(repo=repository, error=err),
            cause=err,
        )


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        name="repository_not_found",
        category=ErrorCategory.REPOSITORY,
        error_type=ErrorType.REPOSITORY_NOT_FOUND,
        message="repository not found or inaccessible",
        user_template=(
            "Repository '{repo}' was not found or you don't have access to it. "
            "Please check the repository name and your permissions."
        ),
        all_of=("404", "not found"),
    ),
    ClassificationRule(
        name="access_forbidden",
        category=ErrorCategory.AUTHENTICATION,
        error_type=ErrorType.FORBIDDEN,
        message="access forbidden",
        user_template="Access to repository '{repo}' is forbidden. Check your token permissions.",
        all_of=("403", "forbidden"),
    ),
    ClassificationRule(
        name="unauthorized",
        category=ErrorCategory.AUTHENTICATION,
        error_type=ErrorType.UNAUTHORIZED,
        message="authentication failed",
        user_template="Authentication failed while processing '{repo}'. Please check your API keys and permissions.",
        all_of=("401", "unauthorized"),
    ),
    ClassificationRule(
        name="rate_limited",
        category=ErrorCategory.NETWORK,
        error_type=ErrorType.RATE_LIMIT,
        message="rate limit exceeded",
        user_template="API rate limit exceeded while processing '{repo}'. Re-run the onboarder later to retry.",
        any_of=("429", "rate limit"),
        recoverable=True,
    ),
    ClassificationRule(
        name="entity_already_registered",
        category=ErrorCategory.ENTITY,
        error_type=ErrorType.ENTITY_ALREADY_REGISTERED,
        message="entity already registered",
        user_template="Repository '{repo}' has already been imported into the catalog. No action needed.",
        any_of=("duplicate_file_import", "already been imported"),
    ),
    ClassificationRule(
        name="entity_already_exists",
        category=ErrorCategory.ENTITY,
        error_type=ErrorType.ENTITY_EXISTS,
        message="entity already exists",
        user_template=(
            "A component for '{repo}' already exists in the catalog. "
            "Use update mode or remove the existing component first."
        ),
        any_of=("already exists", "duplicate"),
    ),
    ClassificationRule(
        name="catalog_file_not_found",
        category=ErrorCategory.REPOSITORY,
        error_type=ErrorType.CATALOG_FILE_NOT_FOUND,
        message="catalog-info.yaml file not found",
        user_template=(
            "Repository '{repo}' doesn't have a catalog-info.yaml file. "
            "Create one first or use yaml mode to generate it."
        ),
        all_of=("catalog-info.yaml", "not found"),
    ),
    ClassificationRule(
        name="pull_request_already_exists",
        category=ErrorCategory.PULL_REQUEST,
        error_type=ErrorType.PR_EXISTS,
        message="pull request already exists",
        user_template=(
            "Repository '{repo}' already has an open pull request for catalog onboarding. "
            "Please review and merge it first."
        ),
        all_of=("pull request", "already"),
    ),
)


def classify_error(err: BaseException, repository: str) -> ProcessingError:
    """
    Map any error onto the taxonomy.

    Structured errors come back as they are, with the repository filled in
    when they were raised without one.
    """
    if isinstance(err, ProcessingError):
        if not err.repository:
            return err.with_repository(repository)
        return err

    text = str(err).lower()
    for rule in CLASSIFICATION_RULES:
        if rule.matches(text):
            return rule.build(err, repository)

    return ProcessingError(
        ErrorCategory.UNKNOWN,
        ErrorType.UNKNOWN,
        str(err),
        repository=repository,
        cause=err,
        user_friendly=f"An unexpected error occurred while processing '{repository}': {err}",
    )
