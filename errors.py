"""
Error taxonomy for changelog resolution and aggregation.

Resolution failures and the initial commit-list failure are fatal and raised immediately.
Association failures are collected into FailedBatch records and surfaced together as a
PartialFetchError that carries whatever changelog could be assembled.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union


class ChangelogError(Exception):
    """Base class for every error raised while building a changelog."""


class RevisionNotFoundError(ChangelogError):
    """An explicitly requested revision does not exist in the repository."""

    def __init__(self, repository_id: str, revision: str):
        super().__init__(f"Revision {revision} was not found in repository {repository_id}")
        self.repository_id = repository_id
        self.revision = revision


class DisjointRangeError(ChangelogError):
    """The start revision is not an ancestor of the end revision."""

    def __init__(self, repository_id: str, start_revision: str, end_revision: str):
        super().__init__(
            f"Revision {start_revision} is not an ancestor of {end_revision} in repository {repository_id}"
        )
        self.repository_id = repository_id
        self.start_revision = start_revision
        self.end_revision = end_revision


class EnvironmentUnresolvableError(ChangelogError):
    """The deployment history of an environment cannot be turned into a commit range."""

    def __init__(self, application_name: str, environment_name: str, reason: str):
        super().__init__(f"Cannot resolve environment {environment_name} of application {application_name}: {reason}")
        self.application_name = application_name
        self.environment_name = environment_name
        self.reason = reason


class AmbiguousRepositoryError(ChangelogError):
    """An application's deployments do not map to exactly one source repository."""

    def __init__(self, application_name: str, environment_name: str, candidates: Sequence[str]):
        listed = ", ".join(candidates) or "none"
        super().__init__(
            f"Application {application_name} in environment {environment_name} maps to several repositories: {listed}"
        )
        self.application_name = application_name
        self.environment_name = environment_name
        self.candidates = tuple(candidates)


class GatewayError(ChangelogError):
    """Opaque transport failure from one of the remote services."""

    def __init__(self, service: str, message: str, url: Optional[str] = None, status: int = 0):
        detail = f"{service}: {message}"
        if url:
            detail += f" ({url})"
        super().__init__(detail)
        self.service = service
        self.url = url
        self.status = status

    @property
    def not_found(self) -> bool:
        return self.status == 404


@dataclass(frozen=True)
class FailedBatch:
    """One association fetch that failed during aggregation."""

    stage: str  # "change_requests" or "issues"
    keys: Tuple[Union[str, int], ...]
    error: Exception

    def describe(self) -> str:
        joined = ", ".join(str(k) for k in self.keys)
        return f"{self.stage} [{joined}]: {self.error}"


class PartialFetchError(ChangelogError):
    """Some association batches failed; the changelog built from the rest is attached."""

    def __init__(self, partial_changelog, failed_batches: Sequence[FailedBatch]):
        super().__init__(f"{len(failed_batches)} association fetch(es) failed while building the changelog")
        self.partial_changelog = partial_changelog
        self.failed_batches = tuple(failed_batches)


__all__ = [
    "ChangelogError",
    "RevisionNotFoundError",
    "DisjointRangeError",
    "EnvironmentUnresolvableError",
    "AmbiguousRepositoryError",
    "GatewayError",
    "FailedBatch",
    "PartialFetchError",
]
