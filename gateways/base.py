"""
Gateway contracts consumed by the resolver and the aggregation engine.

Each gateway wraps one external service behind a narrow async interface. Implementations
must be safe to call from several concurrent tasks; timeouts and retries belong to the
transport they are built on.
"""

from typing import Optional, Protocol, Sequence, runtime_checkable

from models import ChangeRequest, Commit, DeploymentState, Issue


@runtime_checkable
class SourceControlGateway(Protocol):
    batch_size: int

    async def list_commits(self, repository_id: str, start_revision: str, end_revision: str) -> Sequence[Commit]:
        """Commits reachable from end_revision but not from start_revision, in service order."""

    async def exists(self, repository_id: str, revision: str) -> bool:
        ...

    async def resolve_revision(self, repository_id: str, revision: str) -> Optional[str]:
        """Full commit id a revision (hash, tag or branch) points at, or None if unknown."""

    async def list_change_requests_for_commits(self, repository_id: str, revision_ids: Sequence[str]) -> Sequence[ChangeRequest]:
        """Change requests containing any of the given commits.

        source_revision_ids of each result names which of revision_ids it contains.
        """


@runtime_checkable
class TrackerGateway(Protocol):
    async def list_issues_for_change_request(self, change_request: ChangeRequest, commit_messages: Sequence[str] = ()) -> Sequence[Issue]:
        """Issues the change request refers to; commit_messages are those of the commits it owns."""


@runtime_checkable
class DeploymentGateway(Protocol):
    async def current_revision(self, application_name: str, environment_name: str) -> Optional[str]:
        """Revision currently deployed, or None without deployment history."""

    async def previous_revision(self, application_name: str, environment_name: str) -> Optional[str]:
        """Revision of the release before the current one, or None if there was none."""

    async def deployment_state(self, application_name: str, environment_name: str) -> DeploymentState:
        """Current and previous revisions with their repositories, read from one snapshot."""


__all__ = ["SourceControlGateway", "TrackerGateway", "DeploymentGateway"]
