"""
Domain model for deployment changelogs: commit specifiers, resolved ranges, and the
immutable Changelog aggregate with its commits, change requests and tracker issues.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class ExplicitRange:
    """An explicit revision range inside one repository."""

    kind: ClassVar[str] = "range"

    repository_id: str
    start_revision: str
    end_revision: str


@dataclass(frozen=True)
class EnvironmentReference:
    """A deployed environment of an application, resolved through deployment history."""

    kind: ClassVar[str] = "environment"

    application_name: str
    environment_name: str


CommitSpecifier = Union[ExplicitRange, EnvironmentReference]


@dataclass(frozen=True)
class DeploymentState:
    """One consistent reading of an environment's deployments.

    repositories lists the source repositories of the current and previous versions only.
    """

    current_revision: Optional[str] = None
    previous_revision: Optional[str] = None
    repositories: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedRange:
    repository_id: str
    start_revision: str
    end_revision: str

    @property
    def is_empty(self) -> bool:
        return self.start_revision == self.end_revision

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repositoryId": self.repository_id,
            "startRevision": self.start_revision,
            "endRevision": self.end_revision,
        }


@dataclass(frozen=True)
class Commit:
    revision_id: str
    author: str
    message: str
    timestamp: Optional[datetime] = None
    parent_revision_ids: Tuple[str, ...] = ()

    @property
    def short_id(self) -> str:
        return self.revision_id[:12]

    @property
    def summary(self) -> str:
        """First line of the commit message."""
        return self.message.strip().splitlines()[0] if self.message.strip() else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "revisionId": self.revision_id,
            "author": self.author,
            "message": self.message,
            "timestamp": _isoformat(self.timestamp),
            "parentRevisionIds": list(self.parent_revision_ids),
        }


@dataclass(frozen=True)
class ChangeRequest:
    """A pull/merge request. source_revision_ids only ever holds commits present in the changelog."""

    id: int
    title: str
    state: str
    source_revision_ids: FrozenSet[str] = frozenset()
    repository_id: Optional[str] = None
    description: str = ""
    author: Optional[str] = None
    url: Optional[str] = None
    issue_keys: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "state": self.state,
            "sourceRevisionIds": sorted(self.source_revision_ids),
            "repositoryId": self.repository_id,
            "description": self.description,
            "author": self.author,
            "url": self.url,
            "issueKeys": list(self.issue_keys),
        }


@dataclass(frozen=True)
class Issue:
    key: str
    summary: str
    status: str
    url: Optional[str] = None
    change_request_ids: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "summary": self.summary,
            "status": self.status,
            "url": self.url,
            "changeRequestIds": list(self.change_request_ids),
        }


@dataclass(frozen=True)
class Changelog:
    """Read-only aggregate root. Commits keep the order the source-control service returned."""

    resolved_range: ResolvedRange
    commits: Tuple[Commit, ...] = ()
    change_requests: Mapping[int, ChangeRequest] = field(default_factory=dict)
    issues: Mapping[str, Issue] = field(default_factory=dict)

    def __post_init__(self):
        commits = tuple(self.commits)
        seen = set()
        for c in commits:
            if c.revision_id in seen:
                raise ValueError(f"duplicate commit {c.revision_id} in changelog")
            seen.add(c.revision_id)
        object.__setattr__(self, "commits", commits)
        change_requests = {k: _owning_only(cr, seen) for k, cr in dict(self.change_requests).items()}
        object.__setattr__(self, "change_requests", _frozen_mapping(change_requests))
        object.__setattr__(self, "issues", _frozen_mapping(self.issues))

    @property
    def is_empty(self) -> bool:
        return not self.commits

    def change_request_for(self, revision_id: str) -> Optional[ChangeRequest]:
        for cr in self.change_requests.values():
            if revision_id in cr.source_revision_ids:
                return cr
        return None

    def commits_for(self, change_request: ChangeRequest) -> List[Commit]:
        """Commits owned by a change request, in changelog order."""
        return [c for c in self.commits if c.revision_id in change_request.source_revision_ids]

    def unassociated_commits(self) -> List[Commit]:
        owned = set()
        for cr in self.change_requests.values():
            owned.update(cr.source_revision_ids)
        return [c for c in self.commits if c.revision_id not in owned]

    def issues_for(self, change_request: ChangeRequest) -> List[Issue]:
        return [self.issues[k] for k in change_request.issue_keys if k in self.issues]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolvedRange": self.resolved_range.to_dict(),
            "commits": [c.to_dict() for c in self.commits],
            "changeRequests": {str(k): v.to_dict() for k, v in self.change_requests.items()},
            "issues": {k: v.to_dict() for k, v in self.issues.items()},
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def _owning_only(change_request: ChangeRequest, present) -> ChangeRequest:
    # a change request may only point at commits of this changelog
    kept = frozenset(r for r in change_request.source_revision_ids if r in present)
    if kept == change_request.source_revision_ids:
        return change_request
    return replace(change_request, source_revision_ids=kept)


def _frozen_mapping(items: Union[Mapping, Iterable]) -> Mapping:
    # key-ordered so iteration does not depend on fetch completion order
    data = dict(items)
    return MappingProxyType({k: data[k] for k in sorted(data)})


def _isoformat(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


__all__ = [
    "ExplicitRange",
    "EnvironmentReference",
    "CommitSpecifier",
    "DeploymentState",
    "ResolvedRange",
    "Commit",
    "ChangeRequest",
    "Issue",
    "Changelog",
]
