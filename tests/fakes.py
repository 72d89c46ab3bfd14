"""In-memory gateways used by the resolver, aggregator and CLI tests."""

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

from errors import GatewayError
from models import ChangeRequest, Commit, DeploymentState, Issue


def commit(rev, parent=None, author='dev', message=None):
    return Commit(
        revision_id=rev,
        author=author,
        message=message if message is not None else f'change {rev}',
        parent_revision_ids=(parent,) if parent else (),
    )


def linear_commits(start, count, prefix='c'):
    """count commits on top of start, newest first as source control lists them."""
    commits = []
    parent = start
    for i in range(1, count + 1):
        rev = f'{prefix}{i}'
        commits.append(commit(rev, parent))
        parent = rev
    return list(reversed(commits))


class FakeSourceControl:
    """Source-control double.

    change_requests are templates whose source_revision_ids list every commit they contain;
    a batch gets back each template containing any of its revisions, unchanged.
    """

    def __init__(
        self,
        commits: Sequence[Commit] = (),
        change_requests: Sequence[ChangeRequest] = (),
        known: Optional[Iterable[str]] = None,
        refs: Optional[Dict[str, str]] = None,
        batch_size: int = 25,
        fail_for: Iterable[str] = (),
        delays: Optional[Dict[str, float]] = None,
        list_error: Optional[Exception] = None,
        block: bool = False,
    ):
        self.commits = list(commits)
        self.change_requests = list(change_requests)
        self.known = set(known) if known is not None else None
        self.refs = refs or {}
        self.batch_size = batch_size
        self.fail_for = set(fail_for)
        self.delays = delays or {}
        self.list_error = list_error
        self.block = block
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_seen = 0
        self.cancelled = 0

    async def list_commits(self, repository_id, start_revision, end_revision):
        self.calls.append(('list_commits', repository_id, start_revision, end_revision))
        if self.list_error is not None:
            raise self.list_error
        return list(self.commits)

    async def exists(self, repository_id, revision):
        self.calls.append(('exists', repository_id, revision))
        if self.known is None:
            return True
        return revision in self.known or revision in self.refs

    async def resolve_revision(self, repository_id, revision):
        """refs maps tag and branch names to commit ids."""
        self.calls.append(('resolve_revision', repository_id, revision))
        if revision in self.refs:
            return self.refs[revision]
        if self.known is None or revision in self.known:
            return revision
        return None

    async def list_change_requests_for_commits(self, repository_id, revision_ids):
        self.calls.append(('change_requests', tuple(revision_ids)))
        self.in_flight += 1
        self.max_seen = max(self.max_seen, self.in_flight)
        try:
            if self.block:
                await asyncio.Event().wait()
            await asyncio.sleep(max((self.delays.get(r, 0) for r in revision_ids), default=0))
            failing = self.fail_for.intersection(revision_ids)
            if failing:
                raise GatewayError('bitbucket', f'boom for {", ".join(sorted(failing))}', status=500)
            return [cr for cr in self.change_requests if cr.source_revision_ids.intersection(revision_ids)]
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.in_flight -= 1


class FakeTracker:
    def __init__(self, issues: Optional[Dict[int, List[Issue]]] = None, fail_for: Iterable[int] = ()):
        self.issues = issues or {}
        self.fail_for = set(fail_for)
        self.calls: List[int] = []
        self.messages: Dict[int, List[str]] = {}

    async def list_issues_for_change_request(self, change_request, commit_messages=()):
        self.calls.append(change_request.id)
        self.messages[change_request.id] = list(commit_messages)
        if change_request.id in self.fail_for:
            raise GatewayError('jira', f'cannot load issues of #{change_request.id}', status=503)
        return list(self.issues.get(change_request.id, []))


class FakeDeployment:
    """Deployment double; history lists deployed revisions oldest first.

    Every read returns the next entry of snapshots when given, so tests can deploy between reads.
    """

    def __init__(self, history: Sequence[str] = (), repositories: Sequence[str] = ('PROJ/app',), snapshots: Sequence[Sequence[str]] = ()):
        self.snapshots = [list(s) for s in snapshots] or [list(history)]
        self._repositories = tuple(repositories)
        self.reads = 0

    def _read(self):
        history = self.snapshots[min(self.reads, len(self.snapshots) - 1)]
        self.reads += 1
        return history

    async def deployment_state(self, application_name, environment_name):
        history = self._read()
        return DeploymentState(
            current_revision=history[-1] if history else None,
            previous_revision=history[-2] if len(history) > 1 else None,
            repositories=self._repositories if history else (),
        )

    async def current_revision(self, application_name, environment_name):
        return (await self.deployment_state(application_name, environment_name)).current_revision

    async def previous_revision(self, application_name, environment_name):
        return (await self.deployment_state(application_name, environment_name)).previous_revision
