"""
Bitbucket Server source-control gateway: commits in a range, commit existence, the pull
requests containing commits, and the Jira issues Bitbucket links to a pull request.

Repository ids take the form "PROJECT/repo".
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

from errors import GatewayError
from models import ChangeRequest, Commit
from transport.rest import RestClient

logger = logging.getLogger(__name__)

COMPARE_COMMITS = "rest/api/latest/projects/{project}/repos/{repo}/compare/commits"
COMMIT = "rest/api/latest/projects/{project}/repos/{repo}/commits/{commit}"
PULL_REQUESTS_FOR_COMMIT = "rest/api/latest/projects/{project}/repos/{repo}/commits/{commit}/pull-requests"
ISSUES_FOR_PULL_REQUEST = "rest/jira/latest/projects/{project}/repos/{repo}/pull-requests/{pull_request}/issues"

DEFAULT_BATCH_SIZE = 25


def split_repository_id(repository_id: str) -> Tuple[str, str]:
    """Split "PROJECT/repo" into its project key and repository slug."""
    project, sep, repo = (repository_id or "").partition("/")
    if not sep or not project or not repo or "/" in repo:
        raise ValueError(f"repository id must look like PROJECT/repo, got {repository_id!r}")
    return project, repo


def _from_millis(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc)


def parse_commit(raw: Dict[str, Any]) -> Commit:
    author = raw.get("author") or {}
    return Commit(
        revision_id=raw["id"],
        author=author.get("displayName") or author.get("name") or author.get("emailAddress") or "",
        message=raw.get("message") or "",
        timestamp=_from_millis(raw.get("authorTimestamp") or raw.get("committerTimestamp")),
        parent_revision_ids=tuple(p["id"] for p in raw.get("parents") or [] if p.get("id")),
    )


def _pull_request_url(raw: Dict[str, Any]) -> Optional[str]:
    links = (raw.get("links") or {}).get("self") or []
    return links[0].get("href") if links else None


def parse_pull_request(raw: Dict[str, Any], repository_id: str, revision_ids: Sequence[str] = ()) -> ChangeRequest:
    state = raw.get("state") or ("OPEN" if raw.get("open") else "CLOSED")
    author = ((raw.get("author") or {}).get("user") or {})
    return ChangeRequest(
        id=int(raw["id"]),
        title=raw.get("title") or "",
        state=state,
        source_revision_ids=frozenset(revision_ids),
        repository_id=repository_id,
        description=raw.get("description") or "",
        author=author.get("displayName") or author.get("name"),
        url=_pull_request_url(raw),
    )


class BitbucketGateway:
    """Source-control gateway backed by the Bitbucket Server REST API."""

    batch_size = DEFAULT_BATCH_SIZE

    def __init__(self, client: RestClient, batch_size: Optional[int] = None):
        self.client = client
        if batch_size is not None:
            self.batch_size = batch_size

    def _path(self, template: str, repository_id: str, **parts: Any) -> str:
        project, repo = split_repository_id(repository_id)
        quoted = {k: quote(str(v), safe="") for k, v in parts.items()}
        return template.format(project=quote(project, safe=""), repo=quote(repo, safe=""), **quoted)

    async def list_commits(self, repository_id: str, start_revision: str, end_revision: str) -> List[Commit]:
        # compare/commits lists what is on "from" but not on "to", newest first
        path = self._path(COMPARE_COMMITS, repository_id)
        raw = await self.client.get_paged(path, {"from": end_revision, "to": start_revision})
        commits = [parse_commit(c) for c in raw]
        logger.debug("Bitbucket returned %d commits for %s %s..%s", len(commits), repository_id, start_revision, end_revision)
        return commits

    async def resolve_revision(self, repository_id: str, revision: str) -> Optional[str]:
        """Full commit id of a hash, tag or branch; None when Bitbucket does not know it."""
        try:
            raw = await self.client.get(self._path(COMMIT, repository_id, commit=revision))
        except GatewayError as ex:
            if ex.not_found:
                return None
            raise
        if isinstance(raw, dict) and raw.get("id"):
            return raw["id"]
        return revision

    async def exists(self, repository_id: str, revision: str) -> bool:
        return await self.resolve_revision(repository_id, revision) is not None

    async def _pull_requests_for_commit(self, repository_id: str, revision_id: str) -> List[Dict[str, Any]]:
        return await self.client.get_paged(self._path(PULL_REQUESTS_FOR_COMMIT, repository_id, commit=revision_id))

    async def list_change_requests_for_commits(self, repository_id: str, revision_ids: Sequence[str]) -> List[ChangeRequest]:
        """Pull requests for each commit in the batch, folded by id in first-seen order."""
        raw_by_id: Dict[int, Dict[str, Any]] = {}
        revisions_by_id: Dict[int, List[str]] = {}
        for revision_id in revision_ids:
            for raw in await self._pull_requests_for_commit(repository_id, revision_id):
                pr_id = int(raw["id"])
                raw_by_id.setdefault(pr_id, raw)
                revisions_by_id.setdefault(pr_id, []).append(revision_id)
        return [parse_pull_request(raw_by_id[pr_id], repository_id, revisions_by_id[pr_id]) for pr_id in raw_by_id]

    async def linked_issue_keys(self, repository_id: str, change_request_id: int) -> List[str]:
        """Issue keys Bitbucket's Jira integration links to a pull request."""
        raw = await self.client.get(self._path(ISSUES_FOR_PULL_REQUEST, repository_id, pull_request=change_request_id))
        return [item["key"] for item in raw or [] if isinstance(item, dict) and item.get("key")]
