"""
Jira tracker gateway.

Issues for a change request come from two places: keys mentioned in the change request's
title, description or commit messages, and keys Bitbucket's Jira integration links to the pull request.
Mentioned keys are best-effort (free text produces false positives such as "UTF-8"), so a
mentioned key Jira does not know is skipped; an explicitly linked key that is missing is an error.
"""

import logging
from re import Pattern
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import quote, urljoin

from correlate.linker import extract_issue_keys_from
from errors import GatewayError
from models import ChangeRequest, Issue
from transport.rest import RestClient

logger = logging.getLogger(__name__)

GET_ISSUE = "rest/api/latest/issue/{key}"


def parse_issue(raw: Dict[str, Any], base_url: Optional[str] = None) -> Issue:
    fields = raw.get("fields") or {}
    status = fields.get("status")
    status_name = status.get("name") if isinstance(status, dict) else status
    key = raw["key"]
    return Issue(
        key=key,
        summary=fields.get("summary") or "",
        status=status_name or "Unknown",
        url=urljoin(base_url, f"browse/{key}") if base_url else None,
    )


class JiraGateway:
    """Tracker gateway backed by the Jira REST API."""

    def __init__(self, client: RestClient, source=None, key_pattern: Union[str, Pattern, None] = None):
        """
        Parameters:
            client (RestClient): client rooted at the Jira base URL.
            source (BitbucketGateway): optional; provides explicitly linked issue keys.
            key_pattern: optional regex overriding the default issue-key pattern.
        """
        self.client = client
        self.source = source
        self.key_pattern = key_pattern

    async def get_issue(self, key: str) -> Issue:
        raw = await self.client.get(GET_ISSUE.format(key=quote(key, safe="")), {"fields": "summary,status"})
        return parse_issue(raw, self.client.base_url)

    async def _linked_keys(self, change_request: ChangeRequest) -> set:
        if self.source is None or not change_request.repository_id:
            return set()
        return set(await self.source.linked_issue_keys(change_request.repository_id, change_request.id))

    async def list_issues_for_change_request(self, change_request: ChangeRequest, commit_messages: Sequence[str] = ()) -> List[Issue]:
        mentioned = extract_issue_keys_from(change_request.title, change_request.description, *commit_messages, pattern=self.key_pattern)
        linked = await self._linked_keys(change_request)
        issues: List[Issue] = []
        for key in sorted(mentioned | linked):
            try:
                issues.append(await self.get_issue(key))
            except GatewayError as ex:
                if ex.not_found and key not in linked:
                    logger.debug("Skipping %s mentioned by change request #%s: not a Jira issue", key, change_request.id)
                    continue
                raise
        return issues
