"""
Aggregation engine: turns a resolved commit range into a Changelog.

Stages:
1. list the commits of the range (fatal on failure, and on a disjoint range);
2. fetch change requests for the commits, in batches, concurrently;
3. fetch tracker issues for each change request, concurrently.

Each stage runs its fetches under a semaphore bounding the number in flight, waits for all of
them, and only then merges. Merging walks results in batch/key order, so the model does not
depend on which fetch finished first. Association failures are collected and raised together
as PartialFetchError once everything else has been merged.
"""

import asyncio
import functools
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from errors import DisjointRangeError, FailedBatch, PartialFetchError
from models import ChangeRequest, Changelog, Commit, Issue, ResolvedRange
from settings import AggregationSettings

logger = logging.getLogger(__name__)

STAGE_CHANGE_REQUESTS = "change_requests"
STAGE_ISSUES = "issues"

# (keys covered by the job, zero-argument coroutine factory)
Job = Tuple[Tuple[Any, ...], Callable[[], Awaitable[Sequence[Any]]]]


def partition(items: Sequence[str], size: int) -> List[Tuple[str, ...]]:
    return [tuple(items[i:i + size]) for i in range(0, len(items), size)]


def _same_revision(candidate: str, revision: str) -> bool:
    # revisions may be abbreviated hashes of the full ids the service reports
    return candidate == revision or candidate.startswith(revision)


def descends_from(commits: Sequence[Commit], revision: str) -> bool:
    """True when some listed commit has revision as a parent."""
    return any(_same_revision(p, revision) for c in commits for p in c.parent_revision_ids)


def check_ancestry(resolved: ResolvedRange, commits: Sequence[Commit], start_id: Optional[str] = None) -> None:
    """Raise DisjointRangeError unless start_revision is an ancestor of end_revision.

    start_id is the full commit id start_revision points at, for starts given as a tag or branch.

    The commits of start..end are exactly those reachable from end but not from start. When
    start is an ancestor of end, the last commit on the path from end down to start is in that
    set and has start as a parent; when it is not, no listed commit can have start as a parent.
    """
    if resolved.is_empty:
        return
    candidates = [resolved.start_revision] + ([start_id] if start_id else [])
    if any(descends_from(commits, rev) for rev in candidates):
        return
    raise DisjointRangeError(resolved.repository_id, resolved.start_revision, resolved.end_revision)


def dedupe_commits(commits: Sequence[Commit]) -> Tuple[Commit, ...]:
    seen: Set[str] = set()
    unique: List[Commit] = []
    for c in commits:
        if c.revision_id in seen:
            logger.debug("Dropping duplicate commit %s reported by source control", c.revision_id)
            continue
        seen.add(c.revision_id)
        unique.append(c)
    return tuple(unique)


def merge_change_requests(commits: Sequence[Commit], batch_results: Sequence[Optional[Sequence[ChangeRequest]]]) -> Dict[int, ChangeRequest]:
    """Assign every commit to at most one change request.

    batch_results is in batch order; None marks a failed batch. The first batch reporting a
    commit owns it, and within one batch the lowest change-request id wins. Change requests keep
    only the commits they own; references to commits outside the changelog are dropped.
    """
    present = {c.revision_id for c in commits}
    reported: Dict[int, ChangeRequest] = {}
    owner: Dict[str, int] = {}
    for result in batch_results:
        if result is None:
            continue
        claims: Dict[str, List[int]] = {}
        for cr in result:
            reported.setdefault(cr.id, cr)
            for rev in cr.source_revision_ids:
                if rev in present:
                    claims.setdefault(rev, []).append(cr.id)
        for rev, cr_ids in claims.items():
            if rev not in owner:
                owner[rev] = min(cr_ids)

    owned: Dict[int, Set[str]] = {}
    for rev, cr_id in owner.items():
        owned.setdefault(cr_id, set()).add(rev)
    return {cr_id: replace(cr, source_revision_ids=frozenset(owned.get(cr_id, ()))) for cr_id, cr in reported.items()}


def merge_issues(
    change_requests: Dict[int, ChangeRequest], issue_results: Sequence[Tuple[int, Optional[Sequence[Issue]]]]
) -> Tuple[Dict[int, ChangeRequest], Dict[str, Issue]]:
    """Deduplicate issues by key and link them both ways with their change requests."""
    issues: Dict[str, Issue] = {}
    referencing: Dict[str, Set[int]] = {}
    keys_by_cr: Dict[int, Set[str]] = {}
    for cr_id, result in sorted(issue_results, key=lambda item: item[0]):
        if result is None:
            continue
        for issue in result:
            issues.setdefault(issue.key, issue)
            referencing.setdefault(issue.key, set()).add(cr_id)
            keys_by_cr.setdefault(cr_id, set()).add(issue.key)

    linked_issues = {key: replace(issue, change_request_ids=tuple(sorted(referencing[key]))) for key, issue in issues.items()}
    linked_crs = {cr_id: replace(cr, issue_keys=tuple(sorted(keys_by_cr.get(cr_id, ())))) for cr_id, cr in change_requests.items()}
    return linked_crs, linked_issues


def _messages_of(commits: Sequence[Commit], change_request: ChangeRequest) -> List[str]:
    return [c.message for c in commits if c.revision_id in change_request.source_revision_ids]


class ChangelogAggregator:
    """Builds Changelogs from a source-control gateway and a tracker gateway."""

    def __init__(self, source, tracker, settings: Optional[AggregationSettings] = None):
        self.source = source
        self.tracker = tracker
        self.settings = settings or AggregationSettings()

    async def _run_stage(self, stage: str, jobs: Sequence[Job]) -> Tuple[List[Optional[List[Any]]], List[FailedBatch]]:
        """Run jobs with at most max_in_flight outstanding; return results in job order."""
        semaphore = asyncio.Semaphore(self.settings.max_in_flight)

        async def run(keys: Tuple[Any, ...], factory) -> Tuple[Optional[List[Any]], Optional[FailedBatch]]:
            async with semaphore:
                try:
                    return list(await factory()), None
                except Exception as ex:
                    logger.warning("Fetching %s for %s failed: %s", stage, ", ".join(str(k) for k in keys), ex)
                    return None, FailedBatch(stage, keys, ex)

        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(run(keys, factory)) for keys, factory in jobs]

        results: List[Optional[List[Any]]] = []
        failures: List[FailedBatch] = []
        for task in tasks:
            result, failure = task.result()
            results.append(result)
            if failure is not None:
                failures.append(failure)
        return results, failures

    async def _fetch_commits(self, resolved: ResolvedRange) -> Tuple[Commit, ...]:
        repo = resolved.repository_id
        commits = await self.source.list_commits(repo, resolved.start_revision, resolved.end_revision)
        if commits and descends_from(commits, resolved.start_revision):
            return dedupe_commits(commits)

        # start may name a tag or branch; compare against the commit it points at
        start_id = await self.source.resolve_revision(repo, resolved.start_revision)
        if not commits and start_id is not None:
            if start_id == await self.source.resolve_revision(repo, resolved.end_revision):
                logger.info("%s and %s point at the same commit; nothing changed", resolved.start_revision, resolved.end_revision)
                return ()
        check_ancestry(resolved, commits, start_id)
        return dedupe_commits(commits)

    async def aggregate(self, resolved: ResolvedRange) -> Changelog:
        if resolved.is_empty:
            logger.info("Range %s..%s is empty; nothing changed", resolved.start_revision, resolved.end_revision)
            return Changelog(resolved_range=resolved)

        commits = await self._fetch_commits(resolved)
        logger.info("Found %d commits in %s %s..%s", len(commits), resolved.repository_id, resolved.start_revision, resolved.end_revision)

        batch_size = self.settings.effective_batch_size(self.source)
        batches = partition([c.revision_id for c in commits], batch_size)
        cr_jobs: List[Job] = [
            (batch, functools.partial(self.source.list_change_requests_for_commits, resolved.repository_id, list(batch)))
            for batch in batches
        ]
        cr_results, failures = await self._run_stage(STAGE_CHANGE_REQUESTS, cr_jobs)
        change_requests = merge_change_requests(commits, cr_results)
        logger.info("Found %d change requests across %d batches", len(change_requests), len(batches))

        cr_ids = sorted(change_requests)
        issue_jobs: List[Job] = []
        for cr_id in cr_ids:
            cr = change_requests[cr_id]
            fetch = functools.partial(self.tracker.list_issues_for_change_request, cr, _messages_of(commits, cr))
            issue_jobs.append(((cr_id,), fetch))
        issue_results, issue_failures = await self._run_stage(STAGE_ISSUES, issue_jobs)
        failures.extend(issue_failures)
        change_requests, issues = merge_issues(change_requests, list(zip(cr_ids, issue_results)))
        logger.info("Found %d issues", len(issues))

        changelog = Changelog(resolved_range=resolved, commits=commits, change_requests=change_requests, issues=issues)
        if failures:
            raise PartialFetchError(changelog, failures)
        return changelog


async def aggregate(resolved: ResolvedRange, source, tracker, settings: Optional[AggregationSettings] = None) -> Changelog:
    """Build the changelog of a resolved range."""
    return await ChangelogAggregator(source, tracker, settings).aggregate(resolved)


__all__ = ["ChangelogAggregator", "aggregate", "check_ancestry", "descends_from", "merge_change_requests", "merge_issues", "partition"]
