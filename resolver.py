"""
Commit range resolution: turns a CommitSpecifier into a concrete, validated ResolvedRange.
"""

import logging
from typing import assert_never

from errors import AmbiguousRepositoryError, EnvironmentUnresolvableError, RevisionNotFoundError
from models import CommitSpecifier, DeploymentState, EnvironmentReference, ExplicitRange, ResolvedRange

logger = logging.getLogger(__name__)


class ChangelogResolver:
    """Resolve explicit ranges and deployed environments against the gateways."""

    def __init__(self, source, deployment=None):
        self.source = source
        self.deployment = deployment

    async def resolve(self, specifier: CommitSpecifier) -> ResolvedRange:
        match specifier:
            case ExplicitRange():
                resolved = ResolvedRange(specifier.repository_id, specifier.start_revision, specifier.end_revision)
            case EnvironmentReference():
                resolved = await self._resolve_environment(specifier)
            case _:
                assert_never(specifier)
        await self._require_revisions(resolved)
        logger.info("Resolved %s to %s %s..%s", _describe(specifier), resolved.repository_id, resolved.start_revision, resolved.end_revision)
        return resolved

    async def _require_revisions(self, resolved: ResolvedRange) -> None:
        revisions = [resolved.start_revision]
        if resolved.end_revision != resolved.start_revision:
            revisions.append(resolved.end_revision)
        for rev in revisions:
            if not await self.source.exists(resolved.repository_id, rev):
                raise RevisionNotFoundError(resolved.repository_id, rev)

    async def _resolve_environment(self, ref: EnvironmentReference) -> ResolvedRange:
        app, env = ref.application_name, ref.environment_name
        if self.deployment is None:
            raise EnvironmentUnresolvableError(app, env, "no deployment service is configured")

        # current, previous and repositories come from a single read
        state: DeploymentState = await self.deployment.deployment_state(app, env)
        current, previous = state.current_revision, state.previous_revision
        if current is None:
            raise EnvironmentUnresolvableError(app, env, "no deployment history")
        repositories = list(dict.fromkeys(state.repositories))
        if not repositories:
            raise EnvironmentUnresolvableError(app, env, "deployments carry no source repository")
        if len(repositories) > 1:
            raise AmbiguousRepositoryError(app, env, repositories)
        if previous is None:
            raise EnvironmentUnresolvableError(app, env, "no previous deployment to compare against")
        return ResolvedRange(repositories[0], previous, current)


def _describe(specifier: CommitSpecifier) -> str:
    if isinstance(specifier, EnvironmentReference):
        return f"environment {specifier.application_name}/{specifier.environment_name}"
    return "explicit range"


async def resolve(specifier: CommitSpecifier, source, deployment=None) -> ResolvedRange:
    return await ChangelogResolver(source, deployment).resolve(specifier)


__all__ = ["ChangelogResolver", "resolve"]
