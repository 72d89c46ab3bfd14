"""
Library entry point: resolve a commit specifier and aggregate its changelog in one call.
"""
import asyncio
from typing import Optional

from correlate.aggregator import ChangelogAggregator
from models import Changelog, CommitSpecifier
from resolver import ChangelogResolver
from settings import AggregationSettings


async def build_changelog(specifier: CommitSpecifier, source, tracker, deployment=None, settings: Optional[AggregationSettings] = None) -> Changelog:
    """Resolve specifier to a concrete range, then fetch and merge everything that changed in it.

    Parameters:
        specifier (CommitSpecifier): ExplicitRange or EnvironmentReference.
        source: source-control gateway (commits and change requests).
        tracker: tracker gateway (issues linked to change requests).
        deployment: deployment gateway; required for EnvironmentReference.
        settings (AggregationSettings): optional concurrency settings.

    Returns:
        Changelog: the merged, read-only changelog.

    Raises PartialFetchError with the partial changelog attached when some association fetches failed.
    """
    resolved = await ChangelogResolver(source, deployment).resolve(specifier)
    return await ChangelogAggregator(source, tracker, settings).aggregate(resolved)


def generate_changelog(specifier: CommitSpecifier, source, tracker, deployment=None, settings: Optional[AggregationSettings] = None) -> Changelog:
    """Blocking wrapper around build_changelog for callers without an event loop."""
    return asyncio.run(build_changelog(specifier, source, tracker, deployment, settings))


__all__ = ["build_changelog", "generate_changelog"]
