"""
Correlate package: issue-key extraction and the engine that merges commits, change requests and issues.
"""

from .aggregator import ChangelogAggregator, aggregate
from .linker import ISSUE_KEY_PATTERN, extract_issue_keys, extract_issue_keys_from

__all__ = ["ChangelogAggregator", "aggregate", "ISSUE_KEY_PATTERN", "extract_issue_keys", "extract_issue_keys_from"]
