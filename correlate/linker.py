"""
Issue-key extraction used to correlate source-control text with tracker issues.

Keys follow the Jira convention: an upper-case project key, a hyphen, and an issue number,
e.g. PROJ-123 or AB2-7. Matches must stand on word boundaries so that strings like
"xPROJ-1" or "PROJ-12a" are not picked up.
"""
import re
from re import Pattern
from typing import FrozenSet, Optional, Union

ISSUE_KEY_PATTERN = r"\b[A-Z][A-Z0-9]+-\d+\b"

_DEFAULT_RE = re.compile(ISSUE_KEY_PATTERN)


def _compile(pattern: Union[str, Pattern, None]) -> Pattern:
    if pattern is None or pattern == ISSUE_KEY_PATTERN:
        return _DEFAULT_RE
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


def extract_issue_keys(text: Optional[str], pattern: Union[str, Pattern, None] = None) -> FrozenSet[str]:
    """Return the set of issue keys mentioned in text (empty for None/empty input)."""
    if not text:
        return frozenset()
    return frozenset(m.group(0) for m in _compile(pattern).finditer(text))


def extract_issue_keys_from(*texts: Optional[str], pattern: Union[str, Pattern, None] = None) -> FrozenSet[str]:
    """Union of extract_issue_keys over several texts."""
    found = set()
    for txt in texts:
        found.update(extract_issue_keys(txt, pattern))
    return frozenset(found)
