import json

import pytest

from models import ChangeRequest, Changelog, Commit, Issue, ResolvedRange
from report import renderer

RANGE = ResolvedRange('PROJ/app', '1111111111111111', '2222222222222222')


def sample_changelog():
    commits = [
        Commit('c3c3c3c3c3c3c3c3', 'Alice', 'Add <b>bold</b> widget\n\nlong body'),
        Commit('c2c2c2c2c2c2c2c2', 'Bob', 'Tidy imports'),
        Commit('c1c1c1c1c1c1c1c1', 'Alice', 'PROJ-1 fix crash'),
    ]
    crs = {
        4: ChangeRequest(4, 'Fix crash', 'MERGED', frozenset({'c1c1c1c1c1c1c1c1'}), url='https://bb/pr/4', issue_keys=('PROJ-1',)),
        9: ChangeRequest(9, 'Widget & friends', 'OPEN', frozenset({'c3c3c3c3c3c3c3c3'})),
        12: ChangeRequest(12, 'Superseded', 'DECLINED'),
    }
    issues = {'PROJ-1': Issue('PROJ-1', 'App crashes', 'Done', url='https://jira/browse/PROJ-1', change_request_ids=(4,))}
    return Changelog(RANGE, commits=commits, change_requests=crs, issues=issues)


def test_empty_changelog_text():
    text = renderer.render(Changelog(ResolvedRange('PROJ/app', 'abc', 'abc')))
    assert text == 'Changelog for PROJ/app: abc..abc\nNo changes between abc and abc.\n'


def test_text_groups_commits_by_change_request():
    text = renderer.render(sample_changelog(), 'text')
    lines = text.splitlines()
    assert lines[0] == 'Changelog for PROJ/app: 111111111111..222222222222'
    assert lines[1] == '3 commits, 3 change requests, 1 issue'
    # ordered by first commit position, commit-less change requests last
    assert [l for l in lines if l.startswith('#')] == ['#9 Widget & friends [OPEN]', '#4 Fix crash [MERGED]', '#12 Superseded [DECLINED]']
    assert '    PROJ-1 App crashes [Done]' in lines
    assert '    c1c1c1c1c1c1 Alice: PROJ-1 fix crash' in lines
    assert '  No commits of this range belong to it.' in lines
    assert lines[-2:] == ['Commits without a change request:', '  c2c2c2c2c2c2 Bob: Tidy imports']


def test_rendering_is_idempotent():
    changelog = sample_changelog()
    for fmt in renderer.FORMATS:
        assert renderer.render(changelog, fmt) == renderer.render(changelog, fmt)


def test_markdown():
    md = renderer.render(sample_changelog(), 'md')
    assert md.startswith('# Changelog for PROJ/app')
    assert '## [#4](https://bb/pr/4) Fix crash `MERGED`' in md
    assert '- [PROJ-1](https://jira/browse/PROJ-1) App crashes (Done)' in md
    assert '## Commits without a change request' in md


def test_markdown_empty():
    md = renderer.render(Changelog(ResolvedRange('PROJ/app', 'abc', 'abc')), 'markdown')
    assert 'No changes between abc and abc.' in md


def test_html_escapes_text():
    html = renderer.render(sample_changelog(), 'html')
    assert '<section class="change-request" id="cr-4">' in html
    assert '&lt;b&gt;bold&lt;/b&gt;' in html
    assert 'Widget &amp; friends' in html
    assert '<b>bold</b>' not in html


def test_json_output():
    data = json.loads(renderer.render(sample_changelog(), 'json'))
    assert [c['revisionId'] for c in data['commits']] == ['c3c3c3c3c3c3c3c3', 'c2c2c2c2c2c2c2c2', 'c1c1c1c1c1c1c1c1']
    assert sorted(data['changeRequests']) == ['12', '4', '9']


def test_unknown_format():
    with pytest.raises(ValueError):
        renderer.render(sample_changelog(), 'pdf')
