"""
Changelog renderer: plain text, Markdown, HTML and JSON projections of a Changelog.
Markdown and HTML use the Jinja2 templates in report/templates/.

Every renderer is a pure function of the changelog, so rendering the same changelog twice
yields identical output.
"""

import os
from typing import List, NamedTuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from models import ChangeRequest, Changelog, Commit, Issue

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "templates")

FORMATS = ("text", "markdown", "html", "json")


class ChangeRequestBlock(NamedTuple):
    change_request: ChangeRequest
    commits: List[Commit]
    issues: List[Issue]


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _short(revision: str) -> str:
    return revision[:12]


def change_request_blocks(changelog: Changelog) -> List[ChangeRequestBlock]:
    """Change requests ordered by first appearance of their commits, then commit-less ones by id."""
    position = {c.revision_id: i for i, c in enumerate(changelog.commits)}
    blocks = [
        ChangeRequestBlock(cr, changelog.commits_for(cr), changelog.issues_for(cr))
        for cr in changelog.change_requests.values()
    ]

    def order(block: ChangeRequestBlock):
        first = min((position[r] for r in block.change_request.source_revision_ids if r in position), default=None)
        return (first is None, first if first is not None else 0, block.change_request.id)

    return sorted(blocks, key=order)


def header(changelog: Changelog) -> str:
    rng = changelog.resolved_range
    return f"Changelog for {rng.repository_id}: {_short(rng.start_revision)}..{_short(rng.end_revision)}"


def counts(changelog: Changelog) -> str:
    return ", ".join([
        _plural(len(changelog.commits), "commit"),
        _plural(len(changelog.change_requests), "change request"),
        _plural(len(changelog.issues), "issue"),
    ])


def no_changes(changelog: Changelog) -> str:
    rng = changelog.resolved_range
    return f"No changes between {rng.start_revision} and {rng.end_revision}."


def _commit_line(commit: Commit) -> str:
    return f"{commit.short_id} {commit.author}: {commit.summary}"


def render_text(changelog: Changelog) -> str:
    """Render the plain-text changelog."""
    lines = [header(changelog)]
    if changelog.is_empty:
        lines.append(no_changes(changelog))
        return "\n".join(lines) + "\n"

    lines.append(counts(changelog))
    for block in change_request_blocks(changelog):
        cr = block.change_request
        lines.append("")
        lines.append(f"#{cr.id} {cr.title} [{cr.state}]")
        if block.issues:
            lines.append("  Issues:")
            lines.extend(f"    {i.key} {i.summary} [{i.status}]" for i in block.issues)
        if block.commits:
            lines.append("  Commits:")
            lines.extend(f"    {_commit_line(c)}" for c in block.commits)
        else:
            lines.append("  No commits of this range belong to it.")

    loose = changelog.unassociated_commits()
    if loose:
        lines.append("")
        lines.append("Commits without a change request:")
        lines.extend(f"  {_commit_line(c)}" for c in loose)
    return "\n".join(lines) + "\n"


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(TEMPLATE_DIR),
        autoescape=select_autoescape(["html", "xml", "html.j2"]),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def _render_template(name: str, changelog: Changelog) -> str:
    tmpl = _environment().get_template(name)
    return tmpl.render(
        changelog=changelog,
        header=header(changelog),
        counts=counts(changelog),
        no_changes=no_changes(changelog),
        blocks=change_request_blocks(changelog),
        loose_commits=changelog.unassociated_commits(),
    )


def render_markdown(changelog: Changelog) -> str:
    return _render_template("changelog.md.j2", changelog)


def render_html(changelog: Changelog) -> str:
    return _render_template("changelog.html.j2", changelog)


def render_json(changelog: Changelog) -> str:
    return changelog.to_json(indent=2) + "\n"


def render(changelog: Changelog, fmt: str = "text") -> str:
    """Main render function; fmt is one of text, markdown (md), html (htm) or json."""
    fmt_l = (fmt or "text").lower()
    if fmt_l in ("md", "markdown"):
        return render_markdown(changelog)
    if fmt_l in ("html", "htm"):
        return render_html(changelog)
    if fmt_l == "json":
        return render_json(changelog)
    if fmt_l in ("text", "txt"):
        return render_text(changelog)
    raise ValueError(f"unknown output format {fmt!r}; expected one of {', '.join(FORMATS)}")


__all__ = ["render", "render_text", "render_markdown", "render_html", "render_json", "change_request_blocks", "FORMATS"]
