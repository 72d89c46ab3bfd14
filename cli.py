"""
CLI entry point for deployment-changelog. Wires the pipeline: resolve -> aggregate -> render
"""

import argparse
import asyncio
import logging
import os
import sys
import webbrowser
from typing import Dict, Optional, Tuple

from changelog import build_changelog
from errors import ChangelogError, PartialFetchError
from gateways import BitbucketGateway, JiraGateway, SpinnakerGateway
from models import CommitSpecifier, EnvironmentReference, ExplicitRange
from report.renderer import FORMATS, render
from settings import DEFAULT_BATCH_SIZE, DEFAULT_MAX_IN_FLIGHT, AggregationSettings, ServiceSettings, load_service_settings
from transport.rest import GraphQLClient, RestClient
from transport.retry import configure_retry

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 3


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _configure_logging(verbose: int, quiet: bool):
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(stream=sys.stderr, level=level, format="%(levelname)s %(name)s: %(message)s", force=True)
    if level > logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def _resolve_services(args, parser) -> Dict[str, Optional[ServiceSettings]]:
    """Resolve service URLs/tokens from CLI args or environment variables.
    Calls parser.error() if a service the command needs has no URL.
    """
    services = {
        "bitbucket": load_service_settings("bitbucket", args.bitbucket_url, args.bitbucket_token, args.timeout),
        "jira": load_service_settings("jira", args.jira_url, args.jira_token, args.timeout),
        "spinnaker": load_service_settings("spinnaker", args.spinnaker_url, args.spinnaker_token, args.timeout),
    }
    required = ["bitbucket", "jira"]
    if args.command == "environment":
        required.append("spinnaker")
    missing = [f"{name}_url (CLI flag --{name}-url or env {name.upper()}_URL)" for name in required if services[name] is None]
    if missing:
        parser.error("Missing required service URLs: " + ", ".join(missing))
    return services


def _rest_client(name: str, service: ServiceSettings) -> RestClient:
    return RestClient(service.base_url, token=service.token, timeout=service.timeout, service=name)


def build_gateways(services: Dict[str, Optional[ServiceSettings]]) -> Tuple[BitbucketGateway, JiraGateway, Optional[SpinnakerGateway]]:
    source = BitbucketGateway(_rest_client("bitbucket", services["bitbucket"]))
    tracker = JiraGateway(_rest_client("jira", services["jira"]), source=source)
    deployment = None
    if services.get("spinnaker") is not None:
        deployment = SpinnakerGateway(GraphQLClient(_rest_client("spinnaker", services["spinnaker"])))
    return source, tracker, deployment


def specifier_from_args(args) -> CommitSpecifier:
    if args.command == "range":
        return ExplicitRange(args.repository, args.start, args.end)
    return EnvironmentReference(args.application, args.environment)


def _open_file_in_browser(path: str):
    """Open a file URL in the system default web browser."""
    webbrowser.open("file://" + os.path.abspath(path))


def write_output(fmt: str, rendered: str, args):
    """Write output to a file when --out-file is given, otherwise to stdout."""
    out_path = (args.out_file or "").strip()
    if not out_path:
        sys.stdout.write(rendered)
        return
    out_dir = os.path.dirname(out_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(rendered)
    print(f"Wrote changelog to {out_path}", file=sys.stderr)
    if args.open and fmt == "html":
        try:
            _open_file_in_browser(out_path)
        except webbrowser.Error:
            print("Failed to open browser automatically; file saved at", out_path, file=sys.stderr)


def run_pipeline(args, source, tracker, deployment) -> int:
    """Build, render and write the changelog; return the process exit code."""
    settings = AggregationSettings(
        max_in_flight=DEFAULT_MAX_IN_FLIGHT if args.max_in_flight is None else args.max_in_flight,
        batch_size=DEFAULT_BATCH_SIZE if args.batch_size is None else args.batch_size,
    )
    exit_code = EXIT_OK
    try:
        changelog = asyncio.run(build_changelog(specifier_from_args(args), source, tracker, deployment, settings))
    except PartialFetchError as ex:
        for failed in ex.failed_batches:
            print(f"warning: {failed.describe()}", file=sys.stderr)
        print(f"warning: {ex}; the changelog below is incomplete", file=sys.stderr)
        changelog = ex.partial_changelog
        exit_code = EXIT_PARTIAL

    write_output(args.output, render(changelog, args.output), args)
    return exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deployment-changelog", description="Changelog of commits, pull requests and Jira issues between two revisions or for a deployed environment")
    parser.add_argument("--output", type=str, choices=FORMATS, default="text", help="Output format")
    parser.add_argument("--out-file", type=str, default="", help="Output file path; stdout when omitted")
    parser.add_argument("--open", action="store_true", help="Open a generated HTML file in the default browser")
    parser.add_argument("--bitbucket-url", type=str, help="Bitbucket Server base URL (or env BITBUCKET_URL)")
    parser.add_argument("--bitbucket-token", type=str, help="Bitbucket token (or env BITBUCKET_TOKEN)")
    parser.add_argument("--jira-url", type=str, help="Jira base URL (or env JIRA_URL)")
    parser.add_argument("--jira-token", type=str, help="Jira token (or env JIRA_TOKEN)")
    parser.add_argument("--spinnaker-url", type=str, help="Spinnaker gate base URL (or env SPINNAKER_URL)")
    parser.add_argument("--spinnaker-token", type=str, help="Spinnaker token (or env SPINNAKER_TOKEN)")
    parser.add_argument("--max-in-flight", type=_positive_int, default=None, help="Maximum concurrent association fetches (overrides CHANGELOG_MAX_IN_FLIGHT env)")
    parser.add_argument("--batch-size", type=_positive_int, default=None, help="Commits per change-request fetch (overrides CHANGELOG_BATCH_SIZE env)")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds (overrides CHANGELOG_TIMEOUT env)")
    # retry/backoff knobs: optional CLI overrides. Environment variables CHANGELOG_MAX_RETRIES, CHANGELOG_BACKOFF_BASE,
    # CHANGELOG_BACKOFF_JITTER, CHANGELOG_MAX_BACKOFF may also be used to set defaults.
    parser.add_argument("--max-retries", type=int, default=None, help="Maximum attempts per HTTP request (overrides CHANGELOG_MAX_RETRIES env)")
    parser.add_argument("--backoff-base", type=float, default=None, help="Base backoff seconds (overrides CHANGELOG_BACKOFF_BASE env)")
    parser.add_argument("--backoff-jitter", type=float, default=None, help="Jitter seconds added to backoff (overrides CHANGELOG_BACKOFF_JITTER env)")
    parser.add_argument("--max-backoff", type=float, default=None, help="Maximum backoff cap in seconds (overrides CHANGELOG_MAX_BACKOFF env)")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-v info, -vv debug)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors")

    sub = parser.add_subparsers(dest="command", required=True)
    rng = sub.add_parser("range", help="Changelog of an explicit commit range")
    rng.add_argument("repository", help="Repository as PROJECT/repo")
    rng.add_argument("start", help="Start revision: commit, tag or branch (exclusive)")
    rng.add_argument("end", help="End revision: commit, tag or branch (inclusive)")
    env = sub.add_parser("environment", help="Changelog of the current deployment of a Spinnaker environment")
    env.add_argument("application", help="Spinnaker application name")
    env.add_argument("environment", help="Environment name")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose, args.quiet)

    # Apply runtime retry/backoff configuration (CLI flags take precedence over environment variables)
    try:
        configure_retry(max_retries=args.max_retries, backoff_base=args.backoff_base, backoff_jitter=args.backoff_jitter, max_backoff=args.max_backoff)
    except ValueError as ex:
        parser.error(str(ex))

    services = _resolve_services(args, parser)
    source, tracker, deployment = build_gateways(services)
    try:
        return run_pipeline(args, source, tracker, deployment)
    except ChangelogError as ex:
        logger.debug("Changelog failed", exc_info=True)
        print(f"error: {ex}", file=sys.stderr)
        return EXIT_FAILED
    except ValueError as ex:
        print(f"error: {ex}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
