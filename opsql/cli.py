from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence, TextIO

from .cancel import CancelToken
from .config import NotifyConfig, RunConfig
from .db.models import Report, summarize
from .db.url import create_database, mask_secret
from .definition import load_definitions
from .engine.runner import make_runner
from .errors import NotificationError, OpsqlError
from .notify.github import GitHubNotifier
from .notify.slack import SlackNotifier

logger = logging.getLogger("opsql")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opsql",
        description=(
            "Run operational SQL from YAML definitions, validate results against "
            "declared expectations, and commit only when every assertion passes."
        ),
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Execute operations in a transaction that is always rolled back")
    plan.add_argument("-c", "--config", required=True, help="YAML definition file")
    _add_notify_args(plan)

    apply = sub.add_parser("apply", help="Execute operations and commit if every assertion passes")
    apply.add_argument("-c", "--config", required=True, help="YAML definition file")

    run = sub.add_parser("run", help="Execute operations (commit, or roll back with --dry-run)")
    run.add_argument(
        "-c",
        "--config",
        action="append",
        required=True,
        help="YAML definition file (repeat to merge several files)",
    )
    run.add_argument("-d", "--dry-run", action="store_true", help="Always roll back")
    run.add_argument(
        "-e",
        "--environment",
        default="",
        help="Environment name shown in notifications (default: $OPSQL_ENVIRONMENT)",
    )
    _add_notify_args(run)

    for command in (plan, apply, run):
        command.add_argument(
            "--timeout",
            type=float,
            default=None,
            help="Abort and roll back when the run exceeds this many seconds",
        )
    return parser


def _add_notify_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--github-repo", default="", help="GitHub repository (owner/repo)")
    parser.add_argument("--github-pr", type=int, default=0, help="GitHub PR number")
    parser.add_argument(
        "--slack-webhook",
        default="",
        help="Slack webhook URL (default: $SLACK_WEBHOOK_URL)",
    )


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@contextmanager
def _cancel_on_sigint(token: CancelToken) -> Iterator[None]:
    def _handler(signum, frame) -> None:
        token.cancel("interrupted")

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def write_reports(reports: Sequence[Report], out: TextIO) -> None:
    json.dump([r.to_dict() for r in reports], out, indent=2, ensure_ascii=False)
    out.write("\n")


def execute_run(config: RunConfig) -> tuple[list[Report], Optional[OpsqlError]]:
    """
    Load the definitions and run them; errors raised by the run are returned
    together with the reports collected before them.
    """
    try:
        definition = load_definitions(config.config_files)
    except OpsqlError as exc:
        return [], exc

    logger.info(
        "running %d operations (%s) against %s",
        len(definition.operations),
        "dry run" if config.dry_run else "apply",
        mask_secret(config.database_dsn),
    )
    try:
        db = create_database(config.database_dsn)
    except OpsqlError as exc:
        return [], exc

    token = CancelToken.with_timeout(config.timeout_s)
    try:
        with _cancel_on_sigint(token):
            reports = make_runner(db, config.dry_run).execute(definition.operations, cancel=token)
    except OpsqlError as exc:
        return exc.reports, exc
    finally:
        db.close()
    return reports, None


def send_notifications(
    notify: NotifyConfig,
    reports: Sequence[Report],
    dry_run: bool,
    environment: str,
    error: Optional[BaseException],
    github: bool = True,
) -> None:
    if github and notify.github_enabled:
        try:
            GitHubNotifier.from_config(notify).post(
                reports, dry_run, environment, error
            )
        except NotificationError as exc:
            logger.warning("failed to send GitHub comment: %s", exc)
    elif github:
        logger.debug("GitHub client not configured, skipping comment")

    if notify.slack_enabled:
        try:
            SlackNotifier(notify.slack_webhook).send(reports, dry_run, environment, error)
        except NotificationError as exc:
            logger.warning("failed to send Slack notification: %s", exc)


def main(argv: Optional[Sequence[str]] = None, out: TextIO = sys.stdout) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    files = args.config if isinstance(args.config, list) else [args.config]
    try:
        config = RunConfig.from_env(
            files,
            dry_run=args.command == "plan" or getattr(args, "dry_run", False),
            environment=getattr(args, "environment", ""),
            timeout_s=args.timeout,
        )
        notify = NotifyConfig.from_env(
            github_repo=getattr(args, "github_repo", ""),
            github_pr=getattr(args, "github_pr", 0),
            slack_webhook=getattr(args, "slack_webhook", ""),
        )
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    reports, error = execute_run(config)

    if reports:
        write_reports(reports, out)

    if args.command == "run":
        send_notifications(notify, reports, config.dry_run, config.environment, error)
    elif args.command == "plan":
        # plan only comments from inside GitHub Actions
        send_notifications(
            notify, reports, True, config.environment, error, github=notify.github_actions
        )

    if error is not None:
        logger.error("%s failed: %s", args.command, error)
        return 1

    passed, failed = summarize(reports)
    logger.info("%d passed, %d failed", passed, failed)
    return 1 if failed else 0
