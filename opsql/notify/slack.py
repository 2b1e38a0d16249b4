from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import requests

from ..db.models import OperationType, Report, summarize
from ..errors import NotificationError

logger = logging.getLogger(__name__)


def _text(text: str, kind: str = "mrkdwn") -> dict[str, Any]:
    return {"type": kind, "text": text}


def build_blocks(
    reports: Sequence[Report],
    dry_run: bool = False,
    environment: str = "",
    error: Optional[BaseException] = None,
) -> list[dict[str, Any]]:
    """Slack Block Kit payload for a run."""
    header = "🔧 opsql Execution Results"
    if environment:
        header = f"[{environment}] {header}"
    if dry_run:
        header += " (Dry Run)"

    passed, failed = summarize(reports)
    emoji = "❌" if failed or error is not None else "✅"

    blocks: list[dict[str, Any]] = [
        {"type": "header", "text": _text(header, "plain_text")},
        {
            "type": "section",
            "text": _text(f"{emoji} *Summary:* {passed} passed, {failed} failed"),
        },
    ]
    if error is not None:
        blocks.append({"type": "section", "text": _text(f"*Error:*\n```{error}```")})
    blocks.append({"type": "divider"})

    for report in reports:
        blocks.append(_operation_block(report))
    return blocks


def _operation_block(report: Report) -> dict[str, Any]:
    status = "✅ PASS" if report.passed else "❌ FAIL"
    fields = [
        _text(f"*Type:*\n{report.type}"),
        _text(f"*Status:*\n{report.message}"),
    ]
    if report.result is not None and report.type != OperationType.SELECT.value:
        fields.append(_text(f"*Affected Rows:*\n{report.result}"))

    return {
        "type": "section",
        "text": _text(f"*{status}* `{report.id}`\n{report.description}"),
        "fields": fields,
    }


class SlackNotifier:
    def __init__(self, webhook_url: str, timeout_s: float = 30.0) -> None:
        if not webhook_url:
            raise NotificationError("SLACK_WEBHOOK_URL is not set")
        self.webhook_url = webhook_url
        self.timeout_s = timeout_s

    def send(
        self,
        reports: Sequence[Report],
        dry_run: bool = False,
        environment: str = "",
        error: Optional[BaseException] = None,
    ) -> None:
        """
        Raises:
            NotificationError: If the webhook call fails
        """
        payload = {"blocks": build_blocks(reports, dry_run, environment, error)}
        try:
            resp = requests.post(self.webhook_url, json=payload, timeout=self.timeout_s)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise NotificationError(f"Slack webhook failed: {exc}") from exc
        logger.info("sent Slack notification (%d reports)", len(reports))
