from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional, Sequence

import jwt
import requests

from ..config import NotifyConfig
from ..db.models import OperationType, Report, summarize, to_jsonable
from ..errors import NotificationError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
TITLE = "opsql Execution Results"


def comment_title(dry_run: bool = False, environment: str = "") -> str:
    title = "## "
    if environment:
        title += f"[{environment}] "
    title += TITLE
    if dry_run:
        title += " (Dry Run)"
    return title


def format_comment(
    reports: Sequence[Report],
    dry_run: bool = False,
    environment: str = "",
    error: Optional[BaseException] = None,
) -> str:
    """Render reports as a Markdown PR comment."""
    lines = [comment_title(dry_run, environment), ""]

    passed, failed = summarize(reports)
    lines.append(f"**Summary:** {passed} passed, {failed} failed")
    lines.append("")

    if error is not None:
        lines.append("### ⚠️ Execution Error")
        lines.append("```")
        lines.append(str(error))
        lines.append("```")
        lines.append("")

    for report in reports:
        status = "✅" if report.passed else "❌"
        lines.append(f"### {status} {report.id} - {report.description}")
        lines.append(f"**Type:** {report.type}")
        lines.append(f"**Status:** {report.message}")

        if report.statement:
            lines.append("**Query:**")
            lines.append("```sql")
            lines.append(report.statement.strip())
            lines.append("```")

        if report.type == OperationType.SELECT.value and report.result:
            lines.append("**Result:**")
            lines.append("```json")
            lines.append(json.dumps(to_jsonable(report.result), indent=2, ensure_ascii=False))
            lines.append("```")
        elif report.type != OperationType.SELECT.value and report.result is not None:
            lines.append(f"**Affected Rows:** {report.result}")

        lines.append("")

    return "\n".join(lines)


def create_installation_token(
    app_id: str,
    installation_id: str,
    private_key: str,
    api_url: str = GITHUB_API_URL,
    timeout_s: float = 30.0,
) -> str:
    """
    Exchange a GitHub App JWT for an installation access token.

    Raises:
        NotificationError: If the key cannot sign the JWT or GitHub rejects it
    """
    now = int(time.time())
    # GitHub rejects an exp more than 10 minutes after iat
    claims = {"iat": now - 60, "exp": now + 540, "iss": app_id}
    try:
        app_jwt = jwt.encode(claims, private_key, algorithm="RS256")
    except (jwt.PyJWTError, ValueError, TypeError) as exc:
        raise NotificationError(f"failed to sign GitHub App JWT: {exc}") from exc

    url = f"{api_url.rstrip('/')}/app/installations/{installation_id}/access_tokens"
    try:
        resp = requests.post(
            url,
            headers={
                "Authorization": f"Bearer {app_jwt}",
                "Accept": "application/vnd.github+json",
            },
            timeout=timeout_s,
        )
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise NotificationError(f"failed to create installation token: {exc}") from exc

    token = (resp.json() or {}).get("token")
    if not token:
        raise NotificationError("installation token missing from GitHub response")
    return token


def _app_private_key(notify: NotifyConfig) -> str:
    if notify.github_app_private_key:
        return notify.github_app_private_key
    try:
        return Path(notify.github_app_private_key_path).read_text(encoding="utf-8")
    except OSError as exc:
        raise NotificationError(f"failed to read GitHub App private key: {exc}") from exc


class GitHubNotifier:
    """
    Posts run results as a pull request comment.

    A previous opsql comment with the same title (same environment) is edited
    in place instead of adding a new comment on every run.
    """

    def __init__(
        self,
        repo: str,
        pr: int,
        token: str,
        api_url: str = GITHUB_API_URL,
        timeout_s: float = 30.0,
    ) -> None:
        if not token:
            raise NotificationError(
                "GitHub authentication not configured "
                "(GitHub App credentials or GITHUB_TOKEN required)"
            )
        if not repo or not pr:
            raise NotificationError("GitHub repository or PR number not specified")
        parts = repo.split("/")
        if len(parts) != 2:
            raise NotificationError(f"invalid repository format: {repo} (expected owner/repo)")

        self.owner, self.repo = parts
        self.pr = pr
        self.api_url = api_url.rstrip("/")
        self.timeout_s = timeout_s
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
        }

    @classmethod
    def from_config(
        cls,
        notify: NotifyConfig,
        api_url: str = GITHUB_API_URL,
        timeout_s: float = 30.0,
    ) -> "GitHubNotifier":
        """
        Build a notifier, preferring GitHub App credentials over GITHUB_TOKEN.

        When the App token exchange fails and a GITHUB_TOKEN is set, the token
        is used instead.

        Raises:
            NotificationError: If no usable credentials are configured
        """
        token = notify.github_token
        if notify.github_app_configured:
            try:
                token = create_installation_token(
                    notify.github_app_id,
                    notify.github_app_installation_id,
                    _app_private_key(notify),
                    api_url,
                    timeout_s,
                )
                logger.debug("authenticated as GitHub App %s", notify.github_app_id)
            except NotificationError as exc:
                if not notify.github_token:
                    raise
                logger.warning("GitHub App authentication failed, using GITHUB_TOKEN: %s", exc)
        return cls(notify.github_repo, notify.github_pr, token, api_url, timeout_s)

    def post(
        self,
        reports: Sequence[Report],
        dry_run: bool = False,
        environment: str = "",
        error: Optional[BaseException] = None,
    ) -> None:
        """
        Raises:
            NotificationError: If the GitHub API rejects the request
        """
        body = format_comment(reports, dry_run, environment, error)
        prefix = comment_title(environment=environment)

        existing = self._find_existing_comment(prefix)
        if existing is not None:
            url = f"{self.api_url}/repos/{self.owner}/{self.repo}/issues/comments/{existing['id']}"
            self._send("PATCH", url, {"body": body})
            logger.info("updated GitHub comment %s on PR #%d", existing["id"], self.pr)
        else:
            url = f"{self.api_url}/repos/{self.owner}/{self.repo}/issues/{self.pr}/comments"
            self._send("POST", url, {"body": body})
            logger.info("posted GitHub comment on PR #%d", self.pr)

    def _find_existing_comment(self, prefix: str) -> Optional[dict[str, Any]]:
        url: Optional[str] = (
            f"{self.api_url}/repos/{self.owner}/{self.repo}/issues/{self.pr}/comments"
        )
        params: Optional[dict[str, Any]] = {"per_page": 100}
        while url:
            resp = self._send("GET", url, params=params)
            for comment in (resp.json() if resp.content else None) or []:
                if (comment.get("body") or "").startswith(prefix):
                    return comment
            # the next-page URL already carries the query string
            url = resp.links.get("next", {}).get("url")
            params = None
        return None

    def _send(
        self,
        method: str,
        url: str,
        payload: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> requests.Response:
        try:
            resp = requests.request(
                method,
                url,
                headers=self._headers,
                json=payload,
                params=params,
                timeout=self.timeout_s,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise NotificationError(f"GitHub API {method} {url} failed: {exc}") from exc
        return resp
