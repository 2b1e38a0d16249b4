from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

_PR_REF = re.compile(r"^refs/pull/(\d+)/merge$")


@dataclass
class RunConfig:
    config_files: list[str]
    database_dsn: str
    dry_run: bool = False
    environment: str = ""
    timeout_s: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.config_files:
            raise ValueError("at least one definition file is required")
        if not self.database_dsn:
            raise ValueError(
                "DATABASE_DSN (or DATABASE_URL) environment variable is required"
            )
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")

    @classmethod
    def from_env(
        cls,
        config_files: Sequence[str],
        *,
        dry_run: bool = False,
        environment: str = "",
        timeout_s: Optional[float] = None,
        environ: Mapping[str, str] | None = None,
    ) -> "RunConfig":
        env = os.environ if environ is None else environ
        dsn = env.get("DATABASE_DSN") or env.get("DATABASE_URL") or ""
        return cls(
            config_files=list(config_files),
            database_dsn=dsn,
            dry_run=dry_run,
            environment=environment or env.get("OPSQL_ENVIRONMENT", ""),
            timeout_s=timeout_s,
        )


def pr_number_from_ref(ref: str) -> int:
    """Extract the PR number from a `refs/pull/<n>/merge` ref, or 0."""
    match = _PR_REF.match(ref or "")
    return int(match.group(1)) if match else 0


@dataclass
class NotifyConfig:
    github_repo: str = ""
    github_pr: int = 0
    github_token: str = field(default="", repr=False)
    github_actions: bool = False
    slack_webhook: str = field(default="", repr=False)
    # GitHub App credentials, used in preference to github_token
    github_app_id: str = ""
    github_app_installation_id: str = ""
    github_app_private_key: str = field(default="", repr=False)
    github_app_private_key_path: str = ""

    def __post_init__(self) -> None:
        if self.github_pr < 0:
            raise ValueError("github_pr must be >= 0")
        if self.github_repo and len(self.github_repo.split("/")) != 2:
            raise ValueError(
                f"invalid repository format: {self.github_repo} (expected owner/repo)"
            )

    @property
    def github_app_configured(self) -> bool:
        return bool(
            self.github_app_id
            and self.github_app_installation_id
            and (self.github_app_private_key or self.github_app_private_key_path)
        )

    @property
    def github_enabled(self) -> bool:
        has_auth = self.github_token or self.github_app_configured
        return bool(has_auth and self.github_repo and self.github_pr)

    @property
    def slack_enabled(self) -> bool:
        return bool(self.slack_webhook)

    @classmethod
    def from_env(
        cls,
        *,
        github_repo: str = "",
        github_pr: int = 0,
        slack_webhook: str = "",
        environ: Mapping[str, str] | None = None,
    ) -> "NotifyConfig":
        env = os.environ if environ is None else environ
        return cls(
            github_repo=github_repo or env.get("GITHUB_REPOSITORY", ""),
            github_pr=github_pr or pr_number_from_ref(env.get("GITHUB_REF", "")),
            github_token=env.get("GITHUB_TOKEN", ""),
            github_actions=env.get("GITHUB_ACTIONS") == "true",
            slack_webhook=slack_webhook or env.get("SLACK_WEBHOOK_URL", ""),
            github_app_id=env.get("GITHUB_APP_ID") or env.get("GITHUB_CLIENT_ID", ""),
            github_app_installation_id=env.get("GITHUB_APP_INSTALLATION_ID", ""),
            github_app_private_key=env.get("GITHUB_APP_PRIVATE_KEY", ""),
            github_app_private_key_path=env.get("GITHUB_APP_PRIVATE_KEY_PATH", ""),
        )
