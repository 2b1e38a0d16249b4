from .github import GitHubNotifier, format_comment
from .slack import SlackNotifier, build_blocks

__all__ = ["GitHubNotifier", "SlackNotifier", "build_blocks", "format_comment"]
