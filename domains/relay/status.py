"""Status report - git state, Claude token usage and uptime as markdown."""

import time
from typing import Optional

from claude_client import UsageAccumulator
from .git_sync import GitError, GitRepository


def format_uptime(seconds: int) -> str:
    """Format seconds as e.g. '2h 5m 3s', '5m 3s' or '3s'."""
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class StatusService:
    """Builds the report sent in reply to a status command."""

    def __init__(
        self,
        repo: GitRepository,
        usage: UsageAccumulator,
        start_time: Optional[float] = None,
    ):
        self.repo = repo
        self.usage = usage
        self.start_time = start_time if start_time is not None else time.time()

    async def get_status_report(self) -> str:
        lines = ["# Bot Status", ""]

        try:
            git_status = await self.repo.get_status()
        except GitError as e:
            lines.append(f"**Git:** Error: {e.message}")
            lines.append("")
        else:
            lines.append("## Git Information")
            lines.append(f"**Branch:** {git_status.branch}")
            if git_status.tracking:
                lines.append(f"**Tracking:** {git_status.tracking}")

            if git_status.clean:
                lines.append("**Status:** Clean")
            else:
                count = len(git_status.modified)
                lines.append(f"**Status:** Modified ({count} file{'s' if count != 1 else ''})")
                lines.append("")
                lines.append("**Modified Files:**")
                lines.extend(f"- {path}" for path in git_status.modified)
            lines.append("")

        totals = self.usage.snapshot()
        lines.append("## Claude API Usage")
        lines.append(f"**Input Tokens:** {totals['input_tokens']:,}")
        lines.append(f"**Output Tokens:** {totals['output_tokens']:,}")
        if totals["total_tokens"] > 0:
            lines.append(f"**Total Tokens:** {totals['total_tokens']:,}")
        lines.append("")

        uptime = format_uptime(time.time() - self.start_time)
        lines.append("## Bot Uptime")
        lines.append(f"**Uptime:** {uptime}")

        return "\n".join(lines) + "\n"
